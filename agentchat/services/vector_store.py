"""Async HTTP client for the Supabase pgvector similarity function.

The knowledge base lives in a Supabase table with a ``match_documents``
SQL function exposed through PostgREST:

    POST {SUPABASE_URL}/rest/v1/rpc/match_documents
    {"query_embedding": [...], "match_count": 3}

Responses are rows of ``{id, content, metadata, similarity}`` ordered by
descending similarity.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from agentchat.config import MATCH_FUNCTION, SUPABASE_ANON_KEY, SUPABASE_URL
from agentchat.errors import ConfigurationError, VectorStoreError
from agentchat.services.metrics import metrics

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0


class MatchedDocument(BaseModel):
    """One knowledge-base row returned by the similarity function."""

    id: int | str
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    similarity: float = 0.0


class SupabaseVectorStore:
    """Thin wrapper around the PostgREST RPC endpoint.

    The underlying ``httpx.AsyncClient`` is created once and shared by every
    request; call :meth:`aclose` on shutdown.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        *,
        function_name: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = (url or SUPABASE_URL or "").rstrip("/")
        self._api_key = api_key or SUPABASE_ANON_KEY
        self._function_name = function_name or MATCH_FUNCTION
        self._client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)

    def _check_configured(self) -> None:
        missing = [
            name
            for name, value in (("SUPABASE_URL", self._url), ("SUPABASE_ANON_KEY", self._api_key))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing configuration: {', '.join(missing)}. "
                "Set it in .env to enable knowledge-base search."
            )

    async def match_documents(
        self, embedding: list[float], match_count: int,
    ) -> list[MatchedDocument]:
        """Return the *match_count* rows nearest to *embedding*."""
        self._check_configured()

        with metrics.track("supabase", self._function_name):
            response = await self._client.post(
                f"{self._url}/rest/v1/rpc/{self._function_name}",
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json={"query_embedding": embedding, "match_count": match_count},
            )
            if response.status_code >= 400:
                raise self._error_from_response(response)

        rows = response.json() or []
        logger.debug("%s returned %d rows", self._function_name, len(rows))
        return [MatchedDocument.model_validate(row) for row in rows]

    def _error_from_response(self, response: httpx.Response) -> VectorStoreError:
        """Build a VectorStoreError from a PostgREST error body.

        PostgREST answers ``{"code": ..., "message": ..., "hint": ...}``;
        anything else is reported with the raw body text.
        """
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            message = body["message"]
            code = body.get("code")
        else:
            message = response.text or f"HTTP {response.status_code}"
            code = None
        return VectorStoreError(
            f"Supabase {self._function_name} error {response.status_code}: {message}",
            http_status=response.status_code,
            code=code,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
