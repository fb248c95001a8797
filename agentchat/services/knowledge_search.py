"""Knowledge-base lookup: embed the query, then ask the vector store.

Backend failures surface as one of two typed errors so callers can tell a
misconfigured deployment (:class:`KnowledgeBaseUnavailable`) apart from a
transient problem (:class:`KnowledgeBaseQueryError`).
"""

from __future__ import annotations

import logging

from agentchat.config import MATCH_COUNT, RETRY_BASE_DELAY_SECONDS, RETRY_MAX_ATTEMPTS
from agentchat.errors import (
    ConfigurationError,
    KnowledgeBaseQueryError,
    KnowledgeBaseUnavailable,
    VectorStoreError,
)
from agentchat.services.embeddings import EmbeddingClient
from agentchat.services.retry import with_retry
from agentchat.services.vector_store import MatchedDocument, SupabaseVectorStore

logger = logging.getLogger(__name__)

# PostgREST answers PGRST202 when the RPC function is not in its schema cache
_MISSING_FUNCTION_CODES = frozenset({"PGRST202", "42883"})
_MISSING_FUNCTION_MARKERS = ("could not find the function", "does not exist")


def _is_missing_function(exc: Exception) -> bool:
    if isinstance(exc, VectorStoreError) and exc.code in _MISSING_FUNCTION_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _MISSING_FUNCTION_MARKERS)


class KnowledgeSearch:
    """Top-K similarity search over the product knowledge base."""

    def __init__(
        self,
        embeddings: EmbeddingClient,
        store: SupabaseVectorStore,
        *,
        match_count: int = MATCH_COUNT,
        max_retries: int = RETRY_MAX_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
    ):
        self._embeddings = embeddings
        self._store = store
        self.match_count = match_count
        self._max_retries = max_retries
        self._base_delay = base_delay

    async def search(self, query: str, limit: int | None = None) -> list[MatchedDocument]:
        """Return at most *limit* documents, most similar first.

        An empty or whitespace-only query returns ``[]`` without touching
        the embedding provider.  :class:`EmbeddingError` propagates as-is.
        """
        if not query or not query.strip():
            return []

        embedding = await self._embeddings.embed(query)
        if not embedding:
            logger.warning("Empty embedding for query %r; skipping search", query[:80])
            return []

        count = limit or self.match_count
        try:
            documents = await with_retry(
                lambda: self._store.match_documents(embedding, count),
                max_retries=self._max_retries,
                base_delay=self._base_delay,
                label="Knowledge-base search",
            )
        except ConfigurationError as exc:
            raise KnowledgeBaseUnavailable(str(exc)) from exc
        except Exception as exc:
            if _is_missing_function(exc):
                raise KnowledgeBaseUnavailable(
                    f"Knowledge-base search function is not available: {exc}"
                ) from exc
            if isinstance(exc, VectorStoreError):
                logger.error(
                    "Knowledge-base search failed (HTTP %s, code %s): %s",
                    exc.http_status, exc.code, exc,
                )
            raise KnowledgeBaseQueryError(f"Knowledge-base query failed: {exc}") from exc

        logger.info("Knowledge-base search for %r matched %d documents", query[:80], len(documents))
        return documents[:count]
