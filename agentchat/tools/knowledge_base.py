"""The ``search_knowledge_base`` tool exposed to the chat model.

Tool results are always JSON strings, including on failure: the model gets
to see a failed lookup (with a hint about the cause) and can tell the user,
instead of the whole turn being aborted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, Field

from agentchat.errors import (
    ChatServiceError,
    ConfigurationError,
    EmbeddingError,
    KnowledgeBaseUnavailable,
)
from agentchat.services.knowledge_search import KnowledgeSearch
from agentchat.tools.products import Product, extract_products_from_documents

logger = logging.getLogger(__name__)

SEARCH_KNOWLEDGE_BASE = "search_knowledge_base"


class SearchKnowledgeBaseArgs(BaseModel):
    """Arguments accepted by ``search_knowledge_base``."""

    query: str = Field(
        ...,
        min_length=1,
        description="Text to search for in the product knowledge base.",
    )


# OpenAI-format function declarations, accepted by ``bind_tools`` for both
# ChatOpenAI and ChatAnthropic.
TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": SEARCH_KNOWLEDGE_BASE,
            "description": (
                "Searches the product knowledge base using vector similarity. "
                "Use it for any question about products, inventory or the catalog."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Text to search in the vector database.",
                    },
                },
                "required": ["query"],
                "additionalProperties": False,
            },
        },
    },
]


@dataclass
class ToolResult:
    """What a tool call hands back: the payload for the model plus side data."""

    payload: str
    products: list[Product] = field(default_factory=list)
    success: bool = True


def classify_failure(exc: BaseException) -> str:
    """Turn a tool failure into a short, human-readable hint."""
    message = str(exc).lower()
    if isinstance(exc, ConfigurationError) or "missing configuration" in message:
        return "The knowledge base is not configured (missing configuration)."
    if isinstance(exc, KnowledgeBaseUnavailable) or "could not find the function" in message:
        return "The knowledge-base search function is missing in the database."
    if isinstance(exc, (httpx.TransportError, EmbeddingError)) or any(
        marker in message for marker in ("timeout", "timed out", "connect", "network")
    ):
        return "A network issue prevented the knowledge-base lookup."
    if isinstance(exc, ValueError):
        return "The tool was called with invalid arguments."
    return "The knowledge-base lookup failed unexpectedly."


def _error_payload(error: str, hint: str | None = None) -> str:
    body: dict[str, Any] = {"success": False, "error": error, "products": []}
    if hint:
        body["hint"] = hint
    return json.dumps(body)


class ToolInvoker:
    """Dispatches tool calls requested by the model to their implementation."""

    def __init__(self, knowledge_search: KnowledgeSearch):
        self._knowledge_search = knowledge_search

    async def invoke(self, name: str, arguments: dict[str, Any] | str | None) -> ToolResult:
        """Run tool *name* with *arguments*.  Never raises."""
        if name != SEARCH_KNOWLEDGE_BASE:
            logger.warning("Model requested unknown tool %r", name)
            return ToolResult(payload=_error_payload(f"Unknown tool: {name}"), success=False)

        try:
            if isinstance(arguments, str):
                arguments = json.loads(arguments or "{}")
            args = SearchKnowledgeBaseArgs.model_validate(arguments or {})
            if not args.query.strip():
                raise ValueError("query must not be blank")
            return await self._search_knowledge_base(args.query)
        except (ChatServiceError, httpx.HTTPError, ValueError) as exc:
            hint = classify_failure(exc)
            logger.error("Tool %s failed: %s (%s)", name, exc, hint)
            return ToolResult(payload=_error_payload(str(exc), hint), success=False)

    async def _search_knowledge_base(self, query: str) -> ToolResult:
        documents = await self._knowledge_search.search(query)
        products = extract_products_from_documents(documents)
        logger.info(
            "search_knowledge_base(%r): %d documents, %d products",
            query[:80], len(documents), len(products),
        )
        payload = {
            "success": True,
            "message": f"Found {len(documents)} matching documents",
            "documents": [document.model_dump(mode="json") for document in documents],
            "products": [product.model_dump(mode="json", by_alias=True) for product in products],
        }
        return ToolResult(payload=json.dumps(payload), products=products)
