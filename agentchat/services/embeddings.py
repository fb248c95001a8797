"""Text → vector client backed by the OpenAI embeddings API."""

from __future__ import annotations

import logging

from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings

from agentchat.config import EMBEDDING_MODEL_NAME, OPENAI_API_KEY
from agentchat.errors import EmbeddingError
from agentchat.services.metrics import metrics

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Turns a query string into the vector used for similarity search.

    The caller is responsible for passing non-empty text.
    """

    def __init__(
        self,
        embeddings: Embeddings | None = None,
        *,
        model: str | None = None,
        api_key: str | None = None,
    ):
        self.model = model or EMBEDDING_MODEL_NAME
        self._embeddings = embeddings or OpenAIEmbeddings(
            model=self.model,
            api_key=api_key or OPENAI_API_KEY,
        )

    async def embed(self, text: str) -> list[float]:
        try:
            with metrics.track("openai", "embeddings"):
                vector = await self._embeddings.aembed_query(text)
        except Exception as exc:
            logger.error("Embedding request failed (%s): %s", self.model, exc)
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc
        logger.debug("Embedded %d chars into %d dimensions", len(text), len(vector))
        return list(vector)
