"""Chat-model construction for the completion provider.

Agents name their model (``gpt-4.1``, ``claude-sonnet-4-5``, …); the
provider is picked from that name.  Models come back already bound to the
tool declarations so the orchestrator only has to ``ainvoke`` them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.runnables import Runnable
from langchain_openai import ChatOpenAI

from agentchat.config import ANTHROPIC_API_KEY, OPENAI_API_KEY
from agentchat.errors import ConfigurationError

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 1024

LLMFactory = Callable[[str, float, Sequence[dict[str, Any]]], Runnable]


def is_anthropic_model(model: str) -> bool:
    """Claude models are served by Anthropic; everything else goes to OpenAI."""
    return model.startswith("claude")


def _build_chat_model(model: str, temperature: float) -> BaseChatModel:
    if is_anthropic_model(model):
        if not ANTHROPIC_API_KEY:
            raise ConfigurationError(
                f"Missing configuration: ANTHROPIC_API_KEY is required for model {model}."
            )
        return ChatAnthropic(
            model=model,
            api_key=ANTHROPIC_API_KEY,
            temperature=temperature,
            max_tokens=MAX_OUTPUT_TOKENS,
        )
    return ChatOpenAI(
        model=model,
        api_key=OPENAI_API_KEY,
        temperature=temperature,
        max_tokens=MAX_OUTPUT_TOKENS,
    )


def build_llm(
    model: str,
    temperature: float,
    tools: Sequence[dict[str, Any]] = (),
) -> Runnable:
    """Build the chat model for *model*, bound to *tools* when given."""
    llm = _build_chat_model(model, temperature)
    logger.debug("Built chat model %s (temperature=%.2f, tools=%d)", model, temperature, len(tools))
    return llm.bind_tools(list(tools)) if tools else llm


def message_text(message: BaseMessage) -> str | None:
    """Return the plain text of a model reply, or ``None`` when it has none.

    Anthropic replies carry a list of content blocks; only the text blocks
    are kept.
    """
    content = message.content
    if isinstance(content, str):
        return content or None
    parts = [
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
        if not isinstance(block, dict) or block.get("type") == "text"
    ]
    text = "".join(parts)
    return text or None
