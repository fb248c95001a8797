"""Prompt text used by the chat orchestrator."""

from __future__ import annotations

from collections.abc import Sequence

from agentchat.tools.products import Product

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

TOOL_INSTRUCTIONS = """

## Knowledge Base
You have access to a `search_knowledge_base` tool that searches the product
knowledge base.

- ALWAYS call `search_knowledge_base` when the user asks about products,
  inventory, the catalog, or anything the knowledge base may contain.
- Never invent products. Only mention products returned by the tool.
- When the tool returns products, list **all** of them, using this format:

  1. **<Product name>**
     - Product ID: <id>
     - Description: <one or two sentences>
"""


def build_system_prompt(base_prompt: str | None) -> str:
    """Agent prompt (or the default) followed by the tool-usage instructions."""
    return (base_prompt or DEFAULT_SYSTEM_PROMPT).rstrip() + TOOL_INSTRUCTIONS


def product_reminder(products: Sequence[Product]) -> str:
    """System reminder listing the products found by this turn's tool calls."""
    lines = [
        f"The knowledge base returned {len(products)} product(s). "
        "Mention every one of them in your answer:",
    ]
    lines.extend(f"- Product ID: {p.product_id} - {p.name}" for p in products)
    return "\n".join(lines)
