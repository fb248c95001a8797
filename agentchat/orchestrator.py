"""LangGraph pipeline that turns one user message into a persisted turn.

Graph (one node per :class:`Phase`)::

    load_context → build_prompt → first_completion ─┬─ (tool calls)      → tool_execution
                                                    ├─ (topic, no calls) → force_tool → tool_execution
                                                    └─ (otherwise)       → direct_answer → persist
    tool_execution → second_completion → reconcile_products → persist → END

Tool execution happens at most once per turn.  ``second_completion`` has a
single outgoing edge, so tool calls the model requests in that round are
logged and dropped rather than executed.

Nothing is written until ``persist``: a provider or database failure in any
earlier node aborts the turn without a partial write.  Tool failures do not
abort; they reach the model as JSON error payloads.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any

from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.runnables import Runnable
from langgraph.graph import END, START, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from agentchat.config import DEFAULT_MODEL_NAME, DEFAULT_TEMPERATURE
from agentchat.db.models import ChatMessage
from agentchat.db.repository import ChatRepository
from agentchat.errors import NotFoundError, ProviderError
from agentchat.llm import LLMFactory, build_llm, is_anthropic_model, message_text
from agentchat.prompts import build_system_prompt, product_reminder
from agentchat.services.metrics import metrics
from agentchat.tools.knowledge_base import SEARCH_KNOWLEDGE_BASE, TOOL_SCHEMAS, ToolInvoker
from agentchat.tools.products import (
    Product,
    dedupe_products,
    extract_products_from_text,
    reconcile_products,
)

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    LOAD_CONTEXT = "load_context"
    BUILD_PROMPT = "build_prompt"
    FIRST_COMPLETION = "first_completion"
    DIRECT_ANSWER = "direct_answer"
    FORCE_TOOL_ANSWER = "force_tool"
    TOOL_EXECUTION = "tool_execution"
    SECOND_COMPLETION = "second_completion"
    RECONCILE_PRODUCTS = "reconcile_products"
    PERSIST = "persist"
    RESPOND = "respond"


# ── Intent heuristic ─────────────────────────────────────────────────

IntentPredicate = Callable[[str], bool]

_CATALOG_TOPIC_RE = re.compile(
    r"\b(?:knowledge[\s_-]*base|products?|inventor(?:y|ies)|catalog(?:ue)?s?"
    r"|in\s+stock|merchandise)\b",
    re.IGNORECASE,
)


def mentions_catalog_topic(text: str) -> bool:
    """Return ``True`` when *text* asks about something the knowledge base holds."""
    return bool(_CATALOG_TOPIC_RE.search(text or ""))


# ── State ────────────────────────────────────────────────────────────


class TurnState(TypedDict, total=False):
    """State flowing through the graph for one incoming message.

    ``messages`` uses the ``add_messages`` reducer so nodes append to the
    model-facing conversation; every other key is overwritten.
    """

    session_id: str
    content: str
    phase: Phase
    system_prompt: str | None
    model: str
    temperature: float
    history: list[AnyMessage]
    llm: Runnable
    messages: Annotated[list[AnyMessage], add_messages]
    pending_tool_calls: list[dict[str, Any]]
    products: list[Product]
    final_text: str | None
    turn: ChatMessage


@dataclass
class OrchestrationResult:
    message: ChatMessage
    products: list[Product] = field(default_factory=list)


def history_to_messages(turns: Sequence[ChatMessage]) -> list[AnyMessage]:
    """Expand stored turns into user/assistant messages, oldest first."""
    messages: list[AnyMessage] = []
    for turn in turns:
        if turn.user_message:
            messages.append(HumanMessage(content=turn.user_message))
        if turn.assistant_message:
            messages.append(AIMessage(content=turn.assistant_message))
    return messages


def _provider_name(model: str) -> str:
    return "anthropic" if is_anthropic_model(model) else "openai"


class ChatOrchestrator:
    """Runs the message-exchange pipeline for chat sessions."""

    def __init__(
        self,
        repository: ChatRepository,
        tool_invoker: ToolInvoker,
        *,
        llm_factory: LLMFactory = build_llm,
        intent_predicate: IntentPredicate = mentions_catalog_topic,
        default_model: str = DEFAULT_MODEL_NAME,
        default_temperature: float = DEFAULT_TEMPERATURE,
    ):
        self._repository = repository
        self._tool_invoker = tool_invoker
        self._llm_factory = llm_factory
        self._intent_predicate = intent_predicate
        self._default_model = default_model
        self._default_temperature = default_temperature
        self._graph = self._build_graph()

    async def handle_message(self, session_id: str, content: str) -> OrchestrationResult:
        """Answer *content* within *session_id* and persist the turn."""
        final_state = await self._graph.ainvoke(
            {
                "session_id": session_id,
                "content": content,
                "pending_tool_calls": [],
                "products": [],
                "final_text": None,
            }
        )
        products = final_state.get("products") or []
        logger.info(
            "[%s] phase=%s products=%d", session_id, Phase.RESPOND.value, len(products),
        )
        return OrchestrationResult(message=final_state["turn"], products=products)

    # ── Graph assembly ───────────────────────────────────────────────

    def _build_graph(self):
        graph = StateGraph(TurnState)

        graph.add_node(Phase.LOAD_CONTEXT.value, self._load_context)
        graph.add_node(Phase.BUILD_PROMPT.value, self._build_prompt)
        graph.add_node(Phase.FIRST_COMPLETION.value, self._first_completion)
        graph.add_node(Phase.DIRECT_ANSWER.value, self._direct_answer)
        graph.add_node(Phase.FORCE_TOOL_ANSWER.value, self._force_tool)
        graph.add_node(Phase.TOOL_EXECUTION.value, self._tool_execution)
        graph.add_node(Phase.SECOND_COMPLETION.value, self._second_completion)
        graph.add_node(Phase.RECONCILE_PRODUCTS.value, self._reconcile_products)
        graph.add_node(Phase.PERSIST.value, self._persist)

        graph.add_edge(START, Phase.LOAD_CONTEXT.value)
        graph.add_edge(Phase.LOAD_CONTEXT.value, Phase.BUILD_PROMPT.value)
        graph.add_edge(Phase.BUILD_PROMPT.value, Phase.FIRST_COMPLETION.value)
        graph.add_conditional_edges(
            Phase.FIRST_COMPLETION.value,
            self.route_after_first_completion,
            {
                Phase.TOOL_EXECUTION.value: Phase.TOOL_EXECUTION.value,
                Phase.FORCE_TOOL_ANSWER.value: Phase.FORCE_TOOL_ANSWER.value,
                Phase.DIRECT_ANSWER.value: Phase.DIRECT_ANSWER.value,
            },
        )
        graph.add_edge(Phase.FORCE_TOOL_ANSWER.value, Phase.TOOL_EXECUTION.value)
        graph.add_edge(Phase.TOOL_EXECUTION.value, Phase.SECOND_COMPLETION.value)
        graph.add_edge(Phase.SECOND_COMPLETION.value, Phase.RECONCILE_PRODUCTS.value)
        graph.add_edge(Phase.RECONCILE_PRODUCTS.value, Phase.PERSIST.value)
        graph.add_edge(Phase.DIRECT_ANSWER.value, Phase.PERSIST.value)
        graph.add_edge(Phase.PERSIST.value, END)

        return graph.compile()

    def route_after_first_completion(self, state: TurnState) -> str:
        if state.get("pending_tool_calls"):
            return Phase.TOOL_EXECUTION.value
        if self._intent_predicate(state["content"]):
            logger.info(
                "[%s] No tool call for a catalog question; forcing a knowledge-base search",
                state["session_id"],
            )
            return Phase.FORCE_TOOL_ANSWER.value
        return Phase.DIRECT_ANSWER.value

    # ── Nodes ────────────────────────────────────────────────────────

    async def _load_context(self, state: TurnState) -> dict:
        session_id = state["session_id"]
        session = await self._repository.find_session(session_id)
        if session is None:
            raise NotFoundError(f"Chat session {session_id} not found")

        agent = await self._repository.get_agent(session.agent_id) if session.agent_id else None
        turns = await self._repository.list_turns(session_id)
        logger.debug(
            "[%s] Loaded %d previous turns (agent=%s)",
            session_id, len(turns), agent.id if agent else None,
        )
        return {
            "phase": Phase.LOAD_CONTEXT,
            "system_prompt": agent.system_prompt if agent else None,
            "model": agent.model.value if agent else self._default_model,
            "temperature": agent.temperature if agent else self._default_temperature,
            "history": history_to_messages(turns),
        }

    async def _build_prompt(self, state: TurnState) -> dict:
        messages: list[AnyMessage] = [
            SystemMessage(content=build_system_prompt(state.get("system_prompt"))),
            *state.get("history", []),
            HumanMessage(content=state["content"]),
        ]
        return {
            "phase": Phase.BUILD_PROMPT,
            "messages": messages,
            "llm": self._llm_factory(state["model"], state["temperature"], TOOL_SCHEMAS),
        }

    async def _first_completion(self, state: TurnState) -> dict:
        response = await self._complete(state, state["messages"], "first_completion")
        update: dict[str, Any] = {
            "phase": Phase.FIRST_COMPLETION,
            "final_text": message_text(response),
            "pending_tool_calls": list(response.tool_calls or []),
        }
        if response.tool_calls:
            update["messages"] = [response]
        return update

    async def _direct_answer(self, state: TurnState) -> dict:
        return {"phase": Phase.DIRECT_ANSWER, "products": []}

    async def _force_tool(self, state: TurnState) -> dict:
        call = {
            "name": SEARCH_KNOWLEDGE_BASE,
            "args": {"query": state["content"]},
            "id": f"call_forced_{uuid.uuid4().hex[:24]}",
            "type": "tool_call",
        }
        return {
            "phase": Phase.FORCE_TOOL_ANSWER,
            "messages": [AIMessage(content="", tool_calls=[call])],
            "pending_tool_calls": [call],
        }

    async def _tool_execution(self, state: TurnState) -> dict:
        calls = state.get("pending_tool_calls", [])
        results = await asyncio.gather(
            *(self._tool_invoker.invoke(call["name"], call.get("args")) for call in calls)
        )
        tool_messages = [
            ToolMessage(content=result.payload, tool_call_id=call["id"], name=call["name"])
            for call, result in zip(calls, results)
        ]
        products = [*state.get("products", [])]
        for result in results:
            products.extend(result.products)
        failed = [call["name"] for call, result in zip(calls, results) if not result.success]
        if failed:
            logger.warning(
                "[%s] %d of %d tool call(s) failed: %s",
                state["session_id"], len(failed), len(calls), failed,
            )
        logger.info(
            "[%s] Executed %d tool call(s), %d product(s) found",
            state["session_id"], len(calls), len(products),
        )
        return {
            "phase": Phase.TOOL_EXECUTION,
            "messages": tool_messages,
            "products": products,
            "pending_tool_calls": [],
        }

    async def _second_completion(self, state: TurnState) -> dict:
        products = dedupe_products(state.get("products", []))
        extra: list[AnyMessage] = []
        if products:
            # Anthropic only accepts a system prompt at the start of the conversation
            reminder_cls = HumanMessage if is_anthropic_model(state["model"]) else SystemMessage
            extra.append(reminder_cls(content=product_reminder(products)))

        response = await self._complete(state, [*state["messages"], *extra], "second_completion")
        if response.tool_calls:
            logger.warning(
                "[%s] Ignoring %d tool call(s) requested in the follow-up completion: %s",
                state["session_id"],
                len(response.tool_calls),
                [call["name"] for call in response.tool_calls],
            )
        return {
            "phase": Phase.SECOND_COMPLETION,
            "messages": [*extra, response],
            "final_text": message_text(response),
            "products": products,
        }

    async def _reconcile_products(self, state: TurnState) -> dict:
        text = state.get("final_text")
        products = state.get("products", [])
        if not products:
            if text and "Product ID" in text:
                products = extract_products_from_text(text)
        else:
            products = reconcile_products(products, extract_products_from_text(text))
        return {"phase": Phase.RECONCILE_PRODUCTS, "products": products}

    async def _persist(self, state: TurnState) -> dict:
        turn = await self._repository.create_turn(
            state["session_id"], state["content"], state.get("final_text"),
        )
        logger.info("[%s] Saved chat message %s", state["session_id"], turn.id)
        return {"phase": Phase.PERSIST, "turn": turn}

    # ── Helpers ──────────────────────────────────────────────────────

    async def _complete(
        self, state: TurnState, messages: Sequence[AnyMessage], operation: str,
    ) -> AIMessage:
        model = state["model"]
        try:
            with metrics.track(_provider_name(model), operation):
                return await state["llm"].ainvoke(list(messages))
        except Exception as exc:
            logger.error("[%s] %s with %s failed: %s", state["session_id"], operation, model, exc)
            raise ProviderError(f"Completion provider error: {exc}") from exc
