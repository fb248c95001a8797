"""FastAPI route definitions for the Agent Chat API."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Request, Response, status

from agentchat.api.schemas import (
    AgentResponse,
    CreateAgentRequest,
    CreateSessionRequest,
    DeletedResponse,
    Envelope,
    ExchangeResponse,
    HealthResponse,
    SendMessageRequest,
    SessionResponse,
    TurnResponse,
    UpdateAgentRequest,
)
from agentchat.db.repository import ChatRepository
from agentchat.errors import InputValidationError, NotFoundError, ServiceUnavailableError
from agentchat.orchestrator import ChatOrchestrator, OrchestrationResult

logger = logging.getLogger(__name__)

router = APIRouter()

STARTING_UP_MESSAGE = "The service is still starting up. Please try again in a moment."


def _get_repository(request: Request) -> ChatRepository:
    """Retrieve the persistence gateway created during the FastAPI lifespan."""
    repository = getattr(request.app.state, "repository", None)
    if repository is None:
        raise ServiceUnavailableError(STARTING_UP_MESSAGE)
    return repository


def _get_orchestrator(request: Request) -> ChatOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise ServiceUnavailableError(STARTING_UP_MESSAGE)
    return orchestrator


def _exchange(result: OrchestrationResult) -> ExchangeResponse:
    return ExchangeResponse(
        message=TurnResponse.model_validate(result.message),
        products=result.products,
    )


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── Sessions and messages ────────────────────────────────────────────


@router.post(
    "/chat/sessions",
    response_model=Envelope[SessionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_session(body: CreateSessionRequest, request: Request):
    """Open a chat session, optionally bound to an agent."""
    repository = _get_repository(request)
    if body.agent_id and await repository.get_agent(body.agent_id) is None:
        raise NotFoundError(f"Agent {body.agent_id} not found")

    session = await repository.create_session(agent_id=body.agent_id, title=body.title)
    return Envelope(data=SessionResponse.model_validate(session))


@router.post(
    "/chat/sessions/{session_id}/messages",
    response_model=Envelope[ExchangeResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_message(session_id: uuid.UUID, body: SendMessageRequest, request: Request):
    """Send a user message and get the assistant's reply plus any products."""
    orchestrator = _get_orchestrator(request)
    request_id = getattr(request.state, "request_id", "?")
    logger.info("[%s] New message for session %s", request_id, session_id)

    result = await orchestrator.handle_message(str(session_id), body.content)
    return Envelope(data=_exchange(result))


@router.get("/chat/sessions/{session_id}", response_model=Envelope[SessionResponse])
async def get_session(session_id: uuid.UUID, request: Request):
    session = await _get_repository(request).get_session_with_messages(str(session_id))
    if session is None:
        raise NotFoundError(f"Chat session {session_id} not found")
    return Envelope(data=SessionResponse.model_validate(session))


# ── Agents ───────────────────────────────────────────────────────────


@router.post("/chat/agent", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(body: CreateAgentRequest, request: Request):
    agent = await _get_repository(request).create_agent(
        name=body.name,
        system_prompt=body.system_prompt,
        model=body.model,
        temperature=body.temperature,
    )
    logger.info("Created agent %s (%s)", agent.id, agent.model.value)
    return agent


@router.get("/chat/agent/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: uuid.UUID, request: Request):
    agent = await _get_repository(request).get_agent(str(agent_id))
    if agent is None:
        raise NotFoundError(f"Agent {agent_id} not found")
    return agent


@router.patch("/chat/agent/{agent_id}", response_model=AgentResponse)
async def update_agent(agent_id: uuid.UUID, body: UpdateAgentRequest, request: Request):
    changes = body.model_dump(exclude_unset=True)
    agent = await _get_repository(request).update_agent(str(agent_id), changes)
    if agent is None:
        raise NotFoundError(f"Agent {agent_id} not found")
    return agent


@router.delete("/chat/agent/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(agent_id: uuid.UUID, request: Request):
    if not await _get_repository(request).delete_agent(str(agent_id)):
        raise NotFoundError(f"Agent {agent_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Agent-bound sessions ─────────────────────────────────────────────


@router.post(
    "/chat/session/{agent_id}",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_agent_session(agent_id: uuid.UUID, request: Request):
    repository = _get_repository(request)
    if await repository.get_agent(str(agent_id)) is None:
        raise NotFoundError(f"Agent {agent_id} not found")
    return await repository.create_session(agent_id=str(agent_id))


@router.delete("/chat/session/{session_id}", response_model=DeletedResponse)
async def delete_session(session_id: uuid.UUID, request: Request):
    if not await _get_repository(request).delete_session(str(session_id)):
        raise NotFoundError(f"Chat session {session_id} not found")
    return DeletedResponse(message="Session deleted successfully")


@router.post(
    "/chat/chat/{session_id}",
    response_model=ExchangeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def chat(session_id: uuid.UUID, body: SendMessageRequest, request: Request):
    """Chat with the agent the session is bound to."""
    repository = _get_repository(request)
    orchestrator = _get_orchestrator(request)

    session = await repository.find_session(str(session_id))
    if session is None:
        raise NotFoundError(f"Chat session {session_id} not found")
    if not session.agent_id:
        raise InputValidationError("Session has no associated agent")

    result = await orchestrator.handle_message(str(session_id), body.content)
    return _exchange(result)


@router.get("/chat/chat/{session_id}", response_model=list[TurnResponse])
async def get_chat_history(session_id: uuid.UUID, request: Request):
    repository = _get_repository(request)
    if await repository.find_session(str(session_id)) is None:
        raise NotFoundError(f"Chat session {session_id} not found")
    return await repository.list_turns(str(session_id))
