"""Pydantic schemas for the FastAPI endpoints.

Bodies use camelCase on the wire; ``populate_by_name`` lets tests and
Python callers use the snake_case field names as well.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from agentchat.db.models import AgentStatus, ModelType
from agentchat.tools.products import Product

T = TypeVar("T")


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True,
    )


# ── Requests ─────────────────────────────────────────────────────────


class CreateSessionRequest(_CamelModel):
    agent_id: str | None = Field(None, description="Agent to bind the session to")
    title: str | None = Field(None, max_length=255)


class SendMessageRequest(_CamelModel):
    """A user message for an existing session."""

    content: str = Field(..., min_length=1, max_length=10_000, description="The user's message")

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be blank")
        return value


class CreateAgentRequest(_CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    system_prompt: str = Field(..., min_length=1, max_length=10_000)
    model: ModelType = ModelType.GPT_3_5_TURBO
    temperature: float = Field(0.7, ge=0, le=2)


class UpdateAgentRequest(_CamelModel):
    """Partial update; omitted fields keep their value."""

    name: str | None = Field(None, min_length=1, max_length=255)
    system_prompt: str | None = Field(None, min_length=1, max_length=10_000)
    model: ModelType | None = None
    temperature: float | None = Field(None, ge=0, le=2)
    status: AgentStatus | None = None


# ── Responses ────────────────────────────────────────────────────────


class AgentResponse(_CamelModel):
    id: str
    name: str
    system_prompt: str
    model: ModelType
    temperature: float
    status: AgentStatus
    created_at: datetime
    updated_at: datetime


class TurnResponse(_CamelModel):
    id: str
    session_id: str
    user_message: str | None = None
    assistant_message: str | None = None
    created_at: datetime
    updated_at: datetime


class SessionResponse(_CamelModel):
    id: str
    agent_id: str | None = None
    title: str | None = None
    created_at: datetime
    updated_at: datetime
    messages: list[TurnResponse] = Field(default_factory=list)


class ExchangeResponse(_CamelModel):
    """The stored turn plus the products surfaced while answering it."""

    message: TurnResponse
    products: list[Product] = Field(default_factory=list)


class Envelope(_CamelModel, Generic[T]):
    success: bool = True
    data: T


class DeletedResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "agent-chat"


def error_body(message: str, stack: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    if stack is not None:
        body["stack"] = stack
    return body
