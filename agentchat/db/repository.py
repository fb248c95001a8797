"""Persistence gateway for agents, chat sessions and conversation turns.

Every method opens its own transactional scope, so callers never handle an
``AsyncSession``.  Returned ORM objects are detached (``expire_on_commit``
is off) and safe to read after the call.  Any SQLAlchemy failure is
re-raised as :class:`PersistenceError`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from agentchat.db.database import Database
from agentchat.db.models import Agent, AgentStatus, ChatMessage, ChatSession, ModelType
from agentchat.errors import PersistenceError

logger = logging.getLogger(__name__)


class ChatRepository:
    def __init__(self, database: Database):
        self._db = database

    # ── Agents ───────────────────────────────────────────────────────

    async def create_agent(
        self,
        *,
        name: str,
        system_prompt: str,
        model: ModelType = ModelType.GPT_3_5_TURBO,
        temperature: float = 0.7,
    ) -> Agent:
        agent = Agent(
            name=name,
            system_prompt=system_prompt,
            model=model,
            temperature=temperature,
            status=AgentStatus.ACTIVE,
        )
        try:
            async with self._db.session_scope() as session:
                session.add(agent)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create agent: {exc}") from exc
        return agent

    async def get_agent(self, agent_id: str) -> Agent | None:
        try:
            async with self._db.session_scope() as session:
                return await session.get(Agent, agent_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load agent {agent_id}: {exc}") from exc

    async def update_agent(self, agent_id: str, changes: dict[str, Any]) -> Agent | None:
        """Apply *changes* (``None`` values skipped).  Returns ``None`` if absent."""
        try:
            async with self._db.session_scope() as session:
                agent = await session.get(Agent, agent_id)
                if agent is None:
                    return None
                for key, value in changes.items():
                    if value is not None:
                        setattr(agent, key, value)
                await session.flush()
                await session.refresh(agent)
                return agent
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update agent {agent_id}: {exc}") from exc

    async def delete_agent(self, agent_id: str) -> bool:
        try:
            async with self._db.session_scope() as session:
                agent = await session.get(Agent, agent_id)
                if agent is None:
                    return False
                await session.delete(agent)
                return True
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete agent {agent_id}: {exc}") from exc

    # ── Sessions ─────────────────────────────────────────────────────

    async def create_session(
        self, *, agent_id: str | None = None, title: str | None = None,
    ) -> ChatSession:
        chat_session = ChatSession(agent_id=agent_id, title=title)
        try:
            async with self._db.session_scope() as session:
                session.add(chat_session)
                await session.flush()
                # Load the (empty) relationship so it can be read once detached
                await session.refresh(chat_session, attribute_names=["messages"])
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create chat session: {exc}") from exc
        logger.info("Created chat session %s (agent=%s)", chat_session.id, agent_id)
        return chat_session

    async def find_session(self, session_id: str) -> ChatSession | None:
        try:
            async with self._db.session_scope() as session:
                return await session.get(ChatSession, session_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load chat session {session_id}: {exc}") from exc

    async def get_session_with_messages(self, session_id: str) -> ChatSession | None:
        try:
            async with self._db.session_scope() as session:
                result = await session.execute(
                    select(ChatSession)
                    .where(ChatSession.id == session_id)
                    .options(selectinload(ChatSession.messages), selectinload(ChatSession.agent))
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load chat session {session_id}: {exc}") from exc

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session; its turns go with it."""
        try:
            async with self._db.session_scope() as session:
                chat_session = await session.get(ChatSession, session_id)
                if chat_session is None:
                    return False
                await session.delete(chat_session)
                return True
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete chat session {session_id}: {exc}") from exc

    # ── Turns ────────────────────────────────────────────────────────

    async def list_turns(self, session_id: str) -> Sequence[ChatMessage]:
        """All turns of a session, oldest first."""
        try:
            async with self._db.session_scope() as session:
                result = await session.execute(
                    select(ChatMessage)
                    .where(ChatMessage.session_id == session_id)
                    .order_by(ChatMessage.created_at.asc())
                )
                return result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list messages for {session_id}: {exc}") from exc

    async def create_turn(
        self,
        session_id: str,
        user_message: str | None,
        assistant_message: str | None,
    ) -> ChatMessage:
        turn = ChatMessage(
            session_id=session_id,
            user_message=user_message,
            assistant_message=assistant_message,
        )
        try:
            async with self._db.session_scope() as session:
                session.add(turn)
        except SQLAlchemyError as exc:
            logger.error("Error creating chat message for %s: %s", session_id, exc)
            raise PersistenceError(f"Failed to save chat message: {exc}") from exc
        return turn
