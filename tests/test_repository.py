"""Tests for the persistence gateway, against in-memory SQLite."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from agentchat.db.models import AgentStatus, ModelType
from agentchat.errors import PersistenceError


async def _agent(repository, **overrides):
    fields = {"name": "Shop assistant", "system_prompt": "You sell widgets."}
    fields.update(overrides)
    return await repository.create_agent(**fields)


class TestAgents:
    @pytest.mark.asyncio
    async def test_create_uses_defaults(self, repository):
        agent = await _agent(repository)
        assert agent.id
        assert agent.model is ModelType.GPT_3_5_TURBO
        assert agent.temperature == 0.7
        assert agent.status is AgentStatus.ACTIVE

        loaded = await repository.get_agent(agent.id)
        assert loaded.system_prompt == "You sell widgets."

    @pytest.mark.asyncio
    async def test_update_skips_none_values(self, repository):
        agent = await _agent(repository, model=ModelType.GPT_4O)
        updated = await repository.update_agent(
            agent.id, {"name": "Renamed", "system_prompt": None, "temperature": 0.2},
        )
        assert updated.name == "Renamed"
        assert updated.system_prompt == "You sell widgets."
        assert updated.temperature == 0.2
        assert updated.model is ModelType.GPT_4O

    @pytest.mark.asyncio
    async def test_update_and_delete_missing_agent(self, repository):
        assert await repository.update_agent("does-not-exist", {"name": "x"}) is None
        assert await repository.delete_agent("does-not-exist") is False

    @pytest.mark.asyncio
    async def test_deleting_agent_detaches_its_sessions(self, repository):
        agent = await _agent(repository)
        session = await repository.create_session(agent_id=agent.id)

        assert await repository.delete_agent(agent.id) is True
        assert await repository.get_agent(agent.id) is None
        reloaded = await repository.find_session(session.id)
        assert reloaded is not None
        assert reloaded.agent_id is None


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_and_find(self, repository):
        session = await repository.create_session(title="Hello")
        assert session.messages == []
        assert (await repository.find_session(session.id)).title == "Hello"
        assert await repository.find_session("missing") is None

    @pytest.mark.asyncio
    async def test_session_with_messages_is_ordered(self, repository):
        session = await repository.create_session()
        await repository.create_turn(session.id, "first", "reply one")
        await asyncio.sleep(0.01)
        await repository.create_turn(session.id, "second", "reply two")

        loaded = await repository.get_session_with_messages(session.id)
        assert [m.user_message for m in loaded.messages] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_delete_session_removes_turns(self, repository):
        session = await repository.create_session()
        await repository.create_turn(session.id, "hi", "hello")

        assert await repository.delete_session(session.id) is True
        assert await repository.list_turns(session.id) == []
        assert await repository.delete_session(session.id) is False


class TestTurns:
    @pytest.mark.asyncio
    async def test_list_turns_oldest_first(self, repository):
        session = await repository.create_session()
        for i in range(3):
            await repository.create_turn(session.id, f"q{i}", f"a{i}")
            await asyncio.sleep(0.01)

        turns = await repository.list_turns(session.id)
        assert [t.assistant_message for t in turns] == ["a0", "a1", "a2"]

    @pytest.mark.asyncio
    async def test_turn_may_have_no_assistant_text(self, repository):
        session = await repository.create_session()
        turn = await repository.create_turn(session.id, "hi", None)
        assert turn.assistant_message is None
        assert turn.session_id == session.id

    @pytest.mark.asyncio
    async def test_turn_for_unknown_session_is_rejected(self, repository):
        with pytest.raises(PersistenceError):
            await repository.create_turn("no-such-session", "hi", "hello")

    @pytest.mark.asyncio
    async def test_database_failure_is_wrapped(self, repository, database):
        with patch.object(
            database, "session_factory", side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            with pytest.raises(PersistenceError, match="db down"):
                await repository.list_turns("any")
