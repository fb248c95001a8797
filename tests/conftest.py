"""Shared test fixtures for the Agent Chat test suite."""

from __future__ import annotations

import os

import pytest
import pytest_asyncio


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-123")
    os.environ.setdefault("APP_ENV", "test")
    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    os.environ["METRICS_ENABLED"] = "false"


@pytest_asyncio.fixture
async def database():
    """A fresh in-memory SQLite database with all tables created."""
    from agentchat.db.database import Database

    db = Database("sqlite+aiosqlite:///:memory:")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def repository(database):
    from agentchat.db.repository import ChatRepository

    return ChatRepository(database)


@pytest.fixture
def matched_document():
    """Factory fixture for similarity-search rows."""
    from agentchat.services.vector_store import MatchedDocument

    def _make(content: str = "", metadata: dict | None = None, doc_id: int = 1, similarity: float = 0.9):
        return MatchedDocument(id=doc_id, content=content, metadata=metadata or {}, similarity=similarity)

    return _make
