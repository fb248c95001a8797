"""Tests for the FastAPI endpoints."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from agentchat.db.models import AgentStatus, ModelType
from agentchat.errors import NotFoundError, ProviderError
from agentchat.orchestrator import OrchestrationResult
from agentchat.server import app
from agentchat.tools.products import Product

SESSION_ID = str(uuid.uuid4())
AGENT_ID = str(uuid.uuid4())
NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _turn(user="What products do you have?", assistant="We have a Widget."):
    return SimpleNamespace(
        id=str(uuid.uuid4()), session_id=SESSION_ID, user_message=user,
        assistant_message=assistant, created_at=NOW, updated_at=NOW,
    )


def _session(agent_id=AGENT_ID, messages=()):
    return SimpleNamespace(
        id=SESSION_ID, agent_id=agent_id, title=None,
        created_at=NOW, updated_at=NOW, messages=list(messages),
    )


def _agent(**overrides):
    fields = dict(
        id=AGENT_ID, name="Shop assistant", system_prompt="You sell widgets.",
        model=ModelType.GPT_4O, temperature=0.7, status=AgentStatus.ACTIVE,
        created_at=NOW, updated_at=NOW,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def mock_repository():
    """Mock persistence gateway attached to app state (mirrors the lifespan)."""
    repository = MagicMock()
    repository.get_agent = AsyncMock(return_value=_agent())
    repository.create_agent = AsyncMock(return_value=_agent())
    repository.update_agent = AsyncMock(return_value=_agent(name="Renamed"))
    repository.delete_agent = AsyncMock(return_value=True)
    repository.create_session = AsyncMock(return_value=_session())
    repository.find_session = AsyncMock(return_value=_session())
    repository.get_session_with_messages = AsyncMock(return_value=_session(messages=[_turn()]))
    repository.delete_session = AsyncMock(return_value=True)
    repository.list_turns = AsyncMock(return_value=[_turn()])

    app.state.repository = repository
    yield repository
    app.state.repository = None


@pytest.fixture
def mock_orchestrator():
    orchestrator = MagicMock()
    orchestrator.handle_message = AsyncMock(
        return_value=OrchestrationResult(
            message=_turn(),
            products=[Product(product_id="42", name="Widget")],
        )
    )
    app.state.orchestrator = orchestrator
    yield orchestrator
    app.state.orchestrator = None


@pytest.fixture
def client(mock_repository, mock_orchestrator):
    """FastAPI test client with the mocks wired up."""
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "agent-chat"}


class TestSessionEndpoints:
    def test_create_session(self, client, mock_repository):
        response = client.post("/api/chat/sessions", json={"agentId": AGENT_ID, "title": "Shopping"})
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["id"] == SESSION_ID
        assert body["data"]["agentId"] == AGENT_ID
        mock_repository.create_session.assert_awaited_once_with(agent_id=AGENT_ID, title="Shopping")

    def test_create_session_with_unknown_agent(self, client, mock_repository):
        mock_repository.get_agent.return_value = None
        response = client.post("/api/chat/sessions", json={"agentId": AGENT_ID})
        assert response.status_code == 404
        assert response.json()["success"] is False
        mock_repository.create_session.assert_not_awaited()

    def test_create_session_without_agent(self, client, mock_repository):
        response = client.post("/api/chat/sessions", json={})
        assert response.status_code == 201
        mock_repository.get_agent.assert_not_awaited()

    def test_send_message(self, client, mock_orchestrator):
        response = client.post(f"/api/chat/sessions/{SESSION_ID}/messages", json={"content": "Hi"})
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["message"]["assistantMessage"] == "We have a Widget."
        assert data["products"] == [
            {"productId": "42", "name": "Widget", "description": "No description available"},
        ]
        mock_orchestrator.handle_message.assert_awaited_once_with(SESSION_ID, "Hi")

    @pytest.mark.parametrize("body", [{}, {"content": ""}, {"content": "   "}])
    def test_send_message_rejects_blank_content(self, client, mock_orchestrator, body):
        response = client.post(f"/api/chat/sessions/{SESSION_ID}/messages", json=body)
        assert response.status_code == 400
        assert response.json()["success"] is False
        mock_orchestrator.handle_message.assert_not_awaited()

    def test_send_message_unknown_session(self, client, mock_orchestrator):
        mock_orchestrator.handle_message.side_effect = NotFoundError("Chat session not found")
        response = client.post(f"/api/chat/sessions/{SESSION_ID}/messages", json={"content": "Hi"})
        assert response.status_code == 404
        assert response.json()["message"] == "Chat session not found"

    def test_malformed_session_id(self, client):
        response = client.get("/api/chat/sessions/not-a-uuid")
        assert response.status_code == 400

    def test_get_session_with_messages(self, client):
        response = client.get(f"/api/chat/sessions/{SESSION_ID}")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["messages"][0]["userMessage"] == "What products do you have?"

    def test_get_missing_session(self, client, mock_repository):
        mock_repository.get_session_with_messages.return_value = None
        assert client.get(f"/api/chat/sessions/{SESSION_ID}").status_code == 404


class TestAgentEndpoints:
    def test_create_agent(self, client, mock_repository):
        response = client.post(
            "/api/chat/agent",
            json={"name": "Shop assistant", "systemPrompt": "You sell widgets.", "model": "gpt-4o"},
        )
        assert response.status_code == 201
        assert response.json()["systemPrompt"] == "You sell widgets."
        kwargs = mock_repository.create_agent.await_args.kwargs
        assert kwargs["model"] is ModelType.GPT_4O
        assert kwargs["temperature"] == 0.7

    @pytest.mark.parametrize(
        "body",
        [
            {"name": "x"},
            {"name": "x", "systemPrompt": "y", "model": "gpt-2"},
            {"name": "x", "systemPrompt": "y", "temperature": 3},
        ],
    )
    def test_create_agent_validation(self, client, body):
        assert client.post("/api/chat/agent", json=body).status_code == 400

    def test_get_agent(self, client):
        response = client.get(f"/api/chat/agent/{AGENT_ID}")
        assert response.status_code == 200
        assert response.json()["model"] == "gpt-4o"

    def test_patch_agent_sends_only_given_fields(self, client, mock_repository):
        response = client.patch(f"/api/chat/agent/{AGENT_ID}", json={"name": "Renamed"})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        mock_repository.update_agent.assert_awaited_once_with(AGENT_ID, {"name": "Renamed"})

    def test_patch_missing_agent(self, client, mock_repository):
        mock_repository.update_agent.return_value = None
        assert client.patch(f"/api/chat/agent/{AGENT_ID}", json={"name": "x"}).status_code == 404

    def test_delete_agent(self, client):
        response = client.delete(f"/api/chat/agent/{AGENT_ID}")
        assert response.status_code == 204
        assert response.content == b""

    def test_delete_missing_agent(self, client, mock_repository):
        mock_repository.delete_agent.return_value = False
        assert client.delete(f"/api/chat/agent/{AGENT_ID}").status_code == 404


class TestAgentSessionEndpoints:
    def test_create_agent_session(self, client, mock_repository):
        response = client.post(f"/api/chat/session/{AGENT_ID}")
        assert response.status_code == 201
        assert response.json()["agentId"] == AGENT_ID
        mock_repository.create_session.assert_awaited_once_with(agent_id=AGENT_ID)

    def test_delete_session(self, client):
        response = client.delete(f"/api/chat/session/{SESSION_ID}")
        assert response.status_code == 200
        assert response.json() == {"message": "Session deleted successfully"}

    def test_delete_missing_session(self, client, mock_repository):
        mock_repository.delete_session.return_value = False
        assert client.delete(f"/api/chat/session/{SESSION_ID}").status_code == 404


class TestChatEndpoints:
    def test_chat_with_agent(self, client, mock_orchestrator):
        response = client.post(f"/api/chat/chat/{SESSION_ID}", json={"content": "Hi"})
        assert response.status_code == 201
        body = response.json()
        assert body["message"]["sessionId"] == SESSION_ID
        assert body["products"][0]["productId"] == "42"

    def test_chat_requires_agent(self, client, mock_repository, mock_orchestrator):
        mock_repository.find_session.return_value = _session(agent_id=None)
        response = client.post(f"/api/chat/chat/{SESSION_ID}", json={"content": "Hi"})
        assert response.status_code == 400
        assert response.json()["message"] == "Session has no associated agent"
        mock_orchestrator.handle_message.assert_not_awaited()

    def test_chat_history(self, client):
        response = client.get(f"/api/chat/chat/{SESSION_ID}")
        assert response.status_code == 200
        assert response.json()[0]["assistantMessage"] == "We have a Widget."

    def test_chat_history_missing_session(self, client, mock_repository):
        mock_repository.find_session.return_value = None
        assert client.get(f"/api/chat/chat/{SESSION_ID}").status_code == 404


class TestErrorEnvelope:
    def test_service_error_includes_stack_outside_production(self, client, mock_orchestrator):
        mock_orchestrator.handle_message.side_effect = ProviderError("Completion provider error: 502")
        response = client.post(f"/api/chat/chat/{SESSION_ID}", json={"content": "Hi"})
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Completion provider error: 502"
        assert "ProviderError" in body["stack"]

    def test_unexpected_error_hides_message(self, mock_repository, mock_orchestrator):
        mock_orchestrator.handle_message.side_effect = RuntimeError("LLM exploded")
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post(f"/api/chat/chat/{SESSION_ID}", json={"content": "Hi"})
        assert response.status_code == 500
        assert response.json()["message"] == "Internal Server Error"

    def test_response_includes_request_id_header(self, client):
        response = client.get("/api/health")
        assert "X-Request-ID" in response.headers

    def test_client_supplied_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "my-trace-id-123"})
        assert response.headers["X-Request-ID"] == "my-trace-id-123"


class TestServiceNotReady:
    def test_returns_503_when_not_initialised(self):
        """If the lifespan hasn't wired the repository yet, return 503."""
        with TestClient(app) as tc:
            app.state.repository = None
            response = tc.get(f"/api/chat/chat/{SESSION_ID}")
            assert response.status_code == 503
            body = response.json()
            assert body["success"] is False
            assert "starting up" in body["message"].lower()
            assert "detail" not in body


class TestRootEndpoint:
    def test_root_returns_service_info(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "Agent Chat API"
        assert "docs" in data
