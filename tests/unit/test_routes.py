"""Tests for the HTTP routes."""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from relay.main import create_app
from relay.core.agent.dispatch import OrchestrationResult
from relay.core.agent.types import HandlerNotFoundError, HandlerType


def _result(**kwargs) -> OrchestrationResult:
    defaults = dict(
        handler_type=HandlerType.ORDER,
        reasoning="Routing to Order agent for specialized handling.",
        confidence=0.68,
        response="Your order has shipped.",
        response_reasoning="Order number detected.",
        metadata={"responseTimeMs": 42, "model": "test-model"},
    )
    defaults.update(kwargs)
    return OrchestrationResult(**defaults)


@pytest.fixture
def agent_service():
    service = MagicMock()
    service.classify_and_respond = AsyncMock(return_value=_result())
    service.list_handlers.return_value = [
        {"type": "support", "name": "Support Agent", "description": "d", "icon": "HelpCircle"},
    ]
    return service


@pytest.fixture
def conversations():
    service = AsyncMock()
    service.create_conversation.return_value = {"id": "c-new", "userId": "u1"}
    service.get_conversation_history.return_value = []
    service.add_message.return_value = {"id": "m1", "role": "assistant"}
    return service


@pytest.fixture
def user_service():
    return AsyncMock()


@pytest.fixture
def client(agent_service, conversations, user_service):
    app = create_app(with_lifespan=False)
    app.state.agent_service = agent_service
    app.state.conversation_service = conversations
    app.state.user_service = user_service
    return TestClient(app)


class TestChatRoutes:
    """Test chat message and conversation endpoints."""

    def test_send_message_creates_conversation(self, client, agent_service, conversations):
        response = client.post(
            "/api/chat/messages",
            json={"userId": "u1", "message": "Where is my order #8829?"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["conversationId"] == "c-new"
        assert body["routing"] == {
            "agentType": "order",
            "reasoning": "Routing to Order agent for specialized handling.",
            "confidence": 0.68,
        }
        assert body["metadata"]["model"] == "test-model"

        conversations.create_conversation.assert_awaited_once_with("u1")
        agent_service.classify_and_respond.assert_awaited_once()
        roles = [c.args[1] for c in conversations.add_message.call_args_list]
        assert roles == ["user", "system", "assistant"]

    def test_send_message_existing_conversation(self, client, conversations):
        conversations.get_conversation_history.return_value = [{"role": "user", "content": "hi"}]

        response = client.post(
            "/api/chat/messages",
            json={"conversationId": "c1", "userId": "u1", "message": "Refund please"},
        )

        assert response.status_code == 200
        assert response.json()["conversationId"] == "c1"
        conversations.create_conversation.assert_not_awaited()

    def test_send_message_validation(self, client, agent_service):
        response = client.post("/api/chat/messages", json={"userId": "u1", "message": ""})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation Error"
        assert body["details"][0]["loc"][-1] == "message"
        agent_service.classify_and_respond.assert_not_awaited()

    def test_send_message_missing_body_field(self, client):
        response = client.post("/api/chat/messages", json={"userId": "u1"})

        assert response.status_code == 400
        assert response.json()["error"] == "Validation Error"

    def test_send_message_storage_failure(self, client, conversations):
        conversations.create_conversation.side_effect = RuntimeError("db down")

        response = client.post("/api/chat/messages", json={"userId": "u1", "message": "hi"})

        assert response.status_code == 500

    def test_send_message_streaming(self, client, agent_service, conversations):
        async def fragments():
            yield "Your order "
            yield "has shipped."

        agent_service.process = AsyncMock(
            return_value=_result(response=None, response_stream=fragments())
        )

        response = client.post(
            "/api/chat/messages",
            json={"conversationId": "c1", "userId": "u1", "message": "Where is #8829?", "stream": True},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert [e["type"] for e in events] == [
            "status", "routing", "status", "chunk", "chunk", "done",
        ]
        assert events[-1]["messageId"] == "c1"

        stored = conversations.add_message.call_args_list[-1]
        assert stored.args[:3] == ("c1", "assistant", "Your order has shipped.")
        assert stored.kwargs["agent_type"] == "order"

    def test_get_conversation(self, client, conversations):
        conversations.get_conversation.return_value = {"id": "c1", "messages": []}

        response = client.get("/api/chat/conversations/c1")

        assert response.status_code == 200
        assert response.json()["id"] == "c1"

    def test_get_conversation_not_found(self, client, conversations):
        conversations.get_conversation.return_value = None

        response = client.get("/api/chat/conversations/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "Conversation not found"}

    def test_list_conversations_requires_user(self, client):
        response = client.get("/api/chat/conversations")

        assert response.status_code == 400
        assert response.json() == {"error": "userId is required"}

    def test_list_conversations(self, client, conversations):
        conversations.list_user_conversations.return_value = [{"id": "c1"}, {"id": "c2"}]

        response = client.get("/api/chat/conversations", params={"userId": "u1"})

        assert response.json()["total"] == 2
        conversations.list_user_conversations.assert_awaited_once_with("u1")

    def test_delete_conversation(self, client, conversations):
        conversations.delete_conversation.return_value = True

        assert client.delete("/api/chat/conversations/c1").status_code == 200

        conversations.delete_conversation.return_value = False
        assert client.delete("/api/chat/conversations/c1").status_code == 404


class TestAgentRoutes:
    """Test agent listing and capabilities."""

    def test_list_agents(self, client):
        response = client.get("/api/agents")

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_capabilities(self, client, agent_service):
        agent_service.get_handler_capabilities.return_value = {"name": "Billing Agent", "tools": []}

        response = client.get("/api/agents/billing/capabilities")

        assert response.status_code == 200
        assert response.json() == {
            "agentType": "billing",
            "capabilities": {"name": "Billing Agent", "tools": []},
        }

    def test_capabilities_unknown_agent(self, client, agent_service):
        agent_service.get_handler_capabilities.side_effect = HandlerNotFoundError("sales")

        response = client.get("/api/agents/sales/capabilities")

        assert response.status_code == 404
        assert response.json() == {"error": "Agent type 'sales' not found"}


class TestUserRoutes:
    """Test user sync and profile endpoints."""

    def test_sync_user(self, client, user_service):
        user_service.upsert_user.return_value = {
            "id": "u1", "email": "a@example.com", "name": "Ada", "tier": "free", "createdAt": None,
        }

        response = client.post(
            "/api/user/sync",
            json={"userId": "u1", "email": "a@example.com", "name": "Ada"},
        )

        assert response.status_code == 200
        assert response.json()["user"] == {
            "id": "u1", "email": "a@example.com", "name": "Ada", "tier": "free",
        }
        user_service.upsert_user.assert_awaited_once_with("u1", "a@example.com", "Ada")

    def test_me_requires_header(self, client):
        assert client.get("/api/user/me").status_code == 401

    def test_me_not_found(self, client, user_service):
        user_service.get_user.return_value = None

        response = client.get("/api/user/me", headers={"x-user-id": "u1"})

        assert response.status_code == 404


class TestHealthRoute:
    """Test the health endpoint."""

    def test_healthy(self, client):
        with patch("relay.api.routes.health.check_db_health", new=AsyncMock(return_value=True)):
            response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_unhealthy(self, client):
        with patch("relay.api.routes.health.check_db_health", new=AsyncMock(return_value=False)):
            response = client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"


class TestRoot:
    """Test the root endpoint."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/api/health"
