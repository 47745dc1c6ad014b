"""Test suite for the API endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from agent_chat.api.app import create_app
from agent_chat.config import Settings
from agent_chat.services.chat import FALLBACK_REPLY


@pytest.fixture
def app(repository, llm_service):
    return create_app(settings=Settings(), repository=repository, llm_service=llm_service)


def api_client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def seed(repository):
    agent = await repository.create_agent(business_id=1, name="Support", system_prompt="Be brief.")
    client = await repository.create_client(agent_id=agent.id, business_id=1, name="Lee")
    return agent.id, client.id


@pytest.mark.asyncio
async def test_send_message(app, repository, provider):
    """Test a full turn through the HTTP surface."""
    agent_id, client_id = await seed(repository)
    async with api_client(app) as client:
        response = await client.post(
            "/chat/messages",
            json={"agentId": agent_id, "clientId": client_id, "message": "When do you open?"},
        )
        assert response.status_code == 200
        assert response.json() == {"userMessage": "When do you open?", "assistantMessage": "Happy to help!"}
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_send_message_validation(app):
    """Test malformed send-message bodies."""
    async with api_client(app) as client:
        response = await client.post("/chat/messages", json={"agentId": 1, "clientId": 1, "message": ""})
        assert response.status_code == 422

        response = await client.post("/chat/messages", json={"agentId": 1, "message": "hi"})
        assert response.status_code == 422

        response = await client.post("/chat/messages", json={"agentId": "abc", "clientId": 1, "message": "hi"})
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_send_message_unknown_agent(app, repository):
    """Test that an unknown agent fails the call but keeps the user's message."""
    async with api_client(app) as client:
        response = await client.post("/chat/messages", json={"agentId": 42, "clientId": 7, "message": "hello"})
        assert response.status_code == 404
        assert response.json()["detail"] == "Agent not found"

        response = await client.get("/agents/42/clients/7/messages")
        assert [m["role"] for m in response.json()] == ["user"]


@pytest.mark.asyncio
async def test_send_message_provider_failure(app, repository, provider):
    """Test that a provider 500 surfaces as a failed call with no assistant message."""
    agent_id, client_id = await seed(repository)
    provider.status_code = 500
    provider.text = "model crashed"
    async with api_client(app) as client:
        response = await client.post(
            "/chat/messages", json={"agentId": agent_id, "clientId": client_id, "message": "hello"}
        )
        assert response.status_code == 502
        assert "500" in response.json()["detail"]

        messages = (await client.get(f"/agents/{agent_id}/clients/{client_id}/messages")).json()
        assert [m["role"] for m in messages] == ["user"]


@pytest.mark.asyncio
async def test_send_message_missing_api_key(app, repository, llm_service):
    """Test that a missing provider key is reported as a server error."""
    agent_id, client_id = await seed(repository)
    llm_service.settings.api_key = None
    async with api_client(app) as client:
        response = await client.post(
            "/chat/messages", json={"agentId": agent_id, "clientId": client_id, "message": "hello"}
        )
        assert response.status_code == 500
        assert "not configured" in response.json()["detail"]


@pytest.mark.asyncio
async def test_send_message_fallback_reply(app, repository, provider):
    """Test that a reply without text content still completes the turn."""
    agent_id, client_id = await seed(repository)
    provider.body = {"choices": [{"message": {"content": None}}]}
    async with api_client(app) as client:
        response = await client.post(
            "/chat/messages", json={"agentId": agent_id, "clientId": client_id, "message": "hello"}
        )
        assert response.status_code == 200
        assert response.json()["assistantMessage"] == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_get_history(app, repository):
    """Test history listing and its limit."""
    agent_id, client_id = await seed(repository)
    async with api_client(app) as client:
        for i in range(3):
            await client.post(
                "/chat/messages", json={"agentId": agent_id, "clientId": client_id, "message": f"Message {i}"}
            )

        response = await client.get(f"/agents/{agent_id}/clients/{client_id}/messages")
        assert response.status_code == 200
        messages = response.json()
        assert len(messages) == 6
        assert [m["role"] for m in messages[:2]] == ["user", "assistant"]
        assert messages[0]["content"] == "Message 0"
        assert {"id", "agentId", "clientId", "role", "content", "createdAt"} <= set(messages[0])

        response = await client.get(f"/agents/{agent_id}/clients/{client_id}/messages?limit=2")
        assert len(response.json()) == 2

        response = await client.get(f"/agents/{agent_id}/clients/{client_id}/messages?limit=0")
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_health_and_metrics(app):
    """Test the operational endpoints."""
    async with api_client(app) as client:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "requests_total" in response.text
