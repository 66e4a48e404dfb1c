"""Tests for the webhook endpoint, health check and JSON API.

Uses httpx AsyncClient over ASGITransport with an injected agent backed by
the in-memory fakes; the lifespan is replaced with a no-op.
"""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from todo_agent.agent import TodoAgent
from todo_agent.config_schema import WebhookConfig
from todo_agent.labels import IMPORTANT_LABEL, PROCESSED_LABEL
from todo_agent.web.app import create_app
from todo_agent.web.routes import SERVICE_NAME

GMAIL_PAYLOAD = {"type": "gmail_new_gmail_message", "data": {"message_id": "msg-001"}}

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def agent(sample_config, mail, tracker) -> TodoAgent:
    return TodoAgent(sample_config, mail, tracker)


@pytest.fixture
def app(agent: TodoAgent) -> FastAPI:
    """Create a FastAPI app around the test agent."""
    return create_app(agent, run_scheduler=False)


@pytest.fixture
async def client(app: FastAPI) -> AsyncClient:
    """Return an httpx AsyncClient for the test app."""
    # Override lifespan to avoid real initialization
    app.router.lifespan_context = _noop_lifespan
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@asynccontextmanager
async def _noop_lifespan(app: FastAPI):
    """No-op lifespan that preserves existing app.state."""
    yield


# ---------------------------------------------------------------------------
# Tests: Webhook
# ---------------------------------------------------------------------------


async def test_webhook_accepts_gmail_trigger(client, agent, mail, tracker, make_email):
    mail.add_email(make_email(labels=[IMPORTANT_LABEL]))

    response = await client.post("/webhook", json=GMAIL_PAYLOAD)
    await agent.wait_for_background_tasks()

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["email_id"] == "msg-001"
    assert body["trigger"] == "gmail_new_gmail_message"
    assert "timestamp" in body
    assert PROCESSED_LABEL in mail.labels["msg-001"]
    assert len(tracker.created) == 1


async def test_webhook_ignores_other_triggers(client, tracker):
    response = await client.post("/webhook", json={"type": "slack_message", "data": {"id": "x"}})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert "not processed" in response.json()["message"]


async def test_webhook_missing_email_id(client):
    response = await client.post("/webhook", json={"type": "gmail_new_gmail_message"})

    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "message": "No email ID in webhook payload",
        "trigger": "gmail_new_gmail_message",
        "timestamp": response.json()["timestamp"],
    }


async def test_webhook_malformed_body_still_200(client):
    response = await client.post(
        "/webhook", content=b"{not json", headers={"content-type": "application/json"}
    )

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["message"] == "Invalid webhook payload"


async def test_webhook_without_agent(client, app):
    app.state.agent = None

    response = await client.post("/webhook", json=GMAIL_PAYLOAD)

    assert response.status_code == 200
    assert response.json()["message"] == "Agent not initialized"


async def test_webhook_handler_error_still_200(client, agent, monkeypatch):
    def boom(payload):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(agent, "handle_webhook", boom)

    response = await client.post("/webhook", json=GMAIL_PAYLOAD)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Internal server error"
    assert body["error"] == "kaboom"


async def test_webhook_path_follows_config(sample_config, mail, tracker):
    config = sample_config.model_copy(update={"webhook": WebhookConfig(path="/hooks/gmail")})
    app = create_app(TodoAgent(config, mail, tracker), run_scheduler=False)
    app.router.lifespan_context = _noop_lifespan

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        assert (await c.post("/hooks/gmail", json={"type": "other"})).status_code == 200
        assert (await c.post("/webhook", json={"type": "other"})).status_code == 404


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["service"] == SERVICE_NAME


# ---------------------------------------------------------------------------
# Tests: API
# ---------------------------------------------------------------------------


async def test_stats(client, agent, mail, make_email):
    mail.add_email(make_email(labels=[IMPORTANT_LABEL]))
    await agent.process_email("msg-001")

    response = await client.get("/api/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["processing"]["total_processed"] == 1
    assert body["processing"]["tasks_created"] == 1
    assert body["batch"]["total_runs"] == 0
    assert body["classification"] == {}
    assert body["ai_available"] is False


async def test_stats_reset(client, agent, mail, make_email):
    mail.add_email(make_email(labels=[IMPORTANT_LABEL]))
    await agent.process_email("msg-001")

    response = await client.post("/api/stats/reset")

    assert response.json()["success"] is True
    assert agent.processing_stats().total_processed == 0


async def test_rules_use_wire_field_names(client):
    response = await client.get("/api/rules")

    assert response.status_code == 200
    rules = response.json()
    assert len(rules) == 10
    assert rules[0]["id"] == "boss-urgent"
    assert "from" in rules[0]["criteria"]


async def test_ai_patterns_empty(client):
    response = await client.get("/api/ai/patterns")
    assert response.json() == {"sender_patterns": {}, "suggested_rules": []}


async def test_manual_batch_run(client, mail, make_email):
    for i in range(3):
        mail.add_email(make_email(email_id=f"m{i}", labels=[IMPORTANT_LABEL]))

    response = await client.post("/api/batch/run", json={"max_emails": 2})

    assert response.status_code == 200
    assert response.json()["total_runs"] == 1
    assert response.json()["total_emails_processed"] == 2
    assert mail.queries[0][1] == 2


async def test_manual_batch_run_without_body(client, mail):
    response = await client.post("/api/batch/run")

    assert response.status_code == 200
    assert mail.queries[0][1] == 50


async def test_manual_batch_run_validates_cap(client):
    response = await client.post("/api/batch/run", json={"max_emails": 0})
    assert response.status_code == 422


async def test_api_without_agent_is_503(client, app):
    app.state.agent = None
    response = await client.get("/api/stats")
    assert response.status_code == 503
