"""Tests for webhook payload parsing and the agent's webhook handling."""

import pytest

from todo_agent.agent import (
    WEBHOOK_ACCEPTED,
    WEBHOOK_IGNORED,
    WEBHOOK_INVALID,
    WEBHOOK_NO_EMAIL_ID,
    TodoAgent,
)
from todo_agent.engine.webhook import UNKNOWN_TRIGGER, parse_webhook_payload
from todo_agent.labels import IMPORTANT_LABEL, PROCESSED_LABEL

# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParseWebhookPayload:
    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "gmail_new_gmail_message", "data": {"message_id": "m1"}},
            {"triggerSlug": "GMAIL_NEW_GMAIL_MESSAGE", "data": {"id": "m1"}},
            {"trigger": "composio_gmail_new_message", "data": {"messageId": "m1"}},
            {"eventType": "X_NEW_GMAIL_MESSAGE", "data": {"id": "m1"}},
        ],
    )
    def test_recognized_shapes(self, payload):
        trigger = parse_webhook_payload(payload)
        assert trigger.is_new_message
        assert trigger.email_id == "m1"
        assert trigger.should_process

    def test_key_precedence(self):
        payload = {
            "type": "gmail_new_gmail_message",
            "trigger": "slack_message",
            "data": {"message_id": "first", "id": "second"},
        }
        trigger = parse_webhook_payload(payload)
        assert trigger.trigger == "gmail_new_gmail_message"
        assert trigger.email_id == "first"

    def test_numeric_id_is_stringified(self):
        trigger = parse_webhook_payload({"type": "gmail_new", "data": {"id": 42}})
        assert trigger.email_id == "42"

    def test_missing_trigger(self):
        trigger = parse_webhook_payload({"data": {"id": "m1"}})
        assert trigger.trigger == UNKNOWN_TRIGGER
        assert not trigger.is_new_message
        assert not trigger.should_process

    def test_non_gmail_trigger(self):
        trigger = parse_webhook_payload({"type": "slack_new_message", "data": {"id": "m1"}})
        assert not trigger.is_new_message

    @pytest.mark.parametrize("data", [None, "m1", ["m1"], {}])
    def test_missing_email_id(self, data):
        trigger = parse_webhook_payload({"type": "gmail_new_gmail_message", "data": data})
        assert trigger.email_id is None
        assert not trigger.should_process

    @pytest.mark.parametrize("payload", [None, "text", [1, 2], 7])
    def test_non_object_payload(self, payload):
        assert parse_webhook_payload(payload) is None


# ---------------------------------------------------------------------------
# Agent webhook handling
# ---------------------------------------------------------------------------


@pytest.fixture
def agent(sample_config, mail, tracker) -> TodoAgent:
    return TodoAgent(sample_config, mail, tracker)


class TestHandleWebhook:
    async def test_accepted_runs_in_background(self, agent, mail, tracker, make_email):
        mail.add_email(make_email(labels=[IMPORTANT_LABEL]))

        ack = agent.handle_webhook(
            {"type": "gmail_new_gmail_message", "data": {"message_id": "msg-001"}}
        )
        await agent.wait_for_background_tasks()

        assert ack.success
        assert ack.message == WEBHOOK_ACCEPTED
        assert ack.to_dict()["email_id"] == "msg-001"
        assert PROCESSED_LABEL in mail.labels["msg-001"]
        assert len(tracker.created) == 1

    async def test_ignored_trigger(self, agent, tracker):
        ack = agent.handle_webhook({"type": "calendar_event", "data": {"id": "msg-001"}})
        await agent.wait_for_background_tasks()

        assert ack.success
        assert ack.message == WEBHOOK_IGNORED
        assert ack.trigger == "calendar_event"
        assert "email_id" not in ack.to_dict()
        assert tracker.created == []

    async def test_missing_email_id(self, agent):
        ack = agent.handle_webhook({"type": "gmail_new_gmail_message", "data": {}})
        assert not ack.success
        assert ack.message == WEBHOOK_NO_EMAIL_ID

    async def test_invalid_payload(self, agent):
        ack = agent.handle_webhook(["not", "an", "object"])
        assert not ack.success
        assert ack.message == WEBHOOK_INVALID
        assert ack.trigger == UNKNOWN_TRIGGER

    async def test_failed_background_run_does_not_raise(self, agent, mail):
        ack = agent.handle_webhook({"type": "gmail_new_gmail_message", "data": {"id": "gone"}})
        await agent.wait_for_background_tasks()

        assert ack.success
        assert agent.processing_stats().total_processed == 1
        assert mail.added == []
