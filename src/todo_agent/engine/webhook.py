"""Tolerant parser for trigger-service webhook payloads.

Trigger providers are inconsistent about field names, so the slug and the
message id are each looked up under several keys. The parser never raises:
anything that is not a JSON object yields None.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

UNKNOWN_TRIGGER = "UNKNOWN"

_TRIGGER_KEYS = ("type", "triggerSlug", "trigger", "eventType")
_EMAIL_ID_KEYS = ("message_id", "id", "messageId")

_EXACT_GMAIL_TRIGGERS = frozenset({"gmail_new_gmail_message", "GMAIL_NEW_GMAIL_MESSAGE"})
_GMAIL_TRIGGER_FRAGMENTS = ("gmail_new", "GMAIL_NEW", "NEW_GMAIL_MESSAGE")


@dataclass(frozen=True, slots=True)
class WebhookTrigger:
    """What a webhook payload asks for.

    Attributes:
        trigger: Trigger slug as sent (or UNKNOWN)
        email_id: Gmail message id, if the payload carried one
        is_new_message: Whether the slug denotes a new Gmail message
    """

    trigger: str
    email_id: str | None
    is_new_message: bool

    @property
    def should_process(self) -> bool:
        return self.is_new_message and self.email_id is not None


def is_new_gmail_message(trigger: str) -> bool:
    if trigger in _EXACT_GMAIL_TRIGGERS:
        return True
    return any(fragment in trigger for fragment in _GMAIL_TRIGGER_FRAGMENTS)


def _first_present(source: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = source.get(key)
        if value:
            return str(value)
    return None


def parse_webhook_payload(payload: Any) -> WebhookTrigger | None:
    """Extract the trigger slug and email id from a webhook payload."""
    if not isinstance(payload, dict):
        return None

    trigger = _first_present(payload, _TRIGGER_KEYS) or UNKNOWN_TRIGGER
    data = payload.get("data")
    email_id = _first_present(data, _EMAIL_ID_KEYS) if isinstance(data, dict) else None

    return WebhookTrigger(
        trigger=trigger,
        email_id=email_id,
        is_new_message=is_new_gmail_message(trigger),
    )
