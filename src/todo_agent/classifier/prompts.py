"""Prompt templates and the classification tool schema.

The system prompt is fixed; the user message embeds one email with the body
truncated to a character budget. The response is constrained by forcing the
model to call the `classify_email` tool, whose input schema is the verdict.

Usage:
    from todo_agent.classifier.prompts import CLASSIFY_EMAIL_TOOL, SYSTEM_PROMPT
    from todo_agent.classifier.prompts import build_user_prompt

    user_prompt = build_user_prompt(email, body_char_budget=2000)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from todo_agent.labels import CLASSIFIER_LABELS

if TYPE_CHECKING:
    from todo_agent.models import Email

# ---------------------------------------------------------------------------
# Tool definition
# ---------------------------------------------------------------------------

CLASSIFY_EMAIL_TOOL: dict[str, Any] = {
    "name": "classify_email",
    "description": "Record whether an email requires action and the task it implies",
    "input_schema": {
        "type": "object",
        "properties": {
            "is_actionable": {
                "type": "boolean",
                "description": "True when the recipient must DO something",
            },
            "suggested_label": {
                "type": "string",
                "enum": list(CLASSIFIER_LABELS),
            },
            "confidence": {
                "type": "number",
                "minimum": 0.0,
                "maximum": 1.0,
                "description": "Classification confidence score",
            },
            "task_data": {
                "type": ["object", "null"],
                "properties": {
                    "title": {
                        "type": "string",
                        "description": "Concise actionable task title",
                    },
                    "description": {
                        "type": "string",
                        "description": "What needs to be done",
                    },
                    "due_string": {
                        "type": ["string", "null"],
                        "description": (
                            "Natural language due date like 'tomorrow', 'next week', "
                            "'by Friday', or null"
                        ),
                    },
                    "priority": {
                        "type": "integer",
                        "enum": [1, 2, 3, 4],
                        "description": "4 = urgent, 1 = low",
                    },
                    "category": {
                        "type": "string",
                        "enum": ["task", "meeting", "review", "urgent", "information"],
                    },
                },
                "description": "Task to create; null when not actionable",
            },
            "keywords": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Words that indicate actionability",
            },
            "reasoning": {
                "type": "string",
                "description": "Brief explanation of the classification decision",
            },
            "temporal_indicators": {
                "type": ["object", "null"],
                "properties": {
                    "has_deadline": {"type": "boolean"},
                    "urgency_level": {"type": "string", "enum": ["low", "medium", "high"]},
                    "timeframe": {
                        "type": ["string", "null"],
                        "description": "Extracted time constraint or null",
                    },
                },
            },
        },
        "required": ["is_actionable", "suggested_label", "confidence", "reasoning"],
    },
}

_PROPERTIES = CLASSIFY_EMAIL_TOOL["input_schema"]["properties"]

VALID_LABELS = frozenset(_PROPERTIES["suggested_label"]["enum"])
VALID_PRIORITIES = frozenset(_PROPERTIES["task_data"]["properties"]["priority"]["enum"])
VALID_CATEGORIES = frozenset(_PROPERTIES["task_data"]["properties"]["category"]["enum"])
VALID_URGENCY_LEVELS = frozenset(
    _PROPERTIES["temporal_indicators"]["properties"]["urgency_level"]["enum"]
)

# ---------------------------------------------------------------------------
# Prompt text
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """\
You are an expert email classifier for productivity systems. Your job is to analyze \
emails and determine if they require action from the recipient.

CLASSIFICATION RULES:
1. ACTIONABLE emails require the recipient to DO something (reply, review, approve, \
attend, complete)
2. NON-ACTIONABLE emails are informational, newsletters, notifications, or automated messages
3. Consider urgency based on temporal language (today, tomorrow, deadline, urgent)
4. Consider sender importance and relationship context

Always answer by calling the classify_email tool."""

_USER_PROMPT_TEMPLATE = """\
Analyze this email and determine if it requires action from the recipient:

FROM: {sender}
TO: {recipient}
SUBJECT: {subject}
SNIPPET: {snippet}
BODY: {body}

LABEL GUIDELINES:
- TodoAgent_Important: High priority, from important people, urgent content
- TodoAgent_Urgent: Time-sensitive with deadlines (today, tomorrow, this week)
- TodoAgent_Meeting: Meeting invites, calendar events, scheduling
- TodoAgent_Task: General actionable items requiring work
- TodoAgent_Skip: Newsletters, notifications, automated messages, security alerts, \
login notifications, system emails, non-actionable

SPECIFIC SKIP PATTERNS:
- Login/security: "login", "sign in", "password", "security alert", "account access"
- Notifications: "notification", "alert", "reminder", "update", "confirmation"
- Automated: "noreply", "no-reply", "donotreply", "automated", "system"
- Marketing: "newsletter", "subscribe", "unsubscribe", "promotion"

ACTIONABLE INDICATORS:
- Action verbs: "please review", "can you", "need you to", "action required"
- Questions directed at recipient
- Requests for approval, feedback, or response
- Meeting invitations requiring response
- Deadlines and time-sensitive requests

NON-ACTIONABLE INDICATORS:
- "FYI", "for your information"
- Newsletters, marketing emails
- Automated notifications (login alerts, security notifications, system updates)
- Status updates without required action
- "No reply needed"
- Account notifications from services (welcome messages, confirmations)
- System-generated emails that are purely informational"""


def build_user_prompt(email: Email, body_char_budget: int = 2000) -> str:
    """Build the per-email user message.

    Args:
        email: Email to classify
        body_char_budget: Maximum body characters to include

    Returns:
        Formatted user prompt
    """
    return _USER_PROMPT_TEMPLATE.format(
        sender=email.sender,
        recipient=email.recipient,
        subject=email.subject,
        snippet=email.snippet,
        body=email.body[:body_char_budget],
    )
