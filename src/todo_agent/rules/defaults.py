"""Built-in rule set.

Priorities encode precedence between overlapping categories: the skip rules
for newsletters, productivity apps and security/login notices sit at 10 so
they pre-empt the meeting rule at 9 (a "new sign in" email would otherwise
be labeled as a meeting).

The two sender-based rules (boss-urgent, vip-senders) take their sender list
from `rules.vip_senders` and are loaded inactive while that list is empty.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from todo_agent.labels import IMPORTANT_LABEL, MEETING_LABEL, SKIP_LABEL, TASK_LABEL, URGENT_LABEL
from todo_agent.rules.store import Rule

_DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "id": "boss-urgent",
        "name": "Boss Urgent Emails",
        "description": "Emails from management with urgent keywords",
        "priority": 10,
        "criteria": {
            "from": [],  # filled from vip_senders
            "body_keywords": [
                "urgent",
                "asap",
                "immediately",
                "deadline",
                "by today",
                "by tomorrow",
            ],
        },
        "actions": {"label": IMPORTANT_LABEL, "priority": 4},
    },
    {
        "id": "meeting-invites",
        "name": "Meeting Invitations",
        "description": "Calendar invites and meeting-related emails",
        "priority": 9,
        "criteria": {
            "subject": ["meeting", "call", "zoom", "teams", "conference"],
            "body_keywords": [
                "calendar",
                "appointment",
                "schedule",
                "invited you to",
                "join the meeting",
            ],
        },
        "actions": {"label": MEETING_LABEL, "priority": 3},
    },
    {
        "id": "temporal-urgency",
        "name": "Time-Sensitive Emails",
        "description": "Emails with temporal urgency indicators",
        "priority": 8,
        "criteria": {
            "body_keywords": [
                "by end of day",
                "by eod",
                "by tomorrow",
                "by today",
                "this week",
                "next week",
                "deadline",
                "due date",
                "time sensitive",
                "urgent response needed",
            ],
        },
        "actions": {"label": URGENT_LABEL, "priority": 4},
    },
    {
        "id": "action-verbs",
        "name": "Actionable Requests",
        "description": "Emails with clear action verbs",
        "priority": 7,
        "criteria": {
            "body_keywords": [
                "please review",
                "please approve",
                "please sign",
                "please check",
                "can you",
                "could you",
                "would you mind",
                "need you to",
                "action required",
                "your input needed",
                "waiting for your",
            ],
        },
        "actions": {"label": TASK_LABEL, "priority": 2},
    },
    {
        "id": "vip-senders",
        "name": "VIP Sender Emails",
        "description": "Important people who always send actionable emails",
        "priority": 8,
        "criteria": {"from": []},  # filled from vip_senders
        "actions": {"label": IMPORTANT_LABEL, "priority": 3},
    },
    {
        "id": "newsletters-skip",
        "name": "Newsletter and Marketing",
        "description": "Skip automated marketing emails and newsletters",
        "priority": 10,
        "criteria": {
            "from": ["noreply@", "no-reply@", "marketing@", "newsletter@", "notifications@"],
            "body_keywords": [
                "unsubscribe",
                "marketing",
                "promotional",
                "advertisement",
                "daily digest",
                "weekly digest",
            ],
            "subject": ["newsletter", "promotion", "sale", "offer", "digest", "tips", "update"],
        },
        "actions": {"label": SKIP_LABEL, "skip_ai": True},
    },
    {
        "id": "productivity-app-notifications",
        "name": "Productivity App Notifications",
        "description": "Skip notifications from productivity and task management apps",
        "priority": 10,
        "criteria": {
            "from_domain": [
                "todoist.com",
                "notion.so",
                "slack.com",
                "asana.com",
                "trello.com",
                "monday.com",
            ],
            "from": ["no-reply@todoist.com", "noreply@todoist.com"],
            "body_keywords": [
                "daily digest",
                "weekly digest",
                "task summary",
                "productivity tip",
                "your tasks for",
                "unsubscribe",
            ],
            "subject": ["digest", "summary", "tip", "reminder", "your tasks", "daily", "weekly"],
        },
        "actions": {"label": SKIP_LABEL, "skip_ai": True},
    },
    {
        "id": "automated-notifications",
        "name": "Automated System Notifications",
        "description": "Skip system notifications and automated emails",
        "priority": 9,
        "criteria": {
            "from": ["notifications@", "alerts@", "system@", "support@"],
            "subject": ["notification", "alert", "reminder", "system update"],
        },
        "actions": {"label": SKIP_LABEL, "skip_ai": True},
    },
    {
        "id": "security-login-notifications",
        "name": "Security and Login Notifications",
        "description": "Skip login alerts, security notifications, and account notifications",
        "priority": 10,
        "criteria": {
            "subject": [
                "new login",
                "login detected",
                "sign in",
                "security alert",
                "password changed",
                "account access",
            ],
            "body_keywords": [
                "new login to your",
                "login detected",
                "sign in",
                "security alert",
                "password changed",
                "account access",
                "noticed a new login",
                "login to your account",
                "signed in to",
                "accessed your account",
                "login notification",
                "security notification",
                "account activity",
            ],
        },
        "actions": {"label": SKIP_LABEL, "skip_ai": True},
    },
    {
        "id": "social-media-skip",
        "name": "Social Media Notifications",
        "description": "Skip social media notifications",
        "priority": 6,
        "criteria": {
            "from_domain": [
                "facebook.com",
                "twitter.com",
                "linkedin.com",
                "instagram.com",
                "pinterest.com",
                "youtube.com",
                "tiktok.com",
            ],
            "subject": ["notification", "mentioned you", "tagged you", "liked your"],
        },
        "actions": {"label": SKIP_LABEL, "skip_ai": True},
    },
]

SENDER_BASED_RULE_IDS = frozenset({"boss-urgent", "vip-senders"})


def default_rules(vip_senders: Sequence[str] = ()) -> list[Rule]:
    """Build fresh copies of the built-in rules.

    Args:
        vip_senders: Sender addresses for the boss-urgent and vip-senders rules

    Returns:
        New Rule instances with zeroed statistics
    """
    senders = [sender.strip() for sender in vip_senders if sender.strip()]
    rules: list[Rule] = []

    for spec in _DEFAULT_RULES:
        data = {**spec, "criteria": dict(spec["criteria"])}
        if spec["id"] in SENDER_BASED_RULE_IDS:
            data["criteria"]["from"] = list(senders)
            data["active"] = bool(senders)
        rules.append(Rule.model_validate(data))

    return rules
