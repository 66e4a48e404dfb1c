"""Keyword-based classification used when the AI classifier is unavailable.

Also builds task data for emails that reach task creation without an AI
verdict (pre-labeled emails and the basic fallback path).

Usage:
    from todo_agent.classifier.basic import build_task_from_email, should_skip_email

    if should_skip_email(email, config.pipeline.skip_keywords):
        ...
    task = build_task_from_email(email, labels=["email-todo"])
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import regex

from todo_agent.config_schema import DEFAULT_SKIP_KEYWORDS
from todo_agent.models import TaskData

if TYPE_CHECKING:
    from todo_agent.models import Email

# Regex timeout (seconds) for pattern matching against email text
REGEX_TIMEOUT = 1

URGENT_KEYWORDS = ("urgent", "asap", "important", "critical", "deadline")
HIGH_KEYWORDS = ("please review", "action required", "needed by")

_REPLY_PREFIX = regex.compile(r"^(re:|fwd?:)\s*", regex.IGNORECASE)

# (pattern, group formatter) pairs tried in order; first match wins
_DUE_PATTERNS: tuple[tuple[regex.Pattern[str], str], ...] = (
    (regex.compile(r"\bby\s+(today|tomorrow)\b", regex.IGNORECASE), "{0}"),
    (regex.compile(r"\bdue\s+(today|tomorrow)\b", regex.IGNORECASE), "{0}"),
    (regex.compile(r"\bby\s+end\s+of\s+(day|week)\b", regex.IGNORECASE), "end of {0}"),
    (
        regex.compile(
            r"\bby\s+(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
            regex.IGNORECASE,
        ),
        "{0}",
    ),
    (regex.compile(r"\bnext\s+(week|month)\b", regex.IGNORECASE), "next {0}"),
    (regex.compile(r"\bthis\s+(week|month)\b", regex.IGNORECASE), "this {0}"),
)


def should_skip_email(email: Email, skip_keywords: Sequence[str] | None = None) -> bool:
    """Check the sender and subject against the skip-keyword denylist.

    Args:
        email: Email to check
        skip_keywords: Case-insensitive substrings; defaults to the built-in list

    Returns:
        True if any keyword appears in the sender or subject
    """
    keywords = DEFAULT_SKIP_KEYWORDS if skip_keywords is None else skip_keywords
    sender = email.sender.lower()
    subject = email.subject.lower()
    return any(kw.lower() in sender or kw.lower() in subject for kw in keywords if kw)


def clean_subject(subject: str) -> str:
    """Strip a leading Re:/Fwd:/Fw: prefix."""
    return _REPLY_PREFIX.sub("", subject, count=1, timeout=REGEX_TIMEOUT).strip()


def task_title_for(email: Email) -> str:
    """'<subject> (from <sender name>)', or 'Email from <sender>' without a subject."""
    subject = clean_subject(email.subject)
    if subject:
        return f"{subject} (from {email.sender_name})"
    return f"Email from {email.sender_name}"


def task_description_for(email: Email) -> str:
    received = email.received_at.strftime("%Y-%m-%d %H:%M %Z").strip()
    return f"{email.snippet}\n\nFrom: {email.sender}\nReceived: {received}"


def keyword_priority(text: str) -> int:
    """Priority from keyword scan: urgent terms -> 4, request terms -> 3, else 2."""
    lowered = text.lower()
    if any(keyword in lowered for keyword in URGENT_KEYWORDS):
        return 4
    if any(keyword in lowered for keyword in HIGH_KEYWORDS):
        return 3
    return 2


def extract_due_hint(text: str) -> str | None:
    """Extract a natural-language due hint ('tomorrow', 'end of week', ...) from text."""
    for pattern, template in _DUE_PATTERNS:
        match = pattern.search(text, timeout=REGEX_TIMEOUT)
        if match:
            return template.format(match.group(1).lower())
    return None


def build_task_from_email(
    email: Email,
    *,
    priority: int | None = None,
    category: str = "task",
    labels: Sequence[str] = ("email-todo",),
    project_id: str | None = None,
) -> TaskData:
    """Build task data directly from an email.

    Args:
        email: Source email
        priority: Fixed priority (e.g. label-derived); keyword scan when None
        category: Task category tag
        labels: Task tracker labels to attach
        project_id: Optional task tracker project

    Returns:
        TaskData ready for the task tracker
    """
    text = f"{email.subject} {email.body}"
    return TaskData(
        title=task_title_for(email),
        description=task_description_for(email),
        priority=priority if priority is not None else keyword_priority(text),
        due_string=extract_due_hint(text),
        project_id=project_id,
        labels=list(labels),
        category=category,
    )
