"""Pytest fixtures and configuration for Todo Agent tests.

Provides the config singleton reset, in-memory fakes for the mail provider,
task tracker and language model, and sample emails.
"""

import dataclasses
import json
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

import pytest

from todo_agent.config import reset_config
from todo_agent.config_schema import AppConfig
from todo_agent.core.errors import TaskTrackerError
from todo_agent.labels import PROCESSED_LABEL, SKIP_LABEL
from todo_agent.models import CreatedTask, Email, TaskData

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeMailProvider:
    """In-memory mailbox: labels live in a per-email set, fetches return fresh snapshots.

    `label_errors` maps a label name to an exception raised once by add_label.
    """

    def __init__(self, emails: Iterable[Email] = ()):
        self.emails: dict[str, Email] = {}
        self.labels: dict[str, set[str]] = {}
        self.added: list[tuple[str, str]] = []
        self.removed: list[tuple[str, str]] = []
        self.queries: list[tuple[str, int]] = []
        self.rejected_labels: set[str] = set()
        self.label_errors: dict[str, Exception] = {}
        self.fetch_error: Exception | None = None
        self.search_error: Exception | None = None
        for email in emails:
            self.add_email(email)

    def add_email(self, email: Email) -> None:
        self.emails[email.id] = email
        self.labels[email.id] = set(email.label_names)

    async def fetch_email_by_id(self, email_id: str) -> Email | None:
        if self.fetch_error is not None:
            raise self.fetch_error
        email = self.emails.get(email_id)
        if email is None:
            return None
        return dataclasses.replace(email, label_names=frozenset(self.labels[email_id]))

    async def fetch_emails(self, query: str, max_results: int) -> list[Email]:
        self.queries.append((query, max_results))
        if self.search_error is not None:
            raise self.search_error
        pending = [
            email_id
            for email_id, labels in self.labels.items()
            if not labels & {PROCESSED_LABEL, SKIP_LABEL}
        ]
        return [await self.fetch_email_by_id(email_id) for email_id in pending[:max_results]]

    async def add_label(self, email_id: str, label_name: str) -> bool:
        self.added.append((email_id, label_name))
        if label_name in self.label_errors:
            raise self.label_errors.pop(label_name)
        if label_name in self.rejected_labels or email_id not in self.labels:
            return False
        self.labels[email_id].add(label_name)
        return True

    async def remove_label(self, email_id: str, label_name: str) -> bool:
        self.removed.append((email_id, label_name))
        if email_id not in self.labels:
            return False
        self.labels[email_id].discard(label_name)
        return True

    async def refresh_label_cache(self) -> None:
        return None


class FakeTaskTracker:
    """Records created tasks; raises `error` when set."""

    def __init__(self):
        self.created: list[TaskData] = []
        self.error: Exception | None = None

    async def create_task(self, task: TaskData) -> CreatedTask:
        if self.error is not None:
            raise self.error
        self.created.append(task)
        return CreatedTask(id=f"task-{len(self.created)}", title=task.title)


class FakeLanguageModel:
    """Returns a canned tool input (dict), raw text (str), or raises (Exception)."""

    def __init__(self, response: dict[str, Any] | str | Exception):
        self.response = response
        self.calls: list[dict[str, Any]] = []

    async def complete(self, system_prompt: str, user_prompt: str, schema: dict[str, Any]) -> str:
        self.calls.append(
            {"system_prompt": system_prompt, "user_prompt": user_prompt, "schema": schema}
        )
        if isinstance(self.response, Exception):
            raise self.response
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1

batch:
  interval_minutes: 10
  max_emails_per_batch: 25

rules:
  vip_senders: ["boss@acme.io"]
  custom:
    - name: "Invoices"
      priority: 7
      criteria:
        subject: ["invoice"]
      actions:
        label: TodoAgent_Task
        priority: 3
"""


@pytest.fixture
def sample_config() -> AppConfig:
    """Return a config with pacing delays disabled."""
    return AppConfig(
        batch={"inter_email_delay_seconds": 0.0, "run_on_startup": False},
        ai={"batch_delay_seconds": 0.0},
    )


@pytest.fixture
def mail() -> FakeMailProvider:
    return FakeMailProvider()


@pytest.fixture
def tracker() -> FakeTaskTracker:
    return FakeTaskTracker()


@pytest.fixture
def make_email() -> Callable[..., Email]:
    """Factory for Email instances with sensible defaults."""

    def _make(
        email_id: str = "msg-001",
        sender: str = "Jane Doe <jane@acme.io>",
        subject: str = "Quarterly numbers",
        body: str = "Attached is the draft budget for your thoughts.",
        labels: Iterable[str] = (),
        recipient: str = "me@example.com",
    ) -> Email:
        return Email(
            id=email_id,
            sender=sender,
            recipient=recipient,
            subject=subject,
            body=body,
            snippet=body[:150].replace("\n", " "),
            label_names=frozenset(labels),
            thread_id=f"thread-{email_id}",
            received_at=datetime(2026, 3, 2, 9, 30, tzinfo=UTC),
        )

    return _make


@pytest.fixture
def actionable_verdict() -> dict[str, Any]:
    """Raw classify_email tool input for an actionable email."""
    return {
        "is_actionable": True,
        "suggested_label": "TodoAgent_Task",
        "confidence": 0.92,
        "task_data": {
            "title": "Send signed contract to Jane",
            "description": "Jane needs the signed contract back",
            "due_string": "friday",
            "priority": 3,
            "category": "task",
        },
        "keywords": ["sign", "contract"],
        "reasoning": "Direct request to sign and return a contract",
        "temporal_indicators": {
            "has_deadline": True,
            "urgency_level": "medium",
            "timeframe": "this week",
        },
    }


@pytest.fixture
def tracker_error() -> TaskTrackerError:
    return TaskTrackerError("todoist API error (500): boom", status_code=500)


@pytest.fixture
def fake_llm() -> type[FakeLanguageModel]:
    """The FakeLanguageModel class, for building models with a canned response."""
    return FakeLanguageModel
