"""Data model shared by the rule engine, classifier, pipeline and scheduler.

Nothing here is persisted by the agent itself: emails live in Gmail, tasks in
Todoist, and statistics only for the lifetime of the process.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

ProcessingSource = Literal["webhook", "batch", "manual"]


@dataclass(frozen=True, slots=True)
class Email:
    """Snapshot of a Gmail message, fetched fresh for each processing attempt.

    Attributes:
        id: Gmail message ID
        sender: Raw From header (e.g. 'Jane Doe <jane@example.com>')
        recipient: Raw To header
        subject: Subject line
        body: Plain-text body excerpt (bounded length)
        snippet: Short single-line preview of the body
        label_names: Names of the labels on the message
        thread_id: Gmail thread ID
        received_at: When the message was received
    """

    id: str
    sender: str = ""
    recipient: str = ""
    subject: str = ""
    body: str = ""
    snippet: str = ""
    label_names: frozenset[str] = field(default_factory=frozenset)
    thread_id: str = ""
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def has_label(self, label_name: str) -> bool:
        """Check whether a label (by name) is present on the message."""
        return label_name in self.label_names

    @property
    def sender_name(self) -> str:
        """Display part of the From header, falling back to the full header."""
        return self.sender.split("<")[0].strip().strip('"') or self.sender


@dataclass(slots=True)
class TaskData:
    """Fields sent to the task tracker when creating a task."""

    title: str
    description: str = ""
    priority: int = 2
    due_string: str | None = None
    project_id: str | None = None
    labels: list[str] = field(default_factory=list)
    category: str = "task"


@dataclass(frozen=True, slots=True)
class CreatedTask:
    """Task returned by the tracker; only the ID is kept."""

    id: str
    title: str = ""


@dataclass(frozen=True, slots=True)
class ProcessingResult:
    """Outcome of processing a single email.

    `error` also carries informational reasons on success (e.g. 'Already
    processed', 'AI determined not actionable') so callers can report why
    no task was created.
    """

    success: bool
    email_id: str
    task_id: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        return {
            "success": self.success,
            "email_id": self.email_id,
            "task_id": self.task_id,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ProcessingStats:
    """Process-lifetime pipeline counters. Reset only by operator command."""

    total_processed: int = 0
    rule_matched: int = 0
    ai_processed: int = 0
    tasks_created: int = 0
    skipped: int = 0
    failed: int = 0
    processing_time_ms: int = 0

    def snapshot(self) -> ProcessingStats:
        """Return an independent copy."""
        return ProcessingStats(**asdict(self))

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class BatchStats:
    """Batch scheduler counters across runs."""

    total_runs: int = 0
    total_emails_processed: int = 0
    total_tasks_created: int = 0
    last_run_time: datetime | None = None
    next_run_time: datetime | None = None
    average_processing_time_ms: float = 0.0
    is_running: bool = False

    def snapshot(self) -> BatchStats:
        """Return an independent copy."""
        return BatchStats(**asdict(self))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("last_run_time", "next_run_time"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data
