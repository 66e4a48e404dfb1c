"""Gmail label vocabulary and the processing status derived from it.

Labels are the only persistent state the agent keeps: the label set on a
message is the system of record for whether (and how) it was handled.

State labels:
- TodoAgent_Processed: terminal success
- TodoAgent_Skip: terminal, intentionally not actioned
- TodoAgent_Failed: transient, the email stays eligible for retry

Action labels (rule engine or AI output, precedence order):
- TodoAgent_Important > TodoAgent_Urgent > TodoAgent_Meeting > TodoAgent_Task

Usage:
    from todo_agent.labels import EmailStatus, derive_status

    status = derive_status(email.label_names)
    if status.is_terminal:
        ...
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

PROCESSED_LABEL = "TodoAgent_Processed"
SKIP_LABEL = "TodoAgent_Skip"
FAILED_LABEL = "TodoAgent_Failed"

IMPORTANT_LABEL = "TodoAgent_Important"
URGENT_LABEL = "TodoAgent_Urgent"
MEETING_LABEL = "TodoAgent_Meeting"
TASK_LABEL = "TodoAgent_Task"

# Precedence order matters: the first present label decides task priority
ACTION_LABELS: tuple[str, ...] = (IMPORTANT_LABEL, URGENT_LABEL, MEETING_LABEL, TASK_LABEL)

STATE_LABELS: tuple[str, ...] = (PROCESSED_LABEL, SKIP_LABEL, FAILED_LABEL)

# Labels the AI classifier may suggest
CLASSIFIER_LABELS: tuple[str, ...] = ACTION_LABELS + (SKIP_LABEL,)

ALL_LABELS: tuple[str, ...] = STATE_LABELS + ACTION_LABELS

# Action label -> (task priority, task category)
ACTION_LABEL_TASK_DEFAULTS: dict[str, tuple[int, str]] = {
    IMPORTANT_LABEL: (4, "urgent"),
    URGENT_LABEL: (4, "urgent"),
    MEETING_LABEL: (3, "meeting"),
    TASK_LABEL: (2, "task"),
}


class ProcessingState(StrEnum):
    """Processing state of an email as read from its labels."""

    UNPROCESSED = "unprocessed"
    FAILED = "failed"
    CATEGORIZED = "categorized"
    PROCESSED = "processed"
    SKIPPED = "skipped"


class ProcessingOutcome(StrEnum):
    """Outcome written back to the mailbox when a run finishes."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


OUTCOME_LABELS: dict[ProcessingOutcome, str] = {
    ProcessingOutcome.SUCCESS: PROCESSED_LABEL,
    ProcessingOutcome.FAILED: FAILED_LABEL,
    ProcessingOutcome.SKIPPED: SKIP_LABEL,
}


@dataclass(frozen=True, slots=True)
class EmailStatus:
    """Status derived from a label set.

    Attributes:
        state: Processing state
        action_label: Highest-precedence action label (CATEGORIZED only)
        has_failed_marker: Whether TodoAgent_Failed is present, whatever the state
    """

    state: ProcessingState
    action_label: str | None = None
    has_failed_marker: bool = False

    @property
    def is_terminal(self) -> bool:
        """Processed and Skip are absorbing states."""
        return self.state in (ProcessingState.PROCESSED, ProcessingState.SKIPPED)


def derive_status(labels: Iterable[str]) -> EmailStatus:
    """Derive the processing status from an email's label names.

    Precedence: Processed > Skip > action label > Failed > unprocessed.
    An email carrying Failed together with an action label is CATEGORIZED,
    so a retry goes straight to task creation.

    Args:
        labels: Label names present on the email

    Returns:
        EmailStatus for the label set
    """
    present = set(labels)
    failed = FAILED_LABEL in present

    if PROCESSED_LABEL in present:
        return EmailStatus(ProcessingState.PROCESSED, has_failed_marker=failed)
    if SKIP_LABEL in present:
        return EmailStatus(ProcessingState.SKIPPED, has_failed_marker=failed)

    action_label = first_action_label(present)
    if action_label is not None:
        return EmailStatus(
            ProcessingState.CATEGORIZED,
            action_label=action_label,
            has_failed_marker=failed,
        )

    if failed:
        return EmailStatus(ProcessingState.FAILED, has_failed_marker=True)
    return EmailStatus(ProcessingState.UNPROCESSED)


def first_action_label(labels: Iterable[str]) -> str | None:
    """Return the highest-precedence action label present, if any."""
    present = set(labels)
    for label in ACTION_LABELS:
        if label in present:
            return label
    return None


def task_defaults_for_label(label: str | None) -> tuple[int, str]:
    """Map an action label to (priority, category); unknown labels get (2, 'task')."""
    if label is None:
        return (2, "task")
    return ACTION_LABEL_TASK_DEFAULTS.get(label, (2, "task"))
