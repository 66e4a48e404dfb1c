"""Capability interfaces the processing core calls into.

The pipeline, rule engine and classifier depend only on these protocols;
concrete adapters live beside this module and tests use in-memory fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from todo_agent.models import CreatedTask, Email, TaskData


@runtime_checkable
class MailProvider(Protocol):
    """Mailbox access. Label arguments are label *names*; adapters resolve IDs."""

    async def fetch_emails(self, query: str, max_results: int) -> list[Email]:
        """Return messages matching a search query (raises MailProviderError on failure)."""
        ...

    async def fetch_email_by_id(self, email_id: str) -> Email | None:
        """Return one message, or None if it no longer exists."""
        ...

    async def add_label(self, email_id: str, label_name: str) -> bool:
        """Add a label; False if the label could not be resolved or applied."""
        ...

    async def remove_label(self, email_id: str, label_name: str) -> bool:
        """Remove a label; False if the label could not be resolved or removed."""
        ...

    async def refresh_label_cache(self) -> None:
        """Reload the label name/ID mapping."""
        ...


@runtime_checkable
class TaskTracker(Protocol):
    async def create_task(self, task: TaskData) -> CreatedTask:
        """Create a task (raises TaskTrackerError when rejected or no ID returned)."""
        ...


@runtime_checkable
class LanguageModel(Protocol):
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: dict[str, Any],
    ) -> str:
        """Return the model's answer as JSON text conforming to `schema`.

        `schema` is a tool definition (name, description, input_schema).
        """
        ...
