"""Todoist REST adapter implementing TaskTracker.

Usage:
    from todo_agent.providers.todoist import TodoistTracker

    tracker = TodoistTracker(config.todoist)
    created = await tracker.create_task(TaskData(title="Reply to Jane"))
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import httpx

from todo_agent.config_schema import TodoistConfig
from todo_agent.core.errors import TaskTrackerError
from todo_agent.core.logging import get_logger
from todo_agent.core.rate_limiter import TokenBucket
from todo_agent.models import CreatedTask, TaskData
from todo_agent.providers.http import RestClient

logger = get_logger(__name__)

TOKEN_ENV = "TODOIST_API_TOKEN"

TODOIST_RATE = 1.0  # requests per second
TODOIST_CAPACITY = 5


def _env_token() -> str:
    return os.environ.get(TOKEN_ENV, "")


def build_task_arguments(task: TaskData) -> dict[str, Any]:
    """Build the create-task body, leaving out empty or invalid values.

    The Todoist API rejects blank strings for optional fields, so they are
    omitted rather than sent empty.
    """
    args: dict[str, Any] = {"content": task.title}

    if task.description and task.description.strip():
        args["description"] = task.description.strip()
    if task.priority in (1, 2, 3, 4):
        args["priority"] = task.priority
    if task.due_string and task.due_string.strip():
        args["due_string"] = task.due_string.strip()
    if task.project_id and task.project_id.strip():
        args["project_id"] = task.project_id.strip()
    if task.labels:
        args["labels"] = list(task.labels)

    return args


class TodoistTracker:
    """TaskTracker backed by the Todoist REST API."""

    def __init__(
        self,
        config: TodoistConfig | None = None,
        token_provider: Callable[[], str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config or TodoistConfig()
        self._client = RestClient(
            self._config.base_url,
            token_provider or _env_token,
            service="todoist",
            error_cls=TaskTrackerError,
            max_retries=self._config.max_retries,
            timeout=self._config.timeout_seconds,
            rate_bucket=TokenBucket(rate=TODOIST_RATE, capacity=TODOIST_CAPACITY),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_task(self, task: TaskData) -> CreatedTask:
        """Create a task.

        Raises:
            TaskTrackerError: If the API rejects the task or returns no ID
        """
        logger.debug("todoist_task_creating", title=task.title[:60], priority=task.priority)

        data = await self._client.post("/tasks", json=build_task_arguments(task))
        task_id = data.get("id") or data.get("task_id")
        if not task_id:
            raise TaskTrackerError("Task creation returned no ID")

        logger.info("todoist_task_created", task_id=str(task_id))
        return CreatedTask(id=str(task_id), title=data.get("content", task.title))
