"""Batch scheduler: periodic sweeps of unprocessed mail.

Each cycle queries the mailbox for unread mail that carries neither
TodoAgent_Processed nor TodoAgent_Skip and feeds the results through the
EmailProcessor one at a time. A recurring APScheduler interval job drives the
cycles; manual runs share the same cycle body.

At most one cycle runs at a time: a cycle started while another is in
progress returns the current stats without doing anything.

Usage:
    from todo_agent.engine.batch import BatchScheduler

    scheduler = BatchScheduler(processor, config.batch)
    await scheduler.start()
    ...
    scheduler.stop()
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from todo_agent.config_schema import BatchConfig
from todo_agent.core.logging import get_logger, set_correlation_id
from todo_agent.labels import PROCESSED_LABEL, SKIP_LABEL
from todo_agent.models import BatchStats

if TYPE_CHECKING:
    from todo_agent.engine.pipeline import EmailProcessor

logger = get_logger(__name__)

JOB_ID = "batch_cycle"

# Changing any of these requires reinstalling the interval job
_TIMER_FIELDS = frozenset({"interval_minutes", "enabled"})


def build_query(*, startup: bool, lookback: str = "1d") -> str:
    """Gmail search query for emails still awaiting a decision."""
    parts = ["is:unread"]
    if startup:
        parts.append(f"newer_than:{lookback}")
    parts.append(f'-label:"{PROCESSED_LABEL}"')
    parts.append(f'-label:"{SKIP_LABEL}"')
    return " ".join(parts)


class BatchScheduler:
    """Runs batch cycles on a timer and on demand.

    Attributes:
        _processor: Per-email pipeline
        _config: Active batch settings
        _stats: Counters across runs
        _scheduler: APScheduler instance while the timer is installed
        _completed_first_run: Whether the startup catch-up query has been used
        _started: Whether start() was called and stop() has not been since
        _before_cycle: Called at the start of every cycle (config hot-reload)
        _cap_override: Email cap for the manual run in progress
    """

    def __init__(
        self,
        processor: EmailProcessor,
        config: BatchConfig | None = None,
        before_cycle: Callable[[], object] | None = None,
    ):
        self._processor = processor
        self._before_cycle = before_cycle
        self._config = config or BatchConfig()
        self._stats = BatchStats()
        self._scheduler: AsyncIOScheduler | None = None
        self._completed_first_run = False
        self._started = False
        self._cap_override: int | None = None

    @property
    def config(self) -> BatchConfig:
        return self._config.model_copy()

    @property
    def is_scheduled(self) -> bool:
        return self._scheduler is not None

    def stats(self) -> BatchStats:
        """Snapshot of the batch counters."""
        self._refresh_next_run_time()
        return self._stats.snapshot()

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_batch_cycle(self) -> BatchStats:
        """Process one batch of unhandled emails.

        Cycle-level failures (including a failed mailbox query) are logged
        and swallowed; the stats snapshot is returned either way.
        """
        if self._stats.is_running:
            logger.warning("batch_cycle_already_running")
            return self._stats.snapshot()

        self._stats.is_running = True
        self._stats.total_runs += 1
        run_number = self._stats.total_runs

        cycle_id = str(uuid.uuid4())
        set_correlation_id(cycle_id)
        start_time = time.monotonic()

        if self._before_cycle is not None:
            try:
                self._before_cycle()
            except Exception as e:
                logger.warning(
                    "batch_before_cycle_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                )

        startup = self._config.run_on_startup and not self._completed_first_run
        query = build_query(startup=startup, lookback=self._config.startup_lookback)
        cap = self._cap_override or self._config.max_emails_per_batch

        logger.info("batch_cycle_started", run=run_number, max_emails=cap, startup=startup)

        try:
            tasks_before = self._processor.stats.tasks_created
            results = await self._processor.process_emails(query, cap)
            tasks_created = self._processor.stats.tasks_created - tasks_before

            duration_ms = int((time.monotonic() - start_time) * 1000)
            self._stats.total_emails_processed += len(results)
            self._stats.total_tasks_created += tasks_created
            self._stats.average_processing_time_ms = (
                self._stats.average_processing_time_ms * (run_number - 1) + duration_ms
            ) / run_number
            self._stats.last_run_time = datetime.now().astimezone()

            logger.info(
                "batch_cycle_complete",
                run=run_number,
                emails=len(results),
                tasks_created=tasks_created,
                duration_ms=duration_ms,
            )

        except Exception as e:
            logger.error(
                "batch_cycle_failed",
                run=run_number,
                error_type=type(e).__name__,
                error=str(e),
            )

        finally:
            self._completed_first_run = True
            self._stats.is_running = False
            self._refresh_next_run_time()
            set_correlation_id(None)

        return self._stats.snapshot()

    async def run_manual(self, max_emails: int | None = None) -> BatchStats:
        """Run one cycle now, optionally with a temporary email cap."""
        self._cap_override = max_emails
        logger.info(
            "manual_batch_requested",
            max_emails=max_emails or self._config.max_emails_per_batch,
        )

        try:
            return await self.run_batch_cycle()
        finally:
            self._cap_override = None

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    async def start(self, **overrides: Any) -> None:
        """Start scheduled processing.

        Does nothing while batching is disabled; a later update_config(enabled=True)
        installs the timer. Otherwise runs one catch-up cycle first when
        run_on_startup is set, then installs the interval job.

        Args:
            **overrides: BatchConfig fields to change before starting
        """
        if overrides:
            self._config = _merged_config(self._config, overrides)

        if self._scheduler is not None:
            self.stop()
        self._started = True

        if not self._config.enabled:
            logger.info("batch_processing_disabled")
            return

        logger.info(
            "batch_scheduler_starting",
            interval_minutes=self._config.interval_minutes,
            max_emails=self._config.max_emails_per_batch,
            run_on_startup=self._config.run_on_startup,
        )

        if self._config.run_on_startup:
            await self.run_batch_cycle()

        self._install_timer()

    def stop(self) -> None:
        """Remove the interval job. A cycle already in progress finishes."""
        self._started = False
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._stats.next_run_time = None
        logger.info("batch_scheduler_stopped")

    def update_config(self, **changes: Any) -> BatchConfig:
        """Apply config changes, reinstalling the timer if its shape changed.

        Raises:
            pydantic.ValidationError: If a changed value is invalid
        """
        previous = self._config
        self._config = _merged_config(previous, changes)
        logger.info("batch_config_updated", changes=sorted(changes))

        timer_changed = any(
            getattr(previous, field) != getattr(self._config, field) for field in _TIMER_FIELDS
        )
        if self._started and timer_changed:
            if self._scheduler is not None:
                self._scheduler.shutdown(wait=False)
                self._scheduler = None
                self._stats.next_run_time = None
            if self._config.enabled:
                self._install_timer()
            else:
                logger.info("batch_processing_disabled")

        return self.config

    def reset_stats(self) -> None:
        """Zero the counters, keeping the scheduled next run."""
        self._stats = BatchStats(
            next_run_time=self._stats.next_run_time,
            is_running=self._stats.is_running,
        )
        logger.info("batch_stats_reset")

    def _install_timer(self) -> None:
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.run_batch_cycle,
            "interval",
            minutes=self._config.interval_minutes,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        self._refresh_next_run_time()
        logger.info(
            "batch_scheduler_started",
            interval_minutes=self._config.interval_minutes,
            next_run_time=str(self._stats.next_run_time),
        )

    def _refresh_next_run_time(self) -> None:
        if self._scheduler is None:
            return
        job = self._scheduler.get_job(JOB_ID)
        self._stats.next_run_time = job.next_run_time if job is not None else None


def _merged_config(config: BatchConfig, changes: dict[str, Any]) -> BatchConfig:
    return BatchConfig.model_validate({**config.model_dump(), **changes})
