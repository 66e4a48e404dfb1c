"""Per-email processing pipeline.

Decides, for one email, whether it was already handled, which label it gets,
whether a task is created, and records the outcome as Gmail labels so the
same email is never actioned twice and failures stay retryable.

Pipeline per email (short-circuits at the first decision):
1. Fetch the email; missing -> failure result, no side effects
2. Processed or Skip present -> "Already processed"
3. Failed present -> this is a retry, continue
4. Action label present -> create task from label-derived data
5. Rule engine -> label written; action label -> step 4, skip_ai rule -> Skip
6. AI classifier -> Skip, or suggested label + task from the verdict
   (unavailable or raising classifier -> basic keyword classification)
7. Unexpected exception -> failed counter, best-effort Failed label

State machine across attempts:
    Unlabeled -> Skip | ActionLabel -> Processed | ActionLabel -> Failed -> (retry)

Usage:
    from todo_agent.engine.pipeline import EmailProcessor

    processor = EmailProcessor(mail, tasks, rule_engine, classifier, config)
    result = await processor.process_email("18c2f0a1b2c3d4e5", source="webhook")
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING

from todo_agent.classifier.basic import build_task_from_email, should_skip_email
from todo_agent.core.errors import UpstreamError
from todo_agent.core.logging import get_correlation_id, get_logger, set_correlation_id
from todo_agent.labels import (
    FAILED_LABEL,
    OUTCOME_LABELS,
    TASK_LABEL,
    ProcessingOutcome,
    ProcessingState,
    derive_status,
    first_action_label,
    task_defaults_for_label,
)
from todo_agent.models import ProcessingResult, ProcessingStats, TaskData

if TYPE_CHECKING:
    from todo_agent.classifier.ai_classifier import AIClassifier, VerdictTaskData
    from todo_agent.config_schema import AppConfig
    from todo_agent.models import Email, ProcessingSource
    from todo_agent.providers.base import MailProvider, TaskTracker
    from todo_agent.rules.engine import RuleEngine

logger = get_logger(__name__)

ALREADY_PROCESSED = "Already processed"
EMAIL_NOT_FOUND = "Email not found"


class EmailProcessor:
    """Runs the decision pipeline for single emails and keeps processing counters.

    Attributes:
        _mail: Mail provider (fetch + label writes)
        _tasks: Task tracker
        _rule_engine: Rule engine over the session's rule store
        _classifier: AI classifier (may be unavailable)
        _config: Application configuration
        _stats: Process-lifetime counters
    """

    def __init__(
        self,
        mail: MailProvider,
        tasks: TaskTracker,
        rule_engine: RuleEngine,
        classifier: AIClassifier,
        config: AppConfig,
    ):
        self._mail = mail
        self._tasks = tasks
        self._rule_engine = rule_engine
        self._classifier = classifier
        self._config = config
        self._stats = ProcessingStats()

    @property
    def stats(self) -> ProcessingStats:
        """Snapshot of the processing counters."""
        return self._stats.snapshot()

    def reset_stats(self) -> None:
        self._stats = ProcessingStats()
        logger.info("processing_stats_reset")

    def update_config(self, config: AppConfig) -> None:
        """Update the config reference for hot-reload support."""
        self._config = config

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_email(
        self,
        email_id: str,
        source: ProcessingSource = "manual",
    ) -> ProcessingResult:
        """Process one email through the pipeline.

        Never raises for per-email failures: they are returned in the result's
        `error` field and recorded with a Failed label.

        Args:
            email_id: Gmail message ID
            source: Entry point that triggered processing

        Returns:
            ProcessingResult
        """
        start_time = time.monotonic()
        owns_run_id = get_correlation_id() is None
        if owns_run_id:
            set_correlation_id(f"email-{uuid.uuid4().hex[:12]}")

        self._stats.total_processed += 1
        log = logger.bind(email_id=email_id[:20], source=source)

        try:
            email = await self._mail.fetch_email_by_id(email_id)
            if email is None:
                log.warning("email_not_found")
                return ProcessingResult(success=False, email_id=email_id, error=EMAIL_NOT_FOUND)

            status = derive_status(email.label_names)

            if status.state is ProcessingState.PROCESSED:
                self._stats.skipped += 1
                log.info("email_already_processed")
                return ProcessingResult(success=True, email_id=email_id, error=ALREADY_PROCESSED)

            if status.state is ProcessingState.SKIPPED:
                self._stats.skipped += 1
                log.info("email_already_skipped")
                return ProcessingResult(success=True, email_id=email_id, error=ALREADY_PROCESSED)

            if status.has_failed_marker:
                log.info("email_retry_after_failure")

            if status.state is ProcessingState.CATEGORIZED and status.action_label:
                self._stats.rule_matched += 1
                return await self._process_labeled(email, status.action_label)

            rule_result = await self._rule_engine.evaluate(email)
            if rule_result.matched and rule_result.rule is not None:
                self._stats.rule_matched += 1

                updated = await self._mail.fetch_email_by_id(email.id)
                if updated is not None:
                    action_label = first_action_label(updated.label_names)
                    if action_label is not None:
                        return await self._process_labeled(updated, action_label)

                if rule_result.rule.actions.skip_ai:
                    await self.mark_processed(
                        email.id,
                        ProcessingOutcome.SKIPPED,
                        clear_failed=status.has_failed_marker,
                    )
                    self._stats.skipped += 1
                    log.info("email_skipped_by_rule", rule_id=rule_result.rule.id)
                    return ProcessingResult(
                        success=True, email_id=email_id, error="Rule marked to skip"
                    )

            return await self._process_with_ai(email)

        except Exception as e:
            # Per-email failures never escape: record Failed and report
            self._stats.failed += 1
            log.error(
                "email_processing_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
            await self.mark_processed(email_id, ProcessingOutcome.FAILED)
            return ProcessingResult(success=False, email_id=email_id, error=str(e))

        finally:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            self._stats.processing_time_ms += elapsed_ms
            if owns_run_id:
                set_correlation_id(None)

    async def process_emails(
        self,
        query: str,
        max_results: int,
        source: ProcessingSource = "batch",
    ) -> list[ProcessingResult]:
        """Fetch emails matching a query and process them one at a time.

        Raises:
            MailProviderError: If the query itself fails
        """
        emails = await self._mail.fetch_emails(query, max_results)
        if not emails:
            logger.info("no_emails_to_process", query=query)
            return []

        logger.info("processing_emails", query=query, count=len(emails))
        delay = self._config.batch.inter_email_delay_seconds

        results: list[ProcessingResult] = []
        for index, email in enumerate(emails):
            if index and delay > 0:
                await asyncio.sleep(delay)
            results.append(await self.process_email(email.id, source=source))

        logger.info(
            "processing_emails_complete",
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
            tasks_created=sum(1 for r in results if r.task_id),
        )
        return results

    # ------------------------------------------------------------------
    # Outcome labels
    # ------------------------------------------------------------------

    async def mark_processed(
        self,
        email_id: str,
        outcome: ProcessingOutcome,
        *,
        clear_failed: bool = True,
    ) -> bool:
        """Write the terminal label for an outcome.

        Success and skip outcomes also remove TodoAgent_Failed when
        `clear_failed` is set. Label-write failures are logged, never raised,
        so they cannot mask the processing outcome.

        Returns:
            True if the outcome label was applied
        """
        label = OUTCOME_LABELS[outcome]
        try:
            applied = await self._mail.add_label(email_id, label)
        except Exception as e:
            logger.warning(
                "outcome_label_write_failed",
                email_id=email_id[:20],
                label=label,
                error=str(e),
            )
            return False

        if not applied:
            logger.warning("outcome_label_not_applied", email_id=email_id[:20], label=label)
            return False

        if clear_failed and outcome is not ProcessingOutcome.FAILED:
            try:
                await self._mail.remove_label(email_id, FAILED_LABEL)
            except Exception as e:
                logger.warning(
                    "failed_label_cleanup_failed",
                    email_id=email_id[:20],
                    error=str(e),
                )

        return True

    async def _apply_label(self, email_id: str, label: str) -> bool:
        """Write an action label. Failures are logged, never raised."""
        try:
            applied = await self._mail.add_label(email_id, label)
        except Exception as e:
            logger.warning(
                "action_label_write_failed",
                email_id=email_id[:20],
                label=label,
                error=str(e),
            )
            return False

        if not applied:
            logger.warning("action_label_not_applied", email_id=email_id[:20], label=label)
        return applied

    # ------------------------------------------------------------------
    # Pipeline branches
    # ------------------------------------------------------------------

    def _task_from_email(
        self, email: Email, priority: int | None = None, category: str = "task"
    ) -> TaskData:
        return build_task_from_email(
            email,
            priority=priority,
            category=category,
            labels=self._config.tasks.labels,
            project_id=self._config.tasks.project_id,
        )

    def _task_from_verdict(self, task_data: VerdictTaskData) -> TaskData:
        return TaskData(
            title=task_data.title,
            description=task_data.description,
            priority=task_data.priority,
            due_string=task_data.due_string,
            project_id=self._config.tasks.project_id,
            labels=list(self._config.tasks.labels),
            category=task_data.category,
        )

    async def _create_task(
        self,
        email: Email,
        task: TaskData,
        success_label: str | None = None,
    ) -> ProcessingResult:
        """Create a task and write the terminal label for the outcome.

        Task tracker failures write Failed and return a failure result
        without raising.
        """
        clear_failed = FAILED_LABEL in email.label_names

        try:
            created = await self._tasks.create_task(task)
        except UpstreamError as e:
            logger.error(
                "task_creation_failed",
                email_id=email.id[:20],
                status_code=e.status_code,
                error=str(e),
            )
            await self.mark_processed(email.id, ProcessingOutcome.FAILED)
            return ProcessingResult(success=False, email_id=email.id, error=str(e))

        if success_label is not None:
            await self._apply_label(email.id, success_label)

        await self.mark_processed(email.id, ProcessingOutcome.SUCCESS, clear_failed=clear_failed)
        self._stats.tasks_created += 1

        logger.info(
            "email_processed",
            email_id=email.id[:20],
            task_id=created.id,
            priority=task.priority,
            category=task.category,
        )
        return ProcessingResult(success=True, email_id=email.id, task_id=created.id)

    async def _process_labeled(self, email: Email, action_label: str) -> ProcessingResult:
        """Create a task for an email that already carries an action label."""
        priority, category = task_defaults_for_label(action_label)
        logger.debug("email_pre_labeled", email_id=email.id[:20], label=action_label)
        return await self._create_task(email, self._task_from_email(email, priority, category))

    async def _process_with_ai(self, email: Email) -> ProcessingResult:
        self._stats.ai_processed += 1

        if not self._classifier.is_available:
            logger.info("ai_unavailable_using_basic", email_id=email.id[:20])
            return await self._process_basic(email)

        try:
            verdict = await self._classifier.classify(email)
        except Exception as e:
            logger.warning(
                "ai_classification_error_using_basic",
                email_id=email.id[:20],
                error_type=type(e).__name__,
                error=str(e),
            )
            return await self._process_basic(email)

        if not verdict.is_actionable or verdict.task_data is None:
            await self.mark_processed(
                email.id,
                ProcessingOutcome.SKIPPED,
                clear_failed=FAILED_LABEL in email.label_names,
            )
            self._stats.skipped += 1
            logger.info(
                "email_not_actionable",
                email_id=email.id[:20],
                confidence=verdict.confidence,
            )
            return ProcessingResult(
                success=True, email_id=email.id, error="AI determined not actionable"
            )

        await self._apply_label(email.id, verdict.suggested_label)
        return await self._create_task(email, self._task_from_verdict(verdict.task_data))

    async def _process_basic(self, email: Email) -> ProcessingResult:
        """Keyword fallback used when the AI classifier cannot be consulted."""
        pipeline = self._config.pipeline
        clear_failed = FAILED_LABEL in email.label_names

        if should_skip_email(email, pipeline.skip_keywords):
            await self.mark_processed(
                email.id, ProcessingOutcome.SKIPPED, clear_failed=clear_failed
            )
            self._stats.skipped += 1
            return ProcessingResult(
                success=True, email_id=email.id, error="Basic classification - skipped"
            )

        if pipeline.basic_fallback_policy == "skip":
            await self.mark_processed(
                email.id, ProcessingOutcome.SKIPPED, clear_failed=clear_failed
            )
            self._stats.skipped += 1
            return ProcessingResult(
                success=True,
                email_id=email.id,
                error="Basic classification - no task created (policy)",
            )

        return await self._create_task(email, self._task_from_email(email), TASK_LABEL)
