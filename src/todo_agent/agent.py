"""Session facade owning every piece of runtime state.

One TodoAgent holds the rule store, the classifier and its history, the
processing counters, and the batch scheduler. The CLI and the web app talk
to the agent only through the methods below, so there is no module-level
mutable state.

Usage:
    from todo_agent.agent import build_agent

    agent = await build_agent()
    result = await agent.process_email("18c2f0a1b2c3d4e5")
    await agent.aclose()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from todo_agent.classifier.ai_classifier import AIClassifier
from todo_agent.config_schema import AppConfig, BatchConfig
from todo_agent.core.errors import MailProviderError
from todo_agent.core.logging import get_logger
from todo_agent.engine.batch import BatchScheduler
from todo_agent.engine.pipeline import EmailProcessor
from todo_agent.engine.webhook import UNKNOWN_TRIGGER, parse_webhook_payload
from todo_agent.models import BatchStats, ProcessingResult, ProcessingSource, ProcessingStats
from todo_agent.providers.base import MailProvider, TaskTracker
from todo_agent.rules.engine import RuleEngine
from todo_agent.rules.store import Rule, RuleStore

logger = get_logger(__name__)

WEBHOOK_ACCEPTED = "Webhook received, processing email"
WEBHOOK_NO_EMAIL_ID = "No email ID in webhook payload"
WEBHOOK_IGNORED = "Webhook received but not processed (non-Gmail trigger)"
WEBHOOK_INVALID = "Invalid webhook payload"


@dataclass(frozen=True, slots=True)
class WebhookAck:
    """Immediate answer to a webhook call; processing continues in the background."""

    success: bool
    message: str
    trigger: str
    email_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "trigger": self.trigger,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if self.email_id is not None:
            data["email_id"] = self.email_id
        return data


class TodoAgent:
    """Caller API over the pipeline, rules, classifier and scheduler.

    Attributes:
        _config: Application configuration
        _mail: Mail provider
        _tasks: Task tracker
        _rules: Session rule store
        _classifier: AI classifier (may be unavailable)
        _processor: Per-email pipeline
        _batch: Batch scheduler
        _background_tasks: Webhook-triggered runs still in flight
    """

    def __init__(
        self,
        config: AppConfig,
        mail: MailProvider,
        tasks: TaskTracker,
        *,
        classifier: AIClassifier | None = None,
        rule_store: RuleStore | None = None,
    ):
        self._config = config
        self._mail = mail
        self._tasks = tasks
        self._rules = rule_store if rule_store is not None else RuleStore.from_config(config.rules)
        self._classifier = classifier or AIClassifier(config.ai)
        self._processor = EmailProcessor(
            mail=mail,
            tasks=tasks,
            rule_engine=RuleEngine(self._rules, mail),
            classifier=self._classifier,
            config=config,
        )
        self._batch = BatchScheduler(
            self._processor, config.batch, before_cycle=self.reload_config
        )
        self._background_tasks: set[asyncio.Task[ProcessingResult]] = set()

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def ai_available(self) -> bool:
        return self._classifier.is_available

    def update_config(self, config: AppConfig) -> None:
        """Swap in a reloaded config. Batch timer changes take effect immediately."""
        self._config = config
        self._processor.update_config(config)
        self._batch.update_config(**config.batch.model_dump())

    def reload_config(self) -> bool:
        """Apply config.yaml changes made since the last check.

        Runs before every batch cycle. Rules are session state and are not
        replaced; batch, pipeline and task settings take effect.
        """
        from todo_agent.config import get_config, reload_config_if_changed

        if not reload_config_if_changed():
            return False
        self.update_config(get_config())
        logger.info("agent_config_reloaded")
        return True

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_email(
        self, email_id: str, source: ProcessingSource = "manual"
    ) -> ProcessingResult:
        return await self._processor.process_email(email_id, source=source)

    async def process_emails(self, query: str, max_results: int = 10) -> list[ProcessingResult]:
        return await self._processor.process_emails(query, max_results, source="manual")

    async def run_batch_cycle(self) -> BatchStats:
        return await self._batch.run_batch_cycle()

    async def run_manual_batch(self, max_emails: int | None = None) -> BatchStats:
        return await self._batch.run_manual(max_emails)

    async def start_schedule(self, **overrides: Any) -> None:
        await self._batch.start(**overrides)

    def stop_schedule(self) -> None:
        self._batch.stop()

    def update_batch_config(self, **changes: Any) -> BatchConfig:
        return self._batch.update_config(**changes)

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def handle_webhook(self, payload: Any) -> WebhookAck:
        """Acknowledge a webhook and schedule processing without awaiting it."""
        trigger = parse_webhook_payload(payload)
        if trigger is None:
            logger.warning("webhook_invalid_payload")
            return WebhookAck(success=False, message=WEBHOOK_INVALID, trigger=UNKNOWN_TRIGGER)

        if not trigger.is_new_message:
            logger.info("webhook_ignored", trigger=trigger.trigger)
            return WebhookAck(success=True, message=WEBHOOK_IGNORED, trigger=trigger.trigger)

        if trigger.email_id is None:
            logger.warning("webhook_missing_email_id", trigger=trigger.trigger)
            return WebhookAck(success=False, message=WEBHOOK_NO_EMAIL_ID, trigger=trigger.trigger)

        task = asyncio.create_task(self._process_from_webhook(trigger.email_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        logger.info("webhook_accepted", trigger=trigger.trigger, email_id=trigger.email_id[:20])
        return WebhookAck(
            success=True,
            message=WEBHOOK_ACCEPTED,
            trigger=trigger.trigger,
            email_id=trigger.email_id,
        )

    async def _process_from_webhook(self, email_id: str) -> ProcessingResult:
        result = await self._processor.process_email(email_id, source="webhook")
        if result.success:
            logger.info(
                "webhook_processing_complete", email_id=email_id[:20], task_id=result.task_id
            )
        else:
            logger.error("webhook_processing_failed", email_id=email_id[:20], error=result.error)
        return result

    async def wait_for_background_tasks(self) -> None:
        """Wait for in-flight webhook runs to finish."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def processing_stats(self) -> ProcessingStats:
        return self._processor.stats

    def batch_stats(self) -> BatchStats:
        return self._batch.stats()

    def classification_stats(self) -> dict[str, int]:
        """Number of AI classifications per suggested label."""
        return self._classifier.history.label_counts()

    def sender_patterns(self) -> dict[str, dict[str, Any]]:
        return {
            sender: pattern.to_dict()
            for sender, pattern in self._classifier.history.sender_patterns().items()
        }

    def suggested_rules(self) -> list[dict[str, Any]]:
        return [suggestion.to_dict() for suggestion in self._classifier.history.suggested_rules()]

    def reset_processing_stats(self) -> None:
        self._processor.reset_stats()

    def reset_batch_stats(self) -> None:
        self._batch.reset_stats()

    def clear_ai_history(self) -> None:
        self._classifier.history.clear()
        logger.info("ai_history_cleared")

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def list_rules(self) -> list[Rule]:
        return self._rules.list_rules()

    def rule_stats(self) -> dict[str, int]:
        return self._rules.rule_stats()

    def add_rule(self, **fields: Any) -> str:
        return self._rules.add_rule(**fields)

    def update_rule(self, rule_id: str, **changes: Any) -> bool:
        return self._rules.update_rule(rule_id, **changes)

    def delete_rule(self, rule_id: str) -> bool:
        return self._rules.delete_rule(rule_id)

    def suggest_rule(self, sender: str) -> Rule | None:
        """Draft an inactive rule from the learned pattern for a sender domain."""
        pattern = self._classifier.history.sender_patterns().get(sender)
        if pattern is None:
            return None
        return self._rules.suggest_rule_from_pattern(
            label=pattern.label,
            sender=pattern.sender,
            sample_count=pattern.count,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Stop the timer, drain webhook runs, close provider clients."""
        self.stop_schedule()
        await self.wait_for_background_tasks()
        for provider in (self._mail, self._tasks):
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()


async def build_agent(config: AppConfig | None = None) -> TodoAgent:
    """Build an agent wired to Gmail, Todoist and Anthropic.

    Credentials come from the environment. A missing Anthropic key leaves
    the agent running with basic classification. Failure to create the
    agent's Gmail labels is logged; label writes then report False.
    """
    from todo_agent.config import get_config
    from todo_agent.providers.gmail import GmailProvider
    from todo_agent.providers.todoist import TodoistTracker

    config = config or get_config()

    mail = GmailProvider(config.gmail)
    tasks = TodoistTracker(config.todoist)

    classifier = AIClassifier(config.ai)
    init = classifier.initialize()
    if not init.success:
        logger.warning("ai_classifier_unavailable", error=init.error)

    if config.gmail.create_missing_labels:
        try:
            created = await mail.ensure_labels()
            if created:
                logger.info("gmail_labels_created", labels=created)
        except MailProviderError as e:
            logger.error("gmail_label_setup_failed", error=str(e))

    return TodoAgent(config, mail, tasks, classifier=classifier)
