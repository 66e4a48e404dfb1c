"""Language-model email classifier with safe degradation.

Sends one email per request with a fixed system prompt and a forced
`classify_email` tool call, then validates and clamps every field of the
returned verdict. Any failure after initialization (transport error, bad
JSON, unexpected shape) is converted into a fixed low-confidence Skip
verdict, so classify() never raises once the classifier is initialized.

Error handling strategy:
- Transient errors (429, 5xx, network): Handled by the SDK in the language-model adapter
- Malformed or out-of-range fields: Clamped to safe defaults (debug log only)
- Anything else: Fallback verdict, marked not actionable

Usage:
    from todo_agent.classifier.ai_classifier import AIClassifier

    classifier = AIClassifier(config.ai)
    init = classifier.initialize()  # reads ANTHROPIC_API_KEY
    if classifier.is_available:
        verdict = await classifier.classify(email)
"""

from __future__ import annotations

import asyncio
import json
import math
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from todo_agent.classifier.basic import task_title_for
from todo_agent.classifier.history import ClassificationHistory
from todo_agent.classifier.prompts import (
    CLASSIFY_EMAIL_TOOL,
    SYSTEM_PROMPT,
    VALID_CATEGORIES,
    VALID_LABELS,
    VALID_PRIORITIES,
    VALID_URGENCY_LEVELS,
    build_user_prompt,
)
from todo_agent.config_schema import AIConfig
from todo_agent.core.errors import AIServiceNotInitializedError, LanguageModelError
from todo_agent.core.logging import get_logger
from todo_agent.labels import SKIP_LABEL

if TYPE_CHECKING:
    from todo_agent.models import Email
    from todo_agent.providers.base import LanguageModel

logger = get_logger(__name__)

API_KEY_ENV = "ANTHROPIC_API_KEY"

FALLBACK_CONFIDENCE = 0.1
FALLBACK_REASONING = "AI classification failed, marked as non-actionable for safety"


# ---------------------------------------------------------------------------
# Verdict types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VerdictTaskData:
    title: str
    description: str
    priority: int = 2
    category: str = "task"
    due_string: str | None = None


@dataclass(frozen=True, slots=True)
class TemporalIndicators:
    has_deadline: bool = False
    urgency_level: str = "low"
    timeframe: str | None = None


@dataclass(frozen=True, slots=True)
class ClassificationVerdict:
    """Validated output of one classification.

    Attributes:
        is_actionable: Whether the recipient has to do something
        suggested_label: One of the action labels or TodoAgent_Skip
        confidence: Clamped to [0, 1]
        task_data: Present only for actionable verdicts that carried task data
        keywords: Words the model flagged as indicating actionability
        reasoning: Short explanation
        temporal: Deadline/urgency indicators
    """

    is_actionable: bool
    suggested_label: str
    confidence: float
    task_data: VerdictTaskData | None = None
    keywords: tuple[str, ...] = ()
    reasoning: str = ""
    temporal: TemporalIndicators | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "is_actionable": self.is_actionable,
            "suggested_label": self.suggested_label,
            "confidence": self.confidence,
            "keywords": list(self.keywords),
            "reasoning": self.reasoning,
        }
        if self.task_data:
            result["task_data"] = {
                "title": self.task_data.title,
                "description": self.task_data.description,
                "priority": self.task_data.priority,
                "category": self.task_data.category,
                "due_string": self.task_data.due_string,
            }
        if self.temporal:
            result["temporal_indicators"] = {
                "has_deadline": self.temporal.has_deadline,
                "urgency_level": self.temporal.urgency_level,
                "timeframe": self.temporal.timeframe,
            }
        return result


FALLBACK_VERDICT = ClassificationVerdict(
    is_actionable=False,
    suggested_label=SKIP_LABEL,
    confidence=FALLBACK_CONFIDENCE,
    reasoning=FALLBACK_REASONING,
)


@dataclass(frozen=True, slots=True)
class InitResult:
    success: bool
    error: str | None = None


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


def _default_language_model(api_key: str, config: AIConfig) -> LanguageModel:
    from todo_agent.providers.anthropic_llm import AnthropicLanguageModel

    return AnthropicLanguageModel(
        api_key=api_key,
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )


class AIClassifier:
    """Classifies emails through a LanguageModel and keeps a bounded history.

    Attributes:
        _config: AI configuration section
        _llm: Language model, None until initialized
        _history: Learning history for statistics
    """

    def __init__(
        self,
        config: AIConfig | None = None,
        *,
        language_model: LanguageModel | None = None,
        history: ClassificationHistory | None = None,
        model_factory: Callable[[str, AIConfig], LanguageModel] | None = None,
    ):
        """Initialize the classifier.

        Args:
            config: AI configuration (defaults when None)
            language_model: Ready-made model; makes the classifier available immediately
            history: Shared history (a new one sized by config when None)
            model_factory: Builds a LanguageModel from (api_key, config) on initialize()
        """
        self._config = config or AIConfig()
        self._llm = language_model
        self._history = history or ClassificationHistory(self._config.history_capacity)
        self._model_factory = model_factory or _default_language_model

    @property
    def is_available(self) -> bool:
        return self._llm is not None

    @property
    def history(self) -> ClassificationHistory:
        return self._history

    def initialize(self, api_key: str | None = None, model: str | None = None) -> InitResult:
        """Build the language-model client.

        Args:
            api_key: API key; falls back to ANTHROPIC_API_KEY
            model: Model override

        Returns:
            InitResult; on failure the classifier stays unavailable
        """
        if self._llm is not None:
            return InitResult(success=True)

        key = api_key or os.environ.get(API_KEY_ENV, "")
        if not key:
            return InitResult(success=False, error=f"No API key provided (set {API_KEY_ENV})")

        if model:
            self._config = self._config.model_copy(update={"model": model})

        try:
            self._llm = self._model_factory(key, self._config)
        except (LanguageModelError, ValueError) as e:
            logger.error("ai_classifier_init_failed", error=str(e))
            return InitResult(success=False, error=str(e))

        logger.info("ai_classifier_initialized", model=self._config.model)
        return InitResult(success=True)

    async def classify(self, email: Email) -> ClassificationVerdict:
        """Classify one email.

        Raises:
            AIServiceNotInitializedError: If called before a successful initialize()
        """
        if self._llm is None:
            raise AIServiceNotInitializedError(
                "AI classifier not initialized. Call initialize() with an API key first."
            )

        try:
            raw = await self._llm.complete(
                SYSTEM_PROMPT,
                build_user_prompt(email, self._config.body_char_budget),
                CLASSIFY_EMAIL_TOOL,
            )
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise LanguageModelError(
                    f"Expected a JSON object from the model, got {type(data).__name__}"
                )
            verdict = normalize_verdict(data, email)
        except Exception as e:
            # classify() must degrade, never raise, once initialized
            logger.warning(
                "ai_classification_failed",
                email_id=email.id[:20],
                error_type=type(e).__name__,
                error=str(e),
            )
            return FALLBACK_VERDICT

        self._history.record(email, verdict)

        logger.info(
            "ai_classification_complete",
            email_id=email.id[:20],
            is_actionable=verdict.is_actionable,
            label=verdict.suggested_label,
            confidence=verdict.confidence,
        )
        return verdict

    async def classify_many(self, emails: Sequence[Email]) -> list[ClassificationVerdict]:
        """Classify emails in concurrent groups, pausing between groups.

        Results are returned in input order.
        """
        results: list[ClassificationVerdict] = []
        size = self._config.batch_size

        for start in range(0, len(emails), size):
            group = emails[start : start + size]
            results.extend(await asyncio.gather(*(self.classify(email) for email in group)))

            if start + size < len(emails) and self._config.batch_delay_seconds > 0:
                await asyncio.sleep(self._config.batch_delay_seconds)

        return results


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool):
        value = float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("ai_confidence_not_numeric", value=repr(value)[:50])
        return 0.5
    if math.isnan(number):
        return 0.5
    return max(0.0, min(1.0, number))


def _coerce_priority(value: Any) -> int:
    if isinstance(value, bool):
        return 2
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value not in VALID_PRIORITIES:
        return 2
    return value


def _choice(value: Any, allowed: frozenset[str], default: str) -> str:
    # Model output may hold lists or dicts here, which frozensets cannot hash
    if isinstance(value, str) and value in allowed:
        return value
    return default


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_verdict(data: dict[str, Any], email: Email) -> ClassificationVerdict:
    """Validate and clamp a raw verdict dict.

    Unknown labels become TodoAgent_Skip, priority outside 1-4 becomes 2,
    unknown categories become 'task' and unknown urgency becomes 'low'.
    Task data is kept only for actionable verdicts.

    Args:
        data: Parsed tool input
        email: Classified email (for generated title/description defaults)

    Returns:
        ClassificationVerdict
    """
    is_actionable = bool(data.get("is_actionable"))

    raw_label = data.get("suggested_label")
    label = _choice(raw_label, VALID_LABELS, SKIP_LABEL)
    if label != raw_label:
        logger.debug("ai_label_invalid", value=repr(raw_label)[:50])

    raw_keywords = data.get("keywords")
    keywords = (
        tuple(str(keyword) for keyword in raw_keywords) if isinstance(raw_keywords, list) else ()
    )

    raw_temporal = data.get("temporal_indicators")
    if not isinstance(raw_temporal, dict):
        raw_temporal = {}
    temporal = TemporalIndicators(
        has_deadline=bool(raw_temporal.get("has_deadline")),
        urgency_level=_choice(raw_temporal.get("urgency_level"), VALID_URGENCY_LEVELS, "low"),
        timeframe=_optional_str(raw_temporal.get("timeframe")),
    )

    task_data: VerdictTaskData | None = None
    raw_task = data.get("task_data")
    if is_actionable and isinstance(raw_task, dict):
        task_data = VerdictTaskData(
            title=_optional_str(raw_task.get("title")) or task_title_for(email),
            description=_optional_str(raw_task.get("description")) or email.snippet,
            priority=_coerce_priority(raw_task.get("priority")),
            category=_choice(raw_task.get("category"), VALID_CATEGORIES, "task"),
            due_string=_optional_str(raw_task.get("due_string")),
        )

    return ClassificationVerdict(
        is_actionable=is_actionable,
        suggested_label=label,
        confidence=_coerce_confidence(data.get("confidence")),
        task_data=task_data,
        keywords=keywords,
        reasoning=_optional_str(data.get("reasoning")) or "No reasoning provided",
        temporal=temporal,
    )
