"""Bounded in-memory history of AI classifications.

Used only for statistics and rule suggestions; never consulted when
classifying.
"""

from __future__ import annotations

from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from todo_agent.rules.engine import extract_domain

if TYPE_CHECKING:
    from todo_agent.classifier.ai_classifier import ClassificationVerdict
    from todo_agent.models import Email

DEFAULT_CAPACITY = 1000

# Minimum occurrences of the dominant label before a sender counts as a pattern
MIN_PATTERN_OCCURRENCES = 3

SUGGESTION_MIN_CONFIDENCE = 0.8
SUGGESTION_MIN_SAMPLES = 5


@dataclass(frozen=True, slots=True)
class ClassificationRecord:
    email_id: str
    sender: str
    subject: str
    label: str
    confidence: float
    keywords: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class SenderPattern:
    """Dominant label for a sender domain.

    `confidence` is the mean over all of the domain's records, not only
    those carrying the dominant label.
    """

    sender: str
    label: str
    count: int
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "count": self.count, "confidence": round(self.confidence, 3)}


@dataclass(frozen=True, slots=True)
class RuleSuggestion:
    type: str  # 'sender' or 'keyword'
    pattern: str
    suggested_label: str
    confidence: float
    sample_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "pattern": self.pattern,
            "suggested_label": self.suggested_label,
            "confidence": round(self.confidence, 3),
            "sample_count": self.sample_count,
        }


class ClassificationHistory:
    """FIFO of the most recent classifications; the oldest entry is evicted at capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._records: deque[ClassificationRecord] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._records.maxlen or DEFAULT_CAPACITY

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> list[ClassificationRecord]:
        return list(self._records)

    def record(self, email: Email, verdict: ClassificationVerdict) -> None:
        self._records.append(
            ClassificationRecord(
                email_id=email.id,
                sender=email.sender,
                subject=email.subject,
                label=verdict.suggested_label,
                confidence=verdict.confidence,
                keywords=verdict.keywords,
            )
        )

    def label_counts(self) -> dict[str, int]:
        """Number of classifications per suggested label."""
        return dict(Counter(record.label for record in self._records))

    def sender_patterns(self) -> dict[str, SenderPattern]:
        """Per sender domain, the most frequent label if it occurred at least 3 times."""
        labels_by_sender: dict[str, list[str]] = defaultdict(list)
        confidences_by_sender: dict[str, list[float]] = defaultdict(list)

        for record in self._records:
            sender = extract_domain(record.sender) or record.sender.lower()
            labels_by_sender[sender].append(record.label)
            confidences_by_sender[sender].append(record.confidence)

        patterns: dict[str, SenderPattern] = {}
        for sender, labels in labels_by_sender.items():
            label, count = Counter(labels).most_common(1)[0]
            if count < MIN_PATTERN_OCCURRENCES:
                continue
            confidences = confidences_by_sender[sender]
            patterns[sender] = SenderPattern(
                sender=sender,
                label=label,
                count=count,
                confidence=sum(confidences) / len(confidences),
            )
        return patterns

    def suggested_rules(self) -> list[RuleSuggestion]:
        """Sender patterns confident enough to become rules, most confident first."""
        suggestions = [
            RuleSuggestion(
                type="sender",
                pattern=pattern.sender,
                suggested_label=pattern.label,
                confidence=pattern.confidence,
                sample_count=pattern.count,
            )
            for pattern in self.sender_patterns().values()
            if pattern.confidence > SUGGESTION_MIN_CONFIDENCE
            and pattern.count >= SUGGESTION_MIN_SAMPLES
        ]
        return sorted(suggestions, key=lambda s: s.confidence, reverse=True)

    def clear(self) -> None:
        self._records.clear()
