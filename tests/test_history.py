"""Tests for the bounded classification history and its pattern statistics."""

from todo_agent.classifier.ai_classifier import ClassificationVerdict
from todo_agent.classifier.history import ClassificationHistory
from todo_agent.labels import MEETING_LABEL, SKIP_LABEL, TASK_LABEL


def _verdict(label: str = TASK_LABEL, confidence: float = 0.9) -> ClassificationVerdict:
    return ClassificationVerdict(
        is_actionable=label != SKIP_LABEL,
        suggested_label=label,
        confidence=confidence,
    )


def _fill(history, make_email, sender, label, confidence, count, start=0):
    for i in range(count):
        email = make_email(email_id=f"{sender}-{start + i}", sender=sender)
        history.record(email, _verdict(label, confidence))


def test_evicts_oldest_at_capacity(make_email):
    history = ClassificationHistory(capacity=10)
    for i in range(12):
        history.record(make_email(email_id=f"m{i}"), _verdict())

    assert len(history) == 10
    assert history.records()[0].email_id == "m2"


def test_label_counts(make_email):
    history = ClassificationHistory()
    _fill(history, make_email, "a <a@acme.io>", TASK_LABEL, 0.9, 2)
    _fill(history, make_email, "b <b@news.io>", SKIP_LABEL, 0.9, 3)

    assert history.label_counts() == {TASK_LABEL: 2, SKIP_LABEL: 3}


def test_sender_pattern_needs_three_occurrences(make_email):
    history = ClassificationHistory()
    _fill(history, make_email, "a <a@acme.io>", TASK_LABEL, 0.9, 2)

    assert history.sender_patterns() == {}

    _fill(history, make_email, "b <b@acme.io>", TASK_LABEL, 0.6, 1, start=10)

    pattern = history.sender_patterns()["acme.io"]
    assert pattern.label == TASK_LABEL
    assert pattern.count == 3
    assert round(pattern.confidence, 3) == 0.8


def test_sender_pattern_takes_most_frequent_label(make_email):
    history = ClassificationHistory()
    _fill(history, make_email, "x <x@acme.io>", MEETING_LABEL, 1.0, 3)
    _fill(history, make_email, "x <x@acme.io>", TASK_LABEL, 1.0, 1, start=10)

    pattern = history.sender_patterns()["acme.io"]
    assert pattern.label == MEETING_LABEL
    assert pattern.count == 3


def test_suggested_rules_thresholds(make_email):
    history = ClassificationHistory()
    # Confident and frequent enough
    _fill(history, make_email, "n <n@news.io>", SKIP_LABEL, 0.95, 5)
    # Frequent but not confident enough
    _fill(history, make_email, "a <a@acme.io>", TASK_LABEL, 0.8, 6)
    # Confident but too few samples
    _fill(history, make_email, "b <b@boss.io>", TASK_LABEL, 0.99, 4)
    # Most confident
    _fill(history, make_email, "s <s@shop.io>", SKIP_LABEL, 0.99, 5)

    suggestions = history.suggested_rules()

    assert [s.pattern for s in suggestions] == ["shop.io", "news.io"]
    assert suggestions[1].to_dict() == {
        "type": "sender",
        "pattern": "news.io",
        "suggested_label": SKIP_LABEL,
        "confidence": 0.95,
        "sample_count": 5,
    }


def test_clear(make_email):
    history = ClassificationHistory()
    _fill(history, make_email, "a <a@acme.io>", TASK_LABEL, 0.9, 3)
    history.clear()
    assert len(history) == 0
    assert history.sender_patterns() == {}
