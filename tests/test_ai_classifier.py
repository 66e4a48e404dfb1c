"""Tests for the AI classifier: initialization, verdict validation and degradation."""

import pytest

from todo_agent.classifier.ai_classifier import (
    FALLBACK_VERDICT,
    AIClassifier,
    normalize_verdict,
)
from todo_agent.config_schema import AIConfig
from todo_agent.core.errors import AIServiceNotInitializedError, LanguageModelError
from todo_agent.labels import SKIP_LABEL, TASK_LABEL

# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


class TestInitialize:
    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        classifier = AIClassifier()

        result = classifier.initialize()

        assert not result.success
        assert "ANTHROPIC_API_KEY" in result.error
        assert not classifier.is_available

    def test_uses_model_factory(self, fake_llm):
        built = []

        def factory(api_key, config):
            built.append((api_key, config.model))
            return fake_llm({})

        classifier = AIClassifier(model_factory=factory)
        result = classifier.initialize(api_key="sk-test", model="claude-test")

        assert result.success
        assert classifier.is_available
        assert built == [("sk-test", "claude-test")]

    def test_factory_error_leaves_classifier_unavailable(self):
        def factory(api_key, config):
            raise LanguageModelError("bad key")

        classifier = AIClassifier(model_factory=factory)
        result = classifier.initialize(api_key="sk-test")

        assert not result.success
        assert result.error == "bad key"
        assert not classifier.is_available

    def test_already_initialized_is_noop(self, fake_llm):
        classifier = AIClassifier(language_model=fake_llm({}))
        assert classifier.initialize().success

    async def test_classify_before_initialize_raises(self, make_email):
        with pytest.raises(AIServiceNotInitializedError):
            await AIClassifier().classify(make_email())


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


class TestClassify:
    async def test_actionable_verdict(self, make_email, actionable_verdict, fake_llm):
        llm = fake_llm(actionable_verdict)
        classifier = AIClassifier(language_model=llm)

        verdict = await classifier.classify(make_email())

        assert verdict.is_actionable
        assert verdict.suggested_label == TASK_LABEL
        assert verdict.confidence == 0.92
        assert verdict.task_data.title == "Send signed contract to Jane"
        assert verdict.task_data.due_string == "friday"
        assert verdict.keywords == ("sign", "contract")
        assert len(classifier.history) == 1

    async def test_prompt_carries_email_and_forced_tool(
        self, make_email, actionable_verdict, fake_llm
    ):
        llm = fake_llm(actionable_verdict)
        classifier = AIClassifier(AIConfig(body_char_budget=100), language_model=llm)

        await classifier.classify(make_email(subject="Contract", body="x" * 150 + "TAIL"))

        call = llm.calls[0]
        assert "Contract" in call["user_prompt"]
        assert "x" * 100 in call["user_prompt"]
        assert "TAIL" not in call["user_prompt"]
        assert call["schema"]["name"] == "classify_email"

    @pytest.mark.parametrize(
        "response",
        [
            "not json at all",
            "[1, 2, 3]",
            LanguageModelError("upstream down", status_code=503),
            RuntimeError("unexpected"),
        ],
    )
    async def test_failures_degrade_to_fallback(self, make_email, response, fake_llm):
        classifier = AIClassifier(language_model=fake_llm(response))

        verdict = await classifier.classify(make_email())

        assert verdict is FALLBACK_VERDICT
        assert not verdict.is_actionable
        assert verdict.suggested_label == SKIP_LABEL
        assert verdict.confidence == 0.1
        assert len(classifier.history) == 0

    async def test_classify_many_preserves_order(self, make_email, fake_llm):
        classifier = AIClassifier(
            AIConfig(batch_size=2, batch_delay_seconds=0.0),
            language_model=fake_llm(
                {"is_actionable": False, "suggested_label": SKIP_LABEL, "confidence": 0.7}
            ),
        )
        emails = [make_email(email_id=f"m{i}") for i in range(5)]

        verdicts = await classifier.classify_many(emails)

        assert len(verdicts) == 5
        assert [r.email_id for r in classifier.history.records()] == [e.id for e in emails]


# ---------------------------------------------------------------------------
# normalize_verdict
# ---------------------------------------------------------------------------


class TestNormalizeVerdict:
    def test_unknown_label_becomes_skip(self, make_email):
        verdict = normalize_verdict({"suggested_label": "Inbox"}, make_email())
        assert verdict.suggested_label == SKIP_LABEL

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(1.7, 1.0), (-0.3, 0.0), (0, 0.0), ("0.4", 0.4), ("high", 0.5), (None, 0.5)],
    )
    def test_confidence_clamped(self, make_email, raw, expected):
        verdict = normalize_verdict({"confidence": raw}, make_email())
        assert verdict.confidence == expected

    def test_nan_confidence(self, make_email):
        verdict = normalize_verdict({"confidence": float("nan")}, make_email())
        assert verdict.confidence == 0.5

    @pytest.mark.parametrize(
        "raw_task",
        [
            {"title": "  ", "priority": 9, "category": "chores"},
            {"title": "  ", "priority": [4], "category": ["meeting"]},
            {"title": "  ", "priority": {"level": 4}, "category": {"name": "task"}},
            {"title": "  ", "priority": "4", "category": None},
        ],
    )
    def test_task_fields_clamped(self, make_email, raw_task):
        data = {"is_actionable": True, "suggested_label": TASK_LABEL, "task_data": raw_task}
        email = make_email(subject="Re: Budget")

        verdict = normalize_verdict(data, email)

        assert verdict.is_actionable
        assert verdict.suggested_label == TASK_LABEL
        task = verdict.task_data
        assert task.title == "Budget (from Jane Doe)"
        assert task.description == email.snippet
        assert task.priority == 2
        assert task.category == "task"
        assert task.due_string is None

    @pytest.mark.parametrize("raw_label", [[TASK_LABEL], {"label": TASK_LABEL}, "Inbox"])
    def test_unusable_label_becomes_skip(self, make_email, raw_label):
        data = {
            "is_actionable": True,
            "suggested_label": raw_label,
            "task_data": {"title": "Sign contract", "priority": 3},
            "temporal_indicators": {"urgency_level": ["high"]},
        }

        verdict = normalize_verdict(data, make_email())

        assert verdict.suggested_label == SKIP_LABEL
        assert verdict.temporal.urgency_level == "low"
        assert verdict.task_data.title == "Sign contract"
        assert verdict.task_data.priority == 3

    async def test_unhashable_fields_keep_actionable_verdict(
        self, make_email, actionable_verdict, fake_llm
    ):
        actionable_verdict["task_data"]["priority"] = [4]
        classifier = AIClassifier(language_model=fake_llm(actionable_verdict))

        verdict = await classifier.classify(make_email())

        assert verdict is not FALLBACK_VERDICT
        assert verdict.is_actionable
        assert verdict.task_data.title == "Send signed contract to Jane"
        assert verdict.task_data.priority == 2

    def test_float_priority_accepted(self, make_email):
        data = {"is_actionable": True, "task_data": {"title": "t", "priority": 4.0}}
        assert normalize_verdict(data, make_email()).task_data.priority == 4

    def test_task_data_dropped_when_not_actionable(self, make_email):
        data = {"is_actionable": False, "task_data": {"title": "t"}}
        assert normalize_verdict(data, make_email()).task_data is None

    def test_temporal_defaults(self, make_email):
        data = {"temporal_indicators": {"urgency_level": "extreme", "timeframe": " "}}
        temporal = normalize_verdict(data, make_email()).temporal
        assert temporal.urgency_level == "low"
        assert temporal.timeframe is None
        assert not temporal.has_deadline

    def test_missing_reasoning(self, make_email):
        verdict = normalize_verdict({}, make_email())
        assert verdict.reasoning == "No reasoning provided"
        assert verdict.keywords == ()
