"""Email classification components.

This package provides the classification layers below the rule engine:
- AI classifier with forced tool use and verdict validation
- Bounded classification history for statistics and rule suggestions
- Keyword-based basic classification and task-data extraction
"""

from todo_agent.classifier.ai_classifier import (
    FALLBACK_VERDICT,
    AIClassifier,
    ClassificationVerdict,
    InitResult,
    TemporalIndicators,
    VerdictTaskData,
    normalize_verdict,
)
from todo_agent.classifier.basic import build_task_from_email, should_skip_email
from todo_agent.classifier.history import ClassificationHistory, RuleSuggestion, SenderPattern
from todo_agent.classifier.prompts import CLASSIFY_EMAIL_TOOL, SYSTEM_PROMPT, build_user_prompt

__all__ = [
    # AI classifier
    "AIClassifier",
    "ClassificationVerdict",
    "FALLBACK_VERDICT",
    "InitResult",
    "TemporalIndicators",
    "VerdictTaskData",
    "normalize_verdict",
    # History
    "ClassificationHistory",
    "RuleSuggestion",
    "SenderPattern",
    # Basic classification
    "build_task_from_email",
    "should_skip_email",
    # Prompts
    "CLASSIFY_EMAIL_TOOL",
    "SYSTEM_PROMPT",
    "build_user_prompt",
]
