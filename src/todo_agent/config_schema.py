"""Pydantic configuration schema for the Todo Agent.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models on startup and hot-reload.
Secrets (API keys and tokens) are never part of the file; they come from the
environment.

Usage:
    from todo_agent.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from todo_agent.labels import ALL_LABELS

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1

DEFAULT_SKIP_KEYWORDS = [
    "noreply",
    "no-reply",
    "donotreply",
    "do-not-reply",
    "newsletter",
    "unsubscribe",
    "marketing",
    "automated",
    "system",
    "notification",
    "github.com",
    "linkedin.com",
    "facebook.com",
]


class BatchConfig(BaseModel):
    """Batch scheduler configuration."""

    interval_minutes: int = Field(
        default=15,
        ge=1,
        le=1440,
        description="How often to check for new mail (minutes)",
    )
    max_emails_per_batch: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Max emails to fetch and process per batch cycle",
    )
    enabled: bool = Field(default=True, description="Enable the recurring batch timer")
    run_on_startup: bool = Field(
        default=True,
        description="Run one catch-up cycle immediately when the schedule starts",
    )
    inter_email_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Pause between emails within a batch (provider rate-limit courtesy)",
    )
    startup_lookback: str = Field(
        default="1d",
        description="Gmail newer_than window for the startup catch-up run (e.g. '1d', '12h')",
    )

    @field_validator("startup_lookback")
    @classmethod
    def validate_lookback(cls, v: str) -> str:
        """Validate the Gmail relative-date syntax (<number><d|h|m|y>)."""
        import regex

        if not regex.match(r"^\d+[dhmy]$", v, timeout=1):
            raise ValueError("startup_lookback must look like '1d', '12h', '2m' or '1y'")
        return v


class AIConfig(BaseModel):
    """Language-model classification configuration."""

    model: str = Field(
        default="claude-haiku-4-5-20251001",
        description="Model used for email classification",
    )
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Sampling temperature (kept low for deterministic verdicts)",
    )
    max_tokens: int = Field(default=500, ge=100, le=4096)
    body_char_budget: int = Field(
        default=2000,
        ge=100,
        le=20000,
        description="Maximum body characters embedded in the classification prompt",
    )
    batch_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Emails classified concurrently per group in batch classification",
    )
    batch_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause between classification groups",
    )
    history_capacity: int = Field(
        default=1000,
        ge=10,
        le=100000,
        description="Classifications kept in memory for pattern statistics",
    )


class PipelineConfig(BaseModel):
    """Processing pipeline policy knobs."""

    basic_fallback_policy: Literal["create_task", "skip"] = Field(
        default="create_task",
        description=(
            "What basic classification does with an email that matches no skip keyword "
            "when the AI is unavailable: create a task, or mark it skipped"
        ),
    )
    skip_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SKIP_KEYWORDS),
        description="Sender/subject substrings that mark an email as not actionable",
    )


class RuleCriteria(BaseModel):
    """Matching criteria for a rule. Every list is optional; empty means undeclared."""

    model_config = ConfigDict(populate_by_name=True)

    from_: list[str] = Field(default_factory=list, alias="from")
    from_domain: list[str] = Field(default_factory=list)
    to: list[str] = Field(default_factory=list)
    subject: list[str] = Field(default_factory=list)
    body_keywords: list[str] = Field(default_factory=list)
    exclude_keywords: list[str] = Field(default_factory=list)


class RuleAction(BaseModel):
    """Action taken when a rule matches."""

    label: str = Field(description="Label applied to the matching email")
    priority: Literal[1, 2, 3, 4] | None = Field(default=None, description="Task priority hint")
    skip_ai: bool = Field(
        default=False,
        description="Finish the email as skipped without consulting the AI classifier",
    )

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        """Rules may only apply labels from the agent's vocabulary."""
        if v not in ALL_LABELS:
            raise ValueError(f"Unknown label '{v}'. Must be one of: {', '.join(ALL_LABELS)}")
        return v


class RuleDefinition(BaseModel):
    """User-declared rule from config.yaml."""

    id: str | None = Field(default=None, description="Stable rule ID (generated if omitted)")
    name: str = Field(description="Rule display name")
    description: str = ""
    priority: int = Field(default=5, ge=0, le=100, description="Higher runs first")
    active: bool = True
    criteria: RuleCriteria = Field(default_factory=RuleCriteria)
    actions: RuleAction


class RulesConfig(BaseModel):
    """Rule engine configuration."""

    load_defaults: bool = Field(default=True, description="Load the built-in rule set")
    vip_senders: list[str] = Field(
        default_factory=list,
        description="Senders whose mail is always important (enables the VIP/boss rules)",
    )
    custom: list[RuleDefinition] = Field(
        default_factory=list,
        description="Additional rules evaluated alongside the defaults",
    )


class TasksConfig(BaseModel):
    """Task creation defaults."""

    project_id: str | None = Field(default=None, description="Todoist project for new tasks")
    labels: list[str] = Field(
        default_factory=lambda: ["email-todo"],
        description="Todoist labels attached to every created task",
    )


class GmailConfig(BaseModel):
    """Gmail REST API settings."""

    base_url: str = "https://gmail.googleapis.com/gmail/v1/users/me"
    max_retries: int = Field(default=3, ge=0, le=10)
    timeout_seconds: float = Field(default=30.0, gt=0)
    create_missing_labels: bool = Field(
        default=True,
        description="Create TodoAgent_* labels in the mailbox on startup when missing",
    )


class TodoistConfig(BaseModel):
    """Todoist REST API settings."""

    base_url: str = "https://api.todoist.com/rest/v2"
    max_retries: int = Field(default=3, ge=0, le=10)
    timeout_seconds: float = Field(default=30.0, gt=0)


class WebhookConfig(BaseModel):
    """Webhook listener settings."""

    path: str = Field(default="/webhook", description="Route receiving trigger notifications")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("Webhook path must start with '/'")
        return v


class AppConfig(BaseModel):
    """Root configuration schema for the Todo Agent.

    If validation fails on startup, the application exits with a clear error.
    If validation fails on hot-reload, the previous valid config is kept.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    batch: BatchConfig = Field(default_factory=BatchConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
    gmail: GmailConfig = Field(default_factory=GmailConfig)
    todoist: TodoistConfig = Field(default_factory=TodoistConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
