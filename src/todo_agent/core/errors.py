"""Custom exception types for the Todo Agent.

Error messages state what failed, where, why, and how to fix it when a fix
is actionable. The taxonomy mirrors how the processing pipeline reacts:

- A missing email is not an exception: fetch returns None and the pipeline
  reports a failed result without retrying
- UpstreamError subclasses: mail/task provider failures become a Failed label;
  language-model failures degrade to a safe verdict or basic classification
- AIServiceNotInitializedError: the pipeline falls back to basic classification
"""


class TodoAgentError(Exception):
    """Base exception for all Todo Agent errors."""

    pass


class ConfigValidationError(TodoAgentError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(TodoAgentError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class UpstreamError(TodoAgentError):
    """Raised when an external provider call fails.

    Attributes:
        status_code: HTTP status code from the provider (if available)
        error_code: Provider-specific error code (if available)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class MailProviderError(UpstreamError):
    """Raised when the Gmail API returns an error or cannot be reached."""

    pass


class TaskTrackerError(UpstreamError):
    """Raised when the Todoist API rejects a task or returns no task id."""

    pass


class LanguageModelError(UpstreamError):
    """Raised when the language-model service call fails or returns no JSON."""

    pass


class RateLimitExceeded(UpstreamError):
    """Raised when a provider keeps answering 429 after all retries."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, status_code=429, error_code="rate_limited")
        self.retry_after = retry_after


class AIServiceNotInitializedError(TodoAgentError):
    """Raised when classify() is called before the AI classifier was initialized.

    The processing pipeline catches this and falls back to basic classification.
    """

    pass
