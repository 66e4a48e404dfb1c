"""Email processing engines.

This package provides the processing side of the agent:
- Per-email decision pipeline (EmailProcessor)
- Batch scheduler for periodic sweeps
- Webhook payload parsing for push-triggered processing
"""

from todo_agent.engine.batch import BatchScheduler, build_query
from todo_agent.engine.pipeline import EmailProcessor
from todo_agent.engine.webhook import WebhookTrigger, parse_webhook_payload

__all__ = [
    # Pipeline
    "EmailProcessor",
    # Batch
    "BatchScheduler",
    "build_query",
    # Webhook
    "WebhookTrigger",
    "parse_webhook_payload",
]
