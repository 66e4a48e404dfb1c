"""Web routes for the Todo Agent.

Contains two routers:
- build_webhook_router(path): trigger-service webhook plus health check
- api_router: JSON endpoints for statistics, rules, patterns and manual runs

The webhook always answers 200 so the trigger service never retries;
whether the email was scheduled for processing is reported in the body.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from todo_agent.agent import TodoAgent
from todo_agent.core.logging import get_logger
from todo_agent.web.dependencies import get_agent, get_optional_agent

logger = get_logger(__name__)

SERVICE_NAME = "todo-agent-webhook"

api_router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Pydantic models for API input validation
# ---------------------------------------------------------------------------


class BatchRunRequest(BaseModel):
    """Request body for a manual batch run."""

    max_emails: int | None = Field(default=None, ge=1, le=500)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


def build_webhook_router(path: str = "/webhook") -> APIRouter:
    """Build the router for the webhook endpoint at the configured path."""
    router = APIRouter()

    @router.post(path)
    async def receive_webhook(
        request: Request,
        agent: TodoAgent | None = Depends(get_optional_agent),
    ) -> dict[str, Any]:
        """Acknowledge a trigger notification and schedule processing."""
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None

        if agent is None:
            logger.error("webhook_agent_unavailable")
            return {
                "success": False,
                "message": "Agent not initialized",
                "timestamp": _timestamp(),
            }

        try:
            return agent.handle_webhook(payload).to_dict()
        except Exception as e:
            # Still 200: the trigger service must not retry
            logger.error("webhook_handling_failed", error_type=type(e).__name__, error=str(e))
            return {
                "success": False,
                "message": "Internal server error",
                "error": str(e),
                "timestamp": _timestamp(),
            }

    @router.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "timestamp": _timestamp(), "service": SERVICE_NAME}

    return router


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@api_router.get("/stats")
async def get_stats(agent: TodoAgent = Depends(get_agent)) -> dict[str, Any]:
    """Processing, batch and classification counters."""
    return {
        "processing": agent.processing_stats().to_dict(),
        "batch": agent.batch_stats().to_dict(),
        "classification": agent.classification_stats(),
        "rules": agent.rule_stats(),
        "ai_available": agent.ai_available,
    }


@api_router.post("/stats/reset")
async def reset_stats(agent: TodoAgent = Depends(get_agent)) -> dict[str, Any]:
    agent.reset_processing_stats()
    agent.reset_batch_stats()
    return {"success": True, "timestamp": _timestamp()}


@api_router.get("/rules")
async def list_rules(agent: TodoAgent = Depends(get_agent)) -> list[dict[str, Any]]:
    return [rule.model_dump(mode="json", by_alias=True) for rule in agent.list_rules()]


@api_router.get("/ai/patterns")
async def ai_patterns(agent: TodoAgent = Depends(get_agent)) -> dict[str, Any]:
    """Learned sender patterns and the rules they suggest."""
    return {
        "sender_patterns": agent.sender_patterns(),
        "suggested_rules": agent.suggested_rules(),
    }


@api_router.post("/batch/run")
async def run_batch(
    body: BatchRunRequest | None = None,
    agent: TodoAgent = Depends(get_agent),
) -> dict[str, Any]:
    """Run one batch now and return the batch counters."""
    max_emails = body.max_emails if body is not None else None
    stats = await agent.run_manual_batch(max_emails)
    return stats.to_dict()
