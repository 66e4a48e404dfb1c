"""FastAPI dependency injection helpers.

Extracts the shared TodoAgent from app.state for use in route handlers.
The agent is built during the FastAPI lifespan (or injected by
create_app for tests).

Usage:
    from todo_agent.web.dependencies import get_agent

    @router.get("/api/stats")
    async def stats(agent: TodoAgent = Depends(get_agent)):
        return agent.processing_stats().to_dict()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from todo_agent.agent import TodoAgent


def get_optional_agent(request: Request) -> TodoAgent | None:
    """Get the TodoAgent from app state, or None if startup failed."""
    return getattr(request.app.state, "agent", None)


def get_agent(request: Request) -> TodoAgent:
    """Get the TodoAgent from app state; 503 if it is not initialized."""
    agent = get_optional_agent(request)
    if agent is None:
        raise HTTPException(status_code=503, detail="Agent not initialized")
    return agent
