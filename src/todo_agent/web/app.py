"""FastAPI application for the Todo Agent webhook and API.

Creates the FastAPI app with:
- Lifespan context manager building the TodoAgent and starting the batch schedule
- Webhook router mounted at the configured path
- JSON API router

The batch scheduler runs on APScheduler's AsyncIOScheduler inside the same
event loop as uvicorn. The first (startup) cycle is launched as a background
task so the server accepts webhooks immediately.

Usage:
    from todo_agent.web.app import create_app

    app = create_app()
    # Run with: uvicorn.run(app, host="127.0.0.1", port=3001)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from todo_agent.core.logging import get_logger

if TYPE_CHECKING:
    from todo_agent.agent import TodoAgent

logger = get_logger(__name__)

DEFAULT_WEBHOOK_PATH = "/webhook"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the agent on startup, clean up on shutdown.

    On startup:
    1. Load config (unless an agent was injected)
    2. Build the agent (Gmail, Todoist, Anthropic)
    3. Start the batch schedule in the background

    On shutdown:
    - Stop the schedule, drain webhook runs, close clients
    """
    from todo_agent.agent import build_agent
    from todo_agent.config import get_config
    from todo_agent.core.errors import ConfigLoadError, ConfigValidationError

    agent: TodoAgent | None = app.state.agent
    owns_agent = agent is None

    if owns_agent:
        # 1. Load config
        try:
            config = get_config()
        except (ConfigLoadError, ConfigValidationError) as e:
            logger.error("config_load_failed", error=str(e))
            yield
            return

        # 2. Build agent
        try:
            agent = await build_agent(config)
        except Exception as e:
            logger.error("agent_init_failed", error_type=type(e).__name__, error=str(e))
            yield
            return
        app.state.agent = agent

    # 3. Start the batch schedule without blocking startup
    schedule_task = None
    if app.state.run_scheduler:
        schedule_task = asyncio.create_task(agent.start_schedule())

    yield

    # Shutdown
    if schedule_task and not schedule_task.done():
        schedule_task.cancel()
        logger.info("batch_startup_cancelled")
    agent.stop_schedule()

    if owns_agent:
        await agent.aclose()
        app.state.agent = None
    else:
        await agent.wait_for_background_tasks()


def _webhook_path(agent: TodoAgent | None) -> str:
    if agent is not None:
        return agent.config.webhook.path

    from todo_agent.config import get_config
    from todo_agent.core.errors import ConfigLoadError, ConfigValidationError

    try:
        return get_config().webhook.path
    except (ConfigLoadError, ConfigValidationError):
        # Lifespan reports the config error; keep the default route
        return DEFAULT_WEBHOOK_PATH


def create_app(agent: TodoAgent | None = None, *, run_scheduler: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        agent: Pre-built agent (tests); built in the lifespan when None
        run_scheduler: Start the batch schedule on startup

    Returns:
        Configured FastAPI instance
    """
    from todo_agent.web.routes import api_router, build_webhook_router

    app = FastAPI(
        title="Todo Agent",
        description="Email to task webhook receiver and processing API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.agent = agent
    app.state.run_scheduler = run_scheduler

    app.include_router(build_webhook_router(_webhook_path(agent)))
    app.include_router(api_router)

    return app
