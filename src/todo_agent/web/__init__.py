"""Web entry points for the Todo Agent.

Provides a FastAPI application with:
- Webhook receiver for new-message triggers
- JSON API for statistics, rules, learned patterns and manual batch runs
- Health check
"""

from todo_agent.web.app import create_app

__all__ = ["create_app"]
