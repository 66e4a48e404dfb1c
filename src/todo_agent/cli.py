"""Command-line interface for the Todo Agent.

Provides commands for configuration validation, single-email processing,
batch runs, rule listing, and the webhook server.

Usage:
    python -m todo_agent validate-config
    python -m todo_agent process 18c2f0a1b2c3d4e5
    python -m todo_agent batch --once --max-emails 5
    python -m todo_agent rules
    python -m todo_agent serve
"""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from todo_agent.config import validate_config_file
from todo_agent.core.logging import configure_logging

if TYPE_CHECKING:
    from todo_agent.agent import TodoAgent
    from todo_agent.models import BatchStats

console = Console()


async def _init_agent() -> TodoAgent:
    """Load config and build the agent.

    Prints an actionable error and calls sys.exit(1) when the config
    cannot be loaded.
    """
    from todo_agent.agent import build_agent
    from todo_agent.config import get_config
    from todo_agent.core.errors import ConfigLoadError, ConfigValidationError

    try:
        config = get_config()
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Fix config/config.yaml (or TODO_AGENT_CONFIG_PATH) and try again."
        )
        sys.exit(1)

    agent = await build_agent(config)
    if not agent.ai_available:
        console.print(
            "[yellow]AI classifier unavailable:[/yellow] set ANTHROPIC_API_KEY. "
            "Falling back to basic keyword classification."
        )
    return agent


def _run(coro, interrupted_exit_code: int = 130) -> None:
    """Run a coroutine with the CLI's standard error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(interrupted_exit_code)
    except SystemExit:
        raise
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)


def _print_batch_stats(stats: BatchStats) -> None:
    console.print("\n[bold]Batch Summary[/bold]")
    console.print(f"  Runs:          {stats.total_runs}")
    console.print(f"  Emails:        {stats.total_emails_processed}")
    console.print(f"  Tasks created: {stats.total_tasks_created}")
    console.print(f"  Avg duration:  {stats.average_processing_time_ms:.0f}ms")


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Todo Agent - turn actionable email into tasks."""
    log_level = "DEBUG" if debug else "INFO"
    # Human-readable output for the CLI, JSON for the server
    configure_logging(log_level=log_level, json_output=False)


@cli.command("validate-config")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    console.print(f"Validating config: [cyan]{config_path or 'config/config.yaml'}[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("process")
@click.argument("email_id")
def process(email_id: str) -> None:
    """Run one email through the pipeline."""
    _run(_process_one(email_id))


async def _process_one(email_id: str) -> None:
    agent = await _init_agent()
    try:
        result = await agent.process_email(email_id, source="manual")
    finally:
        await agent.aclose()

    if result.success:
        detail = f"task {result.task_id}" if result.task_id else (result.error or "no task")
        console.print(f"[green]✓[/green] {email_id}: {detail}")
    else:
        console.print(f"[red]✗[/red] {email_id}: {result.error}")
        sys.exit(1)


@cli.command("batch")
@click.option("--once", is_flag=True, help="Run a single batch and exit")
@click.option(
    "--max-emails",
    type=click.IntRange(1, 500),
    default=None,
    help="Cap for this run (default: batch.max_emails_per_batch)",
)
def batch(once: bool, max_emails: int | None) -> None:
    """Process unhandled mail in batches.

    Without --once, runs on the configured interval until interrupted.
    """
    if once:
        _run(_run_batch_once(max_emails))
    else:
        console.print("Starting batch processing (use 'serve' for webhook + batch)...")
        _run(_run_batch_continuous(), interrupted_exit_code=0)


async def _run_batch_once(max_emails: int | None) -> None:
    agent = await _init_agent()
    try:
        stats = await agent.run_manual_batch(max_emails)
    finally:
        await agent.aclose()
    _print_batch_stats(stats)


async def _run_batch_continuous() -> None:
    agent = await _init_agent()
    await agent.start_schedule()

    console.print(
        f"Batch processing every {agent.config.batch.interval_minutes} minutes. "
        "Press Ctrl+C to stop."
    )

    # Wait until interrupted
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, stop_event.set)
    loop.add_signal_handler(signal.SIGTERM, stop_event.set)
    await stop_event.wait()

    await agent.aclose()
    _print_batch_stats(agent.batch_stats())


@cli.command("rules")
@click.option("--all", "show_all", is_flag=True, help="Include inactive rules")
def rules(show_all: bool) -> None:
    """List the configured rules in evaluation order."""
    from todo_agent.config import get_config
    from todo_agent.rules.store import RuleStore

    store = RuleStore.from_config(get_config().rules)
    listed = store.active_rules_by_priority()
    if show_all:
        listed += [rule for rule in store.list_rules() if not rule.active]

    table = Table(box=None, padding=(0, 2))
    table.add_column("Priority", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Label")
    table.add_column("Skip AI")
    table.add_column("Active")

    for rule in listed:
        table.add_row(
            str(rule.priority),
            rule.id,
            rule.name,
            rule.actions.label,
            "yes" if rule.actions.skip_ai else "",
            "yes" if rule.active else "[dim]no[/dim]",
        )

    console.print(table)


@cli.command("serve")
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (default: localhost only for security)",
)
@click.option(
    "--port",
    default=3001,
    type=int,
    help="Port to bind to",
)
def serve(host: str, port: int) -> None:
    """Start the webhook server and batch scheduler."""
    import uvicorn

    from todo_agent.web.app import create_app

    if host == "0.0.0.0":  # noqa: S104
        console.print(
            "[yellow]Warning:[/yellow] Binding to 0.0.0.0 exposes the server to the network.\n"
            "The webhook endpoint has no authentication."
        )

    configure_logging(log_level="INFO", json_output=True)

    app = create_app()
    console.print(f"Starting server on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(app, host=host, port=port, log_level="info")


def main() -> None:
    """Entry point for the CLI and the installed todo-agent script."""
    load_dotenv()
    cli()
