"""
CLI interface for AI Request Guard.

Provides command-line access to configuration checks and the request log.
"""

import sys
import sqlite3
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ai_request_guard.config.loader import (
    DEFAULT_DB_PATH,
    load_executor_config,
    resolve_api_key
)
from ai_request_guard.storage.models import LogStatus
from ai_request_guard.storage.repository import RequestLogRepository, initialize_schema
from ai_request_guard.utils.logging import configure

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_STATUS_STYLES = {
    LogStatus.SUCCESS: "green",
    LogStatus.ERROR: "red",
    LogStatus.TIMEOUT: "yellow",
    LogStatus.RATE_LIMITED: "magenta",
}


def _print_missing_table_hint():
    console.print("\n[bold yellow]No request log found[/]")
    console.print("\nTo get started with AI Request Guard:")
    console.print("1. Run `ai-request-guard init` to initialize the database")
    console.print("2. Route your OpenAI calls through ResilientOpenAI")
    console.print("3. Run this command again to inspect the request log\n")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("WARNING", "--log-level", help="Python logging level")
):
    """AI Request Guard CLI."""
    configure(log_level)
    if ctx.invoked_subcommand is None:
        console.print("AI Request Guard - Use --help to see available commands")


@app.command()
def init(
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Request log database path")
):
    """Initialize the request log database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Executor YAML config")
):
    """Check that the API credential and retry policy are configured."""
    try:
        executor_config = load_executor_config(config)
    except Exception as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Retry policy")
    table.add_column("Setting")
    table.add_column("Value", justify="right")
    table.add_row("max_retries", str(executor_config.max_retries))
    table.add_row("base_delay_ms", str(executor_config.base_delay_ms))
    table.add_row("max_delay_ms", str(executor_config.max_delay_ms))
    table.add_row("timeout_ms", str(executor_config.timeout_ms))
    table.add_row("jitter_ratio", f"{executor_config.jitter_ratio:.2f}")
    table.add_row("db_path", executor_config.db_path)
    console.print(table)

    if resolve_api_key(executor_config) is None:
        console.print(f"[red]✗[/] {executor_config.api_key_env} is not set")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] {executor_config.api_key_env} is configured")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def logs(
    status_filter: Optional[LogStatus] = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show requests with this final outcome"
    ),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Filter by user id"),
    operation: Optional[str] = typer.Option(None, "--operation", "-o", help="Filter by operation"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum rows to show"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Request log database path")
):
    """Show the most recent request log entries."""
    try:
        entries = RequestLogRepository(db).get_recent_logs(
            status=status_filter,
            user_id=user,
            operation=operation,
            limit=limit
        )
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            _print_missing_table_hint()
            sys.exit(EXIT_CODE_PASS)
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not entries:
        console.print("[dim]No matching requests.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Recent requests")
    table.add_column("Time")
    table.add_column("Operation")
    table.add_column("Status", no_wrap=True)
    table.add_column("Retries", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("User", no_wrap=True)
    table.add_column("Hash")

    for entry in entries:
        style = _STATUS_STYLES[entry.status]
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            entry.operation or "-",
            f"[{style}]{entry.status.value}[/]",
            str(entry.retry_count),
            f"{entry.duration_ms:,}ms",
            f"{entry.token_count:,}",
            entry.user_id or "-",
            entry.prompt_hash
        )

    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def stats(
    days: int = typer.Option(30, "--days", "-d", help="Days to look back"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Filter by user id"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Request log database path")
):
    """Summarize request outcomes over a time window."""
    try:
        result = RequestLogRepository(db).get_request_stats(days=days, user_id=user)
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            _print_missing_table_hint()
            sys.exit(EXIT_CODE_PASS)
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_stats(result, days)
    sys.exit(EXIT_CODE_PASS)


def _display_stats(result, days: int):
    console.print(f"\n[bold]Request Statistics (last {days} days)[/bold]")
    console.print("-" * 40)
    console.print(f"Total requests: {result['total_requests']:,}")
    console.print(f"Success rate: {result['success_rate'] * 100:.1f}%")
    console.print(f"Average duration: {result['avg_duration_ms']:,.0f}ms")
    console.print(f"Total tokens: {result['total_tokens']:,}")
    console.print(f"Total retries: {result['total_retries']:,}")
    for status_value, count in result["by_status"].items():
        console.print(f"  {status_value}: {count:,}")


if __name__ == "__main__":
    app()
