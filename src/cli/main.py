"""CLI entry point and base commands.

Provides the main CLI application with commands for:
- serve: Run the API server
- cleanup: Purge expired challenges, stale rate-limit windows and login tokens
- audit: Show recent audit events
"""

import asyncio
from datetime import timedelta
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.logging_config import configure_logging

app = typer.Typer(
    name="latchkey",
    help="WebAuthn passkey relying party",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main() -> None:
    configure_logging()


@app.command()
def serve(
    host: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--host", "-h", help="Host to bind to (default: API_HOST)"),
    ] = None,
    port: Annotated[
        Optional[int],  # noqa: UP007
        typer.Option("--port", "-p", help="Port to bind to (default: API_PORT)"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development"),
    ] = False,
    workers: Annotated[
        Optional[int],  # noqa: UP007
        typer.Option("--workers", "-w", help="Number of worker processes"),
    ] = None,
) -> None:
    """Start the Latchkey API server.

    Runs the FastAPI application with uvicorn.
    """
    import uvicorn

    from src.settings import get_settings

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    workers = workers or settings.api_workers

    console.print(
        Panel(
            f"[bold green]Starting Latchkey API Server[/bold green]\n"
            f"Host: {host}\n"
            f"Port: {port}\n"
            f"Workers: {workers}\n"
            f"Reload: {reload}\n"
            f"Relying party: {settings.webauthn_rp_id}",
            title="Latchkey",
            border_style="green",
        )
    )

    uvicorn.run(
        "src.api.main:get_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers if not reload else 1,
        log_level=settings.log_level.lower(),
    )


@app.command()
def cleanup() -> None:
    """Delete expired challenges, old rate-limit windows and stale login tokens.

    Safe to run from cron at any frequency.
    """
    challenges, windows, tokens = asyncio.run(_run_cleanup())

    table = Table(title="Cleanup", show_header=True)
    table.add_column("Table", style="cyan")
    table.add_column("Rows deleted", justify="right")
    table.add_row("passkey_challenge", str(challenges))
    table.add_row("passkey_rate_limit", str(windows))
    table.add_row("login_token", str(tokens))
    console.print(table)


async def _run_cleanup() -> tuple[int, int, int]:
    from src.dal import ChallengeRepository, LoginTokenRepository, RateLimitRepository
    from src.passkeys.models import utcnow
    from src.settings import get_settings
    from src.storage import close_db

    settings = get_settings()
    now = utcnow()
    cutoff = now - timedelta(hours=settings.rate_limit_retention_hours)
    try:
        challenges = await ChallengeRepository().delete_expired(now)
        windows = await RateLimitRepository().delete_windows_before(cutoff)
        tokens = await LoginTokenRepository().delete_stale(now)
    finally:
        await close_db()
    return challenges, windows, tokens


@app.command()
def audit(
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum events to show"),
    ] = 50,
    event: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--event", "-e", help="Filter by event type (e.g. rate_limit_exceeded)"),
    ] = None,
) -> None:
    """Show the most recent audit events, newest first."""
    from src.passkeys.models import AuditEvent

    event_filter: AuditEvent | None = None
    if event:
        try:
            event_filter = AuditEvent(event)
        except ValueError:
            valid = ", ".join(e.value for e in AuditEvent)
            console.print(f"[red]Unknown event type '{event}'. Valid: {valid}[/red]")
            raise typer.Exit(code=1) from None

    records = asyncio.run(_recent_audit(limit, event_filter))
    if not records:
        console.print("[yellow]No audit events found.[/yellow]")
        return

    table = Table(title=f"Audit events ({len(records)})", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Event", style="cyan")
    table.add_column("Email")
    table.add_column("IP")
    table.add_column("Error")

    for record in records:
        event_color = "red" if record.error_code else "green"
        table.add_row(
            record.created_at.strftime("%Y-%m-%d %H:%M:%S") if record.created_at else "",
            f"[{event_color}]{record.event}[/{event_color}]",
            record.email or "",
            record.ip_address or "",
            record.error_code or "",
        )

    console.print(table)


async def _recent_audit(limit: int, event):
    from src.dal import AuditLogRepository
    from src.storage import close_db

    try:
        return await AuditLogRepository().recent(limit=limit, event=event)
    finally:
        await close_db()


if __name__ == "__main__":
    app()
