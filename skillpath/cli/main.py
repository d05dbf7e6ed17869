"""
Skillpath CLI.

Operational commands for the study service:
- db init: create database tables
- sessions cleanup: abandon expired study sessions
- sessions active: show a user's resumable session
- serve: run the API with uvicorn
"""

from __future__ import annotations

import asyncio

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import get_settings

app = typer.Typer(
    help="Skillpath study service commands",
    no_args_is_help=True,
)
db_app = typer.Typer(help="Database commands", no_args_is_help=True)
sessions_app = typer.Typer(help="Study session maintenance", no_args_is_help=True)
app.add_typer(db_app, name="db")
app.add_typer(sessions_app, name="sessions")

console = Console()


@db_app.command("init")
def db_init():
    """Create all tables that do not exist yet."""
    from skillpath.db.database import dispose_engine, init_db

    async def run():
        try:
            await init_db()
        finally:
            await dispose_engine()

    asyncio.run(run())
    console.print("[green]Database tables initialized[/green]")


@sessions_app.command("cleanup")
def sessions_cleanup():
    """
    Abandon every active session past its expiry.

    Examples:
        skillpath sessions cleanup
    """
    from skillpath.db.database import async_session_scope, dispose_engine
    from skillpath.db.stores import SqlSessionRepository
    from skillpath.core.models import utcnow

    async def run() -> int:
        try:
            async with async_session_scope() as session:
                return await SqlSessionRepository(session).abandon_expired(utcnow())
        finally:
            await dispose_engine()

    count = asyncio.run(run())
    logger.info(f"Abandoned {count} expired sessions")
    console.print(f"[green]Abandoned {count} expired session(s)[/green]")


@sessions_app.command("active")
def sessions_active(
    user_id: str = typer.Argument(..., help="User id"),
    scope_id: str = typer.Option(None, "--scope", "-s", help="Goal or deck id"),
):
    """Show the user's resumable session."""
    from skillpath.db.database import async_session_scope, dispose_engine
    from skillpath.db.stores import SqlSessionRepository

    async def run():
        try:
            async with async_session_scope() as session:
                return await SqlSessionRepository(session).find_active(user_id, scope_id)
        finally:
            await dispose_engine()

    record = asyncio.run(run())
    if record is None:
        console.print("[yellow]No active session[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Active session {record.id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Scope", f"{record.scope_kind.value} {record.scope_id}")
    table.add_row("Mode", record.mode.value)
    table.add_row("Progress", f"{len(record.responses)}/{len(record.card_ids)} ({record.percent_complete}%)")
    table.add_row("Expires", record.expires_at.isoformat())
    console.print(table)


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind address"),
    port: int = typer.Option(None, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "skillpath.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    from skillpath.logging_setup import configure_logging

    configure_logging(level="WARNING", log_file="")
    app()


if __name__ == "__main__":
    main()
