"""CLI commands for warelay."""

from __future__ import annotations

import sys

import typer
from loguru import logger
from rich.table import Table

from warelay import __logo__
from warelay.cli.core import app, console

LOG_FILE_NAME = "warelay.log"


def _configure_logging(level: str, log_file: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_file:
        from warelay.utils.helpers import get_logs_path

        logger.add(
            get_logs_path() / LOG_FILE_NAME,
            level=level,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )


# ============================================================================
# Setup
# ============================================================================


@app.command()
def init():
    """Write a default warelay configuration."""
    from warelay.config.loader import get_config_path, save_config
    from warelay.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} warelay is ready!")
    console.print("\nNext steps:")
    console.print("  1. Start the WhatsApp bridge on [cyan]ws://127.0.0.1:3002[/cyan]")
    console.print("  2. Run: [cyan]warelay serve[/cyan]")


# ============================================================================
# Server
# ============================================================================


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Listen address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Listen port"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
    log_file: bool = typer.Option(True, "--log-file/--no-log-file", help="Also log to ~/.warelay/logs"),
):
    """Run the relay: HTTP endpoints plus the Socket.IO server."""
    from warelay.app.bootstrap import build_runtime
    from warelay.config.loader import load_config

    config = load_config()
    if host:
        config.server.host = host
    if port:
        config.server.port = port
    if verbose:
        config.log_level = "DEBUG"

    _configure_logging(config.log_level, log_file)

    console.print(
        f"{__logo__} Starting warelay on [cyan]http://{config.server.host}:{config.server.port}[/cyan]"
    )
    origins = config.server.resolved_allowed_origins
    console.print(f"  Allowed origins: {', '.join(origins) if origins else '[dim]none[/dim]'}")
    console.print(f"  Bridge: {config.bridge.resolved_url}")

    runtime = build_runtime(config)
    try:
        runtime.run()
    except KeyboardInterrupt:
        console.print("\nShutting down...")


@app.command()
def status(
    url: str | None = typer.Option(None, "--url", help="Base URL of a running relay"),
):
    """Show configuration and probe a running relay."""
    import httpx

    from warelay.config.loader import get_config_path, load_config

    config = load_config()
    config_path = get_config_path()
    probe_host = "127.0.0.1" if config.server.host in ("0.0.0.0", "::") else config.server.host
    base_url = (url or f"http://{probe_host}:{config.server.port}").rstrip("/")

    console.print(f"{__logo__} warelay Status\n")
    console.print(
        f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[dim]defaults[/dim]'}"
    )
    console.print(
        f"Session: {config.session.auth_path} "
        f"{'[green]✓[/green]' if config.session.auth_path.exists() else '[dim]not paired[/dim]'}"
    )

    table = Table(title=f"Relay at {base_url}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    try:
        response = httpx.get(f"{base_url}/health", timeout=5.0)
        response.raise_for_status()
        health = response.json()
    except httpx.HTTPError as e:
        console.print(f"[red]Relay not reachable:[/red] {e}")
        raise typer.Exit(1)

    table.add_row("Status", str(health.get("status")))
    table.add_row("WhatsApp", str(health.get("whatsappStatus")))
    table.add_row("Socket connections", str(health.get("socketConnections")))
    table.add_row("Timestamp", str(health.get("timestamp")))
    console.print(table)


# ============================================================================
# Session
# ============================================================================

session_app = typer.Typer(help="Manage the stored WhatsApp session")
app.add_typer(session_app, name="session")


@session_app.command("clear")
def session_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete the stored session so the next start requires a fresh QR pairing."""
    from warelay.config.loader import load_config
    from warelay.session.store import SessionStore

    config = load_config()
    store = SessionStore(config.session.auth_path)

    if not store.exists():
        console.print(f"[dim]No session stored at {store.path}[/dim]")
        return

    if not yes and not typer.confirm(f"Delete WhatsApp session at {store.path}?"):
        raise typer.Exit()

    store.clear()
    console.print(f"[green]✓[/green] Removed session at {store.path}")
