"""Shared CLI application context."""

from __future__ import annotations

import os

import typer
from dotenv import load_dotenv
from rich.console import Console

from warelay import __logo__, __version__

app = typer.Typer(
    name="warelay",
    help=f"{__logo__} warelay - WhatsApp Web relay for Socket.IO frontends",
    no_args_is_help=True,
)

console = Console()


def load_env_files() -> None:
    # Precedence: existing env vars > ./.env > ~/.warelay/.env (override=False)
    load_dotenv(".env", override=False)
    load_dotenv(os.path.expanduser("~/.warelay/.env"), override=False)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} warelay v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
) -> None:
    """warelay - WhatsApp Web relay for Socket.IO frontends."""
    load_env_files()
