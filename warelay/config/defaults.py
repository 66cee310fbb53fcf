"""Centralized defaults for the relay server, session lifecycle and formatter."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

MAX_CHAT_LIST = 50
SESSION_CLOSED_MARKER = "Session closed"

DEFAULT_ALLOWED_ORIGINS: list[str] = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost:4173",
]

DEFAULT_BROWSER_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
]

DEFAULT_SESSION: dict[str, Any] = {
    "auth_dir": "~/.warelay/secrets/whatsapp-auth",
    "headless": True,
    "restart_delay_ms": 700,
    "max_auto_restarts": 5,
    "ready_settle_ms": 0,
    "ready_retry_delay_ms": 1000,
}

# Retry constants were tuned down from 3x1000ms to 3x500ms; keep them tunable.
DEFAULT_FORMATTER: dict[str, Any] = {
    "chat_list_limit": MAX_CHAT_LIST,
    "chat_fetch_retries": 3,
    "chat_retry_delay_ms": 500,
    "message_limit": 100,
    "media_lookup_limit": 200,
    "media_download_concurrency": 4,
}

DEFAULT_BRIDGE: dict[str, Any] = {
    "host": "127.0.0.1",
    "port": 3002,
    "startup_timeout_ms": 15000,
    "request_timeout_ms": 60000,
    "initialize_timeout_ms": 180000,
    "max_payload_bytes": 64 * 1024 * 1024,
}


def default_session() -> dict[str, Any]:
    return deepcopy(DEFAULT_SESSION)


def default_formatter() -> dict[str, Any]:
    return deepcopy(DEFAULT_FORMATTER)


def apply_missing_defaults(snake_config: dict[str, Any]) -> None:
    """Inject missing config defaults without overriding existing user values."""
    if not isinstance(snake_config, dict):
        return

    for section, defaults in (
        ("session", DEFAULT_SESSION),
        ("formatter", DEFAULT_FORMATTER),
        ("bridge", DEFAULT_BRIDGE),
    ):
        current = snake_config.setdefault(section, {})
        if not isinstance(current, dict):
            snake_config[section] = deepcopy(defaults)
            continue
        for key, value in defaults.items():
            current.setdefault(key, deepcopy(value))

    server = snake_config.setdefault("server", {})
    if isinstance(server, dict):
        server.setdefault("allowed_origins", list(DEFAULT_ALLOWED_ORIGINS))
