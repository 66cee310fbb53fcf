"""Utility functions for warelay."""

import os
from datetime import UTC, datetime
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the warelay data directory.

    Respects WARELAY_HOME environment variable; falls back to ~/.warelay.
    """
    warelay_home = os.environ.get("WARELAY_HOME", "").strip()
    if warelay_home:
        return ensure_dir(Path(warelay_home))
    return ensure_dir(Path.home() / ".warelay")


def get_logs_path() -> Path:
    """Get the logs directory (~/.warelay/logs)."""
    return ensure_dir(get_data_path() / "logs")


def utc_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def now_seconds() -> int:
    """Current wall-clock time as epoch seconds."""
    return int(datetime.now(UTC).timestamp())


def now_millis() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)
