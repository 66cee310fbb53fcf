"""On-disk session store holding the bridge's WhatsApp credentials."""

from __future__ import annotations

import shutil
from pathlib import Path

from loguru import logger


class SessionStore:
    """Directory owned by the automation client; warelay only creates and wipes it."""

    def __init__(self, path: Path) -> None:
        self._path = path.expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def ensure(self) -> Path:
        self._path.mkdir(parents=True, exist_ok=True)
        try:
            self._path.chmod(0o700)
        except OSError:
            pass
        return self._path

    def clear(self) -> bool:
        """Delete the session directory. Returns True if something was removed."""
        if not self._path.exists():
            return False
        try:
            shutil.rmtree(self._path)
        except OSError as e:
            logger.error(f"Failed to delete session folder {self._path}: {e}")
            return False
        logger.info(f"Session folder deleted: {self._path}")
        return True
