"""Port interfaces between the session core, the automation client and the gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

EventHandler = Callable[..., Awaitable[None]]

SESSION_EVENTS = (
    "qr",
    "authenticated",
    "auth_failure",
    "ready",
    "disconnected",
    "message_ack",
    "message_create",
)


@dataclass(slots=True)
class SessionOptions:
    """Launch options handed to every adapter instance."""

    auth_dir: Path
    headless: bool = True
    browser_args: list[str] = field(default_factory=list)


class SessionAdapter(Protocol):
    """WhatsApp Web automation client as seen by the controller."""

    def on(self, event: str, handler: EventHandler) -> None:
        """Register an async handler for one session event."""

    def remove_all_listeners(self) -> None:
        """Detach every registered handler."""

    async def initialize(self) -> None:
        """Launch the session; resolves once the client is running."""

    async def destroy(self) -> None:
        """Tear the session down and release its resources."""

    async def get_chats(self) -> list[Any]:
        """Return raw chats in the client's native order."""

    async def get_chat_by_id(self, chat_id: str) -> Any | None:
        """Resolve one chat, or None if unknown."""

    async def fetch_messages(self, chat_id: str, limit: int) -> list[Any]:
        """Return up to ``limit`` recent raw messages of a chat."""

    async def download_media(self, chat_id: str, message_id: str) -> Any | None:
        """Download one message's media, or None if it has none."""

    async def send_message(self, chat_id: str, content: Any, caption: str | None = None) -> Any:
        """Send text or media; returns the finalized raw message."""


AdapterFactory = Callable[[SessionOptions], SessionAdapter]


class Broadcaster(Protocol):
    """Realtime fan-out used by the controller and the gateway."""

    async def emit(self, event: str, data: Any = None, *, to: str | None = None) -> None:
        """Emit to one connection (``to``) or to every connected client."""


class SessionView(Protocol):
    """Read access to the session used by the formatter."""

    @property
    def is_ready(self) -> bool: ...

    @property
    def adapter(self) -> SessionAdapter | None: ...
