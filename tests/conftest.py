import asyncio
from pathlib import Path
from typing import Any

import pytest

from warelay.config.schema import FormatterConfig, SessionConfig
from warelay.session.controller import SessionController
from warelay.session.models import MediaPayload, RawChat, RawMessage
from warelay.session.ports import SessionOptions
from warelay.session.store import SessionStore
from warelay.telemetry import InMemoryTelemetry


def make_chat(index: int, **overrides: Any) -> RawChat:
    fields: dict[str, Any] = {
        "id": f"chat{index}@c.us",
        "name": f"Chat {index}",
        "unread_count": index % 3,
        "timestamp": 1_700_000_000 + index,
        "last_message_body": f"last {index}",
    }
    fields.update(overrides)
    return RawChat(**fields)


def make_message(message_id: str, **overrides: Any) -> RawMessage:
    fields: dict[str, Any] = {
        "id": message_id,
        "chat_id": "c1@c.us",
        "body": f"body {message_id}",
        "timestamp": 1_700_000_000,
        "type": "chat",
        "ack": 1,
    }
    fields.update(overrides)
    return RawMessage(**fields)


class FakeAdapter:
    """In-memory stand-in for the bridge adapter."""

    def __init__(self, options: SessionOptions | None = None):
        self.options = options
        self.handlers: dict[str, list[Any]] = {}
        self.chats: list[RawChat] = []
        self.messages: dict[str, list[RawMessage]] = {}
        self.media: dict[str, MediaPayload] = {}
        self.sent: list[tuple[str, Any, str | None]] = []
        self.initialize_calls = 0
        self.destroy_calls = 0
        self.get_chats_calls = 0
        self.initialize_gate: asyncio.Event | None = None
        self.initialize_error: Exception | None = None
        self.get_chats_gate: asyncio.Event | None = None
        self.get_chats_errors: list[Exception] = []
        self.download_error: Exception | None = None
        self.send_error: Exception | None = None

    def on(self, event: str, handler: Any) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def remove_all_listeners(self) -> None:
        self.handlers.clear()

    async def fire(self, event: str, *args: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            await handler(*args)

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.initialize_gate is not None:
            await self.initialize_gate.wait()
        if self.initialize_error is not None:
            raise self.initialize_error

    async def destroy(self) -> None:
        self.destroy_calls += 1

    async def get_chats(self) -> list[RawChat]:
        self.get_chats_calls += 1
        if self.get_chats_gate is not None:
            await self.get_chats_gate.wait()
        if self.get_chats_errors:
            raise self.get_chats_errors.pop(0)
        return list(self.chats)

    async def get_chat_by_id(self, chat_id: str) -> RawChat | None:
        return next((c for c in self.chats if c.id == chat_id), None)

    async def fetch_messages(self, chat_id: str, limit: int) -> list[RawMessage]:
        return list(self.messages.get(chat_id, []))[-limit:]

    async def download_media(self, chat_id: str, message_id: str) -> MediaPayload | None:
        if self.download_error is not None:
            raise self.download_error
        return self.media.get(message_id)

    async def send_message(self, chat_id: str, content: Any, caption: str | None = None) -> RawMessage:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((chat_id, content, caption))
        body = content if isinstance(content, str) else (caption or "")
        return RawMessage(
            id=f"sent-{len(self.sent)}",
            chat_id=chat_id,
            body=body,
            from_me=True,
            timestamp=1_700_000_100,
            has_media=not isinstance(content, str),
            type="chat" if isinstance(content, str) else "image",
            ack=0,
        )


class AdapterFactory:
    """Records every adapter handed to the controller."""

    def __init__(self, prepare: Any = None):
        self.created: list[FakeAdapter] = []
        self._prepare = prepare

    def __call__(self, options: SessionOptions) -> FakeAdapter:
        adapter = FakeAdapter(options)
        if self._prepare is not None:
            self._prepare(adapter)
        self.created.append(adapter)
        return adapter

    @property
    def latest(self) -> FakeAdapter:
        return self.created[-1]


class RecordingBroadcaster:
    def __init__(self) -> None:
        self.events: list[tuple[str, Any, str | None]] = []

    async def emit(self, event: str, data: Any = None, *, to: str | None = None) -> None:
        self.events.append((event, data, to))

    def named(self, event: str) -> list[Any]:
        return [data for name, data, _ in self.events if name == event]

    def names(self) -> list[str]:
        return [name for name, _, _ in self.events]

    def clear(self) -> None:
        self.events.clear()


async def settle(rounds: int = 20) -> None:
    """Let scheduled background tasks (including worker-thread hops) finish."""
    for _ in range(rounds):
        await asyncio.sleep(0.01)


@pytest.fixture
def session_config(tmp_path: Path) -> SessionConfig:
    return SessionConfig(
        auth_dir=str(tmp_path / "auth"),
        restart_delay_ms=0,
        ready_retry_delay_ms=0,
        max_auto_restarts=5,
    )


@pytest.fixture
def formatter_config() -> FormatterConfig:
    return FormatterConfig(chat_retry_delay_ms=0)


@pytest.fixture
def telemetry() -> InMemoryTelemetry:
    return InMemoryTelemetry()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def factory() -> AdapterFactory:
    return AdapterFactory(prepare=lambda adapter: adapter.chats.extend(make_chat(i) for i in range(3)))


@pytest.fixture
async def controller(
    session_config: SessionConfig,
    formatter_config: FormatterConfig,
    broadcaster: RecordingBroadcaster,
    factory: AdapterFactory,
    telemetry: InMemoryTelemetry,
):
    ctrl = SessionController(
        session_config,
        SessionStore(session_config.auth_path),
        broadcaster,
        factory,
        formatter_config=formatter_config,
        telemetry=telemetry,
    )
    yield ctrl
    await ctrl.shutdown()


async def make_ready(controller: SessionController, broadcaster: RecordingBroadcaster) -> FakeAdapter:
    await controller.ensure_initialized()
    adapter = controller.adapter
    assert isinstance(adapter, FakeAdapter)
    await adapter.fire("ready")
    broadcaster.clear()
    return adapter
