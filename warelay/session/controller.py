"""Session controller: owns the adapter, the session state and lifecycle events."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Coroutine

from loguru import logger

from warelay.config.schema import FormatterConfig, SessionConfig
from warelay.relay import events
from warelay.session.formatter import ChatFormatter
from warelay.session.models import RawMessage
from warelay.session.ports import AdapterFactory, Broadcaster, SessionAdapter, SessionOptions
from warelay.session.qr import qr_to_data_url
from warelay.session.state import SessionPhase, SessionState
from warelay.session.store import SessionStore
from warelay.telemetry.base import NullTelemetry, TelemetryPort

INIT_FAILED_MESSAGE = "Failed to initialize WhatsApp client"
AUTH_FAILED_MESSAGE = "Authentication failed. Please try scanning again."
RESTART_LIMIT_MESSAGE = "WhatsApp session keeps disconnecting; start a new session manually."


class SessionController:
    """Process-wide owner of the single WhatsApp session.

    State is one immutable ``SessionState`` replaced only by methods on this
    class. Initialization is coalesced into one in-flight task that every
    concurrent caller awaits.
    """

    def __init__(
        self,
        config: SessionConfig,
        store: SessionStore,
        broadcaster: Broadcaster,
        adapter_factory: AdapterFactory,
        *,
        formatter_config: FormatterConfig | None = None,
        telemetry: TelemetryPort | None = None,
    ):
        self.config = config
        self.store = store
        self._broadcaster = broadcaster
        self._adapter_factory = adapter_factory
        self._telemetry = telemetry or NullTelemetry()
        self.formatter = ChatFormatter(self, formatter_config, self._telemetry)

        self._adapter: SessionAdapter | None = None
        self._state = SessionState.uninitialized()
        self._init_task: asyncio.Task[SessionAdapter | None] | None = None
        self._restart_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._auto_restarts = 0
        self._closed = False

    # -- accessors ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state.is_ready and self._adapter is not None

    @property
    def is_initializing(self) -> bool:
        return self._init_task is not None

    @property
    def adapter(self) -> SessionAdapter | None:
        return self._adapter

    @property
    def auto_restarts(self) -> int:
        return self._auto_restarts

    def _set_state(self, state: SessionState) -> None:
        if state.phase is not self._state.phase:
            logger.info(f"WhatsApp session: {self._state.phase.value} -> {state.phase.value}")
            self._telemetry.incr("session_transitions_total", labels=(("phase", state.phase.value),))
        self._state = state

    async def _emit(self, event: str, data: Any = None) -> None:
        self._telemetry.incr("events_emitted_total", labels=(("event", event), ("scope", "broadcast")))
        await self._broadcaster.emit(event, data)

    # -- adapter lifecycle -------------------------------------------------

    def session_options(self) -> SessionOptions:
        return SessionOptions(
            auth_dir=self.store.path,
            headless=self.config.headless,
            browser_args=list(self.config.browser_args),
        )

    async def create_instance(self) -> SessionAdapter:
        """Replace the adapter; the previous one is detached and destroyed first."""
        await self._dispose_adapter()
        adapter = self._adapter_factory(self.session_options())
        self._bind_handlers(adapter)
        self._adapter = adapter
        self._set_state(SessionState.uninitialized())
        logger.debug("WhatsApp session adapter created")
        return adapter

    def _bind_handlers(self, adapter: SessionAdapter) -> None:
        adapter.on("qr", self.handle_qr)
        adapter.on("authenticated", self.handle_authenticated)
        adapter.on("auth_failure", self.handle_auth_failure)
        adapter.on("ready", self.handle_ready)
        adapter.on("disconnected", self.handle_disconnected)
        adapter.on("message_ack", self.handle_message_ack)
        adapter.on("message_create", self.handle_message_create)

    async def _dispose_adapter(self) -> None:
        adapter, self._adapter = self._adapter, None
        if adapter is None:
            return
        adapter.remove_all_listeners()
        try:
            await adapter.destroy()
        except Exception as e:
            logger.error(f"Error destroying WhatsApp client: {e}")

    async def ensure_initialized(self) -> None:
        """Start the session unless it is already live.

        Concurrent callers share one initialization; each observes its outcome.
        An attempt whose adapter was replaced meanwhile does not count: the
        replacement is initialized before returning.
        """
        while True:
            if self._init_task is None:
                self._init_task = asyncio.create_task(self._initialize())
            else:
                logger.info("WhatsApp client already initializing; awaiting it")
            adapter = await asyncio.shield(self._init_task)
            current = self._adapter
            if self._closed or current is None or current is adapter or self._state.is_live:
                return
            logger.info("WhatsApp client replaced during initialize; initializing the new one")

    async def _initialize(self) -> SessionAdapter | None:
        try:
            if self._adapter is not None and self._state.is_live:
                logger.info("WhatsApp client already initialized")
                return self._adapter
            adapter = self._adapter or await self.create_instance()
            self._set_state(SessionState.initializing())
            logger.info("Initializing WhatsApp client...")
            try:
                await asyncio.to_thread(self.store.ensure)
                await adapter.initialize()
            except Exception as e:
                if adapter is not self._adapter:
                    logger.info(f"Superseded WhatsApp client failed to initialize: {e}")
                    return adapter
                logger.error(f"Error during WhatsApp client initialize: {e}")
                self._set_state(SessionState.uninitialized())
                await self._emit(events.ERROR_MESSAGE, INIT_FAILED_MESSAGE)
                return adapter
            if adapter is self._adapter and self._state.phase is SessionPhase.INITIALIZING:
                self._set_state(SessionState.awaiting_pairing())
            logger.info("WhatsApp client initialize() finished")
            return adapter
        finally:
            self._init_task = None

    async def logout(self) -> None:
        """Manual logout: wipe the session and restart pairing from scratch."""
        await self._teardown("manual logout")
        await self._emit(events.LOGGED_OUT)
        await self._emit(events.STATUS, "disconnected")
        self._auto_restarts = 0
        self._schedule_restart()

    async def shutdown(self) -> None:
        """Graceful process exit: stop background work and destroy the adapter."""
        self._closed = True
        for task in [self._restart_task, self._init_task, *self._background]:
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task
        self._restart_task = None
        self._background.clear()
        await self._dispose_adapter()
        logger.info("WhatsApp session controller shut down")

    async def _teardown(self, reason: str) -> None:
        logger.warning(f"Tearing down WhatsApp session ({reason})")
        await self._dispose_adapter()
        self._set_state(SessionState.disconnected())
        await asyncio.to_thread(self.store.clear)

    def _schedule_restart(self) -> None:
        if self._closed:
            return
        if self._restart_task is not None and not self._restart_task.done():
            self._restart_task.cancel()
        self._restart_task = asyncio.create_task(self._restart_after_delay(), name="session-restart")
        self._restart_task.add_done_callback(self._on_background_done)

    async def _restart_after_delay(self) -> None:
        await asyncio.sleep(self.config.restart_delay_ms / 1000.0)
        if self._closed:
            return
        if self._adapter is None:
            logger.info("Recreating WhatsApp client after reset")
            await self.create_instance()
        else:
            logger.info("WhatsApp client already recreated; joining its initialization")
        await self.ensure_initialized()

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"WhatsApp background task {task.get_name()} failed: {exc}")

    # -- event handlers ----------------------------------------------------

    async def handle_qr(self, qr: str) -> None:
        logger.info("WhatsApp QR code received")
        try:
            data_url = await asyncio.to_thread(qr_to_data_url, qr)
        except Exception as e:
            logger.error(f"Error generating QR data URL: {e}")
            return
        if self._state.phase in (SessionPhase.AUTHENTICATED, SessionPhase.READY):
            logger.debug(f"Ignoring late QR code in phase {self._state.phase.value}")
            return
        self._set_state(SessionState.awaiting_pairing(data_url))
        await self._emit(events.QR, data_url)
        await self._emit(events.STATUS, "qr_received")

    async def handle_authenticated(self) -> None:
        logger.info("WhatsApp authenticated")
        self._set_state(SessionState.authenticated())
        await self._emit(events.STATUS, "authenticated")

    async def handle_auth_failure(self, message: str) -> None:
        logger.error(f"WhatsApp authentication failed: {message}")
        self._set_state(SessionState.uninitialized())
        await self._emit(events.ERROR_MESSAGE, AUTH_FAILED_MESSAGE)

    async def handle_ready(self) -> None:
        logger.info("WhatsApp client is ready")
        self._set_state(SessionState.ready())
        self._auto_restarts = 0
        await self._emit(events.STATUS, "ready")

        if self.config.ready_settle_ms:
            await asyncio.sleep(self.config.ready_settle_ms / 1000.0)
        chats = await self.formatter.list_chats()
        if not chats and self.is_ready:
            # list_chats reports failures as an empty list.
            logger.warning("No chats on ready; retrying once")
            await asyncio.sleep(self.config.ready_retry_delay_ms / 1000.0)
            chats = await self.formatter.list_chats()
        logger.info(f"Fetched {len(chats)} chats on ready")
        await self._emit(events.CHATS, chats)

    async def handle_disconnected(self, reason: str) -> None:
        logger.warning(f"WhatsApp disconnected: {reason}")
        await self._teardown(f"disconnected: {reason}")
        await self._emit(events.STATUS, "disconnected")
        await self._emit(events.LOGGED_OUT)

        limit = self.config.max_auto_restarts
        if limit > 0 and self._auto_restarts >= limit:
            logger.error(f"WhatsApp automatic restart limit reached ({self._auto_restarts}/{limit})")
            await self._emit(events.ERROR_MESSAGE, RESTART_LIMIT_MESSAGE)
            return
        self._auto_restarts += 1
        self._schedule_restart()

    async def handle_message_ack(self, message: RawMessage, ack: int) -> None:
        logger.debug(f"Ack update: message {message.id} ack status {ack}")
        await self._emit(events.MESSAGE_ACK_UPDATE, {"messageId": message.id, "ack": ack})

    async def handle_message_create(self, message: RawMessage) -> None:
        if not self.is_ready:
            return

        chat_id = message.counterpart
        try:
            logger.debug(
                "New message for chat {}: type={} hasMedia={}", chat_id, message.type, message.has_media
            )
            wire = self.formatter.format_message(message)
            if message.has_media and message.type:
                self._spawn(self._enrich_media(chat_id, message, wire["id"]), name=f"media:{wire['id']}")
            await self._emit(events.NEW_MESSAGE, {"chatId": chat_id, "message": wire})

            chats = await self.formatter.list_chats()
            await self._emit(events.CHATS, chats)
        except Exception as e:
            logger.error(f"message_create handler error: {e}")

    async def _enrich_media(self, chat_id: str, message: RawMessage, message_id: str) -> None:
        media = await self.formatter.fetch_media(chat_id, message)
        if media is None:
            return
        logger.debug(f"Media downloaded for new message {message_id}")
        await self._emit(events.MESSAGE_MEDIA_DATA, {"messageId": message_id, "media": media})
