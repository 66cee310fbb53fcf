"""Socket.IO gateway: per-connection request handling and event fan-out."""

from __future__ import annotations

import asyncio
import functools
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger

from warelay.relay import events
from warelay.session.models import OutgoingMedia
from warelay.telemetry.base import NullTelemetry, TelemetryPort

if TYPE_CHECKING:
    import socketio

    from warelay.session.controller import SessionController

NOT_READY_MESSAGE = "WhatsApp client not ready yet"
SEND_NOT_READY_MESSAGE = "WhatsApp client not ready."
SEND_FAILED_MESSAGE = "Failed to send message."

RequestHandler = Callable[..., Awaitable[None]]


class SocketBroadcaster:
    """Broadcaster backed by a python-socketio ``AsyncServer``."""

    def __init__(self, sio: "socketio.AsyncServer"):
        self._sio = sio

    async def emit(self, event: str, data: Any = None, *, to: str | None = None) -> None:
        await self._sio.emit(event, data, to=to)


class RealtimeGateway:
    """Maps frontend requests to controller/adapter calls.

    Each request handler is isolated: an exception is logged and never
    reaches the other handlers of the same connection.
    """

    def __init__(
        self,
        controller: "SessionController",
        broadcaster: Any,
        telemetry: TelemetryPort | None = None,
    ):
        self._controller = controller
        self._broadcaster = broadcaster
        self._telemetry = telemetry or NullTelemetry()
        self._connections: set[str] = set()
        self._pushes: dict[str, asyncio.Task[None]] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def formatter(self):
        return self._controller.formatter

    def register(self, sio: "socketio.AsyncServer") -> None:
        """Attach connection and request handlers to a Socket.IO server."""
        sio.on("connect", self._isolated("connect", self.on_connect))
        sio.on("disconnect", self._isolated("disconnect", self.on_disconnect))
        for event, handler in self.request_handlers().items():
            sio.on(event, self._isolated(event, handler))

    def request_handlers(self) -> dict[str, RequestHandler]:
        return {
            events.REQUEST_INITIAL_STATUS: self.handle_request_initial_status,
            events.START_SESSION: self.handle_start_session,
            events.GET_CHATS: self.handle_get_chats,
            events.GET_CHAT_MESSAGES: self.handle_get_chat_messages,
            events.GET_MESSAGE_MEDIA: self.handle_get_message_media,
            events.SEND_MESSAGE: self.handle_send_message,
            events.LOGOUT: self.handle_logout,
        }

    def _isolated(self, event: str, handler: RequestHandler) -> RequestHandler:
        @functools.wraps(handler)
        async def wrapper(sid: str, *args: Any) -> None:
            try:
                await handler(sid, *args)
            except Exception as e:
                logger.error(f"Socket handler {event} failed for {sid}: {e}")

        return wrapper

    async def _send(self, sid: str, event: str, data: Any = None) -> None:
        self._telemetry.incr("events_emitted_total", labels=(("event", event), ("scope", "direct")))
        await self._broadcaster.emit(event, data, to=sid)

    # -- connection lifecycle ----------------------------------------------

    async def on_connect(self, sid: str, *_: Any) -> None:
        self._connections.add(sid)
        self._telemetry.gauge("socket_connections", len(self._connections))
        logger.info(f"Frontend connected {sid}")
        # Pushed after the handshake: a slow chat fetch must not hold up CONNECT.
        task = asyncio.create_task(self.push_current_status(sid), name=f"push-status:{sid}")
        self._pushes[sid] = task
        task.add_done_callback(functools.partial(self._on_push_done, sid))

    async def on_disconnect(self, sid: str, *_: Any) -> None:
        self._connections.discard(sid)
        push = self._pushes.pop(sid, None)
        if push is not None and not push.done():
            push.cancel()
        self._telemetry.gauge("socket_connections", len(self._connections))
        logger.info(f"Frontend disconnected {sid}")

    def _on_push_done(self, sid: str, task: asyncio.Task[None]) -> None:
        if self._pushes.get(sid) is task:
            del self._pushes[sid]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Initial status push failed for {sid}: {exc}")

    async def push_current_status(self, sid: str) -> None:
        """Tell a fresh connection where the session stands."""
        state = self._controller.state
        if self._controller.is_ready:
            await self._send(sid, events.STATUS, "ready")
            chats = await self.formatter.list_chats()
            await self._send(sid, events.CHATS, chats)
        elif state.qr:
            await self._send(sid, events.QR, state.qr)
            await self._send(sid, events.STATUS, state.status)
        else:
            await self._send(sid, events.STATUS, "disconnected")

    # -- requests ----------------------------------------------------------

    async def handle_request_initial_status(self, sid: str, *_: Any) -> None:
        logger.debug(f"request-initial-status from {sid}")
        if self._controller.is_ready:
            chats = await self.formatter.list_chats()
            await self._send(sid, events.INITIAL_STATUS, {"ready": True, "chats": chats})
            await self._send(sid, events.CHATS, chats)
            return
        await self._send(
            sid, events.INITIAL_STATUS, {"ready": False, "qr": self._controller.state.qr}
        )

    async def handle_start_session(self, sid: str, *_: Any) -> None:
        logger.info(f"start-session requested by {sid}")
        await self._controller.ensure_initialized()

    async def handle_get_chats(self, sid: str, *_: Any) -> None:
        if not self._controller.is_ready:
            await self._send(sid, events.ERROR_MESSAGE, NOT_READY_MESSAGE)
            return
        chats = await self.formatter.list_chats()
        await self._send(sid, events.CHATS, chats)

    async def handle_get_chat_messages(self, sid: str, payload: Any = None, *_: Any) -> None:
        chat_id, limit = _parse_chat_messages_request(payload)
        if not self._controller.is_ready:
            await self._send(sid, events.ERROR_MESSAGE, NOT_READY_MESSAGE)
            return
        try:
            messages = await self.formatter.list_messages(chat_id, limit) if chat_id else []
        except Exception as e:
            logger.error(f"get-chat-messages failed for {chat_id}: {e}")
            messages = []
        logger.debug(f"Sending {len(messages)} messages for {chat_id}")
        await self._send(sid, events.CHAT_MESSAGES, {"chatId": chat_id, "messages": messages})

    async def handle_get_message_media(self, sid: str, payload: Any = None, *_: Any) -> None:
        if not self._controller.is_ready:
            return
        data = payload if isinstance(payload, dict) else {}
        chat_id = str(data.get("chatId") or "")
        message_id = str(data.get("messageId") or "")

        try:
            media = await self.formatter.find_message_media(chat_id, message_id)
        except Exception as e:
            logger.error(f"Error getting media for message {message_id}: {e}")
            media = None

        if media is None:
            await self._send(sid, events.MESSAGE_MEDIA_FAILED, {"messageId": message_id})
            return
        await self._send(sid, events.MESSAGE_MEDIA_DATA, {"messageId": message_id, "media": media})

    async def handle_send_message(self, sid: str, payload: Any = None, *_: Any) -> None:
        """Exactly one confirmation or error per ``tempId``."""
        data = payload if isinstance(payload, dict) else {}
        temp_id = data.get("tempId")

        if not self._controller.is_ready:
            logger.warning("Send message attempt when client not ready")
            await self._send_error(sid, temp_id, SEND_NOT_READY_MESSAGE)
            return

        try:
            confirmation = await self._deliver(data)
        except Exception as e:
            logger.error(f"Error sending message: {e}")
            self._telemetry.incr("messages_sent_total", labels=(("status", "error"),))
            await self._send_error(sid, temp_id, SEND_FAILED_MESSAGE)
            return

        self._telemetry.incr("messages_sent_total", labels=(("status", "success"),))
        await self._send(
            sid, events.MESSAGE_SENT_CONFIRMATION, {"tempId": temp_id, "message": confirmation}
        )

    async def _deliver(self, data: dict[str, Any]) -> dict[str, Any]:
        adapter = self._controller.adapter
        if adapter is None:
            raise RuntimeError("WhatsApp client is gone")

        chat_id = str(data.get("chatId") or "").strip()
        if not chat_id:
            raise ValueError("chatId is required")
        text = data.get("message")
        text = text if isinstance(text, str) else ""
        media_raw = data.get("media")

        media: OutgoingMedia | None = None
        if isinstance(media_raw, dict) and media_raw.get("data"):
            media = OutgoingMedia.from_request(media_raw)
            logger.info(f"Sending media message to {chat_id}")
            sent = await adapter.send_message(chat_id, media, caption=text)
        else:
            sent = await adapter.send_message(chat_id, text)

        logger.info(f"Sent {'media' if media else 'text'} message to {chat_id}")
        return self.formatter.format_sent_message(sent, text, media)

    async def _send_error(self, sid: str, temp_id: Any, error: str) -> None:
        await self._send(sid, events.SEND_MESSAGE_ERROR, {"tempId": temp_id, "error": error})

    async def handle_logout(self, sid: str, *_: Any) -> None:
        logger.info(f"logout requested by {sid}")
        await self._controller.logout()


def _parse_chat_messages_request(payload: Any) -> tuple[str, int | None]:
    """Accept either a bare chat id or ``{chatId, limit}``."""
    if isinstance(payload, dict):
        limit = payload.get("limit")
        return (
            str(payload.get("chatId") or ""),
            int(limit) if isinstance(limit, (int, float)) and not isinstance(limit, bool) else None,
        )
    if isinstance(payload, str):
        return payload, None
    return "", None
