"""WhatsApp Web session adapter backed by the Node bridge protocol v2."""

from __future__ import annotations

import asyncio
import contextlib
import json
import uuid
from typing import Any

from loguru import logger

from warelay.config.schema import BridgeConfig
from warelay.session.models import MediaPayload, OutgoingMedia, RawChat, RawMessage
from warelay.session.ports import SESSION_EVENTS, EventHandler, SessionOptions

PROTOCOL_VERSION = 2
BRIDGE_CLOSED_REASON = "bridge_closed"


class BridgeProtocolMismatchError(RuntimeError):
    """Bridge protocol version mismatch."""


class BridgeNotConnectedError(RuntimeError):
    """Command issued while no bridge websocket is open."""


class BridgeProtocolError(RuntimeError):
    """Bridge returned a protocol-level error."""

    def __init__(self, code: str, message: str, retryable: bool):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.retryable = retryable


class BridgeSessionAdapter:
    """One WhatsApp Web client living inside the bridge runtime.

    Commands are JSON envelopes answered by ``response`` frames carrying the
    same ``requestId``; session events arrive as frames whose ``type`` is the
    event name. Event handlers run as independent tasks so the reader loop
    stays free to consume command responses.
    """

    def __init__(self, config: BridgeConfig, options: SessionOptions, *, connect: Any = None):
        self.config = config
        self.options = options
        self._connect = connect
        self._ws: Any | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._send_lock = asyncio.Lock()
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._listeners: dict[str, list[EventHandler]] = {}
        self._event_tasks: set[asyncio.Task[None]] = set()
        self._destroying = False

    # -- listeners ---------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        if event not in SESSION_EVENTS:
            raise ValueError(f"Unknown session event: {event}")
        self._listeners.setdefault(event, []).append(handler)

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    def _dispatch(self, event: str, *args: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            task = asyncio.create_task(handler(*args))
            self._event_tasks.add(task)
            task.add_done_callback(self._on_event_task_done)

    def _on_event_task_done(self, task: asyncio.Task[None]) -> None:
        self._event_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"WhatsApp session event handler failed: {exc}")

    # -- lifecycle ---------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def initialize(self) -> None:
        """Connect to the bridge, verify its protocol and start the web client."""
        self._destroying = False
        if self._ws is None:
            await self._open()

        await self._send_command(
            "initialize",
            {
                "authDir": str(self.options.auth_dir),
                "puppeteer": {
                    "headless": self.options.headless,
                    "args": list(self.options.browser_args),
                },
            },
            timeout_seconds=self.config.initialize_timeout_ms / 1000.0,
        )
        logger.info("WhatsApp bridge client initialized")

    async def destroy(self) -> None:
        """Stop the web client and close the bridge connection."""
        self._destroying = True
        try:
            if self._ws is not None:
                try:
                    await self._send_command(
                        "destroy", {}, timeout_seconds=self.config.request_timeout_ms / 1000.0
                    )
                except (BridgeProtocolError, BridgeNotConnectedError, TimeoutError, OSError) as e:
                    logger.warning(f"WhatsApp bridge destroy command failed: {e}")
        finally:
            await self._close()
            current = asyncio.current_task()
            for task in list(self._event_tasks):
                if task is not current:
                    task.cancel()
            self._event_tasks.clear()

    async def _open(self) -> None:
        connect = self._connect
        if connect is None:
            import websockets

            connect = websockets.connect

        url = self.config.resolved_url
        logger.info(f"Connecting to WhatsApp bridge at {url}...")
        self._ws = await connect(
            url,
            max_size=self.config.max_payload_bytes,
            ping_interval=20,
            ping_timeout=20,
        )
        self._reader_task = asyncio.create_task(self._read_loop())
        try:
            await self._verify_bridge_health(self.config.startup_timeout_ms / 1000.0)
        except BaseException:
            await self._close()
            raise
        logger.info("Connected to WhatsApp bridge (protocol v2)")

    async def _close(self) -> None:
        ws, self._ws = self._ws, None
        reader, self._reader_task = self._reader_task, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
        self._fail_pending("Bridge connection closed")

    async def _verify_bridge_health(self, timeout_seconds: float) -> None:
        response = await self._send_command("health", {}, timeout_seconds=timeout_seconds)
        version = response.get("protocolVersion", response.get("version"))
        if version != PROTOCOL_VERSION:
            raise BridgeProtocolMismatchError(
                f"Bridge protocol mismatch: expected v{PROTOCOL_VERSION}, got {version!r}"
            )

    # -- queries and commands ---------------------------------------------

    async def get_chats(self) -> list[RawChat]:
        result = await self._request("get_chats", {})
        chats = result.get("chats")
        if not isinstance(chats, list):
            return []
        return [RawChat.from_payload(c) for c in chats if isinstance(c, dict) and c.get("id")]

    async def get_chat_by_id(self, chat_id: str) -> RawChat | None:
        try:
            result = await self._request("get_chat", {"chatId": chat_id})
        except BridgeProtocolError as e:
            if e.code == "ERR_NOT_FOUND":
                return None
            raise
        chat = result.get("chat")
        if not isinstance(chat, dict) or not chat.get("id"):
            return None
        return RawChat.from_payload(chat)

    async def fetch_messages(self, chat_id: str, limit: int) -> list[RawMessage]:
        result = await self._request("fetch_messages", {"chatId": chat_id, "limit": int(limit)})
        messages = result.get("messages")
        if not isinstance(messages, list):
            return []
        return [RawMessage.from_payload(m) for m in messages if isinstance(m, dict)]

    async def download_media(self, chat_id: str, message_id: str) -> MediaPayload | None:
        result = await self._request("download_media", {"chatId": chat_id, "messageId": message_id})
        media = result.get("media")
        if not isinstance(media, dict):
            return None
        return MediaPayload.from_payload(media)

    async def send_message(
        self, chat_id: str, content: str | OutgoingMedia, caption: str | None = None
    ) -> RawMessage:
        payload: dict[str, Any] = {"chatId": chat_id}
        if isinstance(content, OutgoingMedia):
            payload["media"] = content.to_bridge()
            payload["caption"] = caption or ""
        else:
            payload["text"] = content
        result = await self._request("send_message", payload)
        message = result.get("message")
        if not isinstance(message, dict):
            raise BridgeProtocolError("ERR_INTERNAL", "send_message returned no message", False)
        return RawMessage.from_payload(message)

    async def _request(self, command_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._send_command(
            command_type, payload, timeout_seconds=self.config.request_timeout_ms / 1000.0
        )

    # -- wire --------------------------------------------------------------

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"WhatsApp bridge read loop ended: {e}")

        if self._destroying or self._ws is not ws:
            return
        logger.warning("WhatsApp bridge connection closed unexpectedly")
        self._ws = None
        self._reader_task = None
        self._fail_pending("Bridge connection closed")
        self._dispatch("disconnected", BRIDGE_CLOSED_REASON)

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from bridge")
            return

        if not isinstance(data, dict):
            logger.warning("Invalid bridge frame shape")
            return

        version = data.get("version")
        if version != PROTOCOL_VERSION:
            logger.warning(f"Unexpected bridge protocol version: {version!r}")
            return

        msg_type = data.get("type")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if msg_type == "response":
            request_id = data.get("requestId")
            if isinstance(request_id, str):
                self._resolve_pending(request_id, payload)
            return

        if msg_type == "qr":
            qr = payload.get("qr")
            if isinstance(qr, str) and qr:
                self._dispatch("qr", qr)
            return

        if msg_type in ("authenticated", "ready"):
            self._dispatch(msg_type)
            return

        if msg_type == "auth_failure":
            self._dispatch("auth_failure", str(payload.get("message") or "authentication failed"))
            return

        if msg_type == "disconnected":
            self._dispatch("disconnected", str(payload.get("reason") or "unknown"))
            return

        if msg_type in ("message_ack", "message_create"):
            message = payload.get("message")
            if not isinstance(message, dict):
                logger.warning(f"Dropping malformed {msg_type} event")
                return
            raw_message = RawMessage.from_payload(message)
            if msg_type == "message_ack":
                ack = payload.get("ack")
                self._dispatch("message_ack", raw_message, int(ack) if isinstance(ack, (int, float)) else 0)
            else:
                self._dispatch("message_create", raw_message)
            return

        if msg_type == "error":
            logger.error(f"WhatsApp bridge error: {payload.get('error')}")
            return

        logger.debug(f"Ignoring bridge frame type {msg_type!r}")

    async def _send_command(
        self,
        command_type: str,
        payload: dict[str, Any],
        timeout_seconds: float,
    ) -> dict[str, Any]:
        ws = self._ws
        if ws is None:
            raise BridgeNotConnectedError("Bridge websocket not connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        envelope = {
            "version": PROTOCOL_VERSION,
            "type": command_type,
            "token": self.config.token,
            "requestId": request_id,
            "accountId": self.config.account_id,
            "payload": payload,
        }

        try:
            async with self._send_lock:
                await ws.send(json.dumps(envelope))
            return await asyncio.wait_for(future, timeout=timeout_seconds)
        finally:
            self._pending.pop(request_id, None)

    def _resolve_pending(self, request_id: str, payload: dict[str, Any]) -> None:
        future = self._pending.get(request_id)
        if not future or future.done():
            return

        ok = bool(payload.get("ok"))
        if ok:
            result = payload.get("result")
            future.set_result(result if isinstance(result, dict) else {})
            return

        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        code = str(error.get("code") or "ERR_INTERNAL")
        message = str(error.get("message") or "Bridge command failed")
        retryable = bool(error.get("retryable", False))
        future.set_exception(BridgeProtocolError(code, message, retryable))

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BridgeNotConnectedError(reason))
        self._pending.clear()
