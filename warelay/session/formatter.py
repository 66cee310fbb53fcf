"""Chat and message projection for the realtime wire."""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from warelay.config.defaults import MAX_CHAT_LIST, SESSION_CLOSED_MARKER
from warelay.config.schema import FormatterConfig
from warelay.session.models import (
    MediaPayload,
    OutgoingMedia,
    RawChat,
    RawMessage,
    chat_to_wire,
    media_to_wire,
    message_to_wire,
)
from warelay.session.ports import SessionView
from warelay.telemetry.base import NullTelemetry, TelemetryPort


def is_session_closed_error(err: BaseException) -> bool:
    """The automation client is shutting down; retrying cannot succeed."""
    return SESSION_CLOSED_MARKER in str(err)


class ChatFormatter:
    """Fetches chats/messages from the live adapter and maps them to wire shapes.

    Every call re-fetches from the adapter; nothing is cached.
    """

    def __init__(
        self,
        session: SessionView,
        config: FormatterConfig | None = None,
        telemetry: TelemetryPort | None = None,
    ):
        self._session = session
        self.config = config or FormatterConfig()
        self._telemetry = telemetry or NullTelemetry()

    @property
    def chat_limit(self) -> int:
        return max(1, min(MAX_CHAT_LIST, self.config.chat_list_limit))

    # -- projections -------------------------------------------------------

    def format_chat(self, chat: RawChat) -> dict[str, Any]:
        return chat_to_wire(chat)

    def format_message(self, message: RawMessage, media: dict[str, Any] | None = None) -> dict[str, Any]:
        return message_to_wire(message, media)

    def format_media(self, media: MediaPayload) -> dict[str, Any]:
        return media_to_wire(media)

    def format_sent_message(
        self,
        sent: RawMessage,
        text: str | None,
        media: OutgoingMedia | None = None,
    ) -> dict[str, Any]:
        """Confirmation payload for a message this session just sent."""
        wire = message_to_wire(sent)
        wire["body"] = sent.body or text or ""
        wire["media"] = (
            {"mimetype": media.mimetype, "data": media.data, "filename": media.filename}
            if media is not None
            else None
        )
        return wire

    # -- fetches -----------------------------------------------------------

    async def list_chats(self) -> list[dict[str, Any]]:
        """Return at most 50 simplified chats; degrades to ``[]`` instead of raising."""
        attempts = max(0, self.config.chat_fetch_retries) + 1
        delay = self.config.chat_retry_delay_ms / 1000.0

        for attempt in range(1, attempts + 1):
            adapter = self._session.adapter
            if not self._session.is_ready or adapter is None:
                logger.debug("list_chats: client not ready")
                return []

            try:
                chats = await adapter.get_chats()
            except Exception as e:
                if is_session_closed_error(e):
                    logger.warning("list_chats skipped - session already closed")
                    return []
                if attempt < attempts:
                    logger.warning(
                        "list_chats failed ({}); retrying ({} attempts left)",
                        e,
                        attempts - attempt,
                    )
                    self._telemetry.incr("chat_fetch_retries_total")
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"list_chats failed after all retries: {e}")
                return []

            formatted = [self.format_chat(chat) for chat in chats[: self.chat_limit]]
            logger.debug(f"Formatted {len(formatted)} of {len(chats)} chats")
            return formatted

        return []

    async def list_messages(self, chat_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        """Recent messages of a chat with best-effort inline media.

        Adapter failures while resolving the chat or fetching messages propagate;
        media download failures only leave ``media`` empty.
        """
        adapter = self._session.adapter
        if not self._session.is_ready or adapter is None:
            return []

        chat = await adapter.get_chat_by_id(chat_id)
        if chat is None:
            logger.warning(f"Chat not found: {chat_id}")
            return []

        window = self._clamp_limit(limit)
        messages = await adapter.fetch_messages(chat_id, window)
        visible = [m for m in messages if not m.is_revoked]

        semaphore = asyncio.Semaphore(self.config.media_download_concurrency)

        async def project(message: RawMessage) -> dict[str, Any]:
            media = None
            if message.has_media and message.type and message.id:
                async with semaphore:
                    media = await self.fetch_media(chat_id, message)
            return self.format_message(message, media)

        return list(await asyncio.gather(*(project(m) for m in visible)))

    async def fetch_media(self, chat_id: str, message: RawMessage) -> dict[str, Any] | None:
        """Download one message's media as a wire payload; ``None`` on any failure."""
        adapter = self._session.adapter
        if adapter is None or not message.id:
            return None
        try:
            media = await adapter.download_media(chat_id, message.id)
        except Exception as e:
            logger.warning(f"Error downloading media for message {message.id}: {e}")
            self._telemetry.incr("media_downloads_total", labels=(("status", "error"),))
            return None
        if media is None or not media.data:
            self._telemetry.incr("media_downloads_total", labels=(("status", "empty"),))
            return None
        self._telemetry.incr("media_downloads_total", labels=(("status", "success"),))
        return self.format_media(media)

    async def find_message_media(self, chat_id: str, message_id: str) -> dict[str, Any] | None:
        """Locate a message among the recent window and download its media.

        Returns ``{mimetype, data, filename}`` or ``None`` when the chat, the
        message or its media cannot be resolved.
        """
        adapter = self._session.adapter
        if adapter is None:
            return None

        chat = await adapter.get_chat_by_id(chat_id)
        if chat is None:
            logger.warning(f"Chat not found for media request: {chat_id}")
            return None

        messages = await adapter.fetch_messages(chat_id, self.config.media_lookup_limit)
        target = next((m for m in messages if m.id == message_id), None)
        if target is None or not target.has_media:
            logger.warning(f"Media message not found for {message_id}")
            return None

        media = await adapter.download_media(chat_id, message_id)
        if media is None or not media.mimetype or not media.data:
            logger.warning(f"downloadMedia returned nothing for message {message_id}")
            return None
        return {"mimetype": media.mimetype, "data": media.data, "filename": media.filename}

    def _clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.config.message_limit
        return max(1, min(int(limit), self.config.media_lookup_limit))
