"""Bridge payload models and the simplified wire shapes pushed to frontends."""

from __future__ import annotations

import base64
import binascii
import random
from dataclasses import dataclass
from typing import Any

from warelay.utils.helpers import now_millis, now_seconds

MEDIA_PLACEHOLDER = "📷 Media"
REVOKED_TYPE = "revoked"


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    return default


@dataclass(slots=True)
class RawChat:
    """Chat object as reported by the bridge."""

    id: str
    name: str = ""
    formatted_title: str = ""
    user: str = ""
    is_group: bool = False
    unread_count: int = 0
    timestamp: int = 0
    last_message_body: str = ""
    last_message_has_media: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RawChat":
        last = payload.get("lastMessage") if isinstance(payload.get("lastMessage"), dict) else {}
        chat_id = _str(payload.get("id")).strip()
        user = _str(payload.get("user")).strip() or chat_id.split("@", 1)[0]
        return cls(
            id=chat_id,
            name=_str(payload.get("name")),
            formatted_title=_str(payload.get("formattedTitle")),
            user=user,
            is_group=bool(payload.get("isGroup", False)),
            unread_count=_int(payload.get("unreadCount")),
            timestamp=_int(payload.get("timestamp")),
            last_message_body=_str(last.get("body")),
            last_message_has_media=bool(last.get("hasMedia", False)),
        )


@dataclass(slots=True)
class RawMessage:
    """Message object as reported by the bridge."""

    id: str | None
    chat_id: str = ""
    from_jid: str = ""
    to_jid: str = ""
    body: str = ""
    from_me: bool = False
    timestamp: int | None = None
    has_media: bool = False
    type: str | None = None
    ack: int | None = None

    @property
    def counterpart(self) -> str:
        """Chat the message belongs to, seen from this session."""
        if self.chat_id:
            return self.chat_id
        return self.to_jid if self.from_me else self.from_jid

    @property
    def is_revoked(self) -> bool:
        return self.type == REVOKED_TYPE

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RawMessage":
        ts = payload.get("timestamp")
        ack = payload.get("ack")
        return cls(
            id=_str(payload.get("id")).strip() or None,
            chat_id=_str(payload.get("chatId")).strip(),
            from_jid=_str(payload.get("from")).strip(),
            to_jid=_str(payload.get("to")).strip(),
            body=_str(payload.get("body")),
            from_me=bool(payload.get("fromMe", False)),
            timestamp=_int(ts) if isinstance(ts, (int, float)) else None,
            has_media=bool(payload.get("hasMedia", False)),
            type=_str(payload.get("type")) or None,
            ack=_int(ack) if isinstance(ack, (int, float)) else None,
        )


@dataclass(slots=True)
class MediaPayload:
    """Downloaded media; ``data`` is base64 encoded."""

    mimetype: str
    data: str
    filename: str | None = None
    filesize: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MediaPayload | None":
        mimetype = _str(payload.get("mimetype"))
        data = _str(payload.get("data"))
        if not data:
            return None
        size = payload.get("filesize")
        return cls(
            mimetype=mimetype,
            data=data,
            filename=_str(payload.get("filename")) or None,
            filesize=_int(size) if isinstance(size, (int, float)) else None,
        )


@dataclass(slots=True)
class OutgoingMedia:
    """Media attached to a frontend ``send-message`` request."""

    mimetype: str
    data: str
    filename: str | None = None

    @classmethod
    def from_request(cls, payload: dict[str, Any]) -> "OutgoingMedia":
        """Validate a frontend media object; raises ValueError on bad input."""
        data = _str(payload.get("data")).strip()
        mimetype = _str(payload.get("mimetype")).strip()
        if not data:
            raise ValueError("media.data is required")
        if not mimetype:
            raise ValueError("media.mimetype is required")
        if data.startswith("data:") and "," in data:
            data = data.split(",", 1)[1]
        try:
            base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"media.data is not valid base64: {e}") from e
        return cls(mimetype=mimetype, data=data, filename=_str(payload.get("filename")) or None)

    def to_bridge(self) -> dict[str, Any]:
        return {"mimetype": self.mimetype, "data": self.data, "filename": self.filename}


def chat_to_wire(chat: RawChat) -> dict[str, Any]:
    """Project a bridge chat to the simplified Chat shape."""
    last_message = chat.last_message_body or (MEDIA_PLACEHOLDER if chat.last_message_has_media else "")
    return {
        "id": chat.id,
        "name": chat.name or chat.formatted_title or chat.user or chat.id,
        "isGroup": chat.is_group,
        "unreadCount": chat.unread_count,
        "timestamp": chat.timestamp,
        "profilePicUrl": None,
        "lastMessage": last_message,
    }


def message_to_wire(message: RawMessage, media: dict[str, Any] | None = None) -> dict[str, Any]:
    """Project a bridge message to the simplified Message shape."""
    timestamp = message.timestamp if message.timestamp else now_seconds()
    message_id = message.id or f"{timestamp}-{random.random()}"
    return {
        "id": message_id,
        "body": message.body or "",
        "fromMe": message.from_me,
        "timestamp": timestamp,
        "hasMedia": message.has_media,
        "type": message.type,
        "ack": message.ack,
        "media": media,
    }


def media_to_wire(media: MediaPayload) -> dict[str, Any]:
    """Project downloaded media to the wire Media payload."""
    return {
        "mimetype": media.mimetype,
        "data": media.data,
        "filename": media.filename or f"media_{now_millis()}",
        "size": media.filesize or 0,
    }
