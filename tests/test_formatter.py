from types import SimpleNamespace

import pytest
from conftest import FakeAdapter, make_chat, make_message

from warelay.config.schema import FormatterConfig
from warelay.session.formatter import ChatFormatter, is_session_closed_error
from warelay.session.models import MediaPayload, RawChat, RawMessage
from warelay.telemetry import InMemoryTelemetry


def _formatter(adapter: FakeAdapter | None, *, ready: bool = True, **config) -> ChatFormatter:
    session = SimpleNamespace(is_ready=ready, adapter=adapter)
    config.setdefault("chat_retry_delay_ms", 0)
    return ChatFormatter(session, FormatterConfig(**config), InMemoryTelemetry())


async def test_list_chats_caps_at_fifty_in_native_order() -> None:
    adapter = FakeAdapter()
    adapter.chats = [make_chat(i) for i in range(80)]

    chats = await _formatter(adapter).list_chats()

    assert len(chats) == 50
    assert [c["id"] for c in chats[:3]] == ["chat0@c.us", "chat1@c.us", "chat2@c.us"]


async def test_list_chats_not_ready_skips_adapter() -> None:
    adapter = FakeAdapter()

    assert await _formatter(adapter, ready=False).list_chats() == []
    assert adapter.get_chats_calls == 0


async def test_list_chats_retries_transient_failures() -> None:
    adapter = FakeAdapter()
    adapter.chats = [make_chat(1)]
    adapter.get_chats_errors = [RuntimeError("Evaluation failed"), RuntimeError("Evaluation failed")]
    formatter = _formatter(adapter)

    chats = await formatter.list_chats()

    assert [c["id"] for c in chats] == ["chat1@c.us"]
    assert adapter.get_chats_calls == 3
    assert formatter._telemetry.get_counter("chat_fetch_retries_total") == 2


async def test_list_chats_gives_up_with_empty_list() -> None:
    adapter = FakeAdapter()
    adapter.get_chats_errors = [RuntimeError("boom")] * 10

    assert await _formatter(adapter, chat_fetch_retries=3).list_chats() == []
    assert adapter.get_chats_calls == 4


async def test_list_chats_stops_on_closed_session() -> None:
    adapter = FakeAdapter()
    adapter.get_chats_errors = [RuntimeError("Protocol error (Runtime.callFunctionOn): Session closed.")]

    assert await _formatter(adapter).list_chats() == []
    assert adapter.get_chats_calls == 1


def test_session_closed_marker_detection() -> None:
    assert is_session_closed_error(RuntimeError("Target closed: Session closed. Most likely"))
    assert not is_session_closed_error(RuntimeError("timeout"))


def test_format_chat_name_fallbacks() -> None:
    formatter = _formatter(None)

    named = formatter.format_chat(RawChat(id="1@c.us", name="Alice"))
    titled = formatter.format_chat(RawChat(id="2@c.us", formatted_title="+1 555"))
    bare = formatter.format_chat(RawChat(id="3@c.us", user="3"))
    media = formatter.format_chat(RawChat(id="4@c.us", name="Bob", last_message_has_media=True))

    assert named["name"] == "Alice"
    assert titled["name"] == "+1 555"
    assert bare["name"] == "3"
    assert named["lastMessage"] == ""
    assert media["lastMessage"] == "📷 Media"
    assert named["profilePicUrl"] is None


def test_format_message_fills_missing_id_and_timestamp() -> None:
    wire = _formatter(None).format_message(RawMessage(id=None, body="hi"))

    assert wire["id"]
    assert wire["timestamp"] > 0
    assert wire["body"] == "hi"
    assert wire["media"] is None


async def test_list_messages_filters_revoked_and_downloads_media() -> None:
    adapter = FakeAdapter()
    adapter.chats = [make_chat(1, id="c1@c.us")]
    adapter.messages["c1@c.us"] = [
        make_message("m1"),
        make_message("m2", type="revoked"),
        make_message("m3", has_media=True, type="image"),
    ]
    adapter.media["m3"] = MediaPayload(mimetype="image/png", data="aGk=")

    messages = await _formatter(adapter).list_messages("c1@c.us")

    assert [m["id"] for m in messages] == ["m1", "m3"]
    assert messages[0]["media"] is None
    assert messages[1]["media"]["mimetype"] == "image/png"
    assert messages[1]["media"]["filename"].startswith("media_")
    assert messages[1]["media"]["size"] == 0


async def test_list_messages_media_failure_leaves_media_empty() -> None:
    adapter = FakeAdapter()
    adapter.chats = [make_chat(1, id="c1@c.us")]
    adapter.messages["c1@c.us"] = [make_message("m1", has_media=True, type="image")]
    adapter.download_error = RuntimeError("download failed")
    formatter = _formatter(adapter)

    messages = await formatter.list_messages("c1@c.us")

    assert len(messages) == 1
    assert messages[0]["media"] is None
    assert formatter._telemetry.get_counter("media_downloads_total", labels=(("status", "error"),)) == 1


async def test_list_messages_unknown_chat_is_empty() -> None:
    adapter = FakeAdapter()

    assert await _formatter(adapter).list_messages("nobody@c.us") == []


@pytest.mark.parametrize(("requested", "expected"), [(None, 100), (5, 5), (0, 1), (999, 200)])
async def test_list_messages_clamps_window(requested, expected) -> None:
    adapter = FakeAdapter()
    adapter.chats = [make_chat(1, id="c1@c.us")]
    adapter.messages["c1@c.us"] = [make_message(f"m{i}") for i in range(300)]

    messages = await _formatter(adapter).list_messages("c1@c.us", requested)

    assert len(messages) == expected


async def test_find_message_media_resolves_payload() -> None:
    adapter = FakeAdapter()
    adapter.chats = [make_chat(1, id="c1@c.us")]
    adapter.messages["c1@c.us"] = [make_message("m1", has_media=True, type="document")]
    adapter.media["m1"] = MediaPayload(mimetype="application/pdf", data="JVBERi0=", filename="a.pdf")

    media = await _formatter(adapter).find_message_media("c1@c.us", "m1")

    assert media == {"mimetype": "application/pdf", "data": "JVBERi0=", "filename": "a.pdf"}


async def test_find_message_media_missing_message_is_none() -> None:
    adapter = FakeAdapter()
    adapter.chats = [make_chat(1, id="c1@c.us")]
    adapter.messages["c1@c.us"] = [make_message("m1")]

    assert await _formatter(adapter).find_message_media("c1@c.us", "nope") is None
    assert await _formatter(adapter).find_message_media("c1@c.us", "m1") is None
