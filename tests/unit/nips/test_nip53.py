"""
Unit tests for nips.nip53 module.

Tests:
- parse_live_stream() tag mapping and fallbacks
- latest_streams() keeps the newest announcement per address
- parse_chat_message()
"""

import pytest

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.nips.nip53 import (
    DEFAULT_TITLE,
    latest_streams,
    parse_chat_message,
    parse_live_stream,
)
from tests.conftest import NOW, make_event


HOST = "c" * 64


# =============================================================================
# parse_live_stream()
# =============================================================================


class TestParseLiveStream:
    def test_full_announcement(self, alice) -> None:
        event = make_event(
            alice,
            kind=30311,
            content="",
            tags=[
                ["d", "stream-1"],
                ["title", "Late night coding"],
                ["summary", "Building a nostr client"],
                ["streaming", "https://cdn.example/live.m3u8"],
                ["image", "https://cdn.example/thumb.jpg"],
                ["status", "live"],
                ["p", HOST, "", "host"],
                ["current_participants", "42"],
                ["starts", str(NOW - 600)],
                ["t", "coding"],
                ["t", "nostr"],
                ["relay", "wss://r1.example"],
            ],
        )
        stream = parse_live_stream(event)

        assert stream.id == event.id
        assert stream.pubkey == alice.public_key_hex
        assert stream.d_tag == "stream-1"
        assert stream.title == "Late night coding"
        assert stream.summary == "Building a nostr client"
        assert stream.streaming_url == "https://cdn.example/live.m3u8"
        assert stream.thumbnail_url == "https://cdn.example/thumb.jpg"
        assert stream.streamer_pubkey == HOST
        assert stream.viewer_count == 42
        assert stream.starts_at == NOW - 600
        assert stream.ends_at is None
        assert stream.hashtags == ("coding", "nostr")
        assert stream.relays == ("wss://r1.example",)
        assert stream.created_at == NOW
        assert stream.a_tag == f"30311:{alice.public_key_hex}:stream-1"

    def test_minimal_announcement(self, alice) -> None:
        stream = parse_live_stream(make_event(alice, kind=30311, tags=[["d", "x"]]))

        assert stream.title == DEFAULT_TITLE
        assert stream.status == "live"
        assert stream.streamer_pubkey == alice.public_key_hex
        assert stream.viewer_count == 0
        assert stream.thumbnail_url == ""

    def test_thumb_fallback_and_status_case(self, alice) -> None:
        event = make_event(
            alice,
            kind=30311,
            tags=[["d", "x"], ["thumb", "https://t.example/a.png"], ["status", "ENDED"]],
        )
        stream = parse_live_stream(event)
        assert stream.thumbnail_url == "https://t.example/a.png"
        assert stream.status == "ended"
        assert not stream.is_live

    def test_bad_optional_values_fall_back(self, alice) -> None:
        event = make_event(
            alice,
            kind=30311,
            tags=[["d", "x"], ["p", "not-a-pubkey"], ["current_participants", "many"]],
        )
        stream = parse_live_stream(event)
        assert stream.streamer_pubkey == alice.public_key_hex
        assert stream.viewer_count == 0

    def test_missing_d_tag(self, alice) -> None:
        with pytest.raises(ProtocolParseError, match="no d tag"):
            parse_live_stream(make_event(alice, kind=30311, tags=[["title", "x"]]))

    def test_wrong_kind(self, alice) -> None:
        with pytest.raises(ProtocolParseError, match="expected kind 30311"):
            parse_live_stream(make_event(alice, kind=1, tags=[["d", "x"]]))


# =============================================================================
# latest_streams()
# =============================================================================


class TestLatestStreams:
    def test_newest_version_per_address(self, alice, bob) -> None:
        old = parse_live_stream(
            make_event(
                alice, kind=30311, tags=[["d", "s1"], ["status", "live"]], created_at=NOW - 10
            )
        )
        new = parse_live_stream(
            make_event(alice, kind=30311, tags=[["d", "s1"], ["status", "ended"]], created_at=NOW)
        )
        other = parse_live_stream(
            make_event(bob, kind=30311, tags=[["d", "s1"]], created_at=NOW - 5)
        )

        assert latest_streams([old, other, new]) == [new, other]
        assert latest_streams([new, old, other]) == [new, other]

    def test_empty(self) -> None:
        assert latest_streams([]) == []


# =============================================================================
# parse_chat_message()
# =============================================================================


class TestParseChatMessage:
    def test_chat_message(self, alice) -> None:
        a_tag = f"30311:{HOST}:stream-1"
        event = make_event(alice, kind=1311, content="gm", tags=[["a", a_tag, "", "root"]])
        message = parse_chat_message(event)

        assert message.id == event.id
        assert message.pubkey == alice.public_key_hex
        assert message.content == "gm"
        assert message.a_tag == a_tag
        assert message.author_name is None

    def test_wrong_kind(self, alice) -> None:
        with pytest.raises(ProtocolParseError):
            parse_chat_message(make_event(alice, kind=1, content="gm"))
