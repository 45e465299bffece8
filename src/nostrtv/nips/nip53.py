"""
NIP-53 live activities: stream announcements and live chat.

A stream is announced with a parameterized replaceable kind 30311 event
addressed by ``30311:<pubkey>:<d>``. Chat messages (kind 1311) point at that
address with an ``a`` tag. Relays may return several versions of one
announcement; [latest_streams()][nostrtv.nips.nip53.latest_streams] keeps
the newest per address.

Parsers raise [ProtocolParseError][nostrtv.core.exceptions.ProtocolParseError]
for events that cannot be shown; callers log and drop them.
"""

from __future__ import annotations

from collections.abc import Iterable

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.models._validation import is_hex
from nostrtv.models.constants import EventKind
from nostrtv.models.event import ProtocolEvent
from nostrtv.models.stream import STATUS_LIVE, ChatMessage, LiveStream


DEFAULT_TITLE = "Untitled Stream"


def _optional_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        number = int(value.strip())
    except ValueError:
        return None
    return number if number >= 0 else None


def _require_kind(event: ProtocolEvent, kind: EventKind) -> None:
    if event.kind != kind:
        raise ProtocolParseError(f"expected kind {int(kind)}, got {event.kind}")


def parse_live_stream(event: ProtocolEvent) -> LiveStream:
    """Build a [LiveStream][nostrtv.models.stream.LiveStream] from a kind 30311 event.

    Missing optional tags fall back to defaults: title ``Untitled Stream``,
    status ``live``, thumbnail from ``image`` then ``thumb``, streamer from
    the first ``p`` tag then the author.

    Raises:
        ProtocolParseError: If the event is not kind 30311 or has no ``d`` tag.
    """
    _require_kind(event, EventKind.LIVE_EVENT)
    d_tag = event.tag_value("d")
    if d_tag is None:
        raise ProtocolParseError(f"live event {event.id} has no d tag")

    streamer = event.tag_value("p")
    if streamer is None or not is_hex(streamer, 64):
        streamer = event.pubkey

    try:
        return LiveStream(
            id=event.id,
            pubkey=event.pubkey,
            d_tag=d_tag,
            title=event.tag_value("title") or DEFAULT_TITLE,
            summary=event.tag_value("summary") or "",
            streaming_url=event.tag_value("streaming") or "",
            thumbnail_url=event.tag_value("image") or event.tag_value("thumb") or "",
            status=(event.tag_value("status") or STATUS_LIVE).strip().lower(),
            streamer_pubkey=streamer,
            viewer_count=_optional_int(event.tag_value("current_participants")) or 0,
            hashtags=tuple(event.tag_values("t")),
            relays=tuple(event.tag_values("relay")),
            created_at=event.created_at,
            starts_at=_optional_int(event.tag_value("starts")),
            ends_at=_optional_int(event.tag_value("ends")),
        )
    except (TypeError, ValueError) as e:
        raise ProtocolParseError(f"live event {event.id} is malformed: {e}") from None


def latest_streams(streams: Iterable[LiveStream]) -> list[LiveStream]:
    """Keep the newest announcement per stream address, newest first."""
    by_address: dict[str, LiveStream] = {}
    for stream in streams:
        current = by_address.get(stream.a_tag)
        if current is None or stream.supersedes(current):
            by_address[stream.a_tag] = stream
    return sorted(by_address.values(), key=lambda s: s.created_at, reverse=True)


def parse_chat_message(event: ProtocolEvent) -> ChatMessage:
    """Build a [ChatMessage][nostrtv.models.stream.ChatMessage] from a kind 1311 event.

    Raises:
        ProtocolParseError: If the event is not kind 1311.
    """
    _require_kind(event, EventKind.LIVE_CHAT)
    try:
        return ChatMessage(
            id=event.id,
            pubkey=event.pubkey,
            content=event.content,
            created_at=event.created_at,
            a_tag=event.tag_value("a") or "",
        )
    except (TypeError, ValueError) as e:
        raise ProtocolParseError(f"chat event {event.id} is malformed: {e}") from None


__all__ = [
    "DEFAULT_TITLE",
    "latest_streams",
    "parse_chat_message",
    "parse_live_stream",
]
