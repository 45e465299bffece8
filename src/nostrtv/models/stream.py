"""
Live streaming domain models.

These are the views a client renders: a live activity announcement
([LiveStream][nostrtv.models.stream.LiveStream]), a user profile
([Profile][nostrtv.models.stream.Profile]), a chat line
([ChatMessage][nostrtv.models.stream.ChatMessage]) and a zap
([ZapReceipt][nostrtv.models.stream.ZapReceipt]). They are built from
signed events by the parsers in [nostrtv.nips][]; nothing here knows the
wire format.

See Also:
    [nostrtv.nips.nip53][]: Live activity and chat parsers.
    [nostrtv.nips.nip57][]: Zap receipt parser.
    [nostrtv.nips.metadata][]: Profile parser.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from ._validation import (
    validate_hex,
    validate_instance,
    validate_int_range,
    validate_str_no_null,
    validate_timestamp,
)
from .constants import EventKind


STATUS_LIVE = "live"
STATUS_PLANNED = "planned"
STATUS_ENDED = "ended"

_MAX_VIEWERS = 2**31 - 1


def _validate_optional_str(value: Any, name: str) -> None:
    if value is not None:
        validate_str_no_null(value, name)


def _freeze_strs(value: Any, name: str) -> tuple[str, ...]:
    if isinstance(value, (str, bytes)):
        raise TypeError(f"{name} must be a sequence of str, got {type(value).__name__}")
    frozen = tuple(value)
    for item in frozen:
        validate_str_no_null(item, name)
    return frozen


@dataclass(frozen=True, slots=True)
class LiveStream:
    """A NIP-53 live activity (kind 30311).

    Attributes:
        id: Event id of the announcement.
        pubkey: Author of the announcement (often a streaming service).
        d_tag: Identifier that, with ``pubkey``, addresses the stream.
        title: Stream title.
        summary: Stream description.
        streaming_url: Playback URL (usually HLS).
        thumbnail_url: Preview image.
        status: ``live``, ``planned`` or ``ended`` (unknown values are kept).
        streamer_pubkey: Host from the first ``p`` tag, else ``pubkey``.
        viewer_count: ``current_participants`` at announcement time.
        hashtags: Values of the ``t`` tags.
        relays: Relay hints from the ``relay`` tags.
        created_at: Announcement time; newer announcements replace older ones.
        starts_at: Scheduled or actual start, if announced.
        ends_at: End time, if announced.
        streamer_name: Host display name, filled in from a profile.
    """

    id: str
    pubkey: str
    d_tag: str
    title: str
    summary: str = ""
    streaming_url: str = ""
    thumbnail_url: str = ""
    status: str = STATUS_LIVE
    streamer_pubkey: str = ""
    viewer_count: int = 0
    hashtags: tuple[str, ...] = ()
    relays: tuple[str, ...] = ()
    created_at: int = 0
    starts_at: int | None = None
    ends_at: int | None = None
    streamer_name: str | None = None

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 64)
        validate_hex(self.pubkey, "pubkey", 64)
        for name in ("d_tag", "title", "summary", "streaming_url", "thumbnail_url", "status"):
            validate_str_no_null(getattr(self, name), name)
        if not self.streamer_pubkey:
            object.__setattr__(self, "streamer_pubkey", self.pubkey)
        validate_hex(self.streamer_pubkey, "streamer_pubkey", 64)
        validate_int_range(self.viewer_count, "viewer_count", 0, _MAX_VIEWERS)
        object.__setattr__(self, "hashtags", _freeze_strs(self.hashtags, "hashtags"))
        object.__setattr__(self, "relays", _freeze_strs(self.relays, "relays"))
        validate_timestamp(self.created_at, "created_at")
        if self.starts_at is not None:
            validate_timestamp(self.starts_at, "starts_at")
        if self.ends_at is not None:
            validate_timestamp(self.ends_at, "ends_at")
        _validate_optional_str(self.streamer_name, "streamer_name")

    @property
    def a_tag(self) -> str:
        """Address used by chat messages, zaps and presence for this stream."""
        return f"{int(EventKind.LIVE_EVENT)}:{self.pubkey}:{self.d_tag}"

    @property
    def is_live(self) -> bool:
        return self.status == STATUS_LIVE

    def supersedes(self, other: LiveStream) -> bool:
        """True if this announcement replaces *other* (same address, not older)."""
        return self.a_tag == other.a_tag and self.created_at >= other.created_at

    def with_streamer_name(self, name: str | None) -> LiveStream:
        return replace(self, streamer_name=name)


@dataclass(frozen=True, slots=True)
class Profile:
    """Kind 0 user metadata.

    Every field except ``pubkey`` is optional; clients fill in whatever the
    user published.
    """

    pubkey: str
    name: str | None = None
    display_name: str | None = None
    picture: str | None = None
    about: str | None = None
    nip05: str | None = None
    lud16: str | None = None
    lud06: str | None = None
    created_at: int = 0

    def __post_init__(self) -> None:
        validate_hex(self.pubkey, "pubkey", 64)
        for name in ("name", "display_name", "picture", "about", "nip05", "lud16", "lud06"):
            _validate_optional_str(getattr(self, name), name)
        validate_timestamp(self.created_at, "created_at")

    @property
    def display_name_or_name(self) -> str:
        """``display_name``, else ``name``, else a shortened pubkey."""
        return self.display_name or self.name or f"{self.pubkey[:8]}..."

    @property
    def lightning_address(self) -> str | None:
        return self.lud16 or self.lud06


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """A live chat line (kind 1311) posted to a stream."""

    id: str
    pubkey: str
    content: str
    created_at: int
    a_tag: str = ""
    author_name: str | None = None
    author_picture: str | None = None

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 64)
        validate_hex(self.pubkey, "pubkey", 64)
        validate_str_no_null(self.content, "content")
        validate_timestamp(self.created_at, "created_at")
        validate_str_no_null(self.a_tag, "a_tag")
        _validate_optional_str(self.author_name, "author_name")
        _validate_optional_str(self.author_picture, "author_picture")

    def with_author(self, profile: Profile | None) -> ChatMessage:
        """Return a copy showing *profile*'s name and picture."""
        if profile is None:
            return self
        return replace(
            self, author_name=profile.display_name_or_name, author_picture=profile.picture
        )


@dataclass(frozen=True, slots=True)
class ZapReceipt:
    """A NIP-57 zap receipt (kind 9735) issued by a lightning service.

    Attributes:
        id: Receipt event id.
        bolt11: Paid invoice.
        description: JSON of the zap request the invoice was issued for.
        recipient_pubkey: Zapped user, from the receipt's ``p`` tag.
        amount_msats: Paid amount in millisatoshis.
        created_at: Receipt time.
        sender_pubkey: Author of the zap request, if it parsed.
        preimage: Payment preimage, when the service publishes it.
        message: Zap comment (the zap request content), if any.
        a_tag: Stream address the zap was sent to, if any.
        sender_name: Sender display name, filled in from a profile.
        sender_picture: Sender picture, filled in from a profile.
    """

    id: str
    bolt11: str
    description: str
    recipient_pubkey: str
    amount_msats: int
    created_at: int
    sender_pubkey: str | None = None
    preimage: str | None = None
    message: str | None = None
    a_tag: str = ""
    sender_name: str | None = None
    sender_picture: str | None = None

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 64)
        validate_str_no_null(self.bolt11, "bolt11")
        validate_str_no_null(self.description, "description")
        validate_str_no_null(self.recipient_pubkey, "recipient_pubkey")
        validate_instance(self.amount_msats, int, "amount_msats")
        if self.amount_msats < 0:
            raise ValueError("amount_msats must be non-negative")
        validate_timestamp(self.created_at, "created_at")
        if self.sender_pubkey is not None:
            validate_hex(self.sender_pubkey, "sender_pubkey", 64)
        for name in ("preimage", "message", "sender_name", "sender_picture"):
            _validate_optional_str(getattr(self, name), name)
        validate_str_no_null(self.a_tag, "a_tag")

    @property
    def amount_sats(self) -> int:
        return self.amount_msats // 1000

    def with_sender(self, profile: Profile | None) -> ZapReceipt:
        """Return a copy showing *profile*'s name and picture."""
        if profile is None:
            return self
        return replace(
            self, sender_name=profile.display_name_or_name, sender_picture=profile.picture
        )
