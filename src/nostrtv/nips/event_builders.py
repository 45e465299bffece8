"""Unsigned event builders for the client's signing consumers.

Standalone functions returning [UnsignedEvent][nostrtv.models.event.UnsignedEvent]
templates, ready to be passed to a signer. Used by the publishers in
[nostrtv.services.publishers][] for live chat (kind 1311), room presence
(kind 10312) and zap requests (kind 9734).

Live activities are addressed with an ``a`` tag of the form
``30311:<host pubkey>:<d identifier>``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from nostrtv.models._validation import is_hex
from nostrtv.models.constants import EventKind
from nostrtv.models.event import UnsignedEvent


DEFAULT_ZAP_RELAYS: Final[tuple[str, ...]] = (
    "wss://relay.damus.io",
    "wss://relay.nostr.band",
    "wss://relay.primal.net",
)


# =============================================================================
# Helpers
# =============================================================================


def live_event_address(host_pubkey: str, identifier: str) -> str:
    """Return the ``a`` tag value of a kind 30311 live activity."""
    if not is_hex(host_pubkey, 64):
        raise ValueError("host_pubkey must be 64 hex characters")
    return f"{int(EventKind.LIVE_EVENT)}:{host_pubkey}:{identifier}"


def _require_address(a_tag: str) -> None:
    if not a_tag or a_tag.count(":") < 2:
        raise ValueError(f"invalid event address: {a_tag!r}")


# =============================================================================
# Kind 1311 (NIP-53 live chat)
# =============================================================================


def build_live_chat(a_tag: str, content: str, *, created_at: int | None = None) -> UnsignedEvent:
    """Build a kind 1311 chat message for the live activity *a_tag*.

    Raises:
        ValueError: If the message is blank or the address is malformed.
    """
    _require_address(a_tag)
    if not content.strip():
        raise ValueError("chat message must not be blank")
    kwargs = {} if created_at is None else {"created_at": created_at}
    return UnsignedEvent(
        kind=EventKind.LIVE_CHAT, content=content, tags=[["a", a_tag]], **kwargs
    )


# =============================================================================
# Kind 10312 (NIP-53 presence)
# =============================================================================


def build_presence_join(a_tag: str, *, created_at: int | None = None) -> UnsignedEvent:
    """Build a kind 10312 presence event pointing at *a_tag*."""
    _require_address(a_tag)
    kwargs = {} if created_at is None else {"created_at": created_at}
    return UnsignedEvent(kind=EventKind.PRESENCE, content="", tags=[["a", a_tag]], **kwargs)


def build_presence_leave(*, created_at: int | None = None) -> UnsignedEvent:
    """Build a kind 10312 presence event with no tags, clearing presence."""
    kwargs = {} if created_at is None else {"created_at": created_at}
    return UnsignedEvent(kind=EventKind.PRESENCE, content="", tags=[], **kwargs)


# =============================================================================
# Kind 9734 (NIP-57 zap request)
# =============================================================================


def build_zap_request(  # noqa: PLR0913
    *,
    recipient_pubkey: str,
    amount_msats: int,
    lnurl: str,
    comment: str = "",
    a_tag: str | None = None,
    relays: Sequence[str] = DEFAULT_ZAP_RELAYS,
    created_at: int | None = None,
) -> UnsignedEvent:
    """Build a kind 9734 zap request.

    Tags follow NIP-57: ``relays`` (where the receipt should be published),
    ``amount`` in millisats, ``p`` recipient, ``lnurl`` endpoint and, for a
    zap on a live activity, its ``a`` address. The comment is the content.

    Raises:
        ValueError: If the recipient is not a hex pubkey, the amount is not
            positive, or no relay is given.
    """
    if not is_hex(recipient_pubkey, 64):
        raise ValueError("recipient_pubkey must be 64 hex characters")
    if amount_msats <= 0:
        raise ValueError("amount_msats must be positive")
    if not relays:
        raise ValueError("zap request needs at least one relay")

    tags: list[list[str]] = [
        ["relays", *relays],
        ["amount", str(amount_msats)],
        ["p", recipient_pubkey],
        ["lnurl", lnurl],
    ]
    if a_tag:
        tags.append(["a", a_tag])

    kwargs = {} if created_at is None else {"created_at": created_at}
    return UnsignedEvent(kind=EventKind.ZAP_REQUEST, content=comment, tags=tags, **kwargs)
