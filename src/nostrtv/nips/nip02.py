"""NIP-02 follow lists (kind 3 contact lists)."""

from __future__ import annotations

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.models._validation import is_hex
from nostrtv.models.constants import EventKind
from nostrtv.models.event import ProtocolEvent


def parse_follow_list(event: ProtocolEvent) -> frozenset[str]:
    """Return the pubkeys named by the ``p`` tags of a kind 3 event.

    Tags whose value is not a 64-char hex pubkey are skipped.

    Raises:
        ProtocolParseError: If the event is not kind 3.
    """
    if event.kind != EventKind.CONTACTS:
        raise ProtocolParseError(f"expected kind 3, got {event.kind}")
    return frozenset(
        pubkey.lower() for pubkey in event.tag_values("p") if is_hex(pubkey.lower(), 64)
    )


__all__ = ["parse_follow_list"]
