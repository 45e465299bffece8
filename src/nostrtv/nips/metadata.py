"""
Kind 0 user metadata.

The event content is a JSON object written by whatever client the user
edits their profile with. Unknown keys are ignored and wrongly typed values
are dropped field by field, so one bad field never hides the rest.
"""

from __future__ import annotations

import json

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.models.constants import EventKind
from nostrtv.models.event import ProtocolEvent
from nostrtv.models.stream import Profile

from .parsing import FieldSpec, parse_fields


_PROFILE_SPEC = FieldSpec(
    str_fields=frozenset(
        {"name", "display_name", "displayName", "picture", "about", "nip05", "lud16", "lud06"}
    ),
)


def parse_profile(event: ProtocolEvent) -> Profile:
    """Build a [Profile][nostrtv.models.stream.Profile] from a kind 0 event.

    ``displayName`` (used by some older clients) is accepted when
    ``display_name`` is absent. Empty strings count as absent.

    Raises:
        ProtocolParseError: If the event is not kind 0 or its content is not
            a JSON object.
    """
    if event.kind != EventKind.METADATA:
        raise ProtocolParseError(f"expected kind 0, got {event.kind}")
    try:
        data = json.loads(event.content)
    except json.JSONDecodeError as e:
        raise ProtocolParseError(f"profile {event.id} content is not JSON: {e}") from None
    if not isinstance(data, dict):
        raise ProtocolParseError(f"profile {event.id} content is not an object")

    fields = {k: v.strip() for k, v in parse_fields(data, _PROFILE_SPEC).items() if v.strip()}
    legacy_display_name = fields.pop("displayName", None)
    fields.setdefault("display_name", legacy_display_name)
    return Profile(pubkey=event.pubkey, created_at=event.created_at, **fields)


__all__ = ["parse_profile"]
