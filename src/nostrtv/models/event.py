"""
Immutable Nostr event models and JSON conversion.

[ProtocolEvent][nostrtv.models.event.ProtocolEvent] is a fully signed event
as exchanged with relays; [UnsignedEvent][nostrtv.models.event.UnsignedEvent]
is the template a caller hands to a signer (local key or remote bunker),
which adds ``pubkey``, ``id`` and ``sig``.

Both are pure data: hashing, signing and verification live in
[nostrtv.nips.nip01][] so the models layer stays free of protocol logic.

See Also:
    [finalize_event()][nostrtv.nips.nip01.finalize_event]: Turns an
        [UnsignedEvent][nostrtv.models.event.UnsignedEvent] into a signed
        [ProtocolEvent][nostrtv.models.event.ProtocolEvent].
    [verify_event()][nostrtv.nips.nip01.verify_event]: Checks id and signature.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ._validation import (
    freeze_tags,
    validate_hex,
    validate_int_range,
    validate_timestamp,
)
from .constants import EVENT_KIND_MAX


_EVENT_FIELDS = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")


def _first_tag_value(tags: tuple[tuple[str, ...], ...], name: str) -> str | None:
    for tag in tags:
        if len(tag) >= 2 and tag[0] == name:
            return tag[1]
    return None


@dataclass(frozen=True, slots=True)
class ProtocolEvent:
    """Immutable signed Nostr event.

    Attributes:
        id: 64-char hex SHA-256 of the canonical serialization.
        pubkey: 64-char hex x-only public key of the author.
        created_at: Unix timestamp in seconds.
        kind: Event kind (``0..65535``).
        tags: Ordered tuple of tags, each an ordered tuple of strings.
        content: Arbitrary content string.
        sig: 128-char hex BIP-340 Schnorr signature.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a hex field is malformed or ``kind`` is out of range.

    Note:
        Construction only checks shapes. Whether ``id`` matches the content
        and ``sig`` verifies is decided by
        [verify_event()][nostrtv.nips.nip01.verify_event].
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str = field(repr=False)

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 64)
        validate_hex(self.pubkey, "pubkey", 64)
        validate_timestamp(self.created_at, "created_at")
        validate_int_range(self.kind, "kind", 0, EVENT_KIND_MAX)
        object.__setattr__(self, "kind", int(self.kind))
        object.__setattr__(self, "tags", freeze_tags(self.tags))
        if not isinstance(self.content, str):
            raise TypeError(f"content must be a str, got {type(self.content).__name__}")
        validate_hex(self.sig, "sig", 128)

    def tag_value(self, name: str) -> str | None:
        """Return the first value of the first tag called *name*, if any."""
        return _first_tag_value(self.tags, name)

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag called *name*."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]

    def to_dict(self) -> dict[str, Any]:
        """Return the wire-format event object."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProtocolEvent:
        """Build an event from a decoded wire object.

        Raises:
            TypeError: If *data* is not a mapping or a field has the wrong type.
            ValueError: If a required field is missing or malformed.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"event must be an object, got {type(data).__name__}")
        missing = [name for name in _EVENT_FIELDS if name not in data]
        if missing:
            raise ValueError(f"event is missing fields: {', '.join(missing)}")
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=data["tags"],
            content=data["content"],
            sig=data["sig"],
        )

    @classmethod
    def from_json(cls, text: str) -> ProtocolEvent:
        """Parse an event from its JSON text.

        Raises:
            ValueError: If the text is not valid JSON or not a valid event.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"event is not valid JSON: {e}") from None
        return cls.from_dict(data)


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """Event template without author, id or signature.

    This is the payload a NIP-46 ``sign_event`` request carries: the remote
    signer fills in ``pubkey``, computes ``id`` and signs it.

    Attributes:
        kind: Event kind (``0..65535``).
        content: Content string.
        tags: Ordered tuple of string tuples.
        created_at: Unix timestamp; defaults to now.
    """

    kind: int
    content: str = ""
    tags: tuple[tuple[str, ...], ...] = ()
    created_at: int = field(default_factory=lambda: int(time.time()))

    def __post_init__(self) -> None:
        validate_int_range(self.kind, "kind", 0, EVENT_KIND_MAX)
        object.__setattr__(self, "kind", int(self.kind))
        if not isinstance(self.content, str):
            raise TypeError(f"content must be a str, got {type(self.content).__name__}")
        object.__setattr__(self, "tags", freeze_tags(self.tags))
        validate_timestamp(self.created_at, "created_at")

    def tag_value(self, name: str) -> str | None:
        return _first_tag_value(self.tags, name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "content": self.content,
            "tags": [list(tag) for tag in self.tags],
            "created_at": self.created_at,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> UnsignedEvent:
        """Parse an unsigned template, defaulting missing fields.

        Raises:
            ValueError: If the text is not a JSON object with an integer ``kind``.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"unsigned event is not valid JSON: {e}") from None
        if not isinstance(data, dict) or "kind" not in data:
            raise ValueError("unsigned event must be an object with a kind")
        kwargs: dict[str, Any] = {
            "kind": data["kind"],
            "content": data.get("content", ""),
            "tags": data.get("tags", []),
        }
        if "created_at" in data:
            kwargs["created_at"] = data["created_at"]
        return cls(**kwargs)
