"""
NIP-01 canonical event serialization, ids and Schnorr signatures.

The event id is the SHA-256 of the UTF-8 bytes of

```text
[0,"<pubkey>",<created_at>,<kind>,[["tag","value"],...],"<content>"]
```

with no whitespace and strings escaped as NIP-01 prescribes: backslash,
double quote, line feed, carriage return, tab, backspace and form feed are
escaped; every other character (including non-ASCII) is emitted verbatim.
``json.dumps`` cannot be used because it escapes other control characters
as ``\\uXXXX``, which would change the hash.

Signatures are BIP-340 Schnorr over the 32-byte id, via ``coincurve``.

Examples:
    ```python
    unsigned = UnsignedEvent(kind=1, content="hello", created_at=1_700_000_000)
    event = finalize_event(unsigned, keypair)
    verify_event(event)   # True
    ```
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

from coincurve import PrivateKey, PublicKeyXOnly

from nostrtv.models.event import ProtocolEvent, UnsignedEvent
from nostrtv.models.keys import KeyPair


_ESCAPES: dict[str, str] = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}


def escape_string(value: str) -> str:
    """Escape *value* for the canonical serialization (without quotes)."""
    if not any(ch in _ESCAPES for ch in value):
        return value
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def _quote(value: str) -> str:
    return f'"{escape_string(value)}"'


def serialize_event(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Sequence[Sequence[str]],
    content: str,
) -> str:
    """Return the canonical serialization used for hashing."""
    tags_json = ",".join("[" + ",".join(_quote(item) for item in tag) + "]" for tag in tags)
    return f"[0,{_quote(pubkey)},{created_at},{kind},[{tags_json}],{_quote(content)}]"


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Sequence[Sequence[str]],
    content: str,
) -> bytes:
    """Return the 32-byte event id for the given fields."""
    serialized = serialize_event(pubkey, created_at, kind, tags, content)
    return hashlib.sha256(serialized.encode("utf-8")).digest()


def sign(event_id: bytes, private_key: bytes) -> bytes:
    """Return a 64-byte BIP-340 Schnorr signature over *event_id*."""
    if len(event_id) != 32:
        raise ValueError(f"event id must be 32 bytes, got {len(event_id)}")
    return PrivateKey(private_key).sign_schnorr(event_id)


def verify_signature(event_id: bytes, signature: bytes, pubkey: bytes) -> bool:
    """Return True if *signature* is a valid Schnorr signature by *pubkey*."""
    if len(event_id) != 32 or len(signature) != 64 or len(pubkey) != 32:
        return False
    try:
        return PublicKeyXOnly(pubkey).verify(signature, event_id)
    except ValueError:
        # pubkey is not a valid x coordinate
        return False


def finalize_event(unsigned: UnsignedEvent, keys: KeyPair) -> ProtocolEvent:
    """Fill in ``pubkey``, ``id`` and ``sig`` for *unsigned* using *keys*."""
    pubkey = keys.public_key_hex
    event_id = compute_event_id(
        pubkey, unsigned.created_at, unsigned.kind, unsigned.tags, unsigned.content
    )
    return ProtocolEvent(
        id=event_id.hex(),
        pubkey=pubkey,
        created_at=unsigned.created_at,
        kind=unsigned.kind,
        tags=unsigned.tags,
        content=unsigned.content,
        sig=sign(event_id, keys.private_key).hex(),
    )


def verify_event_id(event: ProtocolEvent) -> bool:
    """Return True if ``event.id`` matches its canonical serialization."""
    expected = compute_event_id(
        event.pubkey, event.created_at, event.kind, event.tags, event.content
    )
    return expected.hex() == event.id


def verify_event(event: ProtocolEvent) -> bool:
    """Return True if both the id and the signature of *event* are valid."""
    if not verify_event_id(event):
        return False
    return verify_signature(
        bytes.fromhex(event.id), bytes.fromhex(event.sig), bytes.fromhex(event.pubkey)
    )
