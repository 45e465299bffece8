"""Nostr Implementation Possibilities -- wire formats and cryptography.

The NIPs layer sits in the middle of the diamond DAG, depending on
[nostrtv.models][nostrtv.models], [nostrtv.utils][nostrtv.utils] and the
exception hierarchy in [nostrtv.core.exceptions][nostrtv.core.exceptions].
Everything here is pure computation: no sockets, no tasks.

Attributes:
    nip01: Canonical event serialization, event id, BIP-340 Schnorr
        signing and verification.
    nip04: Legacy AES-256-CBC direct-message encryption
        (``base64(ct)?iv=base64(iv)``).
    nip44: Version 2 payload encryption: ECDH, HMAC/HKDF key derivation,
        bucketed padding and ChaCha20-Poly1305.
    nip46: Remote signer (Nostr Connect) URIs and JSON-RPC payloads.
    messages: Client to relay message builders and the relay message parser.
    event_builders: Unsigned live chat, presence and zap request events.
    nip02: Follow lists.
    nip53: Live activity announcements and live chat messages.
    nip57: Zap receipts and bolt11 invoice amounts.
    metadata: Kind 0 user profiles.
    parsing: Declarative field parsing for user-published JSON.

See Also:
    [nostrtv.services.signer][nostrtv.services.signer]: Uses nip44/nip46 to
        talk to a remote signer.
    [nostrtv.core.pool.RelayPool][nostrtv.core.pool.RelayPool]: Uses
        ``messages`` to frame and parse relay traffic.
"""

from . import (
    event_builders,
    messages,
    metadata,
    nip01,
    nip02,
    nip04,
    nip44,
    nip46,
    nip53,
    nip57,
    parsing,
)


__all__ = [
    "event_builders",
    "messages",
    "metadata",
    "nip01",
    "nip02",
    "nip04",
    "nip44",
    "nip46",
    "nip53",
    "nip57",
    "parsing",
]
