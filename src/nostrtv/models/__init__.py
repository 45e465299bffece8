"""Pure frozen dataclasses for protocol data, signer sessions and stream content.

The models layer is the foundation of the package. It does no I/O and has no
dependencies on other nostrtv packages. Every model uses
``@dataclass(frozen=True, slots=True)`` and validates in ``__post_init__``
so invalid instances never escape the constructor.

Attributes:
    KeyPair: Secp256k1 key pair with x-only public key; private key hidden
        from ``repr``.
    ProtocolEvent: Signed Nostr event with wire (de)serialization.
    UnsignedEvent: Event template handed to a signer.
    Filter: Subscription filter for ``REQ`` messages.
    Relay: Normalized ``ws://``/``wss://`` relay URL.
    SavedSession: Record exchanged with the session store.
    BunkerSession: Live remote-signer session state.
    AuthState: Union of remote-signer login states.
    ConnectionState: Aggregate relay pool connection state.
    EventKind: Event kinds used by the client.
    LiveStream, Profile, ChatMessage, ZapReceipt: Parsed live activity,
        user metadata, live chat and zap receipt content.

See Also:
    [nostrtv.nips][]: Protocol logic (hashing, signing, encryption, codecs)
        operating on these models.
"""

from .auth import (
    Authenticated,
    AuthError,
    AuthState,
    Connecting,
    NotAuthenticated,
    WaitingForScan,
)
from .constants import EVENT_KIND_MAX, ConnectionState, EventKind
from .event import ProtocolEvent, UnsignedEvent
from .filter import Filter
from .keys import KeyPair
from .relay import Relay, normalize_relay_url
from .session import BunkerSession, SavedSession
from .stream import ChatMessage, LiveStream, Profile, ZapReceipt


__all__ = [
    "EVENT_KIND_MAX",
    "AuthError",
    "AuthState",
    "Authenticated",
    "BunkerSession",
    "ChatMessage",
    "Connecting",
    "ConnectionState",
    "EventKind",
    "Filter",
    "KeyPair",
    "LiveStream",
    "NotAuthenticated",
    "Profile",
    "ProtocolEvent",
    "Relay",
    "SavedSession",
    "UnsignedEvent",
    "WaitingForScan",
    "ZapReceipt",
    "normalize_relay_url",
]
