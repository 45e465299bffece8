"""Shared constants for the models layer.

Defines enumerations and other constants used across model, protocol and
service modules. Placing them here avoids circular imports between the
models and nips layers.

See Also:
    [nostrtv.core.pool][]: Publishes the aggregate
        [ConnectionState][nostrtv.models.constants.ConnectionState].
    [nostrtv.nips.event_builders][]: Builds events of the kinds listed in
        [EventKind][nostrtv.models.constants.EventKind].
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class ConnectionState(StrEnum):
    """Aggregate connection state of a relay pool.

    Attributes:
        DISCONNECTED: No relay link is open.
        CONNECTING: Links are being opened and none is open yet.
        CONNECTED: At least one relay link is open.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class EventKind(IntEnum):
    """Nostr event kinds produced or consumed by the client.

    Attributes:
        METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note (NIP-01).
        CONTACTS: Kind 3 -- follow list (NIP-02).
        ENCRYPTED_DM: Kind 4 -- legacy encrypted direct message (NIP-04).
        DELETION: Kind 5 -- event deletion request (NIP-09).
        REACTION: Kind 7 -- reaction (NIP-25).
        LIVE_CHAT: Kind 1311 -- live activity chat message (NIP-53).
        ZAP_REQUEST: Kind 9734 -- zap request (NIP-57).
        ZAP_RECEIPT: Kind 9735 -- zap receipt (NIP-57).
        PRESENCE: Kind 10312 -- room presence (NIP-53).
        NOSTR_CONNECT: Kind 24133 -- remote signing request/response (NIP-46).
        LIVE_EVENT: Kind 30311 -- live activity (NIP-53).
    """

    METADATA = 0
    TEXT_NOTE = 1
    CONTACTS = 3
    ENCRYPTED_DM = 4
    DELETION = 5
    REACTION = 7
    LIVE_CHAT = 1_311
    ZAP_REQUEST = 9_734
    ZAP_RECEIPT = 9_735
    PRESENCE = 10_312
    NOSTR_CONNECT = 24_133
    LIVE_EVENT = 30_311


EVENT_KIND_MAX = 65_535

# secp256k1 group order; valid private keys are 1 <= k < SECP256K1_ORDER
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
