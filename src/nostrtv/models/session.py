"""
Remote-signer session records.

[SavedSession][nostrtv.models.session.SavedSession] is the opaque record
exchanged with the session-store collaborator.
[BunkerSession][nostrtv.models.session.BunkerSession] is the live, in-memory
state of a remote-signer session; it is replaced (never mutated) as the
handshake progresses.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from ._validation import validate_hex, validate_str_no_null, validate_timestamp
from .keys import KeyPair


@dataclass(frozen=True, slots=True)
class SavedSession:
    """Persisted remote-signer session.

    Attributes:
        user_pubkey: Hex pubkey of the user the bunker signs for.
        bunker_pubkey: Hex pubkey the bunker answers from.
        client_private_key: Hex private key of the ephemeral client key pair
            (hidden from ``repr``).
        relay_url: Relay the bunker listens on.
        secret: Connection secret from the original ``nostrconnect://`` URI.
    """

    user_pubkey: str
    bunker_pubkey: str
    client_private_key: str = field(repr=False)
    relay_url: str
    secret: str = field(repr=False)

    def __post_init__(self) -> None:
        validate_hex(self.user_pubkey, "user_pubkey", 64)
        validate_hex(self.bunker_pubkey, "bunker_pubkey", 64)
        validate_hex(self.client_private_key, "client_private_key", 64)
        validate_str_no_null(self.relay_url, "relay_url")
        validate_str_no_null(self.secret, "secret")

    def to_dict(self) -> dict[str, str]:
        return {
            "user_pubkey": self.user_pubkey,
            "bunker_pubkey": self.bunker_pubkey,
            "client_private_key": self.client_private_key,
            "relay_url": self.relay_url,
            "secret": self.secret,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SavedSession:
        return cls(
            user_pubkey=data["user_pubkey"],
            bunker_pubkey=data["bunker_pubkey"],
            client_private_key=data["client_private_key"],
            relay_url=data["relay_url"],
            secret=data["secret"],
        )


@dataclass(frozen=True, slots=True)
class BunkerSession:
    """Live remote-signer session state.

    Attributes:
        client_keys: Ephemeral client key pair used to talk to the bunker.
        secret: Random connection secret.
        relay_url: Relay carrying the signer traffic.
        session_started_at: Unix time the session (or its restore) began;
            anchors the staleness window.
        bunker_pubkey: Bunker pubkey, known once the handshake ack arrives.
        user_pubkey: User pubkey, known once ``get_public_key`` returns.
    """

    client_keys: KeyPair
    secret: str = field(repr=False)
    relay_url: str
    session_started_at: int
    bunker_pubkey: str | None = None
    user_pubkey: str | None = None

    def __post_init__(self) -> None:
        validate_timestamp(self.session_started_at, "session_started_at")
        if self.bunker_pubkey is not None:
            validate_hex(self.bunker_pubkey, "bunker_pubkey", 64)
        if self.user_pubkey is not None:
            validate_hex(self.user_pubkey, "user_pubkey", 64)

    @property
    def client_pubkey(self) -> str:
        return self.client_keys.public_key_hex

    def with_bunker(self, bunker_pubkey: str) -> BunkerSession:
        return replace(self, bunker_pubkey=bunker_pubkey)

    def with_user(self, user_pubkey: str) -> BunkerSession:
        return replace(self, user_pubkey=user_pubkey)

    def to_saved(self) -> SavedSession:
        """Snapshot the session for persistence.

        Raises:
            ValueError: If the handshake has not produced both pubkeys yet.
        """
        if self.bunker_pubkey is None or self.user_pubkey is None:
            raise ValueError("session is not established; nothing to persist")
        return SavedSession(
            user_pubkey=self.user_pubkey,
            bunker_pubkey=self.bunker_pubkey,
            client_private_key=self.client_keys.private_key_hex,
            relay_url=self.relay_url,
            secret=self.secret,
        )
