"""
NIP-46 remote signing codec.

Covers the pieces of the protocol that are pure data: the connection URIs a
client shows to a signer, and the JSON request/response bodies carried
(encrypted) inside kind 24133 events.

```text
nostrconnect://<client-pubkey>?relay=<relay>&secret=<secret>&name=<app name>
bunker://<bunker-pubkey>?relay=<relay>&secret=<secret>          (legacy)

request:  {"id": "<uuid>", "method": "sign_event", "params": ["<json>"]}
response: {"id": "<uuid>", "result": "<string>", "error": "<string>"}
```

See Also:
    [RemoteSignerSession][nostrtv.services.signer.RemoteSignerSession]:
        Drives the handshake and RPC on top of this codec.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Final
from urllib.parse import parse_qs, urlencode, urlsplit

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.models._validation import is_hex
from nostrtv.models.constants import EventKind


NIP46_KIND: Final[int] = int(EventKind.NOSTR_CONNECT)
NOSTRCONNECT_SCHEME: Final[str] = "nostrconnect"
BUNKER_SCHEME: Final[str] = "bunker"
ACK_RESULT: Final[str] = "ack"


class Method(StrEnum):
    """NIP-46 method names used by the client."""

    CONNECT = "connect"
    GET_PUBLIC_KEY = "get_public_key"
    SIGN_EVENT = "sign_event"
    PING = "ping"
    NIP04_ENCRYPT = "nip04_encrypt"
    NIP04_DECRYPT = "nip04_decrypt"
    NIP44_ENCRYPT = "nip44_encrypt"
    NIP44_DECRYPT = "nip44_decrypt"


# ---------------------------------------------------------------------------
# Connection URIs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectionUri:
    """Decoded ``nostrconnect://`` or ``bunker://`` URI.

    Attributes:
        scheme: ``nostrconnect`` or ``bunker``.
        pubkey: Client pubkey (nostrconnect) or signer pubkey (bunker).
        relays: Relay URLs, in the order given.
        secret: Connection secret, if present.
        name: Application name, if present.
    """

    scheme: str
    pubkey: str
    relays: tuple[str, ...]
    secret: str | None = field(default=None, repr=False)
    name: str | None = None


def build_connection_uri(
    client_pubkey: str,
    relay: str,
    secret: str,
    app_name: str | None = None,
) -> str:
    """Build the ``nostrconnect://`` URI a signer scans to start a session."""
    params = {"relay": relay, "secret": secret}
    if app_name:
        params["name"] = app_name
    return f"{NOSTRCONNECT_SCHEME}://{client_pubkey}?{urlencode(params)}"


def build_bunker_uri(bunker_pubkey: str, relay: str, secret: str | None = None) -> str:
    """Build a legacy ``bunker://`` URI."""
    params = {"relay": relay}
    if secret:
        params["secret"] = secret
    return f"{BUNKER_SCHEME}://{bunker_pubkey}?{urlencode(params)}"


def parse_connection_uri(uri: str) -> ConnectionUri:
    """Decode a ``nostrconnect://`` or ``bunker://`` URI.

    Raises:
        ProtocolParseError: If the scheme is unknown, the pubkey is not 64
            hex characters, or no relay is given.
    """
    parts = urlsplit(uri.strip())
    scheme = parts.scheme.lower()
    if scheme not in (NOSTRCONNECT_SCHEME, BUNKER_SCHEME):
        raise ProtocolParseError(f"unsupported connection URI scheme: {parts.scheme!r}")

    pubkey = (parts.netloc or parts.path.lstrip("/")).lower()
    if not is_hex(pubkey, 64):
        raise ProtocolParseError("connection URI pubkey must be 64 hex characters")

    query = parse_qs(parts.query)
    relays = tuple(query.get("relay", []))
    if not relays:
        raise ProtocolParseError("connection URI has no relay")

    return ConnectionUri(
        scheme=scheme,
        pubkey=pubkey,
        relays=relays,
        secret=query.get("secret", [None])[0],
        name=query.get("name", [None])[0],
    )


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Nip46Request:
    """A remote signing request body.

    Every parameter is a string; structured values (such as an unsigned
    event) are JSON encoded by the caller before being passed in.
    """

    method: str
    params: tuple[str, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if not isinstance(self.params, Sequence) or isinstance(self.params, str):
            raise TypeError("params must be a sequence of str")
        params = tuple(self.params)
        for p in params:
            if not isinstance(p, str):
                raise TypeError(f"params must be str, got {type(p).__name__}")
        object.__setattr__(self, "params", params)

    def to_json(self) -> str:
        return json.dumps(
            {"id": self.id, "method": self.method, "params": list(self.params)},
            ensure_ascii=False,
            separators=(",", ":"),
        )


@dataclass(frozen=True, slots=True)
class Nip46Response:
    """A remote signing response body; every field is optional."""

    id: str | None = None
    result: str | None = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    def is_ack(self, secret: str | None) -> bool:
        """Return True if this is a connect acknowledgement for *secret*."""
        if self.result is None:
            return False
        return self.result == ACK_RESULT or (bool(secret) and self.result == secret)

    @classmethod
    def from_json(cls, text: str) -> Nip46Response:
        """Decode a decrypted response body.

        Raises:
            ProtocolParseError: If the text is not a JSON object or a field
                has an unexpected type.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ProtocolParseError(f"signer response is not valid JSON: {e}") from None
        if not isinstance(data, dict):
            raise ProtocolParseError("signer response is not a JSON object")
        return cls(
            id=_opt_str(data, "id"),
            result=_opt_str(data, "result"),
            error=_opt_str(data, "error"),
        )


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    raise ProtocolParseError(f"signer response field {key!r} must be a string")
