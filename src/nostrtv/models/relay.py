"""
Validated Nostr relay URL.

Parses and normalizes WebSocket relay URLs (``ws://`` or ``wss://``) with
RFC 3986 validation. Unlike a crawler, a client must be able to talk to a
relay on ``localhost`` during development, so local hosts are accepted and
the scheme given by the caller is preserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from ._validation import validate_str_no_null


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable, normalized relay endpoint.

    Attributes:
        url: Normalized URL (lowercase scheme and host, default port and
            trailing slash removed).
        scheme: ``ws`` or ``wss``.
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit non-default port, or ``None``.
        path: Path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed, uses another scheme, carries a
            query string or fragment, or contains null bytes.

    Examples:
        ```python
        Relay("WSS://Relay.Primal.net/").url    # 'wss://relay.primal.net'
        Relay("ws://127.0.0.1:7777").port       # 7777
        ```
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    _DEFAULT_PORTS: ClassVar[dict[str, int]] = {"ws": 80, "wss": 443}

    def __post_init__(self) -> None:
        validate_str_no_null(self.raw_url, "Relay URL")

        uri = uri_reference(self.raw_url.strip()).normalize()
        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )
        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        scheme = uri.scheme
        host = uri.host.strip("[]")
        port = int(uri.port) if uri.port else None
        if port == self._DEFAULT_PORTS[scheme]:
            port = None

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        formatted_host = f"[{host}]" if ":" in host else host
        netloc = f"{formatted_host}:{port}" if port else formatted_host

        object.__setattr__(self, "url", f"{scheme}://{netloc}{path or ''}")
        object.__setattr__(self, "scheme", scheme)
        object.__setattr__(self, "host", host)
        object.__setattr__(self, "port", port)
        object.__setattr__(self, "path", path)

    def __str__(self) -> str:
        return self.url


def normalize_relay_url(url: str) -> str:
    """Return the normalized form of *url*; raise ``ValueError`` if invalid."""
    return Relay(url).url
