"""
Remote-signer authentication state.

``AuthState`` is a closed union of frozen variants. Consumers match on it
exhaustively:

```python
match session.state:
    case NotAuthenticated():
        ...
    case WaitingForScan(uri=uri):
        show_qr(uri)
    case Connecting():
        ...
    case Authenticated(pubkey=pubkey):
        ...
    case AuthError(message=message):
        ...
```
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class NotAuthenticated:
    """No session; the initial and post-logout state."""


@dataclass(frozen=True, slots=True)
class WaitingForScan:
    """Connection URI issued; waiting for the signer to acknowledge it."""

    uri: str


@dataclass(frozen=True, slots=True)
class Connecting:
    """Signer acknowledged; the user pubkey is being requested."""


@dataclass(frozen=True, slots=True)
class Authenticated:
    """Signer session established for *pubkey*."""

    pubkey: str


@dataclass(frozen=True, slots=True)
class AuthError:
    """Login failed; *message* is suitable for display."""

    message: str


AuthState = NotAuthenticated | WaitingForScan | Connecting | Authenticated | AuthError
