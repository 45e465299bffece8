"""nostrtv exception hierarchy.

Provides typed exceptions for every failure category of the client core.
Nothing here is process fatal: connectivity problems surface through the
aggregate [ConnectionState][nostrtv.models.constants.ConnectionState],
malformed relay frames are logged and dropped, crypto failures stay local
to the message that caused them, and signer failures are returned to the
caller that issued the request.

Exception hierarchy:

```text
NostrTvError (base -- never raised directly)
├── ConfigurationError          -- config validation, missing env keys, bad YAML
├── ConnectivityError           -- relay unreachable, write not accepted
├── ProtocolParseError          -- malformed relay frame or signer payload
├── CryptoError                 -- decryption or signature failure
│   ├── DecryptError            -- bad ciphertext, padding, MAC or encoding
│   ├── UnsupportedVersionError -- payload version byte is not supported
│   └── InvalidSignatureError   -- event id or Schnorr signature mismatch
└── SignerError                 -- remote signer RPC failures
    ├── SignerTimeoutError      -- RPC or login exceeded its deadline
    ├── SignerCancelledError    -- request abandoned by logout/teardown
    ├── StaleResponseError      -- response predates its request
    ├── NotAuthenticatedError   -- no signer session established
    └── SignerRequestError      -- signer answered with an error string
```

See Also:
    [RelayPool][nostrtv.core.pool.RelayPool]: Raises
        [ConnectivityError][nostrtv.core.exceptions.ConnectivityError] when
        no relay accepts a write that must be delivered.
    [RemoteSignerSession][nostrtv.services.signer.RemoteSignerSession]:
        Raises the [SignerError][nostrtv.core.exceptions.SignerError] family.
"""

from __future__ import annotations


class NostrTvError(Exception):
    """Base exception for all nostrtv errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostrTvError):
    """Invalid or missing configuration (YAML, env vars, CLI flags).

    See Also:
        [load_yaml()][nostrtv.core.yaml.load_yaml]: YAML loading function
            that may trigger configuration errors.
    """


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(NostrTvError):
    """Relay unreachable or a write was not accepted by any open link.

    Transient: callers may retry ``connect`` and re-send.
    """


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolParseError(NostrTvError):
    """A relay frame or signer payload could not be parsed.

    Raised by [parse_relay_message()][nostrtv.nips.messages.parse_relay_message]
    and the NIP-46 codec. Consumers log and drop the offending frame.
    """


# ---------------------------------------------------------------------------
# Crypto
# ---------------------------------------------------------------------------


class CryptoError(NostrTvError):
    """Base for decryption and signature failures.

    Scoped to the single message being handled; other in-flight operations
    are unaffected.
    """


class DecryptError(CryptoError):
    """Ciphertext could not be decrypted (encoding, padding or authentication)."""


class UnsupportedVersionError(CryptoError):
    """Encrypted payload carries a version byte this client does not support."""


class InvalidSignatureError(CryptoError):
    """Event id does not match its content or the signature does not verify."""


# ---------------------------------------------------------------------------
# Remote signer
# ---------------------------------------------------------------------------


class SignerError(NostrTvError):
    """Base for remote signer (NIP-46) failures."""


class SignerTimeoutError(SignerError, TimeoutError):
    """A signer RPC or login did not complete before its deadline.

    Also a builtin ``TimeoutError`` so generic timeout handling catches it.
    """


class SignerCancelledError(SignerError):
    """The pending request was abandoned because the session was torn down."""


class StaleResponseError(SignerError):
    """A response's ``created_at`` precedes its request beyond the drift buffer.

    Raised by [PendingRequest.check_fresh()][nostrtv.services.signer.pending.PendingRequest.check_fresh]
    and handled inside the session: the response is ignored and the request
    stays pending, so callers never see it.
    """


class NotAuthenticatedError(SignerError):
    """An operation requires a connected signer session and none exists."""


class SignerRequestError(SignerError):
    """The signer answered a request with a non-empty ``error`` field."""

    def __init__(self, method: str, message: str) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method
        self.message = message
