"""
Secp256k1 key pair with x-only public key derivation.

The private scalar is validated against the curve order on construction and
is excluded from ``repr()`` so that a key pair logged or printed by accident
never discloses it.

See Also:
    [generate_keypair()][nostrtv.utils.keys.generate_keypair]: Draws a new
        random key pair.
    [shared_secret()][nostrtv.utils.keys.shared_secret]: ECDH between a key
        pair and a peer's x-only public key.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from coincurve import PrivateKey

from ._validation import validate_bytes
from .constants import SECP256K1_ORDER


def is_valid_scalar(secret: bytes) -> bool:
    """Return True if *secret* is a 32-byte scalar in ``1..n-1``."""
    return len(secret) == 32 and 0 < int.from_bytes(secret, "big") < SECP256K1_ORDER


@dataclass(frozen=True, slots=True)
class KeyPair:
    """Immutable secp256k1 key pair.

    Attributes:
        private_key: 32-byte secret scalar (hidden from ``repr``).
        public_key: 32-byte x-only public key.

    Raises:
        TypeError: If either key is not ``bytes``.
        ValueError: If a key has the wrong length, the scalar is out of range,
            or the public key does not belong to the private key.

    Examples:
        ```python
        kp = KeyPair.from_private_key("3f" * 32)
        kp.public_key_hex   # 64 hex chars
        repr(kp)            # private key not shown
        ```
    """

    private_key: bytes = field(repr=False)
    public_key: bytes

    def __post_init__(self) -> None:
        validate_bytes(self.private_key, "private_key", 32)
        validate_bytes(self.public_key, "public_key", 32)
        if not is_valid_scalar(self.private_key):
            raise ValueError("private_key is outside the secp256k1 scalar range")
        if derive_xonly_public_key(self.private_key) != self.public_key:
            raise ValueError("public_key does not match private_key")

    @classmethod
    def from_private_key(cls, private_key: bytes | str) -> KeyPair:
        """Build a key pair from a raw or hex-encoded private key."""
        if isinstance(private_key, str):
            try:
                private_key = bytes.fromhex(private_key)
            except ValueError:
                raise ValueError("private_key is not valid hex") from None
        validate_bytes(private_key, "private_key", 32)
        if not is_valid_scalar(private_key):
            raise ValueError("private_key is outside the secp256k1 scalar range")
        return cls(private_key, derive_xonly_public_key(private_key))

    @property
    def private_key_hex(self) -> str:
        return self.private_key.hex()

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


def derive_xonly_public_key(private_key: bytes) -> bytes:
    """Compress the public point of *private_key* and drop the prefix byte."""
    return PrivateKey(private_key).public_key.format(compressed=True)[1:]
