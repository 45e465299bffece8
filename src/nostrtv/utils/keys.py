"""Nostr key management utilities.

Key generation and ECDH shared-secret derivation for the client.

Warning:
    Private keys must **never** be stored in configuration files, source code,
    or logged to any output. The only place a private key is written to disk is
    the session-store collaborator
    ([FileSessionStore][nostrtv.services.session_store.FileSessionStore]),
    which holds the ephemeral client key of a remote-signer session.

Examples:
    ```python
    kp = generate_keypair()
    peer = generate_keypair()
    assert shared_secret(kp.private_key, peer.public_key) == shared_secret(
        peer.private_key, kp.public_key
    )
    ```
"""

from __future__ import annotations

import secrets

from coincurve import PublicKey

from nostrtv.models.keys import KeyPair, is_valid_scalar


def generate_keypair() -> KeyPair:
    """Draw a uniformly random private key and derive its x-only public key.

    Scalars outside ``1..n-1`` are rejected and redrawn; the caller never
    sees an invalid key.
    """
    while True:
        candidate = secrets.token_bytes(32)
        if is_valid_scalar(candidate):
            return KeyPair.from_private_key(candidate)


def shared_secret(private_key: bytes, peer_public_key: bytes) -> bytes:
    """Return the x-coordinate of ``private_key * lift_x(peer_public_key)``.

    The peer's x-only key is lifted to the even-y point by prefixing ``0x02``.

    Args:
        private_key: Our 32-byte secret scalar.
        peer_public_key: The peer's 32-byte x-only public key.

    Returns:
        The 32-byte shared x-coordinate (unhashed).

    Raises:
        ValueError: If the peer key is not 32 bytes or not on the curve.
    """
    if len(peer_public_key) != 32:
        raise ValueError(f"peer public key must be 32 bytes, got {len(peer_public_key)}")
    point = PublicKey(b"\x02" + peer_public_key)
    return point.multiply(private_key).format(compressed=True)[1:]

