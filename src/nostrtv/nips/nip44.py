"""
NIP-44 v2 payload encryption.

Key schedule:

```text
conversation_key = HKDF-Extract(salt="nip44-v2", ikm=ecdh_x(priv, peer))
okm              = HKDF-Expand(conversation_key, info=nonce32, length=76)
chacha_key       = okm[0:32]
chacha_nonce     = okm[32:44]
hmac_key         = okm[44:76]   (reserved; the AEAD tag authenticates)
```

The plaintext is prefixed with its byte length (2 bytes, big endian) and
zero padded to the smallest bucket that fits, then sealed with
ChaCha20-Poly1305. The payload is ``base64(0x02 || nonce32 || ciphertext)``.

Examples:
    ```python
    payload = encrypt("hello", alice.private_key, bob.public_key)
    decrypt(payload, bob.private_key, alice.public_key)   # 'hello'
    ```
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import NamedTuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand

from nostrtv.core.exceptions import DecryptError, UnsupportedVersionError
from nostrtv.utils.keys import shared_secret


VERSION = 2
SALT = b"nip44-v2"
NONCE_LENGTH = 32
MIN_PLAINTEXT_SIZE = 1
MAX_PLAINTEXT_SIZE = 65_535
MIN_PAYLOAD_SIZE = 1 + NONCE_LENGTH + 2

PADDING_BUCKETS: tuple[int, ...] = (
    32,
    64,
    128,
    256,
    512,
    1024,
    2048,
    4096,
    8192,
    16384,
    32768,
    65536,
)


class MessageKeys(NamedTuple):
    """Per-message keys expanded from the conversation key."""

    chacha_key: bytes
    chacha_nonce: bytes
    hmac_key: bytes


# ---------------------------------------------------------------------------
# Key schedule
# ---------------------------------------------------------------------------


def get_conversation_key(private_key: bytes, peer_public_key: bytes) -> bytes:
    """Return the 32-byte conversation key shared by both parties."""
    extractor = hmac.HMAC(SALT, hashes.SHA256())
    extractor.update(shared_secret(private_key, peer_public_key))
    return extractor.finalize()


def get_message_keys(conversation_key: bytes, nonce: bytes) -> MessageKeys:
    """Expand *conversation_key* with *nonce* into the per-message keys."""
    if len(conversation_key) != 32:
        raise ValueError("conversation key must be 32 bytes")
    if len(nonce) != NONCE_LENGTH:
        raise ValueError(f"nonce must be {NONCE_LENGTH} bytes")
    okm = HKDFExpand(algorithm=hashes.SHA256(), length=76, info=nonce).derive(conversation_key)
    return MessageKeys(okm[0:32], okm[32:44], okm[44:76])


# ---------------------------------------------------------------------------
# Padding
# ---------------------------------------------------------------------------


def calc_padded_len(unpadded_len: int) -> int:
    """Return the padded buffer size (length prefix included) for a plaintext.

    The result is the smallest bucket ``>= unpadded_len + 2``. The largest
    plaintext (65535 bytes) does not fit any bucket with its prefix and is
    stored unpadded.

    Raises:
        ValueError: If *unpadded_len* is outside ``1..65535``.
    """
    if not MIN_PLAINTEXT_SIZE <= unpadded_len <= MAX_PLAINTEXT_SIZE:
        raise ValueError(
            f"plaintext must be {MIN_PLAINTEXT_SIZE}..{MAX_PLAINTEXT_SIZE} bytes, got {unpadded_len}"
        )
    needed = unpadded_len + 2
    for bucket in PADDING_BUCKETS:
        if bucket >= needed:
            return bucket
    return needed


def pad(plaintext: bytes) -> bytes:
    """Length-prefix and zero-pad *plaintext*."""
    padded_len = calc_padded_len(len(plaintext))
    buffer = len(plaintext).to_bytes(2, "big") + plaintext
    return buffer + b"\x00" * (padded_len - len(buffer))


def unpad(padded: bytes) -> bytes:
    """Strip the length prefix and padding.

    Raises:
        DecryptError: If the buffer is too short or the declared length is
            zero or larger than the buffer.
    """
    if len(padded) < 2:
        raise DecryptError("padded buffer is too short")
    declared = int.from_bytes(padded[:2], "big")
    if declared == 0 or declared > len(padded) - 2:
        raise DecryptError(f"invalid declared plaintext length: {declared}")
    return padded[2 : 2 + declared]


# ---------------------------------------------------------------------------
# Encrypt / decrypt
# ---------------------------------------------------------------------------


def encrypt_with_conversation_key(
    plaintext: str,
    conversation_key: bytes,
    *,
    nonce: bytes | None = None,
) -> str:
    """Encrypt *plaintext* under an already derived conversation key.

    Args:
        plaintext: Message text, 1..65535 bytes once UTF-8 encoded.
        conversation_key: Result of
            [get_conversation_key()][nostrtv.nips.nip44.get_conversation_key].
        nonce: Fixed 32-byte nonce for deterministic tests; random by default.

    Raises:
        ValueError: If the plaintext size is out of range.
    """
    nonce = nonce if nonce is not None else os.urandom(NONCE_LENGTH)
    keys = get_message_keys(conversation_key, nonce)
    sealed = ChaCha20Poly1305(keys.chacha_key).encrypt(
        keys.chacha_nonce, pad(plaintext.encode("utf-8")), None
    )
    return base64.b64encode(bytes([VERSION]) + nonce + sealed).decode("ascii")


def decrypt_with_conversation_key(payload: str, conversation_key: bytes) -> str:
    """Decrypt a payload under an already derived conversation key.

    Raises:
        UnsupportedVersionError: If the payload version is not 2.
        DecryptError: If the payload is malformed or fails authentication.
    """
    if payload.startswith("#"):
        raise UnsupportedVersionError("payload uses an unsupported encoding")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptError(f"payload is not valid base64: {e}") from None

    if len(data) < MIN_PAYLOAD_SIZE:
        raise DecryptError(f"payload too short: {len(data)} bytes")
    if data[0] != VERSION:
        raise UnsupportedVersionError(f"unsupported payload version: {data[0]}")

    nonce = data[1 : 1 + NONCE_LENGTH]
    sealed = data[1 + NONCE_LENGTH :]
    keys = get_message_keys(conversation_key, nonce)
    try:
        padded = ChaCha20Poly1305(keys.chacha_key).decrypt(keys.chacha_nonce, sealed, None)
    except InvalidTag:
        raise DecryptError("payload failed authentication") from None

    try:
        return unpad(padded).decode("utf-8")
    except UnicodeDecodeError:
        raise DecryptError("plaintext is not valid UTF-8") from None


def encrypt(
    plaintext: str,
    private_key: bytes,
    peer_public_key: bytes,
    *,
    nonce: bytes | None = None,
) -> str:
    """Encrypt *plaintext* from *private_key* to *peer_public_key*."""
    return encrypt_with_conversation_key(
        plaintext, get_conversation_key(private_key, peer_public_key), nonce=nonce
    )


def decrypt(payload: str, private_key: bytes, peer_public_key: bytes) -> str:
    """Decrypt a *payload* sent by *peer_public_key* to *private_key*.

    Raises:
        UnsupportedVersionError: If the payload version is not 2.
        DecryptError: If the payload is malformed, fails authentication, or
            the peer key is not a valid curve point.
    """
    try:
        conversation_key = get_conversation_key(private_key, peer_public_key)
    except ValueError as e:
        raise DecryptError(f"invalid peer public key: {e}") from None
    return decrypt_with_conversation_key(payload, conversation_key)
