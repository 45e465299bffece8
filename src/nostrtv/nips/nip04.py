"""
NIP-04 legacy encryption (AES-256-CBC).

The AES key is the SHA-256 of the ECDH shared x-coordinate. Payloads have
the form ``base64(ciphertext) + "?iv=" + base64(iv)``.

Kept for reading legacy direct messages and for signers that still speak
NIP-04; new traffic uses [nip44][nostrtv.nips.nip44].
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from nostrtv.core.exceptions import DecryptError
from nostrtv.utils.keys import shared_secret


_IV_SEPARATOR = "?iv="
_IV_LENGTH = 16


def _aes_key(private_key: bytes, peer_public_key: bytes) -> bytes:
    return hashlib.sha256(shared_secret(private_key, peer_public_key)).digest()


def encrypt(
    plaintext: str,
    private_key: bytes,
    peer_public_key: bytes,
    *,
    iv: bytes | None = None,
) -> str:
    """Encrypt *plaintext* for *peer_public_key*.

    Args:
        plaintext: Message text (UTF-8 encoded before encryption).
        private_key: Sender's 32-byte private key.
        peer_public_key: Recipient's 32-byte x-only public key.
        iv: Fixed 16-byte IV for deterministic tests; random by default.
    """
    iv = iv if iv is not None else os.urandom(_IV_LENGTH)
    if len(iv) != _IV_LENGTH:
        raise ValueError(f"iv must be {_IV_LENGTH} bytes")

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(_aes_key(private_key, peer_public_key)), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    ct_b64 = base64.b64encode(ciphertext).decode("ascii")
    iv_b64 = base64.b64encode(iv).decode("ascii")
    return f"{ct_b64}{_IV_SEPARATOR}{iv_b64}"


def decrypt(payload: str, private_key: bytes, peer_public_key: bytes) -> str:
    """Decrypt a NIP-04 *payload* sent by *peer_public_key*.

    Raises:
        DecryptError: If the separator is missing, the base64 or IV is
            malformed, the padding is invalid, or the plaintext is not UTF-8.
    """
    ct_b64, sep, iv_b64 = payload.partition(_IV_SEPARATOR)
    if not sep:
        raise DecryptError("NIP-04 payload is missing the ?iv= separator")

    try:
        ciphertext = base64.b64decode(ct_b64, validate=True)
        iv = base64.b64decode(iv_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptError(f"NIP-04 payload is not valid base64: {e}") from None
    if len(iv) != _IV_LENGTH:
        raise DecryptError(f"NIP-04 IV must be {_IV_LENGTH} bytes, got {len(iv)}")
    if not ciphertext or len(ciphertext) % _IV_LENGTH:
        raise DecryptError("NIP-04 ciphertext length is not a multiple of the block size")

    try:
        key = _aes_key(private_key, peer_public_key)
    except ValueError as e:
        raise DecryptError(f"invalid peer public key: {e}") from None

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except ValueError:
        # UnicodeDecodeError is a ValueError
        raise DecryptError("NIP-04 padding or encoding is invalid") from None
