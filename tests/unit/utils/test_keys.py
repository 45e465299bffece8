"""
Unit tests for utils.keys module.

Tests:
- generate_keypair() - random key generation
- shared_secret() - ECDH symmetry and validation
"""

from unittest.mock import patch

import pytest

from nostrtv.models.keys import KeyPair
from nostrtv.utils.keys import generate_keypair, shared_secret
from tests.conftest import USER_SECRET


# =============================================================================
# generate_keypair() Tests
# =============================================================================


class TestGenerateKeypair:
    def test_returns_valid_pair(self) -> None:
        kp = generate_keypair()
        assert isinstance(kp, KeyPair)
        assert KeyPair.from_private_key(kp.private_key) == kp

    def test_keys_are_random(self) -> None:
        assert generate_keypair().private_key != generate_keypair().private_key

    def test_redraws_invalid_scalar(self) -> None:
        zero = b"\x00" * 32
        valid = bytes.fromhex(USER_SECRET)
        with patch("nostrtv.utils.keys.secrets.token_bytes", side_effect=[zero, valid]):
            kp = generate_keypair()
        assert kp.private_key == valid


# =============================================================================
# shared_secret() Tests
# =============================================================================


class TestSharedSecret:
    def test_symmetric(self, alice, bob) -> None:
        assert shared_secret(alice.private_key, bob.public_key) == shared_secret(
            bob.private_key, alice.public_key
        )

    def test_length(self, alice, bob) -> None:
        assert len(shared_secret(alice.private_key, bob.public_key)) == 32

    def test_depends_on_peer(self, alice, bob, user_keys) -> None:
        assert shared_secret(alice.private_key, bob.public_key) != shared_secret(
            alice.private_key, user_keys.public_key
        )

    def test_known_value(self, alice, bob) -> None:
        # 1 * (2G) is 2G, whose x coordinate is bob's x-only public key
        assert shared_secret(alice.private_key, bob.public_key) == bob.public_key

    def test_rejects_wrong_length(self, alice) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            shared_secret(alice.private_key, b"\x02" * 33)

    def test_rejects_off_curve(self, alice) -> None:
        with pytest.raises(ValueError):
            shared_secret(alice.private_key, b"\xff" * 32)

