"""
Unit tests for models.session and models.auth modules.

Tests:
- SavedSession validation and dict round trip
- BunkerSession progression (with_bunker / with_user / to_saved)
- AuthState variants match exhaustively
"""

import pytest

from nostrtv.models.auth import (
    AuthError,
    AuthState,
    Authenticated,
    Connecting,
    NotAuthenticated,
    WaitingForScan,
)
from nostrtv.models.keys import KeyPair
from nostrtv.models.session import BunkerSession, SavedSession


CLIENT_SECRET = "11" * 32  # pragma: allowlist secret


def _saved(**overrides: str) -> SavedSession:
    data = {
        "user_pubkey": "a" * 64,
        "bunker_pubkey": "b" * 64,
        "client_private_key": CLIENT_SECRET,
        "relay_url": "wss://relay.primal.net",
        "secret": "s3cret",
    }
    data.update(overrides)
    return SavedSession(**data)


class TestSavedSession:
    """SavedSession."""

    def test_dict_round_trip(self) -> None:
        saved = _saved()
        assert SavedSession.from_dict(saved.to_dict()) == saved

    def test_repr_hides_secrets(self) -> None:
        text = repr(_saved())
        assert CLIENT_SECRET not in text
        assert "s3cret" not in text

    def test_rejects_bad_pubkey(self) -> None:
        with pytest.raises(ValueError):
            _saved(user_pubkey="npub1")

    def test_from_dict_missing_key(self) -> None:
        data = _saved().to_dict()
        del data["secret"]
        with pytest.raises(KeyError):
            SavedSession.from_dict(data)


class TestBunkerSession:
    """BunkerSession."""

    @pytest.fixture
    def session(self) -> BunkerSession:
        return BunkerSession(
            client_keys=KeyPair.from_private_key(CLIENT_SECRET),
            secret="s3cret",
            relay_url="wss://relay.primal.net",
            session_started_at=1_700_000_000,
        )

    def test_client_pubkey(self, session: BunkerSession) -> None:
        assert session.client_pubkey == session.client_keys.public_key_hex

    def test_with_bunker_returns_new_instance(self, session: BunkerSession) -> None:
        updated = session.with_bunker("b" * 64)
        assert updated.bunker_pubkey == "b" * 64
        assert session.bunker_pubkey is None

    def test_to_saved_requires_both_pubkeys(self, session: BunkerSession) -> None:
        with pytest.raises(ValueError, match="not established"):
            session.with_bunker("b" * 64).to_saved()

    def test_to_saved(self, session: BunkerSession) -> None:
        saved = session.with_bunker("b" * 64).with_user("a" * 64).to_saved()
        assert saved == _saved()

    def test_rejects_negative_start(self) -> None:
        with pytest.raises(ValueError):
            BunkerSession(
                client_keys=KeyPair.from_private_key(CLIENT_SECRET),
                secret="x",
                relay_url="wss://relay.primal.net",
                session_started_at=-1,
            )


def _describe(state: AuthState) -> str:
    match state:
        case NotAuthenticated():
            return "idle"
        case WaitingForScan(uri=uri):
            return f"scan {uri}"
        case Connecting():
            return "connecting"
        case Authenticated(pubkey=pubkey):
            return f"user {pubkey}"
        case AuthError(message=message):
            return f"error {message}"


class TestAuthState:
    """AuthState variants."""

    @pytest.mark.parametrize(
        ("state", "expected"),
        [
            (NotAuthenticated(), "idle"),
            (WaitingForScan("nostrconnect://x"), "scan nostrconnect://x"),
            (Connecting(), "connecting"),
            (Authenticated("a" * 64), "user " + "a" * 64),
            (AuthError("boom"), "error boom"),
        ],
    )
    def test_match(self, state: AuthState, expected: str) -> None:
        assert _describe(state) == expected

    def test_value_equality(self) -> None:
        assert Authenticated("a" * 64) == Authenticated("a" * 64)
        assert NotAuthenticated() == NotAuthenticated()
        assert Connecting() != NotAuthenticated()
