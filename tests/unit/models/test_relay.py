"""
Unit tests for models.relay module.

Tests:
- URL normalization (case, default port, trailing slash)
- Scheme, query and fragment rejection
"""

import pytest

from nostrtv.models.relay import Relay, normalize_relay_url


class TestRelayNormalization:
    """Relay URL normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("wss://relay.damus.io", "wss://relay.damus.io"),
            ("WSS://Relay.Primal.NET/", "wss://relay.primal.net"),
            ("wss://nos.lol:443", "wss://nos.lol"),
            ("ws://relay.example.com:80/", "ws://relay.example.com"),
            ("ws://127.0.0.1:7777", "ws://127.0.0.1:7777"),
            ("wss://relay.example.com/nostr/", "wss://relay.example.com/nostr"),
            ("  wss://nos.lol  ", "wss://nos.lol"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_relay_url(raw) == expected

    def test_components(self) -> None:
        relay = Relay("ws://localhost:7777/path")
        assert relay.scheme == "ws"
        assert relay.host == "localhost"
        assert relay.port == 7777
        assert relay.path == "/path"
        assert str(relay) == "ws://localhost:7777/path"


class TestRelayValidation:
    """Relay URL rejection."""

    @pytest.mark.parametrize(
        "raw",
        [
            "https://relay.damus.io",
            "relay.damus.io",
            "wss://relay.damus.io/?x=1",
            "wss://relay.damus.io/#frag",
        ],
    )
    def test_rejects(self, raw: str) -> None:
        with pytest.raises(ValueError):
            Relay(raw)

    def test_rejects_null_bytes(self) -> None:
        with pytest.raises(ValueError, match="null"):
            Relay("wss://relay\x00.example")
