"""
Unit tests for core.logger module.

Tests:
- format_kv_pairs() escaping and truncation
- Redaction of key material
- Logger key=value and JSON output
- StructuredFormatter and configure_logging()
"""

import json
import logging
from collections.abc import Iterator

import pytest

from nostrtv.core.logger import (
    REDACTED,
    Logger,
    StructuredFormatter,
    configure_logging,
    format_kv_pairs,
    redact,
    short_hex,
)


@pytest.fixture
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    json_default = Logger.json_default
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    Logger.json_default = json_default


class TestFormatKvPairs:
    """Key-value pairs formatting and escaping."""

    def test_simple(self):
        assert format_kv_pairs({"key": "hello"}) == " key=hello"
        assert format_kv_pairs({"key": 123}) == " key=123"

    def test_with_spaces(self):
        assert format_kv_pairs({"key": "hello world"}) == ' key="hello world"'

    def test_with_equals(self):
        assert format_kv_pairs({"key": "foo=bar"}) == ' key="foo=bar"'

    def test_with_double_quotes(self):
        assert format_kv_pairs({"key": 'say "hello"'}) == ' key="say \\"hello\\""'

    def test_empty_value(self):
        assert format_kv_pairs({"key": ""}) == ' key=""'

    def test_empty_dict(self):
        assert format_kv_pairs({}) == ""

    def test_truncation(self):
        result = format_kv_pairs({"key": "x" * 1500}, max_value_length=1000)
        assert "truncated 500 chars" in result

    def test_no_truncation(self):
        assert format_kv_pairs({"key": "x" * 1500}, max_value_length=None) == " key=" + "x" * 1500

    def test_custom_prefix(self):
        assert format_kv_pairs({"a": 1}, prefix="| ") == "| a=1"

    def test_redacts_secrets(self):
        assert format_kv_pairs({"secret": "abc", "url": "wss://r"}) == (
            f' secret={REDACTED} url=wss://r'
        )


class TestRedact:
    @pytest.mark.parametrize(
        "key", ["private_key", "secret", "nsec", "conversation_key", "Private_Key"]
    )
    def test_sensitive_keys(self, key: str):
        assert redact({key: "value"}) == {key: REDACTED}

    def test_other_keys_kept(self):
        assert redact({"pubkey": "abc", "id": 1}) == {"pubkey": "abc", "id": 1}

    def test_does_not_mutate(self):
        data = {"secret": "abc"}
        redact(data)
        assert data == {"secret": "abc"}


class TestShortHex:
    def test_truncates(self):
        assert short_hex("a" * 64) == "a" * 16

    def test_custom_length(self):
        assert short_hex("abcdef", 4) == "abcd"

    def test_short_and_empty(self):
        assert short_hex("abc") == "abc"
        assert short_hex(None) == ""


class TestLogger:
    """Integration tests with real logging."""

    def test_name(self):
        assert Logger("signer").name == "signer"

    def test_kv_record(self, caplog):
        with caplog.at_level(logging.INFO):
            Logger("kv_test", json_output=False).info("hello", world=True)

        record = caplog.records[0]
        assert record.message == "hello"
        assert record.structured_kv == {"world": True}

    def test_kv_record_redacts(self, caplog):
        with caplog.at_level(logging.INFO):
            Logger("kv_test", json_output=False).info("login", secret="s3cret")
        assert caplog.records[0].structured_kv == {"secret": REDACTED}

    def test_kv_record_truncates(self, caplog):
        with caplog.at_level(logging.INFO):
            Logger("kv_test", json_output=False, max_value_length=10).info("m", v="y" * 50)
        assert "truncated 40 chars" in caplog.records[0].structured_kv["v"]

    def test_json_record(self, caplog):
        with caplog.at_level(logging.INFO):
            Logger("json_test", json_output=True).info("test", value=42, nsec="nsec1")

        parsed = json.loads(caplog.records[0].message)
        assert parsed["message"] == "test"
        assert parsed["level"] == "info"
        assert parsed["component"] == "json_test"
        assert parsed["value"] == 42
        assert parsed["nsec"] == REDACTED

    def test_json_non_serializable_values(self, caplog):
        with caplog.at_level(logging.INFO):
            Logger("json_test", json_output=True).info("test", path=object())
        assert "object" in json.loads(caplog.records[0].message)["path"]

    def test_disabled_level_is_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            Logger("quiet").debug("hidden", a=1)
        assert caplog.records == []

    @pytest.mark.parametrize(
        ("method", "level"),
        [("debug", logging.DEBUG), ("warning", logging.WARNING), ("error", logging.ERROR)],
    )
    def test_levels(self, caplog, method: str, level: int):
        with caplog.at_level(logging.DEBUG):
            getattr(Logger("levels", json_output=False), method)("event")
        assert caplog.records[0].levelno == level

    def test_exception_includes_traceback(self, caplog):
        logger = Logger("exc", json_output=False)
        with caplog.at_level(logging.ERROR):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                logger.exception("failed", step=1)
        assert caplog.records[0].exc_info is not None


class TestStructuredFormatter:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord("pool", logging.INFO, __file__, 1, "relay_connected", None, None)
        for k, v in extra.items():
            setattr(record, k, v)
        return record

    def test_plain_record(self):
        assert StructuredFormatter().format(self._record()) == "info pool relay_connected"

    def test_structured_record(self):
        record = self._record(structured_kv={"url": "wss://r", "open": 1})
        assert StructuredFormatter().format(record) == "info pool relay_connected url=wss://r open=1"


class TestConfigureLogging:
    def test_installs_single_handler(self, restore_logging):
        configure_logging("debug")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert root.level == logging.DEBUG
        assert Logger.json_default is False

    def test_json_mode_is_process_wide(self, restore_logging):
        configure_logging("INFO", json_output=True)
        assert Logger.json_default is True
        assert not isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)
