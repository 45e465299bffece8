"""
Unit tests for nips.messages module.

Tests:
- REQ / CLOSE / EVENT builders
- parse_relay_message() for every frame label
- Malformed frame rejection
"""

import json

import pytest

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.models.filter import Filter
from nostrtv.nips.messages import (
    ClosedMessage,
    EoseMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    close_message,
    event_message,
    parse_relay_message,
    req_message,
)
from tests.conftest import make_event


# =============================================================================
# Builders
# =============================================================================


class TestReqMessage:
    def test_single_filter(self) -> None:
        text = req_message("sub-1", Filter(kinds=[30311], limit=10))
        assert text == '["REQ","sub-1",{"kinds":[30311],"limit":10}]'

    def test_several_filters_and_dicts(self) -> None:
        text = req_message("sub-1", Filter(kinds=[1]), {"#p": ["a" * 64]})
        assert json.loads(text) == ["REQ", "sub-1", {"kinds": [1]}, {"#p": ["a" * 64]}]

    def test_requires_a_filter(self) -> None:
        with pytest.raises(ValueError, match="at least one filter"):
            req_message("sub-1")


class TestCloseMessage:
    def test_layout(self) -> None:
        assert close_message("sub-1") == '["CLOSE","sub-1"]'


class TestEventMessage:
    def test_layout(self, alice) -> None:
        event = make_event(alice, content="héllo")
        frame = json.loads(event_message(event))
        assert frame == ["EVENT", event.to_dict()]

    def test_non_ascii_is_not_escaped(self, alice) -> None:
        assert "héllo" in event_message(make_event(alice, content="héllo"))


# =============================================================================
# Parsing
# =============================================================================


class TestParseRelayMessage:
    def test_event(self, alice) -> None:
        event = make_event(alice)
        message = parse_relay_message(json.dumps(["EVENT", "sub-1", event.to_dict()]))
        assert message == EventMessage("sub-1", event)

    def test_eose(self) -> None:
        assert parse_relay_message('["EOSE","sub-1"]') == EoseMessage("sub-1")

    def test_notice(self) -> None:
        assert parse_relay_message('["NOTICE","slow down"]') == NoticeMessage("slow down")

    def test_ok(self) -> None:
        message = parse_relay_message(f'["OK","{"a" * 64}",false,"blocked: spam"]')
        assert message == OkMessage("a" * 64, False, "blocked: spam")

    def test_ok_without_message(self) -> None:
        assert parse_relay_message('["OK","x",true]') == OkMessage("x", True, "")

    def test_closed(self) -> None:
        message = parse_relay_message('["CLOSED","sub-1","auth-required: login"]')
        assert message == ClosedMessage("sub-1", "auth-required: login")

    def test_closed_without_message(self) -> None:
        assert parse_relay_message('["CLOSED","sub-1"]') == ClosedMessage("sub-1", "")

    def test_match_statement_dispatch(self) -> None:
        match parse_relay_message('["EOSE","q-1"]'):
            case EoseMessage(subscription_id=sub_id):
                assert sub_id == "q-1"
            case _:
                pytest.fail("expected EoseMessage")


class TestParseRelayMessageErrors:
    @pytest.mark.parametrize(
        ("text", "match"),
        [
            ("not json", "valid JSON"),
            ('{"EVENT": 1}', "labelled"),
            ("[]", "labelled"),
            ("[1, 2]", "labelled"),
            ('["EVENT"]', "subscription id"),
            ('["EVENT","sub-1"]', "missing the event"),
            ('["EVENT","sub-1",{"id":"x"}]', "invalid event"),
            ('["EVENT","sub-1",[]]', "invalid event"),
            ('["EOSE"]', "subscription id"),
            ('["EOSE",5]', "subscription id"),
            ('["NOTICE"]', "message"),
            ('["OK","x"]', "accepted flag"),
            ('["OK","x","true"]', "accepted flag"),
            ('["CLOSED"]', "subscription id"),
            ('["AUTH","challenge"]', "unknown frame label"),
        ],
    )
    def test_rejected(self, text: str, match: str) -> None:
        with pytest.raises(ProtocolParseError, match=match):
            parse_relay_message(text)

    def test_event_with_bad_signature_shape(self, alice) -> None:
        payload = make_event(alice).to_dict()
        payload["sig"] = "zz"
        with pytest.raises(ProtocolParseError, match="invalid event"):
            parse_relay_message(json.dumps(["EVENT", "sub-1", payload]))
