"""
Unit tests for nips.nip02 module.

Tests:
- parse_follow_list() collects hex p tags into a set
"""

import pytest

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.nips.nip02 import parse_follow_list
from tests.conftest import make_event


FOLLOWED = ["a" * 64, "b" * 64]


class TestParseFollowList:
    def test_p_tags(self, alice) -> None:
        event = make_event(
            alice,
            kind=3,
            content="",
            tags=[["p", FOLLOWED[0], "wss://r.example", "pal"], ["p", FOLLOWED[1]]],
        )
        assert parse_follow_list(event) == frozenset(FOLLOWED)

    def test_duplicates_and_case_fold(self, alice) -> None:
        event = make_event(alice, kind=3, tags=[["p", FOLLOWED[0]], ["p", "A" * 64]])
        assert parse_follow_list(event) == frozenset({FOLLOWED[0]})

    def test_skips_invalid_and_other_tags(self, alice) -> None:
        event = make_event(
            alice,
            kind=3,
            tags=[["p", "npub1xyz"], ["p"], ["e", "c" * 64], ["t", "music"], ["p", FOLLOWED[1]]],
        )
        assert parse_follow_list(event) == frozenset({FOLLOWED[1]})

    def test_empty_list(self, alice) -> None:
        assert parse_follow_list(make_event(alice, kind=3)) == frozenset()

    def test_wrong_kind(self, alice) -> None:
        with pytest.raises(ProtocolParseError, match="expected kind 3"):
            parse_follow_list(make_event(alice, kind=0, tags=[["p", FOLLOWED[0]]]))
