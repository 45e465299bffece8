"""
Subscription filter model.

A [Filter][nostrtv.models.filter.Filter] is the JSON object carried by a
``REQ`` message. Every field is optional; empty fields are left out of the
wire object so relays do not interpret them as "match nothing".
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ._validation import validate_hex, validate_int_range, validate_timestamp
from .constants import EVENT_KIND_MAX


def _freeze_strs(values: Iterable[str] | None, name: str) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        raise TypeError(f"{name} must be an iterable of str, not a str")
    result = tuple(dict.fromkeys(values))
    for v in result:
        if not isinstance(v, str):
            raise TypeError(f"{name} values must be str, got {type(v).__name__}")
    return result


@dataclass(frozen=True, slots=True)
class Filter:
    """Immutable NIP-01 subscription filter.

    Attributes:
        kinds: Event kinds to match.
        authors: Author pubkeys (64-char hex).
        ids: Event ids (64-char hex).
        since: Lower bound on ``created_at`` (inclusive).
        until: Upper bound on ``created_at`` (inclusive).
        limit: Maximum number of stored events a relay should return.
        tag_filters: Single-letter tag name to accepted values, serialized
            as ``"#<letter>"`` keys.

    Examples:
        ```python
        Filter(kinds=[24133], tag_filters={"p": [client_pubkey]}, since=1700000000).to_dict()
        # {'kinds': [24133], '#p': ['...'], 'since': 1700000000}
        ```
    """

    kinds: tuple[int, ...] = ()
    authors: tuple[str, ...] = ()
    ids: tuple[str, ...] = ()
    since: int | None = None
    until: int | None = None
    limit: int | None = None
    tag_filters: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        kinds = tuple(dict.fromkeys(self.kinds or ()))
        for kind in kinds:
            validate_int_range(kind, "kinds", 0, EVENT_KIND_MAX)
        object.__setattr__(self, "kinds", tuple(int(k) for k in kinds))

        authors = _freeze_strs(self.authors, "authors")
        for author in authors:
            validate_hex(author, "authors", 64)
        object.__setattr__(self, "authors", authors)

        ids = _freeze_strs(self.ids, "ids")
        for event_id in ids:
            validate_hex(event_id, "ids", 64)
        object.__setattr__(self, "ids", ids)

        for name in ("since", "until", "limit"):
            value = getattr(self, name)
            if value is not None:
                validate_timestamp(value, name)

        tags: dict[str, tuple[str, ...]] = {}
        for letter, values in (self.tag_filters or {}).items():
            if not isinstance(letter, str) or len(letter) != 1 or not letter.isalpha():
                raise ValueError(f"tag filter name must be a single letter, got {letter!r}")
            frozen = _freeze_strs(values, f"#{letter}")
            if frozen:
                tags[letter] = frozen
        object.__setattr__(self, "tag_filters", tags)

    def to_dict(self) -> dict[str, Any]:
        """Return the filter as a wire object, omitting empty fields."""
        data: dict[str, Any] = {}
        if self.ids:
            data["ids"] = list(self.ids)
        if self.authors:
            data["authors"] = list(self.authors)
        if self.kinds:
            data["kinds"] = list(self.kinds)
        for letter, values in self.tag_filters.items():
            data[f"#{letter}"] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data
