"""
Declarative field parsing for JSON published by other users.

Profile metadata and zap request descriptions are free-form JSON written by
arbitrary clients. A parser declares a [FieldSpec][nostrtv.nips.parsing.FieldSpec]
naming the fields it wants and their types;
[parse_fields][nostrtv.nips.parsing.parse_fields] keeps the values that
match and silently drops the rest.

Note:
    No exceptions are raised for wrongly typed values. A profile whose
    ``picture`` is a number still yields its ``name``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Callable


_SKIP: Any = object()


def _parse_int(value: Any) -> Any:
    return value if isinstance(value, int) and not isinstance(value, bool) else _SKIP


def _parse_str(value: Any) -> Any:
    if isinstance(value, str) and "\x00" not in value:
        return value
    return _SKIP


def _parse_str_list(value: Any) -> Any:
    if isinstance(value, list):
        items = [s for s in value if isinstance(s, str)]
        if items:
            return items
    return _SKIP


def _parse_tag_list(value: Any) -> Any:
    if not isinstance(value, list):
        return _SKIP
    return [
        list(tag)
        for tag in value
        if isinstance(tag, list) and all(isinstance(item, str) for item in tag)
    ]


_FIELD_PARSERS: tuple[tuple[str, Callable[[Any], Any]], ...] = (
    ("int_fields", _parse_int),
    ("str_fields", _parse_str),
    ("str_list_fields", _parse_str_list),
    ("tag_list_fields", _parse_tag_list),
)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Expected field types for [parse_fields][nostrtv.nips.parsing.parse_fields].

    Attributes:
        int_fields: Fields expected as ``int`` (``bool`` excluded).
        str_fields: Fields expected as ``str`` without null bytes.
        str_list_fields: Fields expected as ``list[str]`` (invalid elements filtered).
        tag_list_fields: Fields expected as a list of string lists, such as
            event ``tags`` (malformed tags filtered).
    """

    int_fields: frozenset[str] = field(default_factory=frozenset)
    str_fields: frozenset[str] = field(default_factory=frozenset)
    str_list_fields: frozenset[str] = field(default_factory=frozenset)
    tag_list_fields: frozenset[str] = field(default_factory=frozenset)


def parse_fields(data: dict[str, Any], spec: FieldSpec) -> dict[str, Any]:
    """Return the entries of *data* whose values match *spec*.

    Keys not named in *spec* are ignored.
    """
    dispatch: dict[str, Callable[[Any], Any]] = {}
    for attr_name, parser in _FIELD_PARSERS:
        for name in getattr(spec, attr_name):
            dispatch[name] = parser

    result: dict[str, Any] = {}
    for key, value in data.items():
        handler = dispatch.get(key)
        if handler is not None:
            parsed = handler(value)
            if parsed is not _SKIP:
                result[key] = parsed

    return result


__all__ = ["FieldSpec", "parse_fields"]
