"""Shared validation helpers for frozen dataclass models.

Private module -- not part of the public API. Used by ``__post_init__``
methods in sibling model modules to enforce runtime type constraints and
hex encodings.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


_HEX_DIGITS = frozenset("0123456789abcdef")


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        article = "an" if expected.__name__[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {expected.__name__}, got {type(value).__name__}")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_int_range(value: Any, name: str, low: int, high: int) -> None:
    """Raise if *value* is not an ``int`` within ``low..high`` inclusive."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")


def validate_str_no_null(value: Any, name: str) -> None:
    """Raise if *value* is not a ``str`` or contains null bytes."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")


def is_hex(value: Any, length: int) -> bool:
    """Return True if *value* is a lowercase hex string of exactly *length* chars."""
    return isinstance(value, str) and len(value) == length and set(value) <= _HEX_DIGITS


def validate_hex(value: Any, name: str, length: int) -> None:
    """Raise if *value* is not a lowercase hex string of *length* characters."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if not is_hex(value, length):
        raise ValueError(f"{name} must be {length} lowercase hex characters")


def validate_bytes(value: Any, name: str, length: int) -> None:
    """Raise if *value* is not ``bytes`` of exactly *length*."""
    if not isinstance(value, bytes):
        raise TypeError(f"{name} must be bytes, got {type(value).__name__}")
    if len(value) != length:
        raise ValueError(f"{name} must be {length} bytes, got {len(value)}")


def freeze_tags(tags: Any, name: str = "tags") -> tuple[tuple[str, ...], ...]:
    """Validate a tag list and convert it to a tuple of string tuples."""
    if isinstance(tags, (str, bytes)) or not isinstance(tags, Sequence):
        raise TypeError(f"{name} must be a sequence of sequences of str")
    frozen: list[tuple[str, ...]] = []
    for tag in tags:
        if isinstance(tag, (str, bytes)) or not isinstance(tag, Sequence):
            raise TypeError(f"{name} entries must be sequences of str")
        for item in tag:
            if not isinstance(item, str):
                raise TypeError(f"{name} values must be str, got {type(item).__name__}")
        frozen.append(tuple(tag))
    return tuple(frozen)
