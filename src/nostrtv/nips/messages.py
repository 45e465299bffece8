"""
NIP-01 relay wire messages.

Client to relay messages are built with
[req_message()][nostrtv.nips.messages.req_message],
[close_message()][nostrtv.nips.messages.close_message] and
[event_message()][nostrtv.nips.messages.event_message].

Relay to client frames are decoded by
[parse_relay_message()][nostrtv.nips.messages.parse_relay_message] into one
of the ``RelayMessage`` variants. Anything malformed or unknown raises
[ProtocolParseError][nostrtv.core.exceptions.ProtocolParseError]; callers log
the frame and drop it.

```text
["EVENT", <sub_id>, <event>]     -> EventMessage
["EOSE", <sub_id>]               -> EoseMessage
["NOTICE", <text>]               -> NoticeMessage
["OK", <event_id>, <bool>, <text>] -> OkMessage
["CLOSED", <sub_id>, <text>]     -> ClosedMessage
```
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.models.event import ProtocolEvent
from nostrtv.models.filter import Filter


def _dumps(message: list[Any]) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


# ---------------------------------------------------------------------------
# Client -> relay
# ---------------------------------------------------------------------------


def req_message(subscription_id: str, *filters: Filter | dict[str, Any]) -> str:
    """Build ``["REQ", sub_id, filter...]``.

    Raises:
        ValueError: If no filter is given.
    """
    if not filters:
        raise ValueError("REQ needs at least one filter")
    objects = [f.to_dict() if isinstance(f, Filter) else dict(f) for f in filters]
    return _dumps(["REQ", subscription_id, *objects])


def close_message(subscription_id: str) -> str:
    """Build ``["CLOSE", sub_id]``."""
    return _dumps(["CLOSE", subscription_id])


def event_message(event: ProtocolEvent) -> str:
    """Build the outbound publish frame ``["EVENT", event]``."""
    return _dumps(["EVENT", event.to_dict()])


# ---------------------------------------------------------------------------
# Relay -> client
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EventMessage:
    subscription_id: str
    event: ProtocolEvent


@dataclass(frozen=True, slots=True)
class EoseMessage:
    subscription_id: str


@dataclass(frozen=True, slots=True)
class NoticeMessage:
    message: str


@dataclass(frozen=True, slots=True)
class OkMessage:
    event_id: str
    accepted: bool
    message: str


@dataclass(frozen=True, slots=True)
class ClosedMessage:
    subscription_id: str
    message: str


RelayMessage = EventMessage | EoseMessage | NoticeMessage | OkMessage | ClosedMessage


def _require_str(frame: list[Any], index: int, what: str) -> str:
    if len(frame) <= index or not isinstance(frame[index], str):
        raise ProtocolParseError(f"{frame[0]} frame is missing {what}")
    return frame[index]


def _optional_str(frame: list[Any], index: int) -> str:
    if len(frame) > index and isinstance(frame[index], str):
        return frame[index]
    return ""


def parse_relay_message(text: str) -> RelayMessage:
    """Decode a relay frame.

    Args:
        text: Raw text frame received from a relay.

    Returns:
        The decoded message variant.

    Raises:
        ProtocolParseError: If the frame is not valid JSON, not an array with a
            known label, or its fields are missing or malformed.
    """
    try:
        frame = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as e:
        raise ProtocolParseError(f"frame is not valid JSON: {e}") from None

    if not isinstance(frame, list) or not frame or not isinstance(frame[0], str):
        raise ProtocolParseError("frame is not a labelled JSON array")

    match frame[0]:
        case "EVENT":
            sub_id = _require_str(frame, 1, "subscription id")
            if len(frame) < 3:
                raise ProtocolParseError("EVENT frame is missing the event")
            try:
                event = ProtocolEvent.from_dict(frame[2])
            except (TypeError, ValueError) as e:
                raise ProtocolParseError(f"EVENT frame carries an invalid event: {e}") from None
            return EventMessage(sub_id, event)
        case "EOSE":
            return EoseMessage(_require_str(frame, 1, "subscription id"))
        case "NOTICE":
            return NoticeMessage(_require_str(frame, 1, "message"))
        case "OK":
            event_id = _require_str(frame, 1, "event id")
            if len(frame) < 3 or not isinstance(frame[2], bool):
                raise ProtocolParseError("OK frame is missing the accepted flag")
            return OkMessage(event_id, frame[2], _optional_str(frame, 3))
        case "CLOSED":
            return ClosedMessage(_require_str(frame, 1, "subscription id"), _optional_str(frame, 2))
        case label:
            raise ProtocolParseError(f"unknown frame label: {label}")
