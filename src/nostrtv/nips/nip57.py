"""
NIP-57 zap receipts.

A lightning service that received a zap payment publishes a kind 9735
receipt. Its ``bolt11`` tag holds the paid invoice and its ``description``
tag the zap request (kind 9734) the invoice was made for. The sender is the
zap request's author; the comment is the zap request's content.

The paid amount is read from the invoice's human-readable part, which is
what the payer actually paid. When the invoice carries no amount, the zap
request's ``amount`` tag is used instead.
"""

from __future__ import annotations

import json
import re
from decimal import Decimal
from typing import Any

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.models._validation import is_hex
from nostrtv.models.constants import EventKind
from nostrtv.models.event import ProtocolEvent
from nostrtv.models.stream import ZapReceipt

from .parsing import FieldSpec, parse_fields


_HRP_AMOUNT = re.compile(r"^ln(?:bcrt|tbs|bc|tb|sb)(?P<amount>\d+)(?P<multiplier>[munp]?)$")

# millisatoshis per unit for each bolt11 multiplier (1 BTC = 10^11 msat)
_MSATS_PER_UNIT = {
    "": Decimal(10) ** 11,
    "m": Decimal(10) ** 8,
    "u": Decimal(10) ** 5,
    "n": Decimal(100),
    "p": Decimal("0.1"),
}

_ZAP_REQUEST_SPEC = FieldSpec(
    str_fields=frozenset({"pubkey", "content"}),
    tag_list_fields=frozenset({"tags"}),
)


def bolt11_amount_msats(invoice: str) -> int | None:
    """Return the amount encoded in a bolt11 invoice, in millisatoshis.

    Only the human-readable part is read; the invoice signature is not
    checked.

    Returns:
        None if the invoice has no amount or is not a lightning invoice.
    """
    invoice = invoice.strip().lower()
    if invoice.startswith("lightning:"):
        invoice = invoice[len("lightning:") :]
    separator = invoice.rfind("1")
    if separator <= 0:
        return None
    match = _HRP_AMOUNT.match(invoice[:separator])
    if match is None:
        return None
    msats = Decimal(match["amount"]) * _MSATS_PER_UNIT[match["multiplier"]]
    if msats != msats.to_integral_value() or msats <= 0:
        return None
    return int(msats)


def _tag_value(tags: list[list[str]], name: str) -> str | None:
    for tag in tags:
        if len(tag) >= 2 and tag[0] == name:
            return tag[1]
    return None


def _parse_zap_request(description: str) -> dict[str, Any]:
    try:
        data = json.loads(description)
    except json.JSONDecodeError as e:
        raise ProtocolParseError(f"zap request description is not JSON: {e}") from None
    if not isinstance(data, dict):
        raise ProtocolParseError("zap request description is not an object")
    return parse_fields(data, _ZAP_REQUEST_SPEC)


def parse_zap_receipt(event: ProtocolEvent) -> ZapReceipt:
    """Build a [ZapReceipt][nostrtv.models.stream.ZapReceipt] from a kind 9735 event.

    Raises:
        ProtocolParseError: If the event is not kind 9735 or its
            ``description`` tag is missing or not a JSON object.
    """
    if event.kind != EventKind.ZAP_RECEIPT:
        raise ProtocolParseError(f"expected kind {int(EventKind.ZAP_RECEIPT)}, got {event.kind}")
    description = event.tag_value("description")
    if description is None:
        raise ProtocolParseError(f"zap receipt {event.id} has no description")
    request = _parse_zap_request(description)
    request_tags: list[list[str]] = request.get("tags", [])

    bolt11 = event.tag_value("bolt11") or ""
    amount = bolt11_amount_msats(bolt11) if bolt11 else None
    if amount is None:
        requested = _tag_value(request_tags, "amount")
        amount = int(requested) if requested and requested.isdigit() else 0

    sender = request.get("pubkey")
    if sender is not None and not is_hex(sender, 64):
        sender = None
    comment = (request.get("content") or "").strip() or None

    try:
        return ZapReceipt(
            id=event.id,
            bolt11=bolt11,
            description=description,
            recipient_pubkey=event.tag_value("p") or "",
            amount_msats=amount,
            created_at=event.created_at,
            sender_pubkey=sender,
            preimage=event.tag_value("preimage"),
            message=comment,
            a_tag=event.tag_value("a") or _tag_value(request_tags, "a") or "",
        )
    except (TypeError, ValueError) as e:
        raise ProtocolParseError(f"zap receipt {event.id} is malformed: {e}") from None


__all__ = ["bolt11_amount_msats", "parse_zap_receipt"]
