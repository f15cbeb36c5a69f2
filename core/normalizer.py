"""
Event normalizer.

Turns the free-form payload of a verified `checkout.session.completed`
event into a PaymentRecord. Every field falls back to a placeholder instead
of failing: a customer who skipped the phone field, or a cart that could not
be decoded, must not stop the confirmation from going out.
"""
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

import structlog

from .models import (
    NO_EMAIL,
    NO_NAME,
    NO_PHONE,
    UNKNOWN_EVENT,
    EventKind,
    LineItem,
    PaymentRecord,
    VerifiedEvent,
)

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


def format_minor_units(amount: Any) -> str:
    """
    Convert an integer minor-unit amount to a two-decimal string.

    Anything that is not a non-negative integer counts as zero.

    Args:
        amount: Amount in the currency's smallest unit (e.g. 3500)

    Returns:
        str: Major-unit amount (e.g. "35.00")
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        amount = 0
    return str((Decimal(amount) / 100).quantize(CENTS))


def _parse_line_item(entry: Any) -> LineItem:
    if not isinstance(entry, dict):
        raise ValueError("item is not an object")

    name = entry.get("name")
    price = entry.get("price")
    quantity = entry.get("quantity")

    if not isinstance(name, str) or not name:
        raise ValueError("item name missing")
    if isinstance(price, bool) or not isinstance(price, (int, float, str)):
        raise ValueError("item price missing")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValueError("item quantity missing")

    price_value = Decimal(str(price))
    if not price_value.is_finite():
        raise ValueError("item price is not a number")

    return LineItem(name=name, price=price_value, quantity=quantity)


def decode_items(raw: Any) -> Tuple[LineItem, ...]:
    """
    Decode the cart that checkout stored as JSON in session metadata.

    Never raises: an absent field, invalid JSON, a non-list or any malformed
    entry all yield an empty tuple.
    """
    if not raw or not isinstance(raw, str):
        return ()

    try:
        entries = json.loads(raw)
        if not isinstance(entries, list):
            raise ValueError("items is not a list")
        return tuple(_parse_line_item(entry) for entry in entries)
    except (ValueError, InvalidOperation) as e:
        logger.warning("items_metadata_undecodable", error=str(e))
        return ()


def _text(source: Dict[str, Any], key: str) -> Optional[str]:
    value = source.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def _mapping(source: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = source.get(key)
    return value if isinstance(value, dict) else {}


def normalize_event(
    event: VerifiedEvent,
    *,
    default_currency: str,
    collect_phone: bool = True,
    collect_items: bool = True,
) -> Optional[PaymentRecord]:
    """
    Extract a PaymentRecord from a verified event.

    Args:
        event: Verified processor event
        default_currency: Currency used when the payload carries none
        collect_phone: Read the customer's phone number
        collect_items: Decode the cart from metadata

    Returns:
        Optional[PaymentRecord]: The record, or None for events that
        produce no side effects
    """
    if event.kind is not EventKind.PAYMENT_COMPLETED:
        logger.info("event_ignored", event_id=event.id, event_type=event.type)
        return None

    session = event.payload
    customer = _mapping(session, "customer_details")
    metadata = _mapping(session, "metadata")

    phone = _text(customer, "phone") if collect_phone else None
    items = decode_items(metadata.get("items")) if collect_items else ()
    currency = _text(session, "currency") or default_currency

    record = PaymentRecord(
        customer_name=_text(customer, "name") or NO_NAME,
        customer_email=_text(customer, "email") or NO_EMAIL,
        customer_phone=phone or NO_PHONE,
        event_name=_text(metadata, "eventName") or _text(metadata, "eventId") or UNKNOWN_EVENT,
        currency=currency.upper(),
        amount_paid=format_minor_units(session.get("amount_total")),
        items=items,
        event_id=event.id,
    )

    logger.info(
        "payment_record_normalized",
        event_id=event.id,
        event_name=record.event_name,
        amount_paid=record.amount_paid,
        currency=record.currency,
        item_count=len(record.items),
    )

    return record
