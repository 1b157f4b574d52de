# orderhub/domain/status.py
"""
Status derivation: one canonical lifecycle status from the order's signals.

Pure and total. No I/O, no clock. Works on the ORM Order or on any object
that exposes the same attribute names (OrderSignals for tests / previews).

Priority, first match wins:
  1. cancelled   - explicitly cancelled (one-way override)
  2. completed   - invoiced + platform fulfilled + paid + delivery confirmed
  3. returned    - voucher + delivery status in the "returned" vocabulary
  4. delivered   - voucher + delivery status in the "delivered" vocabulary
  5. in_transit  - voucher + any other non-empty delivery status
  6. awb_created - voucher, no delivery status yet
  7. unfulfilled - no voucher
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from orderhub.domain.vocabulary import DEFAULT_VOCABULARY, DeliveryVocabulary
from orderhub.models.enums import OrderStatus

FULFILLED = "fulfilled"
PAID = "paid"


@dataclass(frozen=True)
class OrderSignals:
    cancelled: bool = False
    voucher_number: Optional[str] = None
    delivery_status: Optional[str] = None
    delivered_at: Optional[datetime] = None
    invoice_id: Optional[str] = None
    fulfillment_status: Optional[str] = None
    financial_status: Optional[str] = None
    courier: Optional[str] = None


def _has(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def _eq(value: Any, expected: str) -> bool:
    return _has(value) and str(value).strip().lower() == expected


def delivery_confirmed(order: Any, vocabulary: DeliveryVocabulary) -> bool:
    status_text = getattr(order, "delivery_status", None)
    if vocabulary.is_returned(status_text):
        return False
    return getattr(order, "delivered_at", None) is not None or vocabulary.is_delivered(status_text)


def derive_status(order: Any, vocabulary: Optional[DeliveryVocabulary] = None) -> OrderStatus:
    vocab = vocabulary or DEFAULT_VOCABULARY

    if bool(getattr(order, "cancelled", False)):
        return OrderStatus.CANCELLED

    if (
        _has(getattr(order, "invoice_id", None))
        and _eq(getattr(order, "fulfillment_status", None), FULFILLED)
        and _eq(getattr(order, "financial_status", None), PAID)
        and delivery_confirmed(order, vocab)
    ):
        return OrderStatus.COMPLETED

    if not _has(getattr(order, "voucher_number", None)):
        return OrderStatus.UNFULFILLED

    status_text = getattr(order, "delivery_status", None)
    if vocab.is_returned(status_text):
        return OrderStatus.RETURNED
    if vocab.is_delivered(status_text):
        return OrderStatus.DELIVERED
    if _has(status_text):
        return OrderStatus.IN_TRANSIT
    return OrderStatus.AWB_CREATED


# --------------------- payment-method inference ---------------------

_COD_GATEWAY_HINTS = ("cod", "cash on delivery", "ramburs", "αντικαταβολ")


def payment_method(order: Any) -> str:
    """'cod' when the order is not paid up-front, otherwise 'card'."""
    if _eq(getattr(order, "financial_status", None), "pending"):
        return "cod"
    gateway = str(getattr(order, "payment_gateway", None) or "").casefold()
    if any(hint in gateway for hint in _COD_GATEWAY_HINTS):
        return "cod"
    return "card"


def order_total(order: Any) -> Decimal:
    raw = getattr(order, "total_price", None)
    try:
        return Decimal(str(raw)) if raw is not None else Decimal("0")
    except (InvalidOperation, ValueError):
        return Decimal("0")


def cod_amount(order: Any) -> Decimal:
    return order_total(order) if payment_method(order) == "cod" else Decimal("0")
