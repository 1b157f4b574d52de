# orderhub/services/order_repo.py
"""
Order persistence.

apply_patch() is the only write path for order signals:
  - voucher_number / invoice_id / invoice_number are set once; a different
    value later raises ImmutableFieldError, the same value is a no-op
  - bookkeeping that accompanies them (courier, job id, invoice url, ...) keeps
    its first value
  - cancelled only ever goes False -> True
  - order_status cannot be patched; it is recomputed after every patch
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.clock import utcnow
from orderhub.domain.status import derive_status
from orderhub.domain.vocabulary import DeliveryVocabulary
from orderhub.models.enums import TERMINAL_STATUSES
from orderhub.models.order import Order

OrderPatch = Dict[str, Any]

IMMUTABLE_IDENTIFIERS = ("voucher_number", "invoice_id", "invoice_number")
SET_ONCE = (
    "courier",
    "courier_job_id",
    "voucher_created_at",
    "invoice_series",
    "invoice_url",
    "invoiced_at",
    "platform_order_id",
    "delivered_at",
)
MUTABLE = (
    "financial_status",
    "fulfillment_status",
    "platform_fulfillment_id",
    "delivery_status",
    "delivery_status_updated_at",
    "current_location",
    "last_tracking_error",
    "processed",
    # pass-through customer data (import refresh)
    "first_name",
    "last_name",
    "email",
    "phone",
    "address1",
    "address2",
    "city",
    "province",
    "zip",
    "country_code",
    "note",
    "total_price",
    "currency",
    "payment_gateway",
    "products",
)
PATCHABLE = frozenset(IMMUTABLE_IDENTIFIERS + SET_ONCE + MUTABLE + ("cancelled",))

LOOKUP_CHUNK = 500


class ImmutableFieldError(Exception):
    def __init__(self, order_name: str, field: str, current: Any, new: Any):
        super().__init__(f"order {order_name}: {field} is already {current!r}, refusing {new!r}")
        self.order_name = order_name
        self.field = field
        self.current = current
        self.new = new


def recompute_status(order: Order, vocabulary: Optional[DeliveryVocabulary] = None) -> bool:
    new = derive_status(order, vocabulary).value
    if order.order_status != new:
        order.order_status = new
        return True
    return False


def apply_patch(order: Order, patch: Mapping[str, Any], vocabulary: Optional[DeliveryVocabulary] = None) -> List[str]:
    """
    Apply `patch` to a loaded order and recompute its status.
    Returns the names of fields that actually changed (including "order_status").
    """
    unknown = set(patch) - PATCHABLE
    if unknown:
        raise ValueError(f"not patchable: {sorted(unknown)}")

    for field in IMMUTABLE_IDENTIFIERS:
        new = patch.get(field)
        current = getattr(order, field)
        if new is not None and current is not None and str(new) != str(current):
            raise ImmutableFieldError(order.order_name, field, current, new)

    changed: List[str] = []
    for field, new in patch.items():
        current = getattr(order, field)
        if field in IMMUTABLE_IDENTIFIERS or field in SET_ONCE:
            if new is None or current is not None:
                continue
        elif field == "cancelled":
            if not new or order.cancelled:
                continue
            order.cancelled_at = order.cancelled_at or utcnow()
        if current != new:
            setattr(order, field, new)
            changed.append(field)

    if recompute_status(order, vocabulary):
        changed.append("order_status")
    return changed


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_by_name(session: AsyncSession, workspace_id: int, order_name: str) -> Optional[Order]:
    return (
        await session.execute(
            select(Order).where(Order.workspace_id == workspace_id, Order.order_name == order_name)
        )
    ).scalar_one_or_none()


async def resolve_ids(session: AsyncSession, workspace_id: int, order_names: Sequence[str]) -> Dict[str, int]:
    """order_name -> id for the names that exist in the workspace."""
    out: Dict[str, int] = {}
    for i in range(0, len(order_names), LOOKUP_CHUNK):
        chunk = list(order_names[i : i + LOOKUP_CHUNK])
        rows = await session.execute(
            select(Order.order_name, Order.id).where(
                Order.workspace_id == workspace_id, Order.order_name.in_(chunk)
            )
        )
        out.update({name: oid for name, oid in rows.all()})
    return out


async def tracking_page(
    session: AsyncSession, workspace_id: int, *, after_id: int, limit: int
) -> List[Tuple[int, str]]:
    """Next keyset page of orders with an open shipment: voucher set, status not terminal."""
    rows = await session.execute(
        select(Order.id, Order.order_name)
        .where(
            Order.workspace_id == workspace_id,
            Order.voucher_number.is_not(None),
            Order.voucher_number != "",
            Order.cancelled.is_(False),
            Order.order_status.not_in([s.value for s in TERMINAL_STATUSES]),
            Order.id > after_id,
        )
        .order_by(Order.id)
        .limit(limit)
    )
    return [(oid, name) for oid, name in rows.all()]


def new_order(workspace_id: int, fields: Mapping[str, Any], vocabulary: Optional[DeliveryVocabulary] = None) -> Order:
    order = Order(workspace_id=workspace_id, order_name=str(fields["order_name"]), products=[])
    order.cancelled = False
    order.processed = False
    apply_patch(order, {k: v for k, v in fields.items() if k != "order_name" and k in PATCHABLE}, vocabulary)
    return order

