# orderhub/services/order_operations.py
"""
One handler per OperationKind.

A handler receives the order snapshot taken under the idempotency guard and
returns the OrderPatch to persist. It never writes to the database itself.
AlreadyExistsError carrying the provider's identifier is reconciled here into
a normal patch.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Dict

from orderhub.adapters.base import FulfillmentResult, InvoiceResult, LabelResult, TrackingInfo
from orderhub.adapters.errors import AlreadyExistsError, NotConfiguredError, ValidationError
from orderhub.adapters.registry import WorkspaceProviders
from orderhub.core.clock import utcnow
from orderhub.domain.status import FULFILLED, PAID, delivery_confirmed, payment_method
from orderhub.models.enums import OperationKind, ProviderRole
from orderhub.models.order import Order
from orderhub.services.order_repo import OrderPatch
from orderhub.services.workspace_config import WorkspaceConfig


@dataclass(frozen=True)
class OperationContext:
    config: WorkspaceConfig
    providers: WorkspaceProviders


Handler = Callable[[Order, OperationContext], Awaitable[OrderPatch]]

PROVIDER_ROLE: Dict[OperationKind, ProviderRole] = {
    OperationKind.CREATE_LABEL: ProviderRole.COURIER,
    OperationKind.UPDATE_TRACKING: ProviderRole.COURIER,
    OperationKind.CREATE_INVOICE: ProviderRole.INVOICING,
    OperationKind.FULFILL: ProviderRole.PLATFORM,
    OperationKind.SYNC_FROM_PLATFORM: ProviderRole.PLATFORM,
    OperationKind.CONFIRM_DELIVERY: ProviderRole.PLATFORM,
}


def require_provider(kind: OperationKind, providers: WorkspaceProviders):
    role = PROVIDER_ROLE[kind]
    if role is ProviderRole.COURIER:
        return providers.require_courier()
    if role is ProviderRole.INVOICING:
        return providers.require_invoicing()
    return providers.require_platform()


def provider_for(kind: OperationKind, order: Order, providers: WorkspaceProviders):
    """Adapter that will serve `kind` for this order. Tracking follows the courier the voucher was issued by."""
    if kind is OperationKind.UPDATE_TRACKING:
        return providers.courier_for(order.courier)
    return require_provider(kind, providers)


def _require_voucher(order: Order, what: str) -> str:
    if not order.voucher_number:
        raise ValidationError(f"order {order.order_name} has no voucher; cannot {what}")
    return order.voucher_number


async def create_label(order: Order, ctx: OperationContext) -> OrderPatch:
    courier = ctx.providers.require_courier()
    try:
        res = await courier.create_label(order)
    except AlreadyExistsError as e:
        if not e.existing_ref:
            raise
        res = LabelResult(voucher_number=e.existing_ref)
    return {
        "voucher_number": res.voucher_number,
        "courier": courier.name,
        "courier_job_id": res.job_id,
        "voucher_created_at": utcnow(),
    }


async def update_tracking(order: Order, ctx: OperationContext) -> OrderPatch:
    voucher = _require_voucher(order, "refresh tracking")
    courier = ctx.providers.courier_for(order.courier)

    res = await courier.get_status(voucher)
    status_text = (res.status_text or "").strip() or None
    patch: OrderPatch = {"last_tracking_error": None}
    if status_text is None:
        return patch

    if status_text != order.delivery_status:
        patch["delivery_status"] = status_text
        patch["delivery_status_updated_at"] = res.occurred_at or utcnow()
    if res.location:
        patch["current_location"] = res.location

    vocab = ctx.config.vocabulary(order.courier or courier.name)
    if order.delivered_at is None and not vocab.is_returned(status_text):
        if res.delivered_at is not None:
            patch["delivered_at"] = res.delivered_at
        elif vocab.is_delivered(status_text):
            patch["delivered_at"] = res.occurred_at or utcnow()
    return patch


async def create_invoice(order: Order, ctx: OperationContext) -> OrderPatch:
    vocab = ctx.config.vocabulary(order.courier)
    if not delivery_confirmed(order, vocab):
        raise ValidationError(f"order {order.order_name} is not delivered yet; invoice after delivery")

    invoicing = ctx.providers.require_invoicing()
    try:
        res = await invoicing.create_invoice(order)
    except AlreadyExistsError as e:
        if not e.existing_ref:
            raise
        res = InvoiceResult(
            invoice_id=e.existing_ref,
            invoice_number=e.payload.get("number"),
            invoice_url=e.payload.get("link"),
            series=e.payload.get("seriesName"),
        )
    return {
        "invoice_id": res.invoice_id,
        "invoice_number": res.invoice_number,
        "invoice_series": res.series,
        "invoice_url": res.invoice_url,
        "invoiced_at": utcnow(),
    }


async def fulfill(order: Order, ctx: OperationContext) -> OrderPatch:
    voucher = _require_voucher(order, "push fulfillment")
    platform = ctx.providers.require_platform()

    try:
        courier = ctx.providers.courier_for(order.courier)
    except NotConfiguredError:
        tracking = TrackingInfo(voucher, order.courier or "Other")
    else:
        tracking = TrackingInfo(voucher, courier.carrier_name, courier.tracking_url(voucher))

    try:
        res = await platform.push_fulfillment(order, tracking)
    except AlreadyExistsError as e:
        res = FulfillmentResult(
            fulfillment_id=e.existing_ref,
            platform_order_id=e.payload.get("platform_order_id"),
        )
    return {
        "fulfillment_status": FULFILLED,
        "platform_fulfillment_id": res.fulfillment_id or order.platform_fulfillment_id,
        "platform_order_id": res.platform_order_id,
    }


async def sync_from_platform(order: Order, ctx: OperationContext) -> OrderPatch:
    platform = ctx.providers.require_platform()
    state = await platform.pull_fulfillment_status(order)

    fulfillment = state.fulfillment_status
    financial = state.financial_status
    patch: OrderPatch = {
        "platform_order_id": state.platform_order_id,
        "fulfillment_status": fulfillment,
        "financial_status": financial,
        "processed": (fulfillment or "").lower() == FULFILLED and (financial or "").lower() == PAID,
    }
    if state.fulfillment_id:
        patch["platform_fulfillment_id"] = state.fulfillment_id
    if state.delivered_at is not None and order.delivered_at is None:
        patch["delivered_at"] = state.delivered_at
    if state.cancelled:
        patch["cancelled"] = True
    return patch


COD_OPEN_STATES = ("pending", "partially_paid")


async def confirm_delivery(order: Order, ctx: OperationContext) -> OrderPatch:
    """
    Tell the platform a delivered order arrived: a delivered fulfillment event
    and, for cash-on-delivery orders still owing money, a payment capture.
    """
    vocab = ctx.config.vocabulary(order.courier)
    if not delivery_confirmed(order, vocab):
        raise ValidationError(f"order {order.order_name} is not delivered yet")

    platform = ctx.providers.require_platform()
    if order.platform_fulfillment_id or (order.fulfillment_status or "").lower() == FULFILLED:
        await platform.mark_delivered(order)

    patch: OrderPatch = {}
    financial = (order.financial_status or "").lower()
    if payment_method(order) == "cod" and financial in COD_OPEN_STATES:
        res = await platform.capture_cod_payment(order)
        if res.financial_status and res.financial_status != order.financial_status:
            patch["financial_status"] = res.financial_status
    return patch


HANDLERS: Dict[OperationKind, Handler] = {
    OperationKind.CREATE_LABEL: create_label,
    OperationKind.UPDATE_TRACKING: update_tracking,
    OperationKind.CREATE_INVOICE: create_invoice,
    OperationKind.FULFILL: fulfill,
    OperationKind.SYNC_FROM_PLATFORM: sync_from_platform,
    OperationKind.CONFIRM_DELIVERY: confirm_delivery,
}
