# orderhub/adapters/shopify.py
"""
Shopify Admin REST platform connector.

- fetch_orders       GET /orders.json (cursor pages via Link header)
- push_fulfillment   fulfillment-orders flow: open/scheduled FOs -> POST /fulfillments.json
- pull_fulfillment_status  GET /orders/{id}.json
- mark_delivered     POST /orders/{id}/fulfillments/{fid}/events.json (status=delivered)
- capture_cod_payment  POST /orders/{id}/transactions.json (kind=capture) while pending
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import httpx

from orderhub.adapters.base import (
    FulfillmentResult,
    ImportedOrder,
    PaymentCapture,
    PlatformAdapter,
    PlatformOrderState,
    TrackingInfo,
)
from orderhub.adapters.errors import AlreadyExistsError, NotConfiguredError, ValidationError
from orderhub.adapters.http import HttpProviderClient
from orderhub.core.clock import parse_provider_datetime

log = logging.getLogger("orderhub.adapters.shopify")

FULFILLABLE_STATES = ("open", "scheduled")
DELIVERED_SHIPMENT_STATES = ("delivered", "picked_up")
PAGE_LIMIT = 250
# financial states that still wait for the cash collected on delivery
COD_OPEN_STATES = ("pending", "partially_paid")


def imported_from_payload(data: Mapping[str, Any]) -> ImportedOrder:
    addr = data.get("shipping_address") or data.get("billing_address") or {}
    customer = data.get("customer") or {}
    gateways = data.get("payment_gateway_names") or []
    return ImportedOrder(
        order_name=str(data.get("name") or data.get("order_number") or data.get("id")),
        platform_order_id=str(data["id"]) if data.get("id") is not None else None,
        first_name=addr.get("first_name") or customer.get("first_name"),
        last_name=addr.get("last_name") or customer.get("last_name"),
        email=data.get("email") or customer.get("email"),
        phone=addr.get("phone") or data.get("phone") or customer.get("phone"),
        address1=addr.get("address1"),
        address2=addr.get("address2"),
        city=addr.get("city"),
        province=addr.get("province"),
        zip=addr.get("zip"),
        country_code=addr.get("country_code"),
        note=data.get("note"),
        total_price=Decimal(str(data.get("total_price") or "0")),
        currency=data.get("currency"),
        payment_gateway=", ".join(gateways) if gateways else None,
        financial_status=data.get("financial_status"),
        fulfillment_status=data.get("fulfillment_status"),
        products=[
            {
                "name": li.get("name") or li.get("title"),
                "quantity": li.get("quantity") or 1,
                "price": li.get("price"),
            }
            for li in data.get("line_items") or []
        ],
    )


class ShopifyAdapter(HttpProviderClient, PlatformAdapter):
    name = "shopify"

    def __init__(
        self,
        credentials: Mapping[str, Any],
        *,
        api_version: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        shop = credentials.get("shop")
        token = credentials.get("access_token")
        if not shop or not token:
            raise NotConfiguredError("shopify credentials not configured", provider=self.name)
        super().__init__(
            base_url=f"https://{shop}/admin/api/{api_version}",
            timeout=timeout,
            headers={"X-Shopify-Access-Token": str(token), "Accept": "application/json"},
            transport=transport,
        )

    async def _order_id(self, order: Any) -> str:
        if order.platform_order_id:
            return str(order.platform_order_id)
        data = await self._json(
            "GET", "/orders.json", call="find_order", params={"name": order.order_name, "status": "any"}
        )
        found = data.get("orders") or []
        if not found:
            raise ValidationError(f"shopify order {order.order_name} not found", provider=self.name)
        return str(found[0]["id"])

    async def fetch_orders(self, since: Optional[datetime]) -> List[ImportedOrder]:
        params: Dict[str, Any] = {"status": "any", "limit": PAGE_LIMIT}
        if since is not None:
            params["updated_at_min"] = since.isoformat()

        out: List[ImportedOrder] = []
        path: Optional[str] = "/orders.json"
        while path:
            resp = await self._send("GET", path, call="fetch_orders", params=params)
            for raw in (resp.json() or {}).get("orders") or []:
                out.append(imported_from_payload(raw))
            nxt = resp.links.get("next", {}).get("url")
            # page_info cursors carry the filters; the next URL is absolute
            path, params = (nxt, {}) if nxt else (None, {})
        return out

    async def push_fulfillment(self, order: Any, tracking: TrackingInfo) -> FulfillmentResult:
        order_id = await self._order_id(order)
        data = await self._json("GET", f"/orders/{order_id}/fulfillment_orders.json", call="fulfillment_orders")
        fos = data.get("fulfillment_orders") or []
        open_fos = [fo for fo in fos if fo.get("status") in FULFILLABLE_STATES]

        line_items = [
            {
                "fulfillment_order_id": fo["id"],
                "fulfillment_order_line_items": [
                    {"id": li["id"], "quantity": li.get("fulfillable_quantity") or 0}
                    for li in fo.get("line_items") or []
                    if (li.get("fulfillable_quantity") or 0) > 0
                ],
            }
            for fo in open_fos
        ]
        line_items = [x for x in line_items if x["fulfillment_order_line_items"]]

        if not line_items:
            if fos:
                existing = await self.pull_fulfillment_status(order)
                raise AlreadyExistsError(
                    f"shopify order {order.order_name} has nothing left to fulfill",
                    existing_ref=existing.fulfillment_id,
                    payload={"platform_order_id": order_id},
                    provider=self.name,
                )
            raise ValidationError(f"shopify order {order.order_name} has no fulfillment orders", provider=self.name)

        body = {
            "fulfillment": {
                "tracking_info": {
                    "number": tracking.tracking_number,
                    "company": tracking.carrier,
                    "url": tracking.url,
                },
                "notify_customer": True,
                "line_items_by_fulfillment_order": line_items,
            }
        }
        res = await self._json("POST", "/fulfillments.json", call="create_fulfillment", json=body)
        ful = res.get("fulfillment") or {}
        return FulfillmentResult(
            fulfillment_id=str(ful["id"]) if ful.get("id") is not None else None,
            platform_order_id=order_id,
        )

    async def pull_fulfillment_status(self, order: Any) -> PlatformOrderState:
        order_id = await self._order_id(order)
        data = (await self._json("GET", f"/orders/{order_id}.json", call="get_order")).get("order") or {}
        fulfillments = data.get("fulfillments") or []
        first = fulfillments[0] if fulfillments else {}
        shipment = first.get("shipment_status")
        delivered_at = None
        if shipment in DELIVERED_SHIPMENT_STATES:
            delivered_at = parse_provider_datetime(first.get("updated_at"))
        return PlatformOrderState(
            platform_order_id=order_id,
            fulfillment_status=data.get("fulfillment_status"),
            financial_status=data.get("financial_status"),
            fulfillment_id=str(first["id"]) if first.get("id") is not None else None,
            shipment_status=shipment,
            delivered_at=delivered_at,
            cancelled=bool(data.get("cancelled_at")),
        )

    async def mark_delivered(self, order: Any) -> None:
        order_id = await self._order_id(order)
        fulfillment_id = order.platform_fulfillment_id
        if not fulfillment_id:
            fulfillment_id = (await self.pull_fulfillment_status(order)).fulfillment_id
        if not fulfillment_id:
            raise ValidationError(f"shopify order {order.order_name} has no fulfillment to mark delivered", provider=self.name)
        await self._json(
            "POST",
            f"/orders/{order_id}/fulfillments/{fulfillment_id}/events.json",
            call="fulfillment_event",
            json={"event": {"status": "delivered", "message": "Package has been delivered"}},
        )

    async def capture_cod_payment(self, order: Any) -> PaymentCapture:
        order_id = await self._order_id(order)
        data = (await self._json("GET", f"/orders/{order_id}.json", call="get_order")).get("order") or {}
        financial = data.get("financial_status")
        if financial not in COD_OPEN_STATES:
            log.info("shopify order %s is %s; no payment to capture", order.order_name, financial)
            return PaymentCapture(financial_status=financial)

        amount = data.get("total_outstanding") or data.get("total_price") or str(order.total_price or "0")
        res = await self._json(
            "POST",
            f"/orders/{order_id}/transactions.json",
            call="capture_payment",
            json={
                "transaction": {
                    "kind": "capture",
                    "status": "success",
                    "amount": str(amount),
                    "currency": data.get("currency") or order.currency or "EUR",
                }
            },
        )
        txn = res.get("transaction") or {}
        return PaymentCapture(
            financial_status="paid",
            captured=True,
            transaction_id=str(txn["id"]) if txn.get("id") is not None else None,
        )
