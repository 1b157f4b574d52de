# orderhub/adapters/oblio.py
"""
Oblio invoicing (REST, client-credentials token).

Invoice lines: the order total is what the customer paid. Below the
free-shipping threshold a shipping line is split off; the rest is spread over
the products in proportion to their list prices (VAT included).
"""
from __future__ import annotations

import asyncio
import time
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

import httpx

from orderhub.adapters.base import InvoiceResult, InvoicingAdapter
from orderhub.adapters.errors import AuthError, NotConfiguredError, ProviderError, ValidationError
from orderhub.adapters.http import HttpProviderClient
from orderhub.core.clock import ensure_utc
from orderhub.domain.status import order_total

TOKEN_REFRESH_EARLY_SECONDS = 5 * 60
SHIPPING_LINE_NAME = "Transport / Livrare"
_Q = Decimal("0.0001")


def _dec(value: Any, default: str = "0") -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal(default)
    except (InvalidOperation, TypeError, ValueError):
        return Decimal(default)


def _line(name: str, description: str, quantity: int, price: Decimal, vat: Decimal) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "quantity": quantity,
        "measuringUnit": "buc",
        "price": float(price.quantize(_Q, rounding=ROUND_HALF_UP)),
        "vatName": "Normala",
        "vatPercentage": float(vat),
        "vatIncluded": True,
    }


def build_invoice_products(order: Any, settings: Mapping[str, Any]) -> List[Dict[str, Any]]:
    total = order_total(order)
    vat = _dec(settings.get("oblio_vat_rate"), "21")
    products = list(getattr(order, "products", None) or [])

    if not products:
        return [_line(f"Order {order.order_name}", order.note or "", 1, total, vat)]

    threshold = settings.get("shipping_threshold")
    shipping = Decimal("0")
    if threshold is not None and total < _dec(threshold):
        shipping = _dec(settings.get("shipping_cost"))

    products_cost = total - shipping
    quantities = [max(1, int(p.get("quantity") or 1)) for p in products]
    list_total = sum(_dec(p.get("price")) * q for p, q in zip(products, quantities))
    total_qty = sum(quantities)

    lines: List[Dict[str, Any]] = []
    for p, qty in zip(products, quantities):
        if list_total > 0:
            share = (_dec(p.get("price")) * qty) / list_total
            unit = (products_cost * share) / qty
        else:
            unit = products_cost / total_qty
        lines.append(_line(p.get("name") or "Product", p.get("description") or "", qty, unit, vat))

    if shipping > 0:
        lines.append(_line(SHIPPING_LINE_NAME, "Shipping charges", 1, shipping, vat))
    return lines


def build_invoice_request(order: Any, cif: str, settings: Mapping[str, Any], *, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or date.today()
    delivered = ensure_utc(getattr(order, "delivered_at", None))
    remarks = f"Order: {order.order_name}"
    if order.note:
        remarks += f"\n{order.note}"
    return {
        "cif": cif,
        "seriesName": settings.get("oblio_series_name") or "FCT",
        "client": {
            "name": f"{order.first_name or ''} {order.last_name or ''}".strip() or "Client",
            "address": order.address1 or "",
            "city": order.city or "",
            "state": order.province or "",
            "country": order.country_code or "GR",
            "email": order.email or "",
            "phone": order.phone or "",
            "vatPayer": False,
        },
        "issueDate": today.isoformat(),
        "dueDate": today.isoformat(),
        "deliveryDate": (delivered.date() if delivered else today).isoformat(),
        "remarks": remarks,
        "language": settings.get("invoice_language") or "EN",
        "precision": 2,
        "currency": settings.get("invoice_currency") or order.currency or "EUR",
        "products": build_invoice_products(order, settings),
    }


class OblioAdapter(HttpProviderClient, InvoicingAdapter):
    name = "oblio"

    def __init__(
        self,
        credentials: Mapping[str, Any],
        *,
        base_url: str,
        timeout: float,
        settings: Optional[Mapping[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        for key in ("email", "secret", "cif"):
            if not credentials.get(key):
                raise NotConfiguredError(f"oblio credential '{key}' missing", provider=self.name)
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)
        self._email = credentials["email"]
        self._secret = credentials["secret"]
        self._cif = credentials["cif"]
        self._settings = dict(settings or {})
        self._token: Optional[str] = None
        self._token_expires: float = 0.0
        self._token_lock = asyncio.Lock()

    async def _get_token(self) -> str:
        async with self._token_lock:
            if self._token and time.time() < self._token_expires:
                return self._token
            data = await self._json(
                "POST",
                "/authorize/token",
                call="auth",
                data={"client_id": self._email, "client_secret": self._secret},
            )
            token = data.get("access_token")
            if not token:
                raise AuthError("oblio returned no access_token", provider=self.name)
            expires_in = int(data.get("expires_in") or 3600)
            self._token = str(token)
            self._token_expires = time.time() + expires_in - TOKEN_REFRESH_EARLY_SECONDS
            return self._token

    async def create_invoice(self, order: Any) -> InvoiceResult:
        if not order.products and order_total(order) <= 0:
            raise ValidationError(f"order {order.order_name} has nothing to invoice", provider=self.name)

        token = await self._get_token()
        body = build_invoice_request(order, self._cif, self._settings)
        data = await self._json(
            "POST",
            "/docs/invoice",
            call="create_invoice",
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )
        if int(data.get("status") or 0) != 200:
            raise ProviderError(
                f"oblio: {data.get('statusMessage') or 'invoice not created'}", provider=self.name
            )
        doc = data.get("data") or {}
        series = doc.get("seriesName") or body["seriesName"]
        number = doc.get("number")
        if not number:
            raise ProviderError("oblio returned no invoice number", provider=self.name)
        return InvoiceResult(
            invoice_id=f"{series}-{number}",
            invoice_number=str(number),
            invoice_url=doc.get("link"),
            series=str(series),
        )
