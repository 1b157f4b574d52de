# orderhub/adapters/meest.py
"""
Meest courier (REST, bearer token).

Token is cached per adapter instance and refreshed 5 minutes before expiry,
or once immediately when a call comes back 401.
"""
from __future__ import annotations

import asyncio
import re
import time
from typing import Any, Dict, List, Mapping, Optional

import httpx

from orderhub.adapters.base import CourierAdapter, LabelResult, TrackingResult
from orderhub.adapters.errors import AuthError, NotConfiguredError, ProviderError
from orderhub.adapters.http import HttpProviderClient
from orderhub.core.clock import parse_provider_datetime
from orderhub.domain.status import order_total, payment_method

TOKEN_BUFFER_SECONDS = 5 * 60
DEFAULT_TOKEN_TTL_SECONDS = 12 * 60 * 60
PARCEL_NUMBER_MAX = 20

_B36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _B36[r] + out
        if n == 0:
            return out


def parcel_number(order_name: str, *, now_ms: Optional[int] = None) -> str:
    """'ET' + up to 8 alnum chars of the order name + base36 millisecond timestamp, max 20 chars."""
    clean = re.sub(r"[^A-Za-z0-9]", "", order_name or "")[:8].upper()
    stamp = _base36(now_ms if now_ms is not None else int(time.time() * 1000))
    return f"ET{clean}{stamp}"[:PARCEL_NUMBER_MAX]


def normalize_status(raw: Optional[str]) -> str:
    status = (raw or "").upper()
    if "DELIVERED" in status:
        return "delivered"
    if "RETURN" in status or status == "REFUSED":
        return "returned"
    if "CANCEL" in status:
        return "cancelled"
    if "OUT_FOR" in status or "OUT FOR" in status or "TRANSIT" in status or "PICKED" in status:
        return "in_transit"
    if "CREATED" in status:
        return "awb_created"
    return "in_transit"


def _f(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def build_parcel_request(order: Any, settings: Mapping[str, Any], *, number: Optional[str] = None) -> Dict[str, Any]:
    """
    Parcel payload for POST /v2/api/parcels.

    settings keys (all optional): meest_cod_handling (auto|always|never),
    meest_default_weight, meest_default_service, meest_default_width/height/length,
    meest_sender_*, sender_name, sender_phone, sender_email, invoice_currency
    """
    cod_handling = str(settings.get("meest_cod_handling") or "auto").lower()
    if cod_handling == "always":
        is_cod = True
    elif cod_handling == "never":
        is_cod = False
    else:
        is_cod = payment_method(order) == "cod"

    weight = _f(settings.get("meest_default_weight"), 1.0)
    total = float(order_total(order))
    currency = settings.get("invoice_currency") or order.currency or "EUR"

    products: List[Dict[str, Any]] = list(getattr(order, "products", None) or [])
    items: List[Dict[str, Any]] = []
    for p in products:
        items.append(
            {
                "description": {"description": p.get("name") or "Product"},
                "logistic": {"quantity": int(p.get("quantity") or 1), "weight": weight / len(products)},
                "value": {"value": _f(p.get("price"), total / len(products))},
            }
        )
    if not items:
        items.append(
            {
                "description": {"description": f"Order {order.order_name}"},
                "logistic": {"quantity": 1, "weight": weight},
                "value": {"value": total},
            }
        )

    address1 = order.address1 or ""
    building = re.search(r"\d+", address1)
    street = re.sub(r"^\d+\s*", "", address1).strip() or address1 or "Address"

    request: Dict[str, Any] = {
        "parcelNumber": number or parcel_number(order.order_name),
        "serviceDetails": {"service": settings.get("meest_default_service") or "ECONOMIC_STANDARD"},
        "metrics": {
            "dimensions": {
                "width": _f(settings.get("meest_default_width"), 20),
                "height": _f(settings.get("meest_default_height"), 15),
                "length": _f(settings.get("meest_default_length"), 30),
            },
            "weight": weight,
        },
        "value": {"localTotalValue": total, "localCurrency": currency},
        "sender": {
            "name": settings.get("sender_name") or "Sender",
            "country": settings.get("meest_sender_country") or "RO",
            "zipCode": settings.get("meest_sender_zip") or "",
            "city": settings.get("meest_sender_city") or "",
            "street": settings.get("meest_sender_street") or "",
            "buildingNumber": settings.get("meest_sender_building") or "",
            "phone": settings.get("sender_phone") or "",
            "email": settings.get("sender_email") or "",
        },
        "recipient": {
            "name": f"{order.first_name or ''} {order.last_name or ''}".strip() or "Customer",
            "country": order.country_code or "GR",
            "zipCode": order.zip or "",
            "city": order.city or "",
            "street": street,
            "buildingNumber": building.group(0) if building else "1",
            "phone": order.phone or "",
            "email": order.email or "",
        },
        "items": items,
        "logisticsOptions": {"labelFormat": "PDF"},
    }
    if is_cod:
        request["cod"] = {"value": total, "currency": currency}
    return request


class MeestAdapter(HttpProviderClient, CourierAdapter):
    name = "meest"
    carrier_name = "Meest"

    def __init__(
        self,
        credentials: Mapping[str, Any],
        *,
        base_url: str,
        timeout: float,
        settings: Optional[Mapping[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not credentials.get("username") or not credentials.get("password"):
            raise NotConfiguredError("meest credentials not configured", provider=self.name)
        super().__init__(
            base_url=credentials.get("base_url") or base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self._username = credentials["username"]
        self._password = credentials["password"]
        self._settings = dict(settings or {})
        self._token: Optional[str] = None
        self._token_expires: float = 0.0
        self._token_lock = asyncio.Lock()

    async def _get_token(self, *, force: bool = False) -> str:
        async with self._token_lock:
            if not force and self._token and time.time() < self._token_expires - TOKEN_BUFFER_SECONDS:
                return self._token
            data = await self._json(
                "POST",
                "/v2/api/auth",
                call="auth",
                json={"username": self._username, "password": self._password},
            )
            token = data.get("access_token")
            if not token:
                raise AuthError("meest auth returned no access_token", provider=self.name)
            self._token = str(token)
            self._token_expires = time.time() + int(data.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS)
            return self._token

    async def _authed(self, method: str, path: str, *, call: str, **kwargs: Any) -> Dict[str, Any]:
        token = await self._get_token()
        try:
            return await self._json(method, path, call=call, headers={"Authorization": f"Bearer {token}"}, **kwargs)
        except AuthError:
            token = await self._get_token(force=True)
            return await self._json(method, path, call=call, headers={"Authorization": f"Bearer {token}"}, **kwargs)

    async def create_label(self, order: Any) -> LabelResult:
        body = build_parcel_request(order, self._settings)
        data = await self._authed("POST", "/v2/api/parcels", call="create_parcel", json=body)
        number = data.get("parcelNumber") or body["parcelNumber"]
        if not number:
            raise ProviderError("meest returned no parcel number", provider=self.name)
        label = data.get("lastMileLabel") or data.get("firstMileLabel")
        job_id = data.get("objectID")
        return LabelResult(
            voucher_number=str(number),
            label_document=label.encode() if isinstance(label, str) else None,
            job_id=str(job_id) if job_id is not None else None,
        )

    async def get_status(self, voucher_number: str) -> TrackingResult:
        data = await self._authed(
            "GET", "/v2/api/tracking", call="tracking", params={"parcelNumber": voucher_number}
        )
        raw = str(data.get("status") or "").strip()
        normalized = normalize_status(raw)
        occurred = parse_provider_datetime(data.get("statusDate"))
        return TrackingResult(
            status_text=raw,
            raw_status=raw or None,
            normalized=normalized,
            occurred_at=occurred,
            delivered_at=occurred if normalized == "delivered" else None,
            location=(str(data.get("currentLocation") or "").strip() or None),
        )
