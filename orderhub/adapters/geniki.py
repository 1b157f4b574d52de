# orderhub/adapters/geniki.py
"""
Geniki Taxydromiki courier (SOAP, JobServicesV2).

- zeep client is created lazily, owned by the adapter instance (one per workspace)
- zeep is synchronous; every SOAP call runs in a worker thread
- the auth key is cached on the instance and refreshed once on result code 11
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import date
from typing import Any, Callable, Dict, Mapping, Optional

import requests
import zeep
from zeep.exceptions import Fault, TransportError
from zeep.transports import Transport

from orderhub.adapters.base import CourierAdapter, LabelResult, TrackingResult
from orderhub.adapters.errors import AuthError, NotConfiguredError, ProviderError, TransientError, ValidationError
from orderhub.core.clock import parse_provider_datetime
from orderhub.domain.status import cod_amount, payment_method
from orderhub.metrics import PROVIDER_CALLS, PROVIDER_LATENCY

log = logging.getLogger("orderhub.adapters.geniki")

RESULT_OK = 0
RESULT_INVALID_KEY = 11
RESULT_JOB_CANCELLED = 13  # tracking still valid

AUTH_KEY_TTL_SECONDS = 20 * 60
COD_SERVICE = "ΑΜ"
DEFAULT_SERVICE = "STD"
DEFAULT_WEIGHT_KG = 2
CONTENTS_MAX = 255

_RETURN_CONSIGNEE_HINTS = ("SENDER", "ΑΠΟΣΤΟΛ")


class _InvalidKey(Exception):
    pass


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def contents_description(order: Any) -> str:
    products = getattr(order, "products", None) or []
    if products:
        items = ", ".join(f"{p.get('quantity') or 1}x {p.get('name') or 'Product'}" for p in products)
    else:
        items = "Items not specified"
    return f"{order.order_name} | {items}"[:CONTENTS_MAX]


def build_voucher(order: Any, *, received: Optional[date] = None) -> Dict[str, Any]:
    """oVoucher record for CreateJob."""
    cod = payment_method(order) == "cod"
    return {
        "OrderId": order.order_name,
        "Name": f"{order.first_name or ''} {order.last_name or ''}".strip(),
        "Address": order.address1 or "",
        "City": order.city or "",
        "Country": order.country_code or "GR",
        "Email": order.email or "",
        "Telephone": order.phone or "",
        "Zip": order.zip or "",
        "Weight": DEFAULT_WEIGHT_KG,
        "Pieces": 1,
        "Comments": (order.note or "")[:CONTENTS_MAX],
        "ContentsDescription": contents_description(order),
        "Services": COD_SERVICE if cod else DEFAULT_SERVICE,
        "CodAmount": float(cod_amount(order)),
        "InsAmount": 0,
        "SubCode": "",
        "ReceivedDate": (received or date.today()).isoformat(),
    }


def is_return(track: Any) -> bool:
    """Geniki reports returns through the consignee / return voucher, not only the status text."""
    return_voucher = str(_field(track, "ReturningServiceVoucher") or "").strip()
    consignee = str(_field(track, "Consignee") or "").upper()
    delivered_at = str(_field(track, "DeliveredAt") or "").upper()
    status = str(_field(track, "Status") or "").upper()
    return (
        bool(return_voucher)
        or any(h in consignee for h in _RETURN_CONSIGNEE_HINTS)
        or "RETURN" in delivered_at
        or "SENDER" in delivered_at
        or "RETURN" in status
    )


class GenikiAdapter(CourierAdapter):
    name = "geniki"
    carrier_name = "Geniki Taxydromiki"

    def __init__(
        self,
        credentials: Mapping[str, Any],
        *,
        wsdl_url: str,
        timeout: float,
        language: str = "en",
        client_factory: Optional[Callable[[], Any]] = None,
    ):
        for key in ("username", "password", "app_key"):
            if not credentials.get(key):
                raise NotConfiguredError(f"geniki credential '{key}' missing", provider=self.name)
        self._username = credentials["username"]
        self._password = credentials["password"]
        self._app_key = credentials["app_key"]
        self._wsdl_url = credentials.get("wsdl_url") or wsdl_url
        self._timeout = timeout
        self._language = language
        self._client_factory = client_factory
        self._client: Any = None
        self._auth_key: Optional[str] = None
        self._auth_expires: float = 0.0
        self._auth_lock = asyncio.Lock()

    # ---------------- plumbing ----------------

    def _get_client(self) -> Any:
        if self._client is None:
            if self._client_factory is not None:
                self._client = self._client_factory()
            else:
                transport = Transport(timeout=self._timeout, operation_timeout=self._timeout)
                self._client = zeep.Client(self._wsdl_url, transport=transport)
        return self._client

    async def _soap(self, operation: str, **params: Any) -> Any:
        started = time.perf_counter()
        outcome = "error"

        def _call() -> Any:
            service = self._get_client().service
            return getattr(service, operation)(**params)

        try:
            result = await asyncio.to_thread(_call)
            outcome = "ok"
            return result
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"geniki {operation}: {e}", provider=self.name) from e
        except TransportError as e:
            status = getattr(e, "status_code", 0) or 0
            if status in (401, 403):
                raise AuthError(f"geniki {operation}: HTTP {status}", provider=self.name) from e
            raise TransientError(f"geniki {operation}: HTTP {status}", provider=self.name) from e
        except Fault as e:
            raise TransientError(f"geniki {operation} fault: {e.message}", provider=self.name) from e
        finally:
            PROVIDER_CALLS.labels(self.name, operation, outcome).inc()
            PROVIDER_LATENCY.labels(self.name, operation).observe(time.perf_counter() - started)

    async def _authenticate(self, *, force: bool = False) -> str:
        async with self._auth_lock:
            if not force and self._auth_key and time.monotonic() < self._auth_expires:
                return self._auth_key

            log.info("geniki: requesting auth key (user=%s***)", str(self._username)[:3])
            res = await self._soap(
                "Authenticate",
                sUsrName=self._username,
                sUsrPwd=self._password,
                applicationKey=self._app_key,
            )
            code = _field(res, "Result")
            if code != RESULT_OK:
                self._auth_key = None
                raise AuthError(f"geniki authentication failed with code {code}", provider=self.name)
            self._auth_key = str(_field(res, "Key"))
            self._auth_expires = time.monotonic() + AUTH_KEY_TTL_SECONDS
            return self._auth_key

    async def _with_auth(self, fn: Callable[[str], Any]) -> Any:
        key = await self._authenticate()
        try:
            return await fn(key)
        except _InvalidKey:
            log.info("geniki: auth key rejected (code 11), re-authenticating")
            key = await self._authenticate(force=True)
            try:
                return await fn(key)
            except _InvalidKey as e:
                raise AuthError("geniki rejected a fresh auth key", provider=self.name) from e

    # ---------------- capabilities ----------------

    async def create_label(self, order: Any) -> LabelResult:
        voucher = build_voucher(order)

        async def _create(key: str) -> LabelResult:
            res = await self._soap("CreateJob", sAuthKey=key, oVoucher=voucher, eType="Voucher")
            code = _field(res, "Result")
            if code == RESULT_INVALID_KEY:
                raise _InvalidKey()
            if code != RESULT_OK:
                raise ValidationError(
                    f"geniki rejected voucher for {order.order_name} with code {code}",
                    provider=self.name,
                    details={"result_code": code},
                )
            voucher_no = _field(res, "Voucher")
            if not voucher_no:
                raise ProviderError("geniki CreateJob returned no voucher", provider=self.name)
            job_id = _field(res, "JobId")
            return LabelResult(voucher_number=str(voucher_no), job_id=str(job_id) if job_id is not None else None)

        return await self._with_auth(_create)

    async def get_status(self, voucher_number: str) -> TrackingResult:
        async def _track(key: str) -> TrackingResult:
            res = await self._soap(
                "TrackDeliveryStatus", authKey=key, voucherNo=voucher_number, language=self._language
            )
            code = _field(res, "Result")
            if code == RESULT_INVALID_KEY:
                raise _InvalidKey()
            if code not in (RESULT_OK, RESULT_JOB_CANCELLED):
                raise ValidationError(
                    f"geniki tracking failed for {voucher_number} with code {code}",
                    provider=self.name,
                    details={"result_code": code},
                )

            raw = str(_field(res, "Status") or "").strip()
            returned = is_return(res)
            status_text = "RETURNED" if returned else raw
            delivered_at = None
            if not returned and raw.upper() == "DELIVERED":
                delivered_at = parse_provider_datetime(_field(res, "DeliveryDate"))
            return TrackingResult(
                status_text=status_text,
                raw_status=raw or None,
                normalized="returned" if returned else None,
                occurred_at=parse_provider_datetime(_field(res, "DeliveryDate")),
                delivered_at=delivered_at,
                location=(str(_field(res, "ShopCode") or "").strip() or None),
            )

        return await self._with_auth(_track)

    def tracking_url(self, voucher_number: str) -> Optional[str]:
        return f"https://www.taxydromiki.com/track/{voucher_number}"

    async def aclose(self) -> None:
        client, self._client = self._client, None
        transport = getattr(client, "transport", None)
        session = getattr(transport, "session", None)
        if session is not None:
            session.close()
