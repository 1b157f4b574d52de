# orderhub/adapters/fake.py
"""
In-process fakes for every capability ("fake" provider tag).

Used for local runs and tests. Behaviour is configured per instance:
  - failures: order_name / voucher -> exception (or list of exceptions consumed
    one per call, for "fails twice then succeeds")
  - statuses: voucher -> tracking status text
  - delay:    seconds to await inside every call
Every call is recorded in `calls`; `peak_in_flight` is the highest number of
calls that were running at the same time.
"""
from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from orderhub.adapters.base import (
    CourierAdapter,
    FulfillmentResult,
    ImportedOrder,
    InvoiceResult,
    InvoicingAdapter,
    LabelResult,
    PaymentCapture,
    PlatformAdapter,
    PlatformOrderState,
    TrackingInfo,
    TrackingResult,
)
from orderhub.adapters.errors import ProviderError, TransientError

Failure = Union[ProviderError, List[ProviderError]]


class _FakeBase:
    name = "fake"

    def __init__(self, *, failures: Optional[Mapping[str, Failure]] = None, delay: float = 0.0):
        self.failures: Dict[str, Failure] = dict(failures or {})
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []
        self.closed = False
        self.in_flight = 0
        self.peak_in_flight = 0

    async def _enter(self, call: str, key: str) -> None:
        self.calls.append((call, key))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        failure = self.failures.get(key)
        if failure is None:
            return
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
            return
        raise failure

    def count(self, call: str) -> int:
        return sum(1 for c, _ in self.calls if c == call)

    async def aclose(self) -> None:
        self.closed = True


class FakeCourier(_FakeBase, CourierAdapter):
    carrier_name = "Fake Courier"

    def __init__(
        self,
        *,
        failures: Optional[Mapping[str, Failure]] = None,
        statuses: Optional[Mapping[str, str]] = None,
        delay: float = 0.0,
        prefix: str = "FAKE",
    ):
        super().__init__(failures=failures, delay=delay)
        self.statuses: Dict[str, str] = dict(statuses or {})
        self.prefix = prefix
        self._seq = itertools.count(1)

    async def create_label(self, order: Any) -> LabelResult:
        await self._enter("create_label", order.order_name)
        return LabelResult(voucher_number=f"{self.prefix}{next(self._seq):06d}", job_id=order.order_name)

    async def get_status(self, voucher_number: str) -> TrackingResult:
        await self._enter("get_status", voucher_number)
        text = self.statuses.get(voucher_number)
        if text is None:
            raise TransientError(f"no tracking yet for {voucher_number}", provider=self.name)
        return TrackingResult(status_text=text, raw_status=text)

    def tracking_url(self, voucher_number: str) -> Optional[str]:
        return f"https://tracking.invalid/{voucher_number}"


class FakeInvoicing(_FakeBase, InvoicingAdapter):
    def __init__(self, *, failures: Optional[Mapping[str, Failure]] = None, delay: float = 0.0, series: str = "FCT"):
        super().__init__(failures=failures, delay=delay)
        self.series = series
        self._seq = itertools.count(1)

    async def create_invoice(self, order: Any) -> InvoiceResult:
        await self._enter("create_invoice", order.order_name)
        number = str(next(self._seq))
        return InvoiceResult(
            invoice_id=f"{self.series}-{number}",
            invoice_number=number,
            invoice_url=f"https://invoices.invalid/{self.series}/{number}",
            series=self.series,
        )


class FakePlatform(_FakeBase, PlatformAdapter):
    def __init__(
        self,
        *,
        orders: Optional[List[ImportedOrder]] = None,
        states: Optional[Mapping[str, PlatformOrderState]] = None,
        failures: Optional[Mapping[str, Failure]] = None,
        delay: float = 0.0,
    ):
        super().__init__(failures=failures, delay=delay)
        self.orders: List[ImportedOrder] = list(orders or [])
        self.states: Dict[str, PlatformOrderState] = dict(states or {})
        self.pushed: Dict[str, List[TrackingInfo]] = defaultdict(list)

    async def fetch_orders(self, since: Optional[datetime]) -> List[ImportedOrder]:
        await self._enter("fetch_orders", "*")
        return list(self.orders)

    async def push_fulfillment(self, order: Any, tracking: TrackingInfo) -> FulfillmentResult:
        await self._enter("push_fulfillment", order.order_name)
        self.pushed[order.order_name].append(tracking)
        return FulfillmentResult(
            fulfillment_id=f"F-{order.order_name}",
            platform_order_id=order.platform_order_id or order.order_name,
        )

    async def pull_fulfillment_status(self, order: Any) -> PlatformOrderState:
        await self._enter("pull_fulfillment_status", order.order_name)
        state = self.states.get(order.order_name)
        if state is None:
            return PlatformOrderState(
                platform_order_id=order.platform_order_id,
                fulfillment_status=order.fulfillment_status,
                financial_status=order.financial_status,
            )
        return state

    async def mark_delivered(self, order: Any) -> None:
        await self._enter("mark_delivered", order.order_name)

    async def capture_cod_payment(self, order: Any) -> PaymentCapture:
        await self._enter("capture_cod_payment", order.order_name)
        return PaymentCapture(financial_status="paid", captured=True, transaction_id=f"T-{order.order_name}")
