# orderhub/adapters/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

# ============================================================
#                    Capability results
# ============================================================


@dataclass(frozen=True)
class LabelResult:
    voucher_number: str
    label_document: Optional[bytes] = None
    job_id: Optional[str] = None


@dataclass(frozen=True)
class TrackingResult:
    """
    status_text : what gets stored as orders.delivery_status
    raw_status  : provider status as received
    normalized  : provider's own coarse classification, when it has one
    """

    status_text: str
    raw_status: Optional[str] = None
    normalized: Optional[str] = None
    occurred_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class InvoiceResult:
    invoice_id: str
    invoice_number: Optional[str] = None
    invoice_url: Optional[str] = None
    series: Optional[str] = None


@dataclass(frozen=True)
class TrackingInfo:
    tracking_number: str
    carrier: str
    url: Optional[str] = None


@dataclass(frozen=True)
class FulfillmentResult:
    fulfillment_id: Optional[str] = None
    platform_order_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentCapture:
    """Outcome of collecting a cash-on-delivery payment on the platform."""

    financial_status: Optional[str]
    captured: bool = False
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class PlatformOrderState:
    platform_order_id: Optional[str]
    fulfillment_status: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_id: Optional[str] = None
    shipment_status: Optional[str] = None
    delivered_at: Optional[datetime] = None
    cancelled: bool = False


@dataclass
class ImportedOrder:
    order_name: str
    platform_order_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    zip: Optional[str] = None
    country_code: Optional[str] = None
    note: Optional[str] = None
    total_price: Decimal = Decimal("0")
    currency: Optional[str] = None
    payment_gateway: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    products: List[Dict[str, Any]] = field(default_factory=list)


# ============================================================
#                    Capability contracts
# ============================================================


class ProviderAdapter(ABC):
    """
    Common base: one instance per workspace, bound to that workspace's
    credentials and settings, owning its connection for its lifetime.
    """

    name: str = ""

    async def aclose(self) -> None:
        return None


class CourierAdapter(ProviderAdapter):
    """Shipping + Tracking capability."""

    carrier_name: str = ""

    @abstractmethod
    async def create_label(self, order: Any) -> LabelResult:
        """Issue a voucher for the order. Not idempotent on the provider side."""
        ...

    @abstractmethod
    async def get_status(self, voucher_number: str) -> TrackingResult:
        ...

    def tracking_url(self, voucher_number: str) -> Optional[str]:
        return None


class InvoicingAdapter(ProviderAdapter):
    @abstractmethod
    async def create_invoice(self, order: Any) -> InvoiceResult:
        ...


class PlatformAdapter(ProviderAdapter):
    """PlatformSync capability."""

    @abstractmethod
    async def fetch_orders(self, since: Optional[datetime]) -> List[ImportedOrder]:
        ...

    @abstractmethod
    async def push_fulfillment(self, order: Any, tracking: TrackingInfo) -> FulfillmentResult:
        ...

    @abstractmethod
    async def pull_fulfillment_status(self, order: Any) -> PlatformOrderState:
        ...

    @abstractmethod
    async def mark_delivered(self, order: Any) -> None:
        """Post a delivered event on the order's fulfillment."""
        ...

    @abstractmethod
    async def capture_cod_payment(self, order: Any) -> PaymentCapture:
        """Record the cash collected by the courier; no-op when the platform already shows it paid."""
        ...
