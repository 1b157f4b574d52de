# orderhub/models/order.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.db.base import Base
from orderhub.models.enums import OrderStatus


class Order(Base):
    """
    One order per (workspace_id, order_name).

    - order_status is derived (orderhub.domain.status) and rewritten by
      orderhub.services.order_repo after every mutation; nothing else writes it
    - voucher_number and invoice_* are set once
    - cancelled is one-way
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("workspace_id", "order_name", name="uq_orders_workspace_order_name"),
        Index("ix_orders_workspace_status", "workspace_id", "order_status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id"), nullable=False, index=True)

    # Identity
    order_name: Mapped[str] = mapped_column(String(64), nullable=False)
    platform_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Customer / address (opaque here, passed through to providers)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    province: Mapped[str | None] = mapped_column(String(128), nullable=True)
    zip: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Money
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    payment_gateway: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # [{name, quantity, price}]
    products: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Platform signals
    financial_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    fulfillment_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    platform_fulfillment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Shipping signals
    courier: Mapped[str | None] = mapped_column(String(32), nullable=True)
    voucher_number: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    courier_job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    voucher_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivery_status: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    delivery_status_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_tracking_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Invoicing signals
    invoice_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invoice_series: Mapped[str | None] = mapped_column(String(32), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    invoice_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    invoiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Lifecycle
    order_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=OrderStatus.UNFULFILLED.value, index=True
    )
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    @property
    def customer_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<Order id={self.id} ws={self.workspace_id} name={self.order_name!r} status={self.order_status}>"
