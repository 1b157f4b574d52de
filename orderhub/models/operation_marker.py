# orderhub/models/operation_marker.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.db.base import Base
from orderhub.models.enums import MarkerState


class OperationMarker(Base):
    """
    Idempotency marker: at most one row per (order_id, operation_kind).

    - state=in_flight : a worker owns the operation; updated_at is the lease start
    - state=done      : the side effect happened; never repeated
    """

    __tablename__ = "operation_markers"
    __table_args__ = (
        UniqueConstraint("order_id", "operation_kind", name="uq_operation_markers_order_kind"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    operation_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default=MarkerState.IN_FLIGHT.value)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<OperationMarker order={self.order_id} kind={self.operation_kind} state={self.state}>"
