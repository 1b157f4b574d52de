# orderhub/models/tracking_sync_log.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.db.base import Base
from orderhub.models.enums import SyncRunStatus


class TrackingSyncLog(Base):
    """One row per tracking refresh run."""

    __tablename__ = "tracking_sync_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SyncRunStatus.RUNNING.value)
    trigger: Mapped[str] = mapped_column(String(16), nullable=False, default="manual")

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    orders_scanned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    orders_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
