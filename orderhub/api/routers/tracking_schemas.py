# orderhub/api/routers/tracking_schemas.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TrackingRefreshIn(BaseModel):
    workspace_id: int = Field(..., ge=1)


class TrackingRefreshOut(BaseModel):
    workspace_id: int
    total_scanned: int = Field(..., description="Open shipments visited")
    total_updated: int = Field(..., description="Orders whose tracking fields or status changed")
    total_failed: int = Field(..., description="Orders whose courier lookup failed")
    total_delivery_confirmed: int = Field(0, description="Delivered orders confirmed on the platform")
    sync_log_id: Optional[int] = None


class SyncLogRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: int
    status: str
    trigger: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    orders_scanned: int = 0
    orders_updated: int = 0
    errors_count: int = 0
    error_message: Optional[str] = None


class SyncLogListOut(BaseModel):
    items: List[SyncLogRow]
