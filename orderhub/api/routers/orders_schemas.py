# orderhub/api/routers/orders_schemas.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderStatusOut(BaseModel):
    order_name: str
    order_status: str = Field(
        ..., description="cancelled | completed | returned | delivered | in_transit | awb_created | unfulfilled"
    )


class CancelOrderIn(BaseModel):
    workspace_id: int = Field(..., ge=1)


class CancelOrderOut(BaseModel):
    ok: bool = True
    order_name: str
    order_status: str


class ImportOrdersIn(BaseModel):
    workspace_id: int = Field(..., ge=1)
    since: Optional[datetime] = Field(None, description="Only orders updated on the platform since this time")


class ImportFailure(BaseModel):
    order_name: str
    message: str


class ImportOrdersOut(BaseModel):
    workspace_id: int
    fetched: int
    created: int
    updated: int
    unchanged: int
    failed: List[ImportFailure] = Field(default_factory=list)
