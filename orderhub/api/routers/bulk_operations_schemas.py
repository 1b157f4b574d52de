# orderhub/api/routers/bulk_operations_schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from orderhub.models.enums import OperationKind


class BulkOperationIn(BaseModel):
    workspace_id: int = Field(..., ge=1, description="Workspace the orders belong to")
    order_ids: List[str] = Field(..., min_length=1, description="Order names (e.g. #1001); duplicates are ignored")
    operation: OperationKind = Field(..., description="fulfill | create-label | update-tracking | create-invoice | sync-from-platform | confirm-delivery")
    run_id: Optional[str] = Field(None, max_length=64, description="Optional client-chosen run id for progress polling")


class SkippedOut(BaseModel):
    order_id: str
    reason: str


class FailedOut(BaseModel):
    order_id: str
    error_code: str
    message: str
    retryable: bool = False


class BulkResultOut(BaseModel):
    run_id: Optional[str] = None
    operation: str
    workspace_id: int
    success: List[str] = Field(default_factory=list)
    skipped: List[SkippedOut] = Field(default_factory=list)
    failed: List[FailedOut] = Field(default_factory=list)
    in_flight: List[str] = Field(default_factory=list, description="Another worker holds the operation for these orders")
    not_started: List[str] = Field(default_factory=list, description="Not started because the run was cancelled")
    summary: Dict[str, int] = Field(default_factory=dict)


class BulkProgressOut(BaseModel):
    total: int = 0
    completed: int = 0
    success: int = 0
    skipped: int = 0
    failed: int = 0
    in_flight: int = 0
    not_started: int = 0


class BulkRunOut(BaseModel):
    run_id: str
    workspace_id: int
    operation: str
    status: str = Field(..., description="running | completed | cancelled")
    cancel_requested: bool = False
    started_at: datetime
    finished_at: Optional[datetime] = None
    progress: BulkProgressOut
