# orderhub/api/routers/tracking_routes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.api.deps import get_runtime, get_session
from orderhub.api.routers.tracking_schemas import (
    SyncLogListOut,
    SyncLogRow,
    TrackingRefreshIn,
    TrackingRefreshOut,
)
from orderhub.services.runtime import Runtime
from orderhub.services.tracking_refresh import recent_sync_logs


def register(router: APIRouter) -> None:
    @router.post(
        "/refresh",
        response_model=TrackingRefreshOut,
        summary="Refresh courier tracking for every open shipment of a workspace",
    )
    async def refresh_tracking(body: TrackingRefreshIn, runtime: Runtime = Depends(get_runtime)):
        summary = await runtime.refresher().refresh_tracking(body.workspace_id, trigger="manual")
        return summary.to_dict()

    @router.get("/sync-log", response_model=SyncLogListOut, summary="Latest tracking refresh runs")
    async def sync_log(
        workspace_id: int = Query(..., ge=1),
        limit: int = Query(20, ge=1, le=200),
        session: AsyncSession = Depends(get_session),
    ):
        rows = await recent_sync_logs(session, workspace_id, limit=limit)
        return SyncLogListOut(items=[SyncLogRow.model_validate(r) for r in rows])
