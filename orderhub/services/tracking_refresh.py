# orderhub/services/tracking_refresh.py
"""
Tracking refresh: pull courier status for every open shipment in a workspace.

- open shipment = voucher set and status not terminal
  (delivered / returned / completed / cancelled drop out of future scans)
- keyset pages of TRACKING_PAGE_SIZE by id; never the whole set in memory
- each page goes through the coordinator's update-tracking path, so the
  guard, limits, retries and per-order isolation are the same as a bulk run
- every run leaves a tracking_sync_log row
- orders first seen delivered are confirmed on the platform (delivered
  event, COD capture) when the workspace has a platform
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select

from orderhub.adapters.errors import NotConfiguredError
from orderhub.api.errors import BizError
from orderhub.core.clock import utcnow
from orderhub.metrics import TRACKING_ORDERS
from orderhub.models.enums import OperationKind, SyncRunStatus
from orderhub.models.tracking_sync_log import TrackingSyncLog
from orderhub.models.workspace import Workspace
from orderhub.services import order_repo
from orderhub.services.bulk_coordinator import BulkCoordinator
from orderhub.services.bulk_runs import BulkRun

log = logging.getLogger("orderhub.tracking")


@dataclass
class RefreshSummary:
    workspace_id: int
    total_scanned: int = 0
    total_updated: int = 0
    total_failed: int = 0
    total_delivery_confirmed: int = 0
    sync_log_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "workspace_id": self.workspace_id,
            "total_scanned": self.total_scanned,
            "total_updated": self.total_updated,
            "total_failed": self.total_failed,
            "total_delivery_confirmed": self.total_delivery_confirmed,
            "sync_log_id": self.sync_log_id,
        }


class TrackingRefresher:
    def __init__(self, coordinator: BulkCoordinator, *, page_size: Optional[int] = None):
        self.coordinator = coordinator
        self._sf = coordinator._sf
        self.page_size = page_size or coordinator.settings.TRACKING_PAGE_SIZE

    async def refresh_tracking(
        self, workspace_id: int, *, trigger: str = "manual", run: Optional[BulkRun] = None
    ) -> RefreshSummary:
        config, providers = await self.coordinator.load_workspace(workspace_id)
        summary = RefreshSummary(workspace_id=workspace_id)
        summary.sync_log_id = await self._open_log(workspace_id, trigger)

        try:
            providers.require_courier()
        except NotConfiguredError as e:
            await self._close_log(summary, SyncRunStatus.FAILED, e.message)
            raise BizError(e.message, code="NOT_CONFIGURED", status=409) from e

        after_id = 0
        try:
            while True:
                if run is not None and run.cancel_requested:
                    break
                async with self._sf() as session:
                    page = await order_repo.tracking_page(
                        session, workspace_id, after_id=after_id, limit=self.page_size
                    )
                if not page:
                    break
                after_id = page[-1][0]

                result = await self.coordinator.run_for_orders(
                    page, OperationKind.UPDATE_TRACKING, config, providers, run=run
                )
                summary.total_scanned += len(page)
                summary.total_updated += len(result.changed)
                summary.total_failed += len(result.failed)
                summary.total_delivery_confirmed += len(result.delivery_confirmed)
                TRACKING_ORDERS.labels("updated").inc(len(result.changed))
                TRACKING_ORDERS.labels("unchanged").inc(len(result.success) - len(result.changed))
                TRACKING_ORDERS.labels("failed").inc(len(result.failed))
        except Exception as e:
            log.exception("tracking refresh failed for workspace %s", workspace_id)
            await self._close_log(summary, SyncRunStatus.FAILED, str(e))
            raise

        await self._close_log(summary, SyncRunStatus.COMPLETED, None)
        log.info(
            "tracking refresh ws=%s: scanned=%d updated=%d failed=%d delivery_confirmed=%d",
            workspace_id, summary.total_scanned, summary.total_updated, summary.total_failed,
            summary.total_delivery_confirmed,
        )
        return summary

    async def refresh_all(self, *, trigger: str = "scheduled") -> List[RefreshSummary]:
        """Every active workspace with a courier; one workspace failing does not stop the others."""
        async with self._sf() as session:
            ids = (
                await session.execute(
                    select(Workspace.id)
                    .where(Workspace.is_active.is_(True), Workspace.courier_provider.is_not(None))
                    .order_by(Workspace.id)
                )
            ).scalars().all()

        out: List[RefreshSummary] = []
        for ws_id in ids:
            try:
                out.append(await self.refresh_tracking(ws_id, trigger=trigger))
            except Exception:
                log.exception("scheduled tracking refresh failed for workspace %s", ws_id)
        return out

    # ------------------------------------------------------------------ #

    async def _open_log(self, workspace_id: int, trigger: str) -> int:
        async with self._sf() as session, session.begin():
            row = TrackingSyncLog(
                workspace_id=workspace_id,
                status=SyncRunStatus.RUNNING.value,
                trigger=trigger,
                started_at=utcnow(),
            )
            session.add(row)
            await session.flush()
            return row.id

    async def _close_log(self, summary: RefreshSummary, status: SyncRunStatus, error: Optional[str]) -> None:
        async with self._sf() as session, session.begin():
            row = await session.get(TrackingSyncLog, summary.sync_log_id)
            if row is None:
                return
            row.status = status.value
            row.completed_at = utcnow()
            row.orders_scanned = summary.total_scanned
            row.orders_updated = summary.total_updated
            row.errors_count = summary.total_failed
            row.error_message = error[:2000] if error else None


async def recent_sync_logs(session, workspace_id: int, limit: int = 20) -> List[TrackingSyncLog]:
    rows = await session.execute(
        select(TrackingSyncLog)
        .where(TrackingSyncLog.workspace_id == workspace_id)
        .order_by(TrackingSyncLog.id.desc())
        .limit(limit)
    )
    return list(rows.scalars().all())
