# orderhub/services/bulk_runs.py
from __future__ import annotations

import asyncio
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from orderhub.core.clock import utcnow

RUNNING = "running"
COMPLETED = "completed"
CANCELLED = "cancelled"


@dataclass
class BulkProgress:
    total: int = 0
    completed: int = 0
    success: int = 0
    skipped: int = 0
    failed: int = 0
    in_flight: int = 0
    not_started: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


@dataclass
class BulkRun:
    """
    One bulk operation run. Progress counters move as each order's guard
    resolves; cancel() stops new per-order work from starting.
    """

    run_id: str
    workspace_id: int
    operation: str
    status: str = RUNNING
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    progress: BulkProgress = field(default_factory=BulkProgress)
    _cancel: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def record(self, bucket: str) -> None:
        setattr(self.progress, bucket, getattr(self.progress, bucket) + 1)
        if bucket != "not_started":
            self.progress.completed += 1

    def finish(self) -> None:
        self.status = CANCELLED if self.cancel_requested else COMPLETED
        self.finished_at = utcnow()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workspace_id": self.workspace_id,
            "operation": self.operation,
            "status": self.status,
            "cancel_requested": self.cancel_requested,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "progress": self.progress.to_dict(),
        }


class BulkRunRegistry:
    """In-process registry of recent runs (bounded; oldest finished runs are evicted)."""

    def __init__(self, keep: int = 200):
        self._keep = keep
        self._runs: "OrderedDict[str, BulkRun]" = OrderedDict()

    def create(self, workspace_id: int, operation: str, run_id: Optional[str] = None) -> BulkRun:
        rid = run_id or uuid.uuid4().hex
        existing = self._runs.get(rid)
        if existing is not None and existing.status == RUNNING:
            raise ValueError(f"bulk run {rid} is already running")
        run = BulkRun(run_id=rid, workspace_id=workspace_id, operation=operation)
        self._runs[rid] = run
        self._runs.move_to_end(rid)
        self._evict()
        return run

    def get(self, run_id: str) -> Optional[BulkRun]:
        return self._runs.get(run_id)

    def cancel(self, run_id: str) -> Optional[BulkRun]:
        run = self._runs.get(run_id)
        if run is not None and run.status == RUNNING:
            run.cancel()
        return run

    def _evict(self) -> None:
        while len(self._runs) > self._keep:
            for rid, run in self._runs.items():
                if run.status != RUNNING:
                    del self._runs[rid]
                    break
            else:
                return
