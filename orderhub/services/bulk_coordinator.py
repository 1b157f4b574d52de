# orderhub/services/bulk_coordinator.py
"""
Bulk operation coordinator.

run_bulk(order_names, operation, workspace_id) -> BulkResult

- names are de-duplicated; execution order across orders is not defined
- each order goes through the idempotency guard on its own; one order's
  failure never touches another order (no batch-wide transaction)
- bounded fan-out (BULK_CONCURRENCY), per-provider in-flight cap + QPS
  (ProviderLimiter), per-attempt timeout, backoff with jitter on TransientError
- waiting for a provider slot does not count against the attempt timeout;
  the slot is released while backing off
- an unexpected error for one order (database, bookkeeping) is reported as
  INTERNAL_ERROR for that order only
- a cancelled run stops starting new orders; orders already started finish
  and are recorded; the rest are reported as not_started
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.adapters.errors import NotConfiguredError, ProviderError
from orderhub.adapters.registry import ProviderRegistry, WorkspaceProviders
from orderhub.core.config import AppSettings, get_settings
from orderhub.limits import ProviderLimiter
from orderhub.metrics import BULK_ITEMS
from orderhub.models.enums import OperationKind
from orderhub.models.order import Order
from orderhub.services import order_repo
from orderhub.services.bulk_runs import BulkRun, BulkRunRegistry
from orderhub.services.idempotency_guard import GuardOutcome, GuardResult, IdempotencyGuard, OrderMissing
from orderhub.services.order_operations import HANDLERS, OperationContext, provider_for, require_provider
from orderhub.services.retry import RetryPolicy, call_with_retry
from orderhub.services.workspace_config import WorkspaceConfig, load_workspace_config, provider_loader

log = logging.getLogger("orderhub.bulk")


@dataclass
class SkippedItem:
    order_id: str
    reason: str


@dataclass
class FailedItem:
    order_id: str
    error_code: str
    message: str
    retryable: bool = False


@dataclass
class BulkResult:
    operation: str
    workspace_id: int
    run_id: Optional[str] = None
    success: List[str] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)
    failed: List[FailedItem] = field(default_factory=list)
    in_flight: List[str] = field(default_factory=list)
    not_started: List[str] = field(default_factory=list)
    # orders whose stored fields changed (subset of success)
    changed: List[str] = field(default_factory=list)
    # (order_id, name) pairs this run marked delivered; names confirmed on the platform
    delivered: List[Tuple[int, str]] = field(default_factory=list)
    delivery_confirmed: List[str] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "success": len(self.success),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "in_flight": len(self.in_flight),
            "not_started": len(self.not_started),
        }

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        for internal in ("changed", "delivered", "delivery_confirmed"):
            out.pop(internal, None)
        out["summary"] = self.summary()
        return out


def classify_error(error: Optional[BaseException]) -> Tuple[str, bool]:
    if isinstance(error, ProviderError):
        return error.code, error.retryable
    if isinstance(error, OrderMissing):
        return "NOT_FOUND", False
    if isinstance(error, order_repo.ImmutableFieldError):
        return "CONFLICT", False
    return "INTERNAL_ERROR", False


def dedupe(order_names: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(n.strip() for n in order_names if n and n.strip()))


class BulkCoordinator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        registry: ProviderRegistry,
        limiter: ProviderLimiter,
        runs: BulkRunRegistry,
        settings: Optional[AppSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._sf = session_factory
        self.registry = registry
        self.limiter = limiter
        self.runs = runs
        self.settings = settings or get_settings()
        self.policy = RetryPolicy.from_settings(self.settings)
        self._sleep = sleep

    async def load_workspace(self, workspace_id: int) -> Tuple[WorkspaceConfig, WorkspaceProviders]:
        async with self._sf() as session:
            config = await load_workspace_config(session, workspace_id)
        providers = await self.registry.resolve(workspace_id, provider_loader(self._sf))
        return config, providers

    async def run_bulk(
        self,
        order_names: Iterable[str],
        operation: OperationKind,
        workspace_id: int,
        *,
        run: Optional[BulkRun] = None,
    ) -> BulkResult:
        names = dedupe(order_names)
        run = run or self.runs.create(workspace_id, operation.value)
        run.progress.total = len(names)
        result = BulkResult(operation=operation.value, workspace_id=workspace_id, run_id=run.run_id)

        try:
            config, providers = await self.load_workspace(workspace_id)
            async with self._sf() as session:
                ids = await order_repo.resolve_ids(session, workspace_id, names)

            targets: List[Tuple[int, str]] = []
            for name in names:
                if name in ids:
                    targets.append((ids[name], name))
                else:
                    self._record_failure(result, run, operation, name, "NOT_FOUND", f"order {name} not found", False)

            await self.run_for_orders(targets, operation, config, providers, run=run, result=result)
        finally:
            run.finish()
        log.info(
            "bulk %s ws=%s run=%s: %s", operation.value, workspace_id, run.run_id, result.summary()
        )
        return result

    async def run_for_orders(
        self,
        targets: Sequence[Tuple[int, str]],
        operation: OperationKind,
        config: WorkspaceConfig,
        providers: WorkspaceProviders,
        *,
        run: Optional[BulkRun] = None,
        result: Optional[BulkResult] = None,
    ) -> BulkResult:
        """
        Fan (order_id, order_name) pairs out through the guard. Used by run_bulk and tracking refresh.

        Orders that update-tracking marks delivered are then confirmed on the
        platform (confirm-delivery) when the workspace has one; a failure there
        is logged and left for a later confirm-delivery run.
        """
        result = result or BulkResult(operation=operation.value, workspace_id=config.workspace_id)

        try:
            require_provider(operation, providers)
        except NotConfiguredError as e:
            for _, name in targets:
                self._record_failure(result, run, operation, name, e.code, e.message, False)
            return result

        ctx = OperationContext(config=config, providers=providers)
        handler = HANDLERS[operation]
        guard = IdempotencyGuard(
            self._sf,
            stale_after=timedelta(seconds=self.settings.MARKER_STALE_SECONDS),
            vocabulary=lambda o: config.vocabulary(o.courier),
        )

        async def _guarded_call(order: Order) -> Any:
            provider = provider_for(operation, order, providers).name
            return await call_with_retry(
                lambda: handler(order, ctx),
                policy=self.policy,
                timeout=self.settings.timeout_for(provider),
                provider=provider,
                operation=operation.value,
                label=order.order_name,
                sleep=self._sleep,
                slot=lambda: self.limiter.slot(provider),
            )

        sem = asyncio.Semaphore(max(1, self.settings.BULK_CONCURRENCY))

        async def _one(order_id: int, name: str) -> None:
            async with sem:
                if run is not None and run.cancel_requested:
                    result.not_started.append(name)
                    run.record("not_started")
                    BULK_ITEMS.labels(operation.value, "not_started").inc()
                    return
                try:
                    outcome = await guard.run(order_id, operation, _guarded_call)
                    await self._record(result, run, operation, name, outcome, config)
                except Exception as e:
                    log.exception("%s failed for order %s outside the provider call", operation.value, name)
                    self._record_failure(result, run, operation, name, "INTERNAL_ERROR", str(e), False)

        await asyncio.gather(*(_one(oid, name) for oid, name in targets))

        if operation is OperationKind.UPDATE_TRACKING and result.delivered and providers.platform is not None:
            confirmed = await self.run_for_orders(result.delivered, OperationKind.CONFIRM_DELIVERY, config, providers)
            result.delivery_confirmed.extend(confirmed.success)
            for item in confirmed.failed:
                log.warning(
                    "delivery confirmation for %s failed (%s): %s", item.order_id, item.error_code, item.message
                )
        return result

    # ------------------------------------------------------------------ #

    async def _record(
        self,
        result: BulkResult,
        run: Optional[BulkRun],
        operation: OperationKind,
        name: str,
        outcome: GuardResult,
        config: WorkspaceConfig,
    ) -> None:
        if outcome.outcome is GuardOutcome.SUCCESS:
            result.success.append(name)
            if outcome.changed:
                result.changed.append(name)
            if "delivered_at" in outcome.changed:
                result.delivered.append((outcome.order_id, name))
            bucket = "success"
        elif outcome.outcome is GuardOutcome.SKIPPED:
            result.skipped.append(SkippedItem(order_id=name, reason=outcome.reason or "skipped"))
            bucket = "skipped"
        elif outcome.outcome is GuardOutcome.IN_FLIGHT:
            result.in_flight.append(name)
            bucket = "in_flight"
        else:
            code, retryable = classify_error(outcome.error)
            message = outcome.reason or (str(outcome.error) if outcome.error else "failed")
            self._record_failure(result, run, operation, name, code, message, retryable)
            if operation is OperationKind.UPDATE_TRACKING and isinstance(outcome.error, ProviderError):
                await self._store_tracking_error(outcome.order_id, message, config)
            return

        if run is not None:
            run.record(bucket)
        BULK_ITEMS.labels(operation.value, bucket).inc()

    def _record_failure(
        self,
        result: BulkResult,
        run: Optional[BulkRun],
        operation: OperationKind,
        name: str,
        code: str,
        message: str,
        retryable: bool,
    ) -> None:
        result.failed.append(FailedItem(order_id=name, error_code=code, message=message, retryable=retryable))
        if run is not None:
            run.record("failed")
        BULK_ITEMS.labels(operation.value, "failed").inc()

    async def _store_tracking_error(self, order_id: int, message: str, config: WorkspaceConfig) -> None:
        try:
            async with self._sf() as session, session.begin():
                order = await session.get(Order, order_id)
                if order is not None:
                    order_repo.apply_patch(
                        order, {"last_tracking_error": message[:1000]}, config.vocabulary(order.courier)
                    )
        except SQLAlchemyError:
            log.exception("could not store tracking error for order id=%s", order_id)
