# orderhub/services/idempotency_guard.py
"""
Per-order, per-operation-kind guard around non-idempotent provider calls.

Three short transactions, provider call outside all of them:

  1. acquire   order terminal for this kind / done marker  -> SKIPPED
               live in_flight marker                         -> IN_FLIGHT
               stale in_flight marker                        -> taken over (CAS on attempts)
               no marker                                     -> insert in_flight (unique key)
  2. fn(order) provider call(s); returns an OrderPatch
  3a. success  patch + status recompute + marker done (or dropped for
               repeatable kinds) + audit row, one commit
  3b. failure  marker deleted, order untouched, eligible for retry
  3c. lease    marker taken over meanwhile -> IN_FLIGHT, nothing written

Markers for different kinds on the same order are independent.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.core.clock import ensure_utc, utcnow
from orderhub.domain.status import FULFILLED
from orderhub.domain.vocabulary import DeliveryVocabulary
from orderhub.models.enums import TERMINAL_STATUSES, MarkerState, OperationKind
from orderhub.models.operation_marker import OperationMarker
from orderhub.models.order import Order
from orderhub.services.audit_writer import AuditEventWriter
from orderhub.services.order_repo import OrderPatch, apply_patch

log = logging.getLogger("orderhub.guard")

GuardedFn = Callable[[Order], Awaitable[Optional[OrderPatch]]]


class GuardOutcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"


@dataclass
class GuardResult:
    outcome: GuardOutcome
    order_id: int
    kind: OperationKind
    order_name: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None
    changed: List[str] = field(default_factory=list)
    order_status: Optional[str] = None


class OrderMissing(LookupError):
    pass


class _LeaseLost(Exception):
    pass


def terminal_reason(order: Order, kind: OperationKind) -> Optional[str]:
    """Why `kind` must not run again for this order, or None."""
    if order.cancelled:
        return "order cancelled"
    if kind is OperationKind.CREATE_LABEL and order.voucher_number:
        return "voucher already exists"
    if kind is OperationKind.CREATE_INVOICE and order.invoice_id:
        return "already invoiced"
    if kind is OperationKind.FULFILL and (order.fulfillment_status or "").lower() == FULFILLED:
        return "already fulfilled"
    if kind is OperationKind.UPDATE_TRACKING and order.order_status in {s.value for s in TERMINAL_STATUSES}:
        return f"status {order.order_status} is terminal"
    return None


@dataclass
class _Lease:
    marker_id: int
    attempts: int
    order: Order


class IdempotencyGuard:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        stale_after: timedelta,
        vocabulary: Callable[[Order], DeliveryVocabulary],
    ):
        self._sf = session_factory
        self._stale_after = stale_after
        self._vocabulary = vocabulary

    async def run(self, order_id: int, kind: OperationKind, fn: GuardedFn) -> GuardResult:
        try:
            lease = await self._acquire(order_id, kind)
        except OrderMissing as e:
            return GuardResult(GuardOutcome.FAILED, order_id, kind, reason="order not found", error=e)
        if isinstance(lease, GuardResult):
            return lease

        order = lease.order
        try:
            patch = await fn(order)
        except asyncio.CancelledError:
            await self._release(lease, kind, None)
            raise
        except Exception as e:
            await self._release(lease, kind, e)
            if not hasattr(e, "retryable"):
                log.exception("%s failed unexpectedly for order %s", kind.value, order.order_name)
            return GuardResult(
                GuardOutcome.FAILED, order_id, kind, order_name=order.order_name, reason=str(e), error=e
            )

        try:
            return await self._complete(lease, kind, patch or {})
        except _LeaseLost:
            log.warning(
                "%s marker for order %s changed hands before completion; result dropped",
                kind.value, order.order_name,
            )
            return GuardResult(
                GuardOutcome.IN_FLIGHT, order_id, kind, order_name=order.order_name,
                reason="operation taken over by another worker",
            )
        except Exception as e:
            # e.g. ImmutableFieldError: the provider answered with an identifier
            # that conflicts with one already stored
            log.exception("%s result could not be stored for order %s", kind.value, order.order_name)
            await self._release(lease, kind, e)
            return GuardResult(
                GuardOutcome.FAILED, order_id, kind, order_name=order.order_name, reason=str(e), error=e
            )

    # ------------------------------------------------------------------ #

    async def _acquire(self, order_id: int, kind: OperationKind) -> "_Lease | GuardResult":
        now = utcnow()
        try:
            async with self._sf() as session, session.begin():
                order = await session.get(Order, order_id)
                if order is None:
                    raise OrderMissing(f"order {order_id} not found")

                reason = terminal_reason(order, kind)
                if reason:
                    return GuardResult(
                        GuardOutcome.SKIPPED, order_id, kind, order_name=order.order_name,
                        reason=reason, order_status=order.order_status,
                    )

                marker = (
                    await session.execute(
                        select(OperationMarker).where(
                            OperationMarker.order_id == order_id,
                            OperationMarker.operation_kind == kind.value,
                        )
                    )
                ).scalar_one_or_none()

                if marker is not None and marker.state == MarkerState.DONE.value:
                    return GuardResult(
                        GuardOutcome.SKIPPED, order_id, kind, order_name=order.order_name,
                        reason="already done", order_status=order.order_status,
                    )

                if marker is not None:
                    age = now - ensure_utc(marker.updated_at)
                    if age < self._stale_after:
                        return GuardResult(
                            GuardOutcome.IN_FLIGHT, order_id, kind, order_name=order.order_name,
                            reason="operation in flight", order_status=order.order_status,
                        )
                    taken = await session.execute(
                        update(OperationMarker)
                        .where(
                            OperationMarker.id == marker.id,
                            OperationMarker.state == MarkerState.IN_FLIGHT.value,
                            OperationMarker.attempts == marker.attempts,
                        )
                        .values(updated_at=now, attempts=marker.attempts + 1, last_error=None)
                        .execution_options(synchronize_session=False)
                    )
                    if taken.rowcount != 1:
                        return GuardResult(
                            GuardOutcome.IN_FLIGHT, order_id, kind, order_name=order.order_name,
                            reason="operation in flight",
                        )
                    log.warning(
                        "taking over stale %s marker for order %s (age %ss)",
                        kind.value, order.order_name, int(age.total_seconds()),
                    )
                    return _Lease(marker.id, marker.attempts + 1, order)

                marker = OperationMarker(
                    order_id=order_id,
                    operation_kind=kind.value,
                    state=MarkerState.IN_FLIGHT.value,
                    attempts=1,
                    updated_at=now,
                )
                session.add(marker)
                await session.flush()
                return _Lease(marker.id, 1, order)
        except IntegrityError:
            # lost the insert race on (order_id, operation_kind)
            return GuardResult(GuardOutcome.IN_FLIGHT, order_id, kind, reason="operation in flight")

    async def _release(self, lease: _Lease, kind: OperationKind, error: Optional[BaseException]) -> None:
        async with self._sf() as session, session.begin():
            await session.execute(
                delete(OperationMarker).where(
                    OperationMarker.id == lease.marker_id,
                    OperationMarker.attempts == lease.attempts,
                    OperationMarker.state == MarkerState.IN_FLIGHT.value,
                )
            )
        if error is not None:
            log.info("%s failed for order %s: %s", kind.value, lease.order.order_name, error)

    async def _complete(self, lease: _Lease, kind: OperationKind, patch: OrderPatch) -> GuardResult:
        async with self._sf() as session, session.begin():
            order = (
                await session.execute(select(Order).where(Order.id == lease.order.id).with_for_update())
            ).scalar_one()
            changed = apply_patch(order, patch, self._vocabulary(order))

            marker_q = (
                OperationMarker.id == lease.marker_id,
                OperationMarker.attempts == lease.attempts,
            )
            if kind.repeatable:
                owned = await session.execute(delete(OperationMarker).where(*marker_q))
            else:
                owned = await session.execute(
                    update(OperationMarker)
                    .where(*marker_q)
                    .values(state=MarkerState.DONE.value, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
            if owned.rowcount != 1:
                # taken over as stale while we were still running; the new owner writes
                raise _LeaseLost(order.order_name)

            if changed:
                await AuditEventWriter.write(
                    session,
                    event=kind.value,
                    ref=order.order_name,
                    workspace_id=order.workspace_id,
                    meta={"changed": changed, "order_status": order.order_status},
                )

            return GuardResult(
                GuardOutcome.SUCCESS,
                order.id,
                kind,
                order_name=order.order_name,
                changed=changed,
                order_status=order.order_status,
            )


async def release_stale_markers(
    session_factory: async_sessionmaker[AsyncSession], *, max_age: timedelta
) -> int:
    """Drop in_flight markers older than max_age (process restart / crash leftovers)."""
    cutoff = utcnow() - max_age
    async with session_factory() as session, session.begin():
        res = await session.execute(
            delete(OperationMarker).where(
                OperationMarker.state == MarkerState.IN_FLIGHT.value,
                OperationMarker.updated_at < cutoff,
            )
        )
    count = res.rowcount or 0
    if count:
        log.warning("released %d stale in-flight markers (older than %s)", count, max_age)
    return count
