# tests/services/test_bulk_concurrency.py
from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from orderhub.adapters.fake import FakeCourier
from orderhub.limits import ProviderLimiter
from orderhub.models import OperationKind
from orderhub.services.bulk_coordinator import BulkCoordinator
from orderhub.services.idempotency_guard import IdempotencyGuard


def _coordinator(runtime, *, max_in_flight=4, **overrides) -> BulkCoordinator:
    return BulkCoordinator(
        runtime.session_factory,
        registry=runtime.registry,
        limiter=ProviderLimiter(max_in_flight=max_in_flight, qps=1000),
        runs=runtime.runs,
        settings=runtime.settings.model_copy(update=overrides),
    )


async def _orders(make_order, ws, count):
    names = [f"#{i}" for i in range(1, count + 1)]
    for name in names:
        await make_order(ws, name)
    return names


@pytest.mark.asyncio
async def test_fan_out_is_bounded_by_bulk_concurrency(runtime, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    names = await _orders(make_order, ws, 4)
    courier = FakeCourier(delay=0.2)
    install_providers(ws, courier=courier)

    result = await _coordinator(runtime, max_in_flight=10, BULK_CONCURRENCY=2).run_bulk(
        names, OperationKind.CREATE_LABEL, ws
    )

    assert sorted(result.success) == names
    assert courier.peak_in_flight == 2


@pytest.mark.asyncio
async def test_provider_cap_holds_across_concurrent_orders(runtime, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    names = await _orders(make_order, ws, 4)
    courier = FakeCourier(delay=0.2)
    install_providers(ws, courier=courier)

    result = await _coordinator(runtime, max_in_flight=2, BULK_CONCURRENCY=4).run_bulk(
        names, OperationKind.CREATE_LABEL, ws
    )

    assert sorted(result.success) == names
    assert courier.peak_in_flight == 2


@pytest.mark.asyncio
async def test_waiting_for_a_provider_slot_is_not_timed(runtime, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    names = await _orders(make_order, ws, 3)
    courier = FakeCourier(delay=0.2)
    install_providers(ws, courier=courier)

    # three calls queued on one slot take 0.6s in total; each one alone fits in 0.5s
    coordinator = _coordinator(
        runtime, max_in_flight=1, BULK_CONCURRENCY=3, RETRY_ATTEMPTS=1, PROVIDER_TIMEOUT_SECONDS=0.5
    )
    result = await coordinator.run_bulk(names, OperationKind.CREATE_LABEL, ws)

    assert result.failed == []
    assert sorted(result.success) == names
    assert courier.count("create_label") == 3
    assert courier.peak_in_flight == 1


@pytest.mark.asyncio
async def test_concurrent_runs_on_one_order_create_one_label(runtime, install_providers, make_workspace, make_order, load_order):
    ws = await make_workspace()
    await make_order(ws, "#1")
    courier = FakeCourier(delay=0.2)
    install_providers(ws, courier=courier)
    coordinator = _coordinator(runtime, BULK_CONCURRENCY=2)

    first, second = await asyncio.gather(
        coordinator.run_bulk(["#1"], OperationKind.CREATE_LABEL, ws),
        coordinator.run_bulk(["#1"], OperationKind.CREATE_LABEL, ws),
    )

    assert courier.count("create_label") == 1
    assert first.success + second.success == ["#1"]
    loser = second if first.success else first
    assert loser.failed == []
    assert loser.in_flight == ["#1"] or [s.order_id for s in loser.skipped] == ["#1"]
    assert (await load_order(ws, "#1")).voucher_number == "FAKE000001"


@pytest.mark.asyncio
async def test_database_error_for_one_order_is_reported_not_raised(
    runtime, install_providers, make_workspace, make_order, load_order, monkeypatch
):
    ws = await make_workspace()
    await make_order(ws, "#1")
    broken = await make_order(ws, "#2")
    await make_order(ws, "#3")
    install_providers(ws, courier=FakeCourier())

    original = IdempotencyGuard._acquire

    async def locked_for_one(self, order_id, kind):
        if order_id == broken:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return await original(self, order_id, kind)

    monkeypatch.setattr(IdempotencyGuard, "_acquire", locked_for_one)

    result = await _coordinator(runtime, BULK_CONCURRENCY=3).run_bulk(
        ["#1", "#2", "#3"], OperationKind.CREATE_LABEL, ws
    )

    assert sorted(result.success) == ["#1", "#3"]
    assert [(f.order_id, f.error_code, f.retryable) for f in result.failed] == [("#2", "INTERNAL_ERROR", False)]
    assert "database is locked" in result.failed[0].message
    assert (await load_order(ws, "#1")).order_status == "awb_created"
    assert (await load_order(ws, "#2")).order_status == "unfulfilled"
