# tests/services/test_tracking_refresh.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from orderhub.adapters.errors import AuthError
from orderhub.adapters.fake import FakeCourier, FakePlatform
from orderhub.api.errors import BizError
from orderhub.models import OperationKind, TrackingSyncLog
from orderhub.services.tracking_refresh import TrackingRefresher


@pytest.mark.asyncio
async def test_refresh_updates_open_shipments_only(runtime, install_providers, make_workspace, make_order, load_order, session_maker):
    ws = await make_workspace()
    await make_order(ws, "#transit", voucher_number="V1", courier="fake")
    await make_order(ws, "#label", voucher_number="V2", courier="fake")
    await make_order(ws, "#same", voucher_number="V3", courier="fake", delivery_status="IN TRANSIT")
    await make_order(ws, "#nolabel")
    await make_order(ws, "#delivered", voucher_number="V4", courier="fake", delivery_status="DELIVERED")
    await make_order(ws, "#cancelled", voucher_number="V5", courier="fake", cancelled=True)

    courier = FakeCourier(statuses={"V1": "DELIVERED", "V2": "In transit", "V3": "IN TRANSIT"})
    install_providers(ws, courier=courier)

    summary = await runtime.refresher().refresh_tracking(ws)

    assert summary.total_scanned == 3
    assert summary.total_updated == 2
    assert summary.total_failed == 0
    assert sorted(key for call, key in courier.calls) == ["V1", "V2", "V3"]

    delivered = await load_order(ws, "#transit")
    assert delivered.order_status == "delivered"
    assert delivered.delivered_at is not None
    assert (await load_order(ws, "#label")).order_status == "in_transit"

    async with session_maker() as s:
        log = (await s.execute(select(TrackingSyncLog))).scalars().one()
    assert log.status == "completed"
    assert (log.orders_scanned, log.orders_updated, log.errors_count) == (3, 2, 0)
    assert log.completed_at is not None


@pytest.mark.asyncio
async def test_delivered_orders_drop_out_of_the_next_scan(runtime, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    await make_order(ws, "#1", voucher_number="V1", courier="fake")
    courier = FakeCourier(statuses={"V1": "Delivered"})
    install_providers(ws, courier=courier)

    first = await runtime.refresher().refresh_tracking(ws)
    second = await runtime.refresher().refresh_tracking(ws)
    assert first.total_scanned == 1
    assert second.total_scanned == 0
    assert courier.count("get_status") == 1


@pytest.mark.asyncio
async def test_pages_through_every_open_shipment(runtime, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    statuses = {}
    for i in range(7):
        await make_order(ws, f"#{i}", voucher_number=f"V{i}", courier="fake")
        statuses[f"V{i}"] = "In transit"
    courier = FakeCourier(statuses=statuses)
    install_providers(ws, courier=courier)

    summary = await TrackingRefresher(runtime.coordinator(), page_size=3).refresh_tracking(ws)
    assert summary.total_scanned == 7
    assert summary.total_updated == 7
    assert courier.count("get_status") == 7


@pytest.mark.asyncio
async def test_lookup_failures_are_counted_and_stored(runtime, install_providers, make_workspace, make_order, load_order):
    ws = await make_workspace()
    await make_order(ws, "#ok", voucher_number="V1", courier="fake")
    await make_order(ws, "#bad", voucher_number="V2", courier="fake")
    courier = FakeCourier(statuses={"V1": "In transit"}, failures={"V2": AuthError("expired", provider="fake")})
    install_providers(ws, courier=courier)

    summary = await runtime.refresher().refresh_tracking(ws)
    assert (summary.total_scanned, summary.total_updated, summary.total_failed) == (2, 1, 1)

    bad = await load_order(ws, "#bad")
    assert bad.last_tracking_error == "expired"
    assert bad.order_status == "awb_created"


@pytest.mark.asyncio
async def test_workspace_without_courier(runtime, install_providers, make_workspace, session_maker):
    ws = await make_workspace(courier=None)
    install_providers(ws)

    with pytest.raises(BizError) as exc:
        await runtime.refresher().refresh_tracking(ws)
    assert exc.value.code == "NOT_CONFIGURED"

    async with session_maker() as s:
        log = (await s.execute(select(TrackingSyncLog))).scalars().one()
    assert log.status == "failed"


@pytest.mark.asyncio
async def test_refresh_all_covers_active_workspaces(runtime, install_providers, make_workspace, make_order):
    active = await make_workspace("a")
    inactive = await make_workspace("b", is_active=False)
    await make_order(active, "#1", voucher_number="V1", courier="fake")
    await make_order(inactive, "#1", voucher_number="V1", courier="fake")
    install_providers(active, courier=FakeCourier(statuses={"V1": "In transit"}))

    summaries = await runtime.refresher().refresh_all()
    assert [s.workspace_id for s in summaries] == [active]


@pytest.mark.asyncio
async def test_orders_from_a_previous_courier_use_that_courier(runtime, install_providers, make_workspace, make_order, load_order):
    ws = await make_workspace()
    await make_order(ws, "#old", voucher_number="OLD1", courier="meest")
    await make_order(ws, "#new", voucher_number="NEW1", courier="fake")
    active = FakeCourier(statuses={"NEW1": "In transit"})
    previous = FakeCourier(statuses={"OLD1": "Delivered"})
    install_providers(ws, courier=active, couriers={"meest": previous})

    summary = await runtime.refresher().refresh_tracking(ws)

    assert (summary.total_scanned, summary.total_updated, summary.total_failed) == (2, 2, 0)
    assert [key for call, key in previous.calls] == ["OLD1"]
    assert [key for call, key in active.calls] == ["NEW1"]
    assert (await load_order(ws, "#old")).order_status == "delivered"


@pytest.mark.asyncio
async def test_previous_courier_without_credentials_fails_that_order(runtime, install_providers, make_workspace, make_order, load_order):
    ws = await make_workspace()
    await make_order(ws, "#old", voucher_number="OLD1", courier="geniki")
    install_providers(ws, courier=FakeCourier())

    summary = await runtime.refresher().refresh_tracking(ws)

    assert (summary.total_scanned, summary.total_failed) == (1, 1)
    assert "no credentials for courier geniki" in (await load_order(ws, "#old")).last_tracking_error


@pytest.mark.asyncio
async def test_first_delivery_is_confirmed_on_the_platform(runtime, install_providers, make_workspace, make_order, load_order):
    ws = await make_workspace()
    await make_order(
        ws, "#cod", voucher_number="V1", courier="fake", financial_status="pending",
        fulfillment_status="fulfilled", platform_fulfillment_id="F-#cod",
    )
    await make_order(
        ws, "#card", voucher_number="V2", courier="fake", financial_status="paid",
        fulfillment_status="fulfilled", platform_fulfillment_id="F-#card",
    )
    await make_order(ws, "#moving", voucher_number="V3", courier="fake", financial_status="pending")
    platform = FakePlatform()
    install_providers(
        ws,
        courier=FakeCourier(statuses={"V1": "Delivered", "V2": "Delivered", "V3": "In transit"}),
        platform=platform,
    )

    summary = await runtime.refresher().refresh_tracking(ws)

    assert summary.total_updated == 3
    assert summary.total_delivery_confirmed == 2
    assert sorted(key for call, key in platform.calls if call == "mark_delivered") == ["#card", "#cod"]
    assert [key for call, key in platform.calls if call == "capture_cod_payment"] == ["#cod"]
    assert (await load_order(ws, "#cod")).financial_status == "paid"
    assert (await load_order(ws, "#card")).financial_status == "paid"
    assert (await load_order(ws, "#moving")).financial_status == "pending"


@pytest.mark.asyncio
async def test_platform_failure_does_not_fail_tracking(runtime, install_providers, make_workspace, make_order, load_order):
    ws = await make_workspace()
    await make_order(
        ws, "#cod", voucher_number="V1", courier="fake", financial_status="pending",
        fulfillment_status="fulfilled", platform_fulfillment_id="F-#cod",
    )
    platform = FakePlatform(failures={"#cod": AuthError("token revoked", provider="fake")})
    install_providers(ws, courier=FakeCourier(statuses={"V1": "Delivered"}), platform=platform)

    summary = await runtime.refresher().refresh_tracking(ws)

    assert (summary.total_updated, summary.total_failed, summary.total_delivery_confirmed) == (1, 0, 0)
    order = await load_order(ws, "#cod")
    assert order.order_status == "delivered"
    assert order.financial_status == "pending"

    # delivered orders leave the tracking scan; a confirm-delivery run picks them up
    platform.failures.clear()
    result = await runtime.coordinator().run_bulk(["#cod"], OperationKind.CONFIRM_DELIVERY, ws)
    assert result.success == ["#cod"]
    assert (await load_order(ws, "#cod")).financial_status == "paid"

    again = await runtime.coordinator().run_bulk(["#cod"], OperationKind.CONFIRM_DELIVERY, ws)
    assert [s.order_id for s in again.skipped] == ["#cod"]
    assert platform.count("capture_cod_payment") == 1
