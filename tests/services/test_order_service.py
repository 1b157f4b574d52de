# tests/services/test_order_service.py
from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select

from orderhub.adapters.base import ImportedOrder
from orderhub.adapters.errors import TransientError
from orderhub.adapters.fake import FakePlatform
from orderhub.api.errors import BizError, NotFoundError
from orderhub.models import AuditEvent
from orderhub.services.order_service import cancel_order, get_order_status


# =========================================
# cancel / status
# =========================================
@pytest.mark.asyncio
async def test_cancel_is_one_way_and_idempotent(session, session_maker, make_workspace, make_order, load_order):
    ws = await make_workspace()
    await make_order(ws, "#1", voucher_number="V1", courier="fake")

    assert await cancel_order(session, ws, "#1") == "cancelled"
    assert await cancel_order(session, ws, "#1") == "cancelled"

    order = await load_order(ws, "#1")
    assert order.cancelled is True
    assert order.cancelled_at is not None
    # everything else is kept
    assert order.voucher_number == "V1"

    async with session_maker() as s:
        events = (await s.execute(select(AuditEvent).where(AuditEvent.ref == "#1"))).scalars().all()
    assert [e.meta["event"] for e in events] == ["cancel"]


@pytest.mark.asyncio
async def test_cancel_unknown_order(session, make_workspace):
    ws = await make_workspace()
    with pytest.raises(NotFoundError):
        await cancel_order(session, ws, "#nope")


@pytest.mark.asyncio
async def test_status_is_the_persisted_value(session, make_workspace, make_order):
    ws = await make_workspace()
    await make_order(ws, "#1")
    await make_order(ws, "#2", voucher_number="V2", courier="fake", delivery_status="In transit")

    assert await get_order_status(session, ws, "#1") == "unfulfilled"
    assert await get_order_status(session, ws, "#2") == "in_transit"
    with pytest.raises(NotFoundError):
        await get_order_status(session, ws, "#3")


@pytest.mark.asyncio
async def test_status_is_scoped_to_the_workspace(session, make_workspace, make_order):
    a = await make_workspace("a")
    b = await make_workspace("b")
    await make_order(a, "#1")
    with pytest.raises(NotFoundError):
        await get_order_status(session, b, "#1")


# =========================================
# import
# =========================================
@pytest.mark.asyncio
async def test_import_creates_and_updates(runtime, install_providers, make_workspace, make_order, load_order):
    ws = await make_workspace()
    await make_order(
        ws, "#2", voucher_number="V2", courier="fake", city="Athens", financial_status="pending"
    )
    await make_order(ws, "#3", financial_status="paid")

    platform = FakePlatform(
        orders=[
            ImportedOrder(
                order_name="#1",
                platform_order_id="1001",
                first_name="Maria",
                city="Patra",
                total_price=Decimal("49.90"),
                financial_status="paid",
                products=[{"name": "Mug", "quantity": 2, "price": "24.95"}],
            ),
            ImportedOrder(order_name="#2", platform_order_id="1002", city="Larisa", financial_status="paid"),
            ImportedOrder(order_name="#3", financial_status="paid"),
        ]
    )
    install_providers(ws, platform=platform)

    summary = await runtime.importer().import_orders(ws)
    assert (summary.fetched, summary.created, summary.updated, summary.unchanged) == (3, 1, 1, 1)
    assert summary.failed == []

    created = await load_order(ws, "#1")
    assert created.platform_order_id == "1001"
    assert created.total_price == Decimal("49.90")
    assert created.order_status == "unfulfilled"

    updated = await load_order(ws, "#2")
    assert updated.financial_status == "paid"
    assert updated.platform_order_id == "1002"
    # locally owned fields stay as they were
    assert updated.city == "Athens"
    assert updated.voucher_number == "V2"


@pytest.mark.asyncio
async def test_import_twice_is_unchanged(runtime, install_providers, make_workspace):
    ws = await make_workspace()
    install_providers(ws, platform=FakePlatform(orders=[ImportedOrder(order_name="#1", financial_status="paid")]))

    first = await runtime.importer().import_orders(ws)
    second = await runtime.importer().import_orders(ws)
    assert first.created == 1
    assert (second.created, second.updated, second.unchanged) == (0, 0, 1)


@pytest.mark.asyncio
async def test_import_without_platform(runtime, install_providers, make_workspace):
    ws = await make_workspace(platform=None)
    install_providers(ws)
    with pytest.raises(BizError) as exc:
        await runtime.importer().import_orders(ws)
    assert exc.value.code == "NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_import_provider_failure(runtime, install_providers, make_workspace):
    ws = await make_workspace()
    install_providers(ws, platform=FakePlatform(failures={"*": TransientError("down", provider="fake")}))
    with pytest.raises(BizError) as exc:
        await runtime.importer().import_orders(ws)
    assert exc.value.code == "TRANSIENT_ERROR"
