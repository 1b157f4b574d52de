# tests/api/test_orders_api.py
from __future__ import annotations

import pytest

from orderhub.adapters.base import ImportedOrder
from orderhub.adapters.fake import FakePlatform


@pytest.mark.asyncio
async def test_order_status(client, make_workspace, make_order):
    ws = await make_workspace()
    await make_order(ws, "1001", voucher_number="V1", courier="fake", delivery_status="Delivered")

    r = await client.get("/orders/1001/status", params={"workspace_id": ws})
    assert r.status_code == 200
    assert r.json() == {"order_name": "1001", "order_status": "delivered"}


@pytest.mark.asyncio
async def test_order_status_not_found(client, make_workspace):
    ws = await make_workspace()
    r = await client.get("/orders/404/status", params={"workspace_id": ws})
    assert r.status_code == 404
    body = r.json()
    assert body["error_code"] == "NOT_FOUND"
    assert body["http_status"] == 404


@pytest.mark.asyncio
async def test_cancel_order(client, make_workspace, make_order):
    ws = await make_workspace()
    await make_order(ws, "1001")

    for _ in range(2):
        r = await client.post("/orders/1001/cancel", json={"workspace_id": ws})
        assert r.status_code == 200
        assert r.json() == {"ok": True, "order_name": "1001", "order_status": "cancelled"}

    r = await client.get("/orders/1001/status", params={"workspace_id": ws})
    assert r.json()["order_status"] == "cancelled"


@pytest.mark.asyncio
async def test_import_orders(client, install_providers, make_workspace):
    ws = await make_workspace()
    install_providers(
        ws,
        platform=FakePlatform(orders=[ImportedOrder(order_name="1001"), ImportedOrder(order_name="1002")]),
    )

    r = await client.post("/orders/import", json={"workspace_id": ws})
    assert r.status_code == 200, r.text
    body = r.json()
    assert (body["fetched"], body["created"], body["updated"], body["unchanged"]) == (2, 2, 0, 0)
    assert body["failed"] == []

    r = await client.get("/orders/1002/status", params={"workspace_id": ws})
    assert r.json()["order_status"] == "unfulfilled"
