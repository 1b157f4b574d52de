# tests/api/test_bulk_operations_api.py
from __future__ import annotations

import pytest

from orderhub.adapters.errors import ValidationError
from orderhub.adapters.fake import FakeCourier, FakePlatform


@pytest.mark.asyncio
async def test_create_labels_over_http(client, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    await make_order(ws, "#1")
    await make_order(ws, "#2")
    courier = FakeCourier(failures={"#2": ValidationError("bad address", provider="fake")})
    install_providers(ws, courier=courier)

    r = await client.post(
        "/bulk-operations",
        json={"workspace_id": ws, "order_ids": ["#1", "#2", "#9"], "operation": "create-label", "run_id": "run-1"},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["run_id"] == "run-1"
    assert body["operation"] == "create-label"
    assert body["success"] == ["#1"]
    assert {f["order_id"]: f["error_code"] for f in body["failed"]} == {
        "#2": "VALIDATION_ERROR",
        "#9": "NOT_FOUND",
    }
    assert body["summary"]["success"] == 1
    assert body["summary"]["failed"] == 2
    assert "changed" not in body

    again = await client.post(
        "/bulk-operations",
        json={"workspace_id": ws, "order_ids": ["#1"], "operation": "create-label"},
    )
    assert again.json()["skipped"] == [{"order_id": "#1", "reason": "voucher already exists"}]
    assert courier.count("create_label") == 2

    run = await client.get("/bulk-operations/run-1")
    assert run.status_code == 200
    snap = run.json()
    assert snap["status"] == "completed"
    assert snap["progress"]["total"] == 3
    assert snap["progress"]["success"] == 1
    assert snap["progress"]["failed"] == 2


@pytest.mark.asyncio
async def test_unknown_run(client):
    r = await client.get("/bulk-operations/nope")
    assert r.status_code == 404
    assert r.json()["error_code"] == "RUN_NOT_FOUND"

    r = await client.post("/bulk-operations/nope/cancel")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_cancel_finished_run_keeps_status(client, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    await make_order(ws, "#1")
    install_providers(ws, courier=FakeCourier())
    await client.post(
        "/bulk-operations",
        json={"workspace_id": ws, "order_ids": ["#1"], "operation": "create-label", "run_id": "r"},
    )

    r = await client.post("/bulk-operations/r/cancel")
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert r.json()["cancel_requested"] is False


@pytest.mark.asyncio
async def test_unknown_workspace(client):
    r = await client.post(
        "/bulk-operations",
        json={"workspace_id": 999, "order_ids": ["#1"], "operation": "update-tracking"},
    )
    assert r.status_code == 404
    assert r.json()["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"workspace_id": 1, "order_ids": [], "operation": "create-label"},
        {"workspace_id": 1, "order_ids": ["#1"], "operation": "teleport"},
        {"workspace_id": 0, "order_ids": ["#1"], "operation": "create-label"},
        {"order_ids": ["#1"], "operation": "create-label"},
    ],
)
async def test_request_validation(client, payload):
    r = await client.post("/bulk-operations", json=payload)
    assert r.status_code == 422
    body = r.json()
    assert body["error_code"] == "VALIDATION_ERROR"
    assert body["http_status"] == 422
    assert body["details"][0]["type"] == "validation"


@pytest.mark.asyncio
async def test_run_id_already_running_is_409(client, runtime, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    await make_order(ws, "#1")
    install_providers(ws, courier=FakeCourier())
    runtime.runs.create(ws, "create-label", run_id="dup")

    r = await client.post(
        "/bulk-operations",
        json={"workspace_id": ws, "order_ids": ["#1"], "operation": "create-label", "run_id": "dup"},
    )
    assert r.status_code == 409
    body = r.json()
    assert body["error_code"] == "RUN_IN_PROGRESS"
    assert body["http_status"] == 409


@pytest.mark.asyncio
async def test_confirm_delivery_over_http(client, install_providers, make_workspace, make_order):
    ws = await make_workspace()
    await make_order(
        ws, "#1", voucher_number="V1", courier="fake", delivery_status="DELIVERED",
        financial_status="pending", fulfillment_status="fulfilled", platform_fulfillment_id="F-#1",
    )
    await make_order(ws, "#2", voucher_number="V2", courier="fake", delivery_status="IN TRANSIT")
    platform = FakePlatform()
    install_providers(ws, platform=platform)

    r = await client.post(
        "/bulk-operations",
        json={"workspace_id": ws, "order_ids": ["#1", "#2"], "operation": "confirm-delivery"},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] == ["#1"]
    assert [(f["order_id"], f["error_code"]) for f in body["failed"]] == [("#2", "VALIDATION_ERROR")]
    assert "delivered" not in body and "delivery_confirmed" not in body
    assert platform.count("capture_cod_payment") == 1
