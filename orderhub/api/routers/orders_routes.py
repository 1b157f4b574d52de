# orderhub/api/routers/orders_routes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.api.deps import get_runtime, get_session
from orderhub.api.routers.orders_schemas import (
    CancelOrderIn,
    CancelOrderOut,
    ImportOrdersIn,
    ImportOrdersOut,
    OrderStatusOut,
)
from orderhub.services import order_service
from orderhub.services.runtime import Runtime


def register(router: APIRouter) -> None:
    # registered before /{order_name}/... so "import" is never read as an order name
    @router.post("/import", response_model=ImportOrdersOut, summary="Pull orders from the platform and upsert them")
    async def import_orders(body: ImportOrdersIn, runtime: Runtime = Depends(get_runtime)):
        summary = await runtime.importer().import_orders(body.workspace_id, body.since)
        return summary.to_dict()

    @router.get("/{order_name}/status", response_model=OrderStatusOut, summary="Persisted derived status")
    async def get_order_status(
        order_name: str,
        workspace_id: int = Query(..., ge=1),
        session: AsyncSession = Depends(get_session),
    ):
        status = await order_service.get_order_status(session, workspace_id, order_name)
        return OrderStatusOut(order_name=order_name, order_status=status)

    @router.post("/{order_name}/cancel", response_model=CancelOrderOut, summary="Cancel an order (one-way)")
    async def cancel_order(
        order_name: str,
        body: CancelOrderIn,
        session: AsyncSession = Depends(get_session),
    ):
        status = await order_service.cancel_order(session, body.workspace_id, order_name)
        return CancelOrderOut(order_name=order_name, order_status=status)
