# orderhub/api/routers/orders.py
from __future__ import annotations

from fastapi import APIRouter

from orderhub.api.routers import orders_routes

router = APIRouter(prefix="/orders", tags=["orders"])

orders_routes.register(router)

__all__ = ["router"]
