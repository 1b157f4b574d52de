# orderhub/api/routers/tracking.py
from __future__ import annotations

from fastapi import APIRouter

from orderhub.api.routers import tracking_routes

router = APIRouter(prefix="/tracking", tags=["tracking"])

tracking_routes.register(router)

__all__ = ["router"]
