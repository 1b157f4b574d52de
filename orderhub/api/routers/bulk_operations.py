# orderhub/api/routers/bulk_operations.py
from __future__ import annotations

from fastapi import APIRouter

from orderhub.api.routers import bulk_operations_routes
from orderhub.api.routers.bulk_operations_schemas import BulkOperationIn, BulkResultOut, BulkRunOut

router = APIRouter(prefix="/bulk-operations", tags=["bulk-operations"])

bulk_operations_routes.register(router)

__all__ = ["router", "BulkOperationIn", "BulkResultOut", "BulkRunOut"]
