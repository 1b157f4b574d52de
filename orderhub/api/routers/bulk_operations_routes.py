# orderhub/api/routers/bulk_operations_routes.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from orderhub.api.deps import get_runtime
from orderhub.api.problem import raise_404, raise_409
from orderhub.api.routers.bulk_operations_schemas import BulkOperationIn, BulkResultOut, BulkRunOut
from orderhub.services.runtime import Runtime


def register(router: APIRouter) -> None:
    @router.post(
        "",
        response_model=BulkResultOut,
        summary="Run one operation over a set of orders; per-order outcomes",
    )
    async def run_bulk_operation(body: BulkOperationIn, runtime: Runtime = Depends(get_runtime)):
        try:
            run = runtime.runs.create(body.workspace_id, body.operation.value, run_id=body.run_id)
        except ValueError as e:
            raise_409("RUN_IN_PROGRESS", str(e))

        result = await runtime.coordinator().run_bulk(
            body.order_ids, body.operation, body.workspace_id, run=run
        )
        return result.to_dict()

    @router.get("/{run_id}", response_model=BulkRunOut, summary="Progress of a running or finished run")
    async def get_bulk_run(run_id: str, runtime: Runtime = Depends(get_runtime)):
        run = runtime.runs.get(run_id)
        if run is None:
            raise_404("RUN_NOT_FOUND", f"bulk run {run_id} not found")
        return run.snapshot()

    @router.post(
        "/{run_id}/cancel",
        response_model=BulkRunOut,
        summary="Stop starting new orders; orders already started finish",
    )
    async def cancel_bulk_run(run_id: str, runtime: Runtime = Depends(get_runtime)):
        run = runtime.runs.cancel(run_id)
        if run is None:
            raise_404("RUN_NOT_FOUND", f"bulk run {run_id} not found")
        return run.snapshot()
