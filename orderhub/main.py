# orderhub/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderhub import __version__
from orderhub.api.errors import BizError, biz_error_handler
from orderhub.api.problem import make_problem
from orderhub.core.config import get_settings
from orderhub.core.logging import setup_logging
from orderhub.core.scheduler import init_scheduler, shutdown_scheduler
from orderhub.db.session import AsyncSessionLocal
from orderhub.services.idempotency_guard import release_stale_markers
from orderhub.services.runtime import Runtime

logger = logging.getLogger("orderhub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    # in_flight markers left behind by a crashed process
    await release_stale_markers(AsyncSessionLocal, max_age=timedelta(seconds=settings.MARKER_STALE_SECONDS))

    runtime = Runtime(AsyncSessionLocal, settings=settings)
    app.state.runtime = runtime
    init_scheduler(runtime)
    try:
        yield
    finally:
        shutdown_scheduler()
        await runtime.aclose()
        app.state.runtime = None


app = FastAPI(
    title="orderhub",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def _unhandled_exc(_req: Request, exc: Exception):
    logger.exception("UNHANDLED_EXC: %s", exc)
    return JSONResponse(
        status_code=500,
        content=make_problem(status_code=500, error_code="INTERNAL_ERROR", message="internal error"),
    )


@app.exception_handler(RequestValidationError)
async def _validation_exc(_req: Request, exc: RequestValidationError):
    details = [
        {
            "type": "validation",
            "path": ".".join(str(p) for p in err.get("loc", ())),
            "reason": str(err.get("msg", "")),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=make_problem(
            status_code=422, error_code="VALIDATION_ERROR", message="request validation failed", details=details
        ),
    )


@app.exception_handler(HTTPException)
async def _http_exc(_req: Request, exc: HTTPException):
    if isinstance(exc.detail, dict) and "error_code" in exc.detail:
        content = exc.detail
    else:
        content = make_problem(status_code=exc.status_code, error_code="HTTP_ERROR", message=str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content)


app.add_exception_handler(BizError, biz_error_handler)


from orderhub.api.routers.bulk_operations import router as bulk_operations_router
from orderhub.api.routers.orders import router as orders_router
from orderhub.api.routers.tracking import router as tracking_router
from orderhub.metrics import router as metrics_router

app.include_router(bulk_operations_router)
app.include_router(tracking_router)
app.include_router(orders_router)
app.include_router(metrics_router)


@app.get("/")
async def root():
    return {"name": "orderhub", "version": __version__}


@app.get("/ping")
async def ping():
    return {"status": "ok"}


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
