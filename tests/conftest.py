# tests/conftest.py
from __future__ import annotations

import os
import tempfile
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# ============================================================
# Temporary SQLite database, configured before orderhub is imported
# (settings and the engine are built at import time)
# ============================================================
_DB_DIR = tempfile.mkdtemp(prefix="orderhub-tests-")
os.environ["ORDERHUB_DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/orderhub.db"
os.environ["RETRY_BASE_DELAY_SECONDS"] = "0"
os.environ["RETRY_MAX_DELAY_SECONDS"] = "0"
# SQLite takes one writer at a time
os.environ["BULK_CONCURRENCY"] = "1"
os.environ["ENABLE_TRACKING_SCHEDULER"] = "false"
os.environ["PROVIDER_RATE_LIMIT_QPS"] = "1000"

from orderhub.adapters.registry import WorkspaceProviders  # noqa: E402
from orderhub.db import Base  # noqa: E402
from orderhub.db.base import init_models  # noqa: E402
from orderhub.db.session import AsyncSessionLocal, async_engine  # noqa: E402
from orderhub.main import app  # noqa: E402
from orderhub.models import Order, Workspace  # noqa: E402
from orderhub.services import order_repo  # noqa: E402
from orderhub.services.runtime import Runtime  # noqa: E402


# =========================================
# Schema per test
# =========================================
@pytest_asyncio.fixture(autouse=True, scope="function")
async def _schema() -> AsyncGenerator[None, None]:
    init_models()
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield
    finally:
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        # pooled aiosqlite connections belong to this test's event loop
        await async_engine.dispose()


@pytest.fixture
def session_maker() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


@pytest_asyncio.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


# =========================================
# Runtime + providers
# =========================================
@pytest_asyncio.fixture
async def runtime(session_maker) -> AsyncGenerator[Runtime, None]:
    rt = Runtime(session_maker)
    try:
        yield rt
    finally:
        await rt.aclose()


@pytest.fixture
def install_providers(runtime: Runtime):
    """install_providers(ws_id, courier=FakeCourier(...), invoicing=..., platform=...)"""

    def _install(workspace_id: int, **adapters: Any) -> WorkspaceProviders:
        providers = WorkspaceProviders(workspace_id=workspace_id, **adapters)
        runtime.registry.install(providers)
        return providers

    return _install


# =========================================
# Factories
# =========================================
@pytest.fixture
def make_workspace(session_maker):
    async def _make(
        name: str = "Test shop",
        *,
        courier: Optional[str] = "fake",
        invoicing: Optional[str] = "fake",
        platform: Optional[str] = "fake",
        settings: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
    ) -> int:
        async with session_maker() as sess, sess.begin():
            ws = Workspace(
                name=name,
                is_active=is_active,
                courier_provider=courier,
                invoicing_provider=invoicing,
                platform_provider=platform,
                settings=settings or {},
            )
            sess.add(ws)
            await sess.flush()
            return ws.id

    return _make


@pytest.fixture
def make_order(session_maker):
    async def _make(workspace_id: int, order_name: str, **fields: Any) -> int:
        fields.setdefault("total_price", Decimal("100.00"))
        fields.setdefault("products", [{"name": "Widget", "quantity": 1, "price": "100.00"}])
        async with session_maker() as sess, sess.begin():
            order = order_repo.new_order(workspace_id, {"order_name": order_name, **fields})
            sess.add(order)
            await sess.flush()
            return order.id

    return _make


@pytest.fixture
def load_order(session_maker):
    async def _load(workspace_id: int, order_name: str) -> Order:
        async with session_maker() as sess:
            order = await order_repo.get_by_name(sess, workspace_id, order_name)
            assert order is not None, order_name
            return order

    return _load


# =========================================
# FastAPI / httpx AsyncClient
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(runtime: Runtime) -> AsyncGenerator[httpx.AsyncClient, None]:
    app.state.runtime = runtime
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(
            transport=transport,
            base_url="http://testserver",
            timeout=httpx.Timeout(10.0, connect=5.0),
        ) as c:
            yield c
    finally:
        app.state.runtime = None
