# orderhub/api/deps.py
from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.db.session import AsyncSessionLocal
from orderhub.services.runtime import Runtime


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


def get_runtime(request: Request) -> Runtime:
    """Runtime kept on app.state; created on first use when the lifespan did not run."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        runtime = Runtime(AsyncSessionLocal)
        request.app.state.runtime = runtime
    return runtime
