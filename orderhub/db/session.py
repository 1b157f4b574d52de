# orderhub/db/session.py
# Async engine + session factory + FastAPI dependency
from __future__ import annotations

import re
from collections.abc import AsyncGenerator
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from orderhub.core.config import get_settings


# ---- DSN normalisation: postgres -> psycopg3, sqlite -> aiosqlite ----
def normalize_async_dsn(url: str) -> str:
    url = (url or "").strip()
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite:///") - 1 :]
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _connect_args_for(url: str) -> Dict[str, Any]:
    # SQLite: only check_same_thread
    if make_url(url).get_backend_name().startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def create_engine_for(url: str, *, echo: bool = False, **kwargs: Any) -> AsyncEngine:
    dsn = normalize_async_dsn(url)
    return create_async_engine(
        dsn,
        echo=echo,
        pool_pre_ping=True,
        connect_args=_connect_args_for(dsn),
        **kwargs,
    )


ASYNC_URL = normalize_async_dsn(get_settings().DATABASE_URL)

async_engine: AsyncEngine = create_engine_for(ASYNC_URL, echo=get_settings().SQL_ECHO)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---- FastAPI dependency ----
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def close_engines() -> None:
    await async_engine.dispose()
