# orderhub/db/__init__.py
from orderhub.db.base import Base
from orderhub.db.session import AsyncSessionLocal, async_engine, get_session

__all__ = ["Base", "AsyncSessionLocal", "async_engine", "get_session"]
