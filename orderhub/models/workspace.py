# orderhub/models/workspace.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.db.base import Base


class Workspace(Base):
    """
    Tenant boundary. Holds which provider variant is active per role and a
    free-form settings document (invoice options, sender details, vocabulary
    overrides). Workspace CRUD lives outside this service.
    """

    __tablename__ = "workspaces"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    courier_provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    invoicing_provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    platform_provider: Mapped[str | None] = mapped_column(String(32), nullable=True)

    settings: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
