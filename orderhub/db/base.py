# orderhub/db/base.py
from __future__ import annotations

import importlib
import logging

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("orderhub.models")


class Base(DeclarativeBase):
    """Single ORM Base for the whole project"""

    pass


_INITIALIZED: bool = False

_MODEL_MODULES = (
    "orderhub.models.workspace",
    "orderhub.models.workspace_credential",
    "orderhub.models.order",
    "orderhub.models.operation_marker",
    "orderhub.models.tracking_sync_log",
    "orderhub.models.audit_event",
)


def init_models(*, force: bool = False) -> None:
    """
    Import every model module so Base.metadata is complete, then configure mappers.
    Used by alembic/env.py, create_tables.py and the test fixtures.
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        return

    for mod in _MODEL_MODULES:
        importlib.import_module(mod)

    configure_mappers()
    _INITIALIZED = True
    log.debug("ORM models initialized (%d modules)", len(_MODEL_MODULES))
