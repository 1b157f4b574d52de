# orderhub/services/audit_writer.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.models.audit_event import AuditEvent

logger = logging.getLogger("orderhub.audit")


class AuditEventWriter:
    """
    Appends one audit_events row per order lifecycle mutation.

    - category = "order"
    - ref      = order_name
    - meta     = {"event": ..., plus whatever the caller adds}

    Runs inside the caller's transaction (savepoint); a failed insert is logged
    and never breaks the main flow.
    """

    @staticmethod
    async def write(
        session: AsyncSession,
        *,
        event: str,
        ref: str,
        workspace_id: Optional[int] = None,
        category: str = "order",
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = dict(meta or {})
        payload.setdefault("event", event)

        try:
            async with session.begin_nested():
                session.add(
                    AuditEvent(
                        category=category,
                        ref=ref,
                        workspace_id=workspace_id,
                        meta=json.loads(json.dumps(payload, ensure_ascii=False, default=str)),
                    )
                )
        except SQLAlchemyError as e:
            logger.debug("audit_events insert failed: %s", e)
            logger.info("[audit-fallback] %s | %s | %s", category, ref, json.dumps(payload, default=str))
