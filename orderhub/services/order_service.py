# orderhub/services/order_service.py
"""
Single-order operations that do not call a provider per order:

- cancel_order      one-way, idempotent
- get_order_status  persisted value, no recompute
- import_orders     platform fetch -> upsert by (workspace_id, order_name)
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.adapters.base import ImportedOrder
from orderhub.adapters.errors import NotConfiguredError, ProviderError
from orderhub.adapters.registry import ProviderRegistry
from orderhub.api.errors import BizError, NotFoundError
from orderhub.services import order_repo
from orderhub.services.audit_writer import AuditEventWriter
from orderhub.services.workspace_config import WorkspaceConfig, load_workspace_config, provider_loader

log = logging.getLogger("orderhub.orders")

# fields the platform owns on an order that already exists locally
PLATFORM_OWNED = ("platform_order_id", "financial_status", "fulfillment_status")


@dataclass
class ImportSummary:
    workspace_id: int
    fetched: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def get_order_status(session: AsyncSession, workspace_id: int, order_name: str) -> str:
    order = await order_repo.get_by_name(session, workspace_id, order_name)
    if order is None:
        raise NotFoundError(f"order {order_name} not found in workspace {workspace_id}")
    return order.order_status


async def cancel_order(session: AsyncSession, workspace_id: int, order_name: str) -> str:
    """Mark an order cancelled. Cancelling twice is a no-op; there is no way back."""
    config = await load_workspace_config(session, workspace_id)
    order = await order_repo.get_by_name(session, workspace_id, order_name)
    if order is None:
        raise NotFoundError(f"order {order_name} not found in workspace {workspace_id}")

    changed = order_repo.apply_patch(order, {"cancelled": True}, config.vocabulary(order.courier))
    if changed:
        await AuditEventWriter.write(
            session,
            event="cancel",
            ref=order.order_name,
            workspace_id=workspace_id,
            meta={"changed": changed, "order_status": order.order_status},
        )
        log.info("order %s cancelled (ws=%s)", order_name, workspace_id)
    await session.commit()
    return order.order_status


def _fields(item: ImportedOrder) -> Dict[str, Any]:
    data = asdict(item)
    return {k: v for k, v in data.items() if k in order_repo.PATCHABLE or k == "order_name"}


class OrderImporter:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, registry: ProviderRegistry):
        self._sf = session_factory
        self.registry = registry

    async def import_orders(self, workspace_id: int, since: Optional[datetime] = None) -> ImportSummary:
        async with self._sf() as session:
            config = await load_workspace_config(session, workspace_id)
        providers = await self.registry.resolve(workspace_id, provider_loader(self._sf))
        try:
            platform = providers.require_platform()
        except NotConfiguredError as e:
            raise BizError(e.message, code="NOT_CONFIGURED", status=409) from e

        try:
            items = await platform.fetch_orders(since)
        except ProviderError as e:
            raise BizError(f"order import failed: {e.message}", code=e.code, status=502) from e

        summary = ImportSummary(workspace_id=workspace_id, fetched=len(items))
        for item in items:
            if not item.order_name:
                continue
            try:
                outcome = await self._upsert(config, item)
            except (SQLAlchemyError, order_repo.ImmutableFieldError, ValueError) as e:
                log.warning("import of %s failed: %s", item.order_name, e)
                summary.failed.append({"order_name": item.order_name, "message": str(e)})
                continue
            setattr(summary, outcome, getattr(summary, outcome) + 1)

        log.info(
            "import ws=%s: fetched=%d created=%d updated=%d unchanged=%d failed=%d",
            workspace_id, summary.fetched, summary.created, summary.updated,
            summary.unchanged, len(summary.failed),
        )
        return summary

    async def _upsert(self, config: WorkspaceConfig, item: ImportedOrder) -> str:
        async with self._sf() as session, session.begin():
            existing = await order_repo.get_by_name(session, config.workspace_id, item.order_name)
            if existing is None:
                order = order_repo.new_order(config.workspace_id, _fields(item), config.vocabulary())
                session.add(order)
                await session.flush()
                await AuditEventWriter.write(
                    session,
                    event="import",
                    ref=order.order_name,
                    workspace_id=config.workspace_id,
                    meta={"order_status": order.order_status},
                )
                return "created"

            patch = {k: getattr(item, k) for k in PLATFORM_OWNED if getattr(item, k) is not None}
            changed = order_repo.apply_patch(existing, patch, config.vocabulary(existing.courier))
            return "updated" if changed else "unchanged"
