# orderhub/services/runtime.py
"""
Process-wide service objects.

One Runtime per process (the FastAPI app keeps it on app.state; the CLI job
builds its own). It owns the adapter cache, the provider limiter and the
bulk run registry, so they outlive individual requests.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.adapters.registry import ProviderRegistry
from orderhub.core.config import AppSettings, get_settings
from orderhub.limits import ProviderLimiter
from orderhub.services.bulk_coordinator import BulkCoordinator
from orderhub.services.bulk_runs import BulkRunRegistry
from orderhub.services.order_service import OrderImporter
from orderhub.services.tracking_refresh import TrackingRefresher


class Runtime:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        settings: Optional[AppSettings] = None,
        registry: Optional[ProviderRegistry] = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.registry = registry or ProviderRegistry(self.settings)
        self.limiter = ProviderLimiter(
            max_in_flight=self.settings.PROVIDER_MAX_IN_FLIGHT,
            qps=self.settings.PROVIDER_RATE_LIMIT_QPS,
        )
        self.runs = BulkRunRegistry()

    def coordinator(self) -> BulkCoordinator:
        return BulkCoordinator(
            self.session_factory,
            registry=self.registry,
            limiter=self.limiter,
            runs=self.runs,
            settings=self.settings,
        )

    def refresher(self) -> TrackingRefresher:
        return TrackingRefresher(self.coordinator())

    def importer(self) -> OrderImporter:
        return OrderImporter(self.session_factory, registry=self.registry)

    async def aclose(self) -> None:
        await self.registry.aclose()
