# orderhub/adapters/registry.py
"""
Provider resolution.

The set of variants is closed: one builder per (role, tag). A workspace's
active variants are resolved once, when its configuration is loaded, into a
WorkspaceProviders bundle that owns the adapter instances (and therefore
their connections and cached tokens) until the registry is closed.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from orderhub.adapters.base import CourierAdapter, InvoicingAdapter, PlatformAdapter, ProviderAdapter
from orderhub.adapters.errors import NotConfiguredError
from orderhub.adapters.fake import FakeCourier, FakeInvoicing, FakePlatform
from orderhub.adapters.geniki import GenikiAdapter
from orderhub.adapters.meest import MeestAdapter
from orderhub.adapters.oblio import OblioAdapter
from orderhub.adapters.shopify import ShopifyAdapter
from orderhub.core.config import AppSettings, get_settings
from orderhub.models.enums import ProviderRole

log = logging.getLogger("orderhub.adapters")

Builder = Callable[[Mapping[str, Any], Mapping[str, Any], AppSettings], ProviderAdapter]


def _geniki(creds: Mapping[str, Any], ws: Mapping[str, Any], s: AppSettings) -> ProviderAdapter:
    return GenikiAdapter(
        creds,
        wsdl_url=s.GENIKI_WSDL_URL,
        timeout=s.timeout_for("geniki"),
        language=str(ws.get("tracking_language") or "en"),
    )


def _meest(creds: Mapping[str, Any], ws: Mapping[str, Any], s: AppSettings) -> ProviderAdapter:
    return MeestAdapter(creds, base_url=s.MEEST_BASE_URL, timeout=s.timeout_for("meest"), settings=ws)


def _oblio(creds: Mapping[str, Any], ws: Mapping[str, Any], s: AppSettings) -> ProviderAdapter:
    return OblioAdapter(creds, base_url=s.OBLIO_BASE_URL, timeout=s.timeout_for("oblio"), settings=ws)


def _shopify(creds: Mapping[str, Any], ws: Mapping[str, Any], s: AppSettings) -> ProviderAdapter:
    return ShopifyAdapter(creds, api_version=s.SHOPIFY_API_VERSION, timeout=s.timeout_for("shopify"))


VARIANTS: Dict[ProviderRole, Dict[str, Builder]] = {
    ProviderRole.COURIER: {
        "geniki": _geniki,
        "meest": _meest,
        "fake": lambda c, w, s: FakeCourier(),
    },
    ProviderRole.INVOICING: {
        "oblio": _oblio,
        "fake": lambda c, w, s: FakeInvoicing(),
    },
    ProviderRole.PLATFORM: {
        "shopify": _shopify,
        "fake": lambda c, w, s: FakePlatform(),
    },
}

# Variants that run without stored credentials
_NO_CREDENTIALS = {"fake"}


@dataclass
class WorkspaceProviders:
    workspace_id: int
    courier: Optional[CourierAdapter] = None
    invoicing: Optional[InvoicingAdapter] = None
    platform: Optional[PlatformAdapter] = None
    # non-active couriers with stored credentials, by tag; serve tracking for
    # vouchers issued before the workspace switched courier
    couriers: Dict[str, CourierAdapter] = field(default_factory=dict)
    errors: Dict[ProviderRole, NotConfiguredError] = field(default_factory=dict)

    def _require(self, role: ProviderRole, adapter: Any) -> Any:
        if adapter is not None:
            return adapter
        raise self.errors.get(role) or NotConfiguredError(
            f"workspace {self.workspace_id} has no {role.value} provider configured"
        )

    def require_courier(self) -> CourierAdapter:
        return self._require(ProviderRole.COURIER, self.courier)

    def courier_for(self, tag: Optional[str]) -> CourierAdapter:
        """The courier that issued a voucher; None means the active one."""
        active = self.courier
        if not tag or (active is not None and active.name == tag):
            return self.require_courier()
        if tag in self.couriers:
            return self.couriers[tag]
        raise NotConfiguredError(
            f"workspace {self.workspace_id} has no credentials for courier {tag}", provider=tag
        )

    def require_invoicing(self) -> InvoicingAdapter:
        return self._require(ProviderRole.INVOICING, self.invoicing)

    def require_platform(self) -> PlatformAdapter:
        return self._require(ProviderRole.PLATFORM, self.platform)

    def adapters(self) -> list:
        out = [a for a in (self.courier, self.invoicing, self.platform) if a is not None]
        return out + list(self.couriers.values())

    async def aclose(self) -> None:
        for adapter in self.adapters():
            try:
                await adapter.aclose()
            except Exception:
                log.exception("closing adapter %s failed", adapter.name)


def build_adapter(
    role: ProviderRole,
    tag: str,
    credentials: Mapping[str, Any],
    workspace_settings: Mapping[str, Any],
    settings: Optional[AppSettings] = None,
) -> ProviderAdapter:
    builders = VARIANTS[role]
    key = (tag or "").lower()
    if key not in builders:
        raise NotConfiguredError(f"unsupported {role.value} provider: {tag!r}")
    return builders[key](credentials, workspace_settings, settings or get_settings())


class ProviderRegistry:
    """
    Per-process cache of WorkspaceProviders.

    resolve() needs a loader returning (WorkspaceConfig, credentials-by-provider);
    see orderhub.services.workspace_config.provider_loader.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings()
        self._resolved: Dict[int, WorkspaceProviders] = {}
        self._lock = asyncio.Lock()

    def install(self, providers: WorkspaceProviders) -> None:
        self._resolved[providers.workspace_id] = providers

    def cached(self, workspace_id: int) -> Optional[WorkspaceProviders]:
        return self._resolved.get(workspace_id)

    async def resolve(self, workspace_id: int, loader: Callable[[int], Any]) -> WorkspaceProviders:
        if workspace_id in self._resolved:
            return self._resolved[workspace_id]
        async with self._lock:
            if workspace_id in self._resolved:
                return self._resolved[workspace_id]
            config, credentials = await loader(workspace_id)
            providers = self._build(workspace_id, config, credentials)
            self._resolved[workspace_id] = providers
            return providers

    def _build(self, workspace_id: int, config: Any, credentials: Mapping[str, Any]) -> WorkspaceProviders:
        providers = WorkspaceProviders(workspace_id=workspace_id)
        wanted = {
            ProviderRole.COURIER: config.courier_provider,
            ProviderRole.INVOICING: config.invoicing_provider,
            ProviderRole.PLATFORM: config.platform_provider,
        }
        for role, tag in wanted.items():
            if not tag:
                continue
            creds = credentials.get(tag)
            if creds is None and tag not in _NO_CREDENTIALS:
                providers.errors[role] = NotConfiguredError(
                    f"no credentials stored for {tag} in workspace {workspace_id}", provider=tag
                )
                continue
            try:
                adapter = build_adapter(role, tag, creds or {}, config.settings, self._settings)
            except NotConfiguredError as e:
                providers.errors[role] = e
                continue
            setattr(providers, role.value, adapter)
            log.info("workspace %s: %s provider -> %s", workspace_id, role.value, tag)

        active = (config.courier_provider or "").lower()
        for tag in VARIANTS[ProviderRole.COURIER]:
            if tag == active or tag in _NO_CREDENTIALS or credentials.get(tag) is None:
                continue
            try:
                providers.couriers[tag] = build_adapter(
                    ProviderRole.COURIER, tag, credentials[tag], config.settings, self._settings
                )
            except NotConfiguredError as e:
                log.warning("workspace %s: previous courier %s unusable: %s", workspace_id, tag, e.message)
        return providers

    async def invalidate(self, workspace_id: int) -> None:
        providers = self._resolved.pop(workspace_id, None)
        if providers is not None:
            await providers.aclose()

    async def aclose(self) -> None:
        resolved, self._resolved = self._resolved, {}
        for providers in resolved.values():
            await providers.aclose()
