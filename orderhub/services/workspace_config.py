# orderhub/services/workspace_config.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.api.errors import NotFoundError
from orderhub.domain.vocabulary import DeliveryVocabulary, vocabulary_for
from orderhub.models.workspace import Workspace
from orderhub.services.secret_store import DbSecretStore, SecretStore


@dataclass(frozen=True)
class WorkspaceConfig:
    workspace_id: int
    name: str
    is_active: bool = True
    courier_provider: Optional[str] = None
    invoicing_provider: Optional[str] = None
    platform_provider: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)

    def vocabulary(self, courier: Optional[str] = None) -> DeliveryVocabulary:
        """Vocabulary for an order's courier (falls back to the workspace's active courier)."""
        return vocabulary_for(courier or self.courier_provider, self.settings.get("delivery_vocabulary"))


async def load_workspace_config(session: AsyncSession, workspace_id: int) -> WorkspaceConfig:
    ws = await session.get(Workspace, workspace_id)
    if ws is None:
        raise NotFoundError(f"workspace {workspace_id} not found")
    return WorkspaceConfig(
        workspace_id=ws.id,
        name=ws.name,
        is_active=bool(ws.is_active),
        courier_provider=ws.courier_provider,
        invoicing_provider=ws.invoicing_provider,
        platform_provider=ws.platform_provider,
        settings=dict(ws.settings or {}),
    )


def provider_loader(
    session_factory: async_sessionmaker[AsyncSession],
    secret_store_factory: Optional[Callable[[AsyncSession], SecretStore]] = None,
) -> Callable[[int], Any]:
    """Loader for ProviderRegistry.resolve: (WorkspaceConfig, {provider: credentials})."""
    make_store = secret_store_factory or DbSecretStore

    async def _load(workspace_id: int) -> Tuple[WorkspaceConfig, Dict[str, Dict[str, Any]]]:
        async with session_factory() as session:
            config = await load_workspace_config(session, workspace_id)
            credentials = await make_store(session).get_all(workspace_id)
        return config, credentials

    return _load
