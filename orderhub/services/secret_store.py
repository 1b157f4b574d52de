# orderhub/services/secret_store.py
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.adapters.errors import NotConfiguredError
from orderhub.models.workspace_credential import WorkspaceCredential


class SecretStore(Protocol):
    """
    get_credentials(workspace_id, provider) -> credentials | NotConfiguredError

    Storage / encryption is the store's business; callers only read.
    """

    async def get_credentials(self, workspace_id: int, provider: str) -> Dict[str, Any]:
        ...

    async def get_all(self, workspace_id: int) -> Dict[str, Dict[str, Any]]:
        ...


class DbSecretStore:
    """Reads workspace_credentials with the caller's session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_credentials(self, workspace_id: int, provider: str) -> Dict[str, Any]:
        row: Optional[WorkspaceCredential] = (
            await self.session.execute(
                select(WorkspaceCredential).where(
                    WorkspaceCredential.workspace_id == workspace_id,
                    WorkspaceCredential.provider == provider,
                )
            )
        ).scalar_one_or_none()
        if row is None or not row.secret:
            raise NotConfiguredError(
                f"no credentials stored for {provider} in workspace {workspace_id}", provider=provider
            )
        return dict(row.secret)

    async def get_all(self, workspace_id: int) -> Dict[str, Dict[str, Any]]:
        rows = (
            await self.session.execute(
                select(WorkspaceCredential).where(WorkspaceCredential.workspace_id == workspace_id)
            )
        ).scalars()
        return {r.provider: dict(r.secret or {}) for r in rows}


class StaticSecretStore:
    """In-memory store: {(workspace_id, provider): credentials}."""

    def __init__(self, data: Optional[Mapping[tuple, Mapping[str, Any]]] = None):
        self._data: Dict[tuple, Dict[str, Any]] = {k: dict(v) for k, v in (data or {}).items()}

    async def get_credentials(self, workspace_id: int, provider: str) -> Dict[str, Any]:
        creds = self._data.get((workspace_id, provider))
        if not creds:
            raise NotConfiguredError(
                f"no credentials stored for {provider} in workspace {workspace_id}", provider=provider
            )
        return dict(creds)

    async def get_all(self, workspace_id: int) -> Dict[str, Dict[str, Any]]:
        return {p: dict(v) for (ws, p), v in self._data.items() if ws == workspace_id}
