# orderhub/models/__init__.py
"""
ORM model exports.
"""

from orderhub.models.audit_event import AuditEvent
from orderhub.models.enums import MarkerState, OperationKind, OrderStatus
from orderhub.models.operation_marker import OperationMarker
from orderhub.models.order import Order
from orderhub.models.tracking_sync_log import TrackingSyncLog
from orderhub.models.workspace import Workspace
from orderhub.models.workspace_credential import WorkspaceCredential

__all__ = [
    "AuditEvent",
    "MarkerState",
    "OperationKind",
    "OperationMarker",
    "Order",
    "OrderStatus",
    "TrackingSyncLog",
    "Workspace",
    "WorkspaceCredential",
]
