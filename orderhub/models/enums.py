# orderhub/models/enums.py
from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Derived lifecycle status (priority order, first match wins)."""

    CANCELLED = "cancelled"
    COMPLETED = "completed"
    RETURNED = "returned"
    DELIVERED = "delivered"
    IN_TRANSIT = "in_transit"
    AWB_CREATED = "awb_created"
    UNFULFILLED = "unfulfilled"


# No further tracking scans once an order reaches one of these
TERMINAL_STATUSES = frozenset(
    {
        OrderStatus.DELIVERED,
        OrderStatus.RETURNED,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    }
)


class OperationKind(str, Enum):
    FULFILL = "fulfill"
    CREATE_LABEL = "create-label"
    UPDATE_TRACKING = "update-tracking"
    CREATE_INVOICE = "create-invoice"
    SYNC_FROM_PLATFORM = "sync-from-platform"
    CONFIRM_DELIVERY = "confirm-delivery"

    @property
    def repeatable(self) -> bool:
        """
        Repeatable kinds only need the in-flight half of the guard:
        their marker is dropped after success instead of being kept as done.
        """
        return self in (OperationKind.UPDATE_TRACKING, OperationKind.SYNC_FROM_PLATFORM)


class MarkerState(str, Enum):
    IN_FLIGHT = "in_flight"
    DONE = "done"


class ProviderRole(str, Enum):
    COURIER = "courier"
    INVOICING = "invoicing"
    PLATFORM = "platform"


class SyncRunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
