"""orderhub core schema

Revision ID: 0001_orderhub_core
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001_orderhub_core"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = True, server_now: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if server_now else None,
    )


def upgrade() -> None:
    op.create_table(
        "workspaces",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("courier_provider", sa.String(32), nullable=True),
        sa.Column("invoicing_provider", sa.String(32), nullable=True),
        sa.Column("platform_provider", sa.String(32), nullable=True),
        sa.Column("settings", sa.JSON(), nullable=False),
        _ts("updated_at", nullable=False, server_now=True),
    )

    op.create_table(
        "workspace_credentials",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("secret", sa.JSON(), nullable=False),
        _ts("updated_at", nullable=False, server_now=True),
        sa.UniqueConstraint("workspace_id", "provider", name="uq_workspace_credentials_ws_provider"),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=False),
        sa.Column("order_name", sa.String(64), nullable=False),
        sa.Column("platform_order_id", sa.String(64), nullable=True),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address1", sa.String(255), nullable=True),
        sa.Column("address2", sa.String(255), nullable=True),
        sa.Column("city", sa.String(128), nullable=True),
        sa.Column("province", sa.String(128), nullable=True),
        sa.Column("zip", sa.String(32), nullable=True),
        sa.Column("country_code", sa.String(8), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(8), nullable=True),
        sa.Column("payment_gateway", sa.String(64), nullable=True),
        sa.Column("products", sa.JSON(), nullable=False),
        sa.Column("financial_status", sa.String(32), nullable=True),
        sa.Column("fulfillment_status", sa.String(32), nullable=True),
        sa.Column("platform_fulfillment_id", sa.String(64), nullable=True),
        sa.Column("courier", sa.String(32), nullable=True),
        sa.Column("voucher_number", sa.String(64), nullable=True),
        sa.Column("courier_job_id", sa.String(64), nullable=True),
        _ts("voucher_created_at"),
        sa.Column("delivery_status", sa.String(255), nullable=True),
        sa.Column("current_location", sa.String(255), nullable=True),
        _ts("delivery_status_updated_at"),
        _ts("delivered_at"),
        sa.Column("last_tracking_error", sa.Text(), nullable=True),
        sa.Column("invoice_id", sa.String(64), nullable=True),
        sa.Column("invoice_series", sa.String(32), nullable=True),
        sa.Column("invoice_number", sa.String(32), nullable=True),
        sa.Column("invoice_url", sa.String(512), nullable=True),
        _ts("invoiced_at"),
        sa.Column("order_status", sa.String(32), nullable=False, server_default="unfulfilled"),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cancelled", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("cancelled_at"),
        _ts("imported_at", nullable=False, server_now=True),
        _ts("updated_at", nullable=False, server_now=True),
        sa.UniqueConstraint("workspace_id", "order_name", name="uq_orders_workspace_order_name"),
    )
    op.create_index("ix_orders_workspace_id", "orders", ["workspace_id"])
    op.create_index("ix_orders_voucher_number", "orders", ["voucher_number"])
    op.create_index("ix_orders_order_status", "orders", ["order_status"])
    op.create_index("ix_orders_workspace_status", "orders", ["workspace_id", "order_status"])

    op.create_table(
        "operation_markers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("operation_kind", sa.String(32), nullable=False),
        sa.Column("state", sa.String(16), nullable=False, server_default="in_flight"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_error", sa.Text(), nullable=True),
        _ts("updated_at", nullable=False),
        sa.UniqueConstraint("order_id", "operation_kind", name="uq_operation_markers_order_kind"),
    )
    op.create_index("ix_operation_markers_order_id", "operation_markers", ["order_id"])

    op.create_table(
        "tracking_sync_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="running"),
        sa.Column("trigger", sa.String(16), nullable=False, server_default="manual"),
        _ts("started_at", nullable=False, server_now=True),
        _ts("completed_at"),
        sa.Column("orders_scanned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("orders_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_tracking_sync_log_workspace_id", "tracking_sync_log", ["workspace_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("ref", sa.String(128), nullable=False),
        sa.Column("workspace_id", sa.Integer(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=False),
        _ts("created_at", nullable=False, server_now=True),
    )
    op.create_index("ix_audit_events_category", "audit_events", ["category"])
    op.create_index("ix_audit_events_ref", "audit_events", ["ref"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("tracking_sync_log")
    op.drop_table("operation_markers")
    op.drop_table("orders")
    op.drop_table("workspace_credentials")
    op.drop_table("workspaces")
