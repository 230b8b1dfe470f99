"""branchops core tables

Revision ID: 0001_branchops_core
Revises:
Create Date: 2026-01-02 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_branchops_core"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "branches",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("parent_id", GUID(), sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_branches_parent_id", "branches", ["parent_id"])

    op.create_table(
        "customers",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("branch_id", GUID(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_customers_branch_id", "customers", ["branch_id"])

    op.create_table(
        "assets",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("serial_number", sa.String(length=100), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("branch_id", GUID(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("origin_branch_id", GUID(), nullable=True),
        sa.Column("active_transfer_id", GUID(), nullable=True),
        sa.Column("active_assignment_id", GUID(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_assets_serial_number", "assets", ["serial_number"], unique=True)
    op.create_index("ix_assets_branch_id", "assets", ["branch_id"])
    op.create_index("ix_assets_active_transfer_id", "assets", ["active_transfer_id"])
    op.create_index("ix_assets_active_assignment_id", "assets", ["active_assignment_id"])

    op.create_table(
        "transfer_orders",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("order_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("from_branch_id", GUID(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("to_branch_id", GUID(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=100), nullable=False),
        sa.Column("updated_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_transfer_orders_from_branch_id", "transfer_orders", ["from_branch_id"])
    op.create_index("ix_transfer_orders_to_branch_id", "transfer_orders", ["to_branch_id"])
    op.create_index("ix_transfer_orders_status", "transfer_orders", ["status"])

    op.create_table(
        "transfer_order_items",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("order_id", GUID(), sa.ForeignKey("transfer_orders.id"), nullable=False),
        sa.Column("asset_id", GUID(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=False),
        sa.Column("prior_status", sa.String(length=50), nullable=False),
    )
    op.create_index("ix_transfer_order_items_order_id", "transfer_order_items", ["order_id"])
    op.create_index("ix_transfer_order_items_asset_id", "transfer_order_items", ["asset_id"])

    op.create_table(
        "service_assignments",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("asset_id", GUID(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=False),
        sa.Column("origin_branch_id", GUID(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("center_branch_id", GUID(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("technician_name", sa.String(length=255), nullable=True),
        sa.Column("estimated_cost", sa.Float(), nullable=True),
        sa.Column("prior_status", sa.String(length=50), nullable=False),
        sa.Column("approval_request_id", GUID(), nullable=True),
        sa.Column("created_by", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("returned_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_service_assignments_asset_id", "service_assignments", ["asset_id"])
    op.create_index("ix_service_assignments_origin_branch_id", "service_assignments", ["origin_branch_id"])
    op.create_index("ix_service_assignments_center_branch_id", "service_assignments", ["center_branch_id"])

    op.create_table(
        "service_approval_requests",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("assignment_id", GUID(), sa.ForeignKey("service_assignments.id"), nullable=False),
        sa.Column("requested_cost", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("responded_by", sa.String(length=100), nullable=True),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_service_approval_requests_assignment_id",
        "service_approval_requests",
        ["assignment_id"],
        unique=True,
    )

    op.create_table(
        "asset_movements",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("asset_id", GUID(), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("from_branch_id", GUID(), nullable=True),
        sa.Column("to_branch_id", GUID(), nullable=True),
        sa.Column("from_status", sa.String(length=50), nullable=True),
        sa.Column("to_status", sa.String(length=50), nullable=True),
        sa.Column("reference_type", sa.String(length=50), nullable=False),
        sa.Column("reference_id", GUID(), nullable=False),
        sa.Column("performed_by", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_asset_movements_asset_id", "asset_movements", ["asset_id"])
    op.create_index("ix_asset_movements_asset_created", "asset_movements", ["asset_id", "created_at"])

    op.create_table(
        "audit_events",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("actor_role", sa.String(length=50), nullable=True),
        sa.Column("branch_id", GUID(), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("detail", sa.JSON(), nullable=True),
        sa.Column("trace_id", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_actor", "audit_events", ["actor"])
    op.create_index("ix_audit_events_branch_id", "audit_events", ["branch_id"])
    op.create_index("ix_audit_events_trace_id", "audit_events", ["trace_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("asset_movements")
    op.drop_table("service_approval_requests")
    op.drop_table("service_assignments")
    op.drop_table("transfer_order_items")
    op.drop_table("transfer_orders")
    op.drop_table("assets")
    op.drop_table("customers")
    op.drop_table("branches")
