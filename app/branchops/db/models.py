import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, JSON, String, Text, event
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator, CHAR

from app.branchops.core.error_catalog import AuditImmutableError


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class Base(DeclarativeBase):
    pass


class Branch(Base):
    __tablename__ = "branches"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="BRANCH")
    parent_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), ForeignKey("branches.id"), index=True, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    parent = relationship("Branch", remote_side="Branch.id")


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    branch_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("branches.id"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Asset(Base):
    __tablename__ = "assets"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="MACHINE")
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="NEW")
    branch_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("branches.id"), index=True, nullable=False)
    origin_branch_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    active_transfer_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), index=True, nullable=True)
    active_assignment_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), index=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class TransferOrder(Base):
    __tablename__ = "transfer_orders"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False, default="MACHINE")
    from_branch_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("branches.id"), index=True, nullable=False)
    to_branch_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("branches.id"), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    items = relationship("TransferOrderItem", back_populates="order", order_by="TransferOrderItem.serial_number")


class TransferOrderItem(Base):
    __tablename__ = "transfer_order_items"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("transfer_orders.id"), index=True, nullable=False)
    asset_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("assets.id"), index=True, nullable=False)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    prior_status: Mapped[str] = mapped_column(String(50), nullable=False)

    order = relationship("TransferOrder", back_populates="items")


class ServiceAssignment(Base):
    __tablename__ = "service_assignments"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    asset_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("assets.id"), index=True, nullable=False)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    origin_branch_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("branches.id"), index=True, nullable=False)
    center_branch_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("branches.id"), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="ASSIGNED")
    technician_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    estimated_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    prior_status: Mapped[str] = mapped_column(String(50), nullable=False)
    approval_request_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    returned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class ServiceApprovalRequest(Base):
    __tablename__ = "service_approval_requests"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    assignment_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("service_assignments.id"), index=True, nullable=False, unique=True
    )
    requested_cost: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    responded_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class AssetMovement(Base):
    __tablename__ = "asset_movements"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    asset_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    from_branch_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    to_branch_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    actor: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    actor_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    branch_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), index=True, nullable=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    trace_id: Mapped[str | None] = mapped_column(String(100), index=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


@event.listens_for(AuditEvent, "before_update")
def _audit_event_before_update(mapper, connection, target):
    raise AuditImmutableError(f"audit event {target.id} cannot be updated")


@event.listens_for(AuditEvent, "before_delete")
def _audit_event_before_delete(mapper, connection, target):
    raise AuditImmutableError(f"audit event {target.id} cannot be deleted")


Index("ix_asset_movements_asset_created", AssetMovement.asset_id, AssetMovement.created_at)
Index("ix_transfer_orders_status", TransferOrder.status)
