from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update

from app.branchops.core.filters import CollectionFilter, UniqueLookup, compile_filter, compile_lookup
from app.branchops.db.models import ServiceApprovalRequest, ServiceAssignment


class AssignmentRepository:
    def __init__(self, db):
        self.db = db

    def list_assignments(self, filters: CollectionFilter) -> list[ServiceAssignment]:
        query = select(ServiceAssignment).where(*compile_filter(ServiceAssignment, filters))
        return self.db.execute(query.order_by(ServiceAssignment.created_at.desc())).scalars().all()

    def get_assignment(self, lookup: UniqueLookup, *, for_update: bool = False) -> ServiceAssignment | None:
        query = (
            select(ServiceAssignment)
            .where(compile_lookup(ServiceAssignment, lookup))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_approval(self, lookup: UniqueLookup, *, for_update: bool = False) -> ServiceApprovalRequest | None:
        query = (
            select(ServiceApprovalRequest)
            .where(compile_lookup(ServiceApprovalRequest, lookup))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def transition_status(self, assignment_id, *, expected: str, target: str, values: dict | None = None) -> int:
        payload = {"status": target, "updated_at": datetime.utcnow()}
        payload.update(values or {})
        result = self.db.execute(
            update(ServiceAssignment)
            .where(ServiceAssignment.id == assignment_id, ServiceAssignment.status == expected)
            .values(**payload)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def resolve_approval(self, approval_id, *, target: str, responded_by: str, notes: str | None) -> int:
        result = self.db.execute(
            update(ServiceApprovalRequest)
            .where(ServiceApprovalRequest.id == approval_id, ServiceApprovalRequest.status == "PENDING")
            .values(
                status=target,
                responded_by=responded_by,
                responded_at=datetime.utcnow(),
                notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
