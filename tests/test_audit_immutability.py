import pytest
from sqlalchemy import select

from app.branchops.core.error_catalog import AuditImmutableError
from app.branchops.db.models import AuditEvent
from app.branchops.services.audit import AuditEventPayload, AuditService


def _recorded(db):
    event = AuditService(db).record_event(
        AuditEventPayload(
            actor="user-1",
            actor_role="BRANCH_MANAGER",
            action="transfer.create",
            entity_type="TransferOrder",
            entity_id="order-1",
            trace_id="trace-audit-1",
            detail={"serials": ["SN-100"]},
        ),
        autocommit=True,
    )
    return event


def test_record_event_persists_row(db_session):
    event = _recorded(db_session)

    stored = db_session.execute(select(AuditEvent).where(AuditEvent.id == event.id)).scalars().one()
    assert stored.action == "transfer.create"
    assert stored.trace_id == "trace-audit-1"
    assert stored.detail == {"serials": ["SN-100"]}
    assert stored.created_at is not None


def test_audit_rows_cannot_be_updated(db_session):
    event = _recorded(db_session)

    event.action = "transfer.rewritten"
    with pytest.raises(AuditImmutableError):
        db_session.flush()
    db_session.rollback()

    stored = db_session.execute(select(AuditEvent).where(AuditEvent.id == event.id)).scalars().one()
    assert stored.action == "transfer.create"


def test_audit_rows_cannot_be_deleted(db_session):
    event = _recorded(db_session)

    db_session.delete(event)
    with pytest.raises(AuditImmutableError):
        db_session.flush()
    db_session.rollback()

    assert db_session.execute(select(AuditEvent)).scalars().all() != []


def test_uncommitted_audit_row_rolls_back_with_its_transaction(db_session):
    AuditService(db_session).record_event(
        AuditEventPayload(actor="user-1", action="transfer.accept", entity_type="TransferOrder", entity_id="order-2")
    )
    db_session.rollback()

    assert db_session.execute(select(AuditEvent)).scalars().all() == []
