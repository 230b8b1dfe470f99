import logging
from dataclasses import dataclass
from datetime import datetime

from app.branchops.core.logging import log_json
from app.branchops.db.models import AuditEvent
from app.branchops.repos.audit import AuditRepository

logger = logging.getLogger(__name__)


@dataclass
class AuditEventPayload:
    actor: str
    action: str
    entity_type: str
    entity_id: str | None
    actor_role: str | None = None
    branch_id: str | None = None
    trace_id: str | None = None
    detail: dict | None = None


class AuditService:
    """Append-only audit trail.

    Events are written through the caller's session. Inside a transition the
    row commits or rolls back together with the state change; ``autocommit``
    is used for standalone events such as a scope bypass. Write failures
    propagate.
    """

    def __init__(self, db):
        self.repo = AuditRepository(db)

    def record_event(self, payload: AuditEventPayload, *, autocommit: bool = False) -> AuditEvent:
        event = AuditEvent(
            actor=payload.actor,
            actor_role=payload.actor_role,
            branch_id=payload.branch_id,
            action=payload.action,
            entity_type=payload.entity_type,
            entity_id=str(payload.entity_id) if payload.entity_id is not None else None,
            detail=dict(payload.detail or {}),
            trace_id=payload.trace_id,
            created_at=datetime.utcnow(),
        )
        self.repo.create(event, commit=autocommit)
        log_json(
            logger,
            {
                "event": "audit",
                "action": payload.action,
                "entity_type": payload.entity_type,
                "entity_id": event.entity_id,
                "actor": payload.actor,
                "trace_id": payload.trace_id,
            },
            level=logging.DEBUG,
        )
        return event
