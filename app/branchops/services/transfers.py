from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from app.branchops.core.config import settings
from app.branchops.core.context import Principal
from app.branchops.core.error_catalog import (
    ConflictError,
    ErrorCatalog,
    ForbiddenError,
    LostRaceError,
    NotFoundError,
    ValidationError,
)
from app.branchops.core.filters import CollectionFilter, UniqueLookup
from app.branchops.core.logging import log_json
from app.branchops.core.scope import ScopePolicy, default_policy, unique_operation_kind
from app.branchops.core.states import (
    LOCKED_ASSET_STATUSES,
    TERMINAL_TRANSFER_STATUSES,
    AssetStatus,
    BranchType,
    TransferStatus,
)
from app.branchops.db.models import TransferOrder, TransferOrderItem
from app.branchops.db.session import atomic
from app.branchops.repos.assets import AssetRepository
from app.branchops.repos.branches import BranchRepository
from app.branchops.repos.transfers import TransferRepository
from app.branchops.services.audit import AuditEventPayload, AuditService
from app.branchops.services.ledger import AssetLedger
from app.branchops.services.query_scoper import QueryScoper
from app.branchops.services.transfer_validator import TransferDraft, TransferValidator, ValidationResult, as_uuid

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "TO"


def run_with_retry(operation: str, attempt, retry_limit: int):
    """Run ``attempt`` and re-run it from scratch after a lost race, up to ``retry_limit`` times."""
    retries = 0
    while True:
        try:
            return attempt()
        except LostRaceError as exc:
            if retries >= retry_limit:
                raise
            retries += 1
            log_json(
                logger,
                {"event": "transition_retry", "operation": operation, "attempt": retries, "serials": exc.serials},
                level=logging.WARNING,
            )


def restorable_status(status: str | None) -> str:
    if not status or status in LOCKED_ASSET_STATUSES:
        return AssetStatus.STANDBY.value
    return status


class TransferOrchestrator:
    def __init__(
        self,
        db,
        policy: ScopePolicy | None = None,
        *,
        trace_id: str | None = None,
        retry_limit: int | None = None,
    ):
        self.db = db
        self.policy = policy or default_policy()
        self.trace_id = trace_id
        self.retry_limit = settings.TRANSITION_RETRY_LIMIT if retry_limit is None else retry_limit
        self.scoper = QueryScoper(db, self.policy, trace_id=trace_id)
        self.validator = TransferValidator(db, self.policy)
        self.repo = TransferRepository(db)
        self.assets = AssetRepository(db)
        self.branches = BranchRepository(db)
        self.ledger = AssetLedger(db)
        self.audit = AuditService(db)

    def validate(self, draft: TransferDraft, principal: Principal) -> ValidationResult:
        return self.validator.validate(draft, principal)

    def create(self, draft: TransferDraft, principal: Principal) -> TransferOrder:
        result = self.validator.validate(draft, principal)
        if result.frozen_serials:
            raise ConflictError(
                "Assets are frozen by another operation",
                serials=result.frozen_serials,
                error=ErrorCatalog.ASSET_FROZEN,
                errors=result.errors,
            )
        if not result.valid:
            raise ValidationError(result.errors, result.warnings)
        order_id = run_with_retry("transfer.create", lambda: self._create_once(draft, principal), self.retry_limit)
        return self._reload(order_id)

    def accept(self, order_id, principal: Principal) -> TransferOrder:
        return self._transition("transfer.accept", order_id, principal, self._accept_once)

    def receive(self, order_id, principal: Principal) -> TransferOrder:
        return self._transition("transfer.receive", order_id, principal, self._receive_once)

    def reject(self, order_id, reason: str | None, principal: Principal) -> TransferOrder:
        return self._transition(
            "transfer.reject",
            order_id,
            principal,
            lambda oid, p: self._release_once(oid, p, target=TransferStatus.REJECTED, reason=reason),
        )

    def cancel(self, order_id, principal: Principal) -> TransferOrder:
        return self._transition(
            "transfer.cancel",
            order_id,
            principal,
            lambda oid, p: self._release_once(oid, p, target=TransferStatus.CANCELLED, reason=None),
        )

    def get_transfer(self, order_id, principal: Principal) -> TransferOrder:
        order = self._load(order_id, principal)
        return self.scoper.authorize_entity(order, principal, "TransferOrder")

    def list_transfers(self, flt: CollectionFilter, principal: Principal) -> list[TransferOrder]:
        scoped = self.scoper.scope_collection_query(flt, principal, operation="list_transfers")
        return self.repo.list_transfers(scoped)

    def _transition(self, operation: str, order_id, principal: Principal, attempt) -> TransferOrder:
        run_with_retry(operation, lambda: attempt(order_id, principal), self.retry_limit)
        return self._reload(order_id)

    def _create_once(self, draft: TransferDraft, principal: Principal):
        from_id = as_uuid(draft.from_branch_id)
        to_id = as_uuid(draft.to_branch_id)
        serials = sorted({str(serial).strip() for serial in draft.serials})
        if from_id is None or to_id is None:
            raise ValidationError(["Source and destination branch ids must be UUIDs"])
        if from_id == to_id:
            raise ValidationError(["Source and destination branch must differ"])
        with atomic(self.db):
            assets = self.assets.get_by_serials(serials, for_update=True)
            frozen = [
                serial
                for serial in serials
                if serial in assets
                and (assets[serial].active_transfer_id is not None or assets[serial].active_assignment_id is not None)
            ]
            if frozen:
                raise ConflictError("Assets are frozen by another operation", serials=frozen, error=ErrorCatalog.ASSET_FROZEN)
            unavailable = [
                serial
                for serial in serials
                if serial not in assets
                or assets[serial].status in LOCKED_ASSET_STATUSES
                or assets[serial].branch_id != from_id
            ]
            if unavailable:
                raise ConflictError("Assets are no longer available for transfer", serials=unavailable)

            now = datetime.utcnow()
            order = TransferOrder(
                id=uuid.uuid4(),
                order_number=self._next_order_number(now),
                type=draft.type.strip().upper(),
                from_branch_id=from_id,
                to_branch_id=to_id,
                status=TransferStatus.PENDING.value,
                notes=draft.notes,
                created_by=principal.user_id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(order)
            try:
                self.db.flush()
            except IntegrityError as exc:
                raise LostRaceError(f"Order number {order.order_number} already taken") from exc

            missed = []
            for serial in serials:
                asset = assets[serial]
                self.db.add(
                    TransferOrderItem(
                        order_id=order.id,
                        asset_id=asset.id,
                        serial_number=serial,
                        prior_status=asset.status,
                    )
                )
                if not self.ledger.freeze_for_transfer(
                    asset,
                    transfer_id=order.id,
                    from_branch_id=from_id,
                    actor=principal.user_id,
                ):
                    missed.append(serial)
            if missed:
                raise LostRaceError("Assets changed while the transfer was being created", serials=missed)

            self._record(
                "transfer.create",
                order,
                principal,
                {"order_number": order.order_number, "type": order.type, "serials": serials},
            )
            order_id = order.id
        log_json(
            logger,
            {
                "event": "transfer_created",
                "order_id": str(order_id),
                "items": len(serials),
                "user_id": principal.user_id,
                "trace_id": self.trace_id,
            },
        )
        return order_id

    def _accept_once(self, order_id, principal: Principal):
        with atomic(self.db):
            order = self._load(order_id, principal, for_update=True)
            self._authorize(self.policy.owns_branch(principal, order.to_branch_id), "accept")
            self._require_status(order, {TransferStatus.PENDING.value}, "accept")
            if (
                self.repo.transition_status(
                    order.id,
                    expected=order.status,
                    target=TransferStatus.ACCEPTED.value,
                    values={"accepted_at": datetime.utcnow(), "updated_by": principal.user_id},
                )
                != 1
            ):
                raise LostRaceError(f"Transfer {order.order_number} changed concurrently")
            self._record("transfer.accept", order, principal, {"from_status": order.status})

    def _receive_once(self, order_id, principal: Principal):
        with atomic(self.db):
            order = self._load(order_id, principal, for_update=True)
            self._authorize(self.policy.owns_branch(principal, order.to_branch_id), "receive")
            self._require_status(order, {TransferStatus.PENDING.value, TransferStatus.ACCEPTED.value}, "receive")
            destination = self.branches.get_by_id(order.to_branch_id)
            to_center = destination is not None and destination.type == BranchType.CENTER.value
            items = self.repo.get_items(order.id)
            missed = self._release_items(
                order,
                items,
                principal,
                action="TRANSFER_IN",
                relocate_to=order.to_branch_id,
                origin_branch_id=order.from_branch_id if to_center else None,
            )
            if missed:
                raise LostRaceError("Assets changed while the transfer was being received", serials=missed)
            if (
                self.repo.transition_status(
                    order.id,
                    expected=order.status,
                    target=TransferStatus.RECEIVED.value,
                    values={"received_at": datetime.utcnow(), "updated_by": principal.user_id},
                )
                != 1
            ):
                raise LostRaceError(f"Transfer {order.order_number} changed concurrently")
            self._record(
                "transfer.receive",
                order,
                principal,
                {"from_status": order.status, "serials": [item.serial_number for item in items]},
            )

    def _release_once(self, order_id, principal: Principal, *, target: TransferStatus, reason: str | None):
        with atomic(self.db):
            order = self._load(order_id, principal, for_update=True)
            if target == TransferStatus.CANCELLED:
                allowed = self.policy.owns_branch(principal, order.from_branch_id)
                expected = {TransferStatus.PENDING.value}
                timestamp_field = "cancelled_at"
                action = "TRANSFER_CANCELLED"
            else:
                allowed = self.policy.owns_branch(principal, order.to_branch_id) or self.policy.owns_branch(
                    principal, order.from_branch_id
                )
                expected = {TransferStatus.PENDING.value, TransferStatus.ACCEPTED.value}
                timestamp_field = "rejected_at"
                action = "TRANSFER_REJECTED"
            verb = target.value.lower()
            self._authorize(allowed, verb)
            self._require_status(order, expected, verb)
            items = self.repo.get_items(order.id)
            missed = self._release_items(order, items, principal, action=action)
            if missed:
                raise LostRaceError(f"Assets changed while the transfer was being {verb}", serials=missed)
            values = {timestamp_field: datetime.utcnow(), "updated_by": principal.user_id}
            if reason is not None:
                values["rejection_reason"] = reason
            if self.repo.transition_status(order.id, expected=order.status, target=target.value, values=values) != 1:
                raise LostRaceError(f"Transfer {order.order_number} changed concurrently")
            self._record(
                f"transfer.{verb}",
                order,
                principal,
                {"from_status": order.status, "reason": reason, "serials": [item.serial_number for item in items]},
            )

    def _release_items(self, order, items, principal: Principal, *, action: str, relocate_to=None, origin_branch_id=None):
        assets = self.assets.get_by_serials([item.serial_number for item in items], for_update=True)
        missed = []
        for item in items:
            asset = assets.get(item.serial_number)
            if asset is None or not self.ledger.release_transfer(
                asset,
                transfer_id=order.id,
                restore_status=restorable_status(item.prior_status),
                actor=principal.user_id,
                action=action,
                relocate_to=relocate_to,
                origin_branch_id=origin_branch_id,
            ):
                missed.append(item.serial_number)
        return missed

    def _load(self, order_id, principal: Principal, *, for_update: bool = False) -> TransferOrder:
        lookup = self.scoper.scope_unique_lookup(
            UniqueLookup("TransferOrder", "id", as_uuid(order_id)), principal, unique_operation_kind(for_update)
        )
        order = self.repo.get_transfer(lookup, for_update=for_update)
        if order is None:
            raise NotFoundError("TransferOrder", order_id)
        return order

    def _reload(self, order_id) -> TransferOrder:
        order = self.repo.get_transfer(UniqueLookup("TransferOrder", "id", as_uuid(order_id)))
        if order is None:
            raise NotFoundError("TransferOrder", order_id)
        return order

    def _authorize(self, allowed: bool, verb: str) -> None:
        if not allowed:
            raise ForbiddenError(f"Not allowed to {verb} this transfer", error=ErrorCatalog.BRANCH_SCOPE_MISMATCH)

    def _require_status(self, order: TransferOrder, expected: set[str], verb: str) -> None:
        if order.status in TERMINAL_TRANSFER_STATUSES:
            raise ConflictError(
                f"Transfer {order.order_number} is already {order.status}",
                error=ErrorCatalog.TERMINAL_STATE,
            )
        if order.status not in expected:
            raise ConflictError(f"Cannot {verb} a transfer in status {order.status}")

    def _next_order_number(self, now: datetime) -> str:
        prefix = f"{ORDER_NUMBER_PREFIX}-{now:%Y%m%d}-"
        last = self.repo.last_order_number(prefix)
        sequence = 1
        if last:
            try:
                sequence = int(last[len(prefix):]) + 1
            except ValueError:
                sequence = 1
        return f"{prefix}{sequence:03d}"

    def _record(self, action: str, order: TransferOrder, principal: Principal, detail: dict) -> None:
        payload = {
            "order_number": order.order_number,
            "from_branch_id": str(order.from_branch_id),
            "to_branch_id": str(order.to_branch_id),
        }
        payload.update(detail)
        self.audit.record_event(
            AuditEventPayload(
                actor=principal.user_id,
                actor_role=principal.role,
                branch_id=principal.branch_id,
                action=action,
                entity_type="TransferOrder",
                entity_id=str(order.id),
                trace_id=self.trace_id,
                detail=payload,
            )
        )
