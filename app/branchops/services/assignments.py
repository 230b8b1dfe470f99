from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime

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
from app.branchops.core.scope import OperationKind, ScopePolicy, default_policy, unique_operation_kind
from app.branchops.core.states import (
    LOCKED_ASSET_STATUSES,
    ApprovalStatus,
    AssetStatus,
    AssignmentAction,
    AssignmentStatus,
    BranchType,
)
from app.branchops.db.models import ServiceApprovalRequest, ServiceAssignment
from app.branchops.db.session import atomic
from app.branchops.repos.assets import AssetRepository
from app.branchops.repos.assignments import AssignmentRepository
from app.branchops.repos.branches import BranchRepository
from app.branchops.services.audit import AuditEventPayload, AuditService
from app.branchops.services.ledger import AssetLedger
from app.branchops.services.query_scoper import QueryScoper
from app.branchops.services.transfer_validator import as_uuid
from app.branchops.services.transfers import restorable_status, run_with_retry

logger = logging.getLogger(__name__)


class AssignmentOrchestrator:
    """Repair assignments at a maintenance center.

    ASSIGNED -> UNDER_INSPECTION -> (REPAIRED | WAITING_APPROVAL) and
    WAITING_APPROVAL -> (REPAIRED | REJECTED) through the origin branch's
    answer, then RETURNED once the asset is sent back.
    """

    def __init__(
        self,
        db,
        policy: ScopePolicy | None = None,
        *,
        trace_id: str | None = None,
        retry_limit: int | None = None,
        approval_threshold: float | None = None,
    ):
        self.db = db
        self.policy = policy or default_policy()
        self.trace_id = trace_id
        self.retry_limit = settings.TRANSITION_RETRY_LIMIT if retry_limit is None else retry_limit
        self.approval_threshold = (
            settings.APPROVAL_COST_THRESHOLD if approval_threshold is None else approval_threshold
        )
        self.scoper = QueryScoper(db, self.policy, trace_id=trace_id)
        self.repo = AssignmentRepository(db)
        self.assets = AssetRepository(db)
        self.branches = BranchRepository(db)
        self.ledger = AssetLedger(db)
        self.audit = AuditService(db)

    def create_assignment(self, asset_id, principal: Principal, technician_name: str | None = None) -> ServiceAssignment:
        assignment_id = run_with_retry(
            "assignment.create",
            lambda: self._create_once(asset_id, principal, technician_name),
            self.retry_limit,
        )
        return self._reload(assignment_id)

    def advance_assignment(
        self,
        assignment_id,
        action: str,
        principal: Principal,
        estimated_cost: float | None = None,
    ) -> ServiceAssignment:
        try:
            parsed = AssignmentAction(str(action).strip().upper())
        except ValueError as exc:
            raise ValidationError([f"Unknown assignment action: {action}"]) from exc
        run_with_retry(
            f"assignment.{parsed.value.lower()}",
            lambda: self._advance_once(assignment_id, parsed, principal, estimated_cost),
            self.retry_limit,
        )
        return self._reload(assignment_id)

    def respond_to_approval(
        self,
        approval_id,
        decision: str,
        principal: Principal,
        notes: str | None = None,
    ) -> ServiceAssignment:
        normalized = str(decision).strip().upper()
        if normalized not in (ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value):
            raise ValidationError([f"Decision must be APPROVED or REJECTED, got {decision}"])
        assignment_id = run_with_retry(
            "assignment.approval",
            lambda: self._respond_once(approval_id, normalized, principal, notes),
            self.retry_limit,
        )
        return self._reload(assignment_id)

    def get_assignment(self, assignment_id, principal: Principal) -> ServiceAssignment:
        assignment = self._load(assignment_id, principal)
        return self.scoper.authorize_entity(assignment, principal, "ServiceAssignment")

    def get_approval(self, approval_id, principal: Principal) -> ServiceApprovalRequest:
        approval = self._load_approval(approval_id, principal)
        assignment = self._load(approval.assignment_id, principal)
        self.scoper.authorize_entity(assignment, principal, "ServiceAssignment")
        return approval

    def list_assignments(self, flt: CollectionFilter, principal: Principal) -> list[ServiceAssignment]:
        scoped = self.scoper.scope_collection_query(flt, principal, operation="list_assignments")
        return self.repo.list_assignments(scoped)

    def _create_once(self, asset_id, principal: Principal, technician_name: str | None):
        with atomic(self.db):
            lookup = self.scoper.scope_unique_lookup(
                UniqueLookup("Asset", "id", as_uuid(asset_id)), principal, OperationKind.UNIQUE_WRITE
            )
            asset = self.assets.get(lookup, for_update=True)
            if asset is None:
                raise NotFoundError("Asset", asset_id)
            if not self.policy.owns_branch(principal, asset.branch_id):
                raise ForbiddenError("Asset is held by another branch", error=ErrorCatalog.BRANCH_SCOPE_MISMATCH)
            center = self.branches.get_by_id(asset.branch_id)
            if center is None or center.type != BranchType.CENTER.value:
                raise ConflictError(f"Asset {asset.serial_number} is not at a maintenance center")
            if asset.active_transfer_id is not None or asset.active_assignment_id is not None:
                raise ConflictError(
                    f"Asset {asset.serial_number} is frozen by another operation",
                    serials=[asset.serial_number],
                    error=ErrorCatalog.ASSET_FROZEN,
                )
            if asset.status in LOCKED_ASSET_STATUSES:
                raise ConflictError(
                    f"Asset {asset.serial_number} is {asset.status}",
                    serials=[asset.serial_number],
                )
            if asset.origin_branch_id is None:
                raise ValidationError([f"Asset {asset.serial_number} has no origin branch to return to"])

            now = datetime.utcnow()
            assignment = ServiceAssignment(
                id=uuid.uuid4(),
                asset_id=asset.id,
                serial_number=asset.serial_number,
                origin_branch_id=asset.origin_branch_id,
                center_branch_id=asset.branch_id,
                status=AssignmentStatus.ASSIGNED.value,
                technician_name=technician_name,
                prior_status=asset.status,
                created_by=principal.user_id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(assignment)
            self.db.flush()
            if not self.ledger.freeze_for_assignment(
                asset,
                assignment_id=assignment.id,
                center_branch_id=asset.branch_id,
                actor=principal.user_id,
            ):
                raise LostRaceError("Asset changed while the assignment was being created", serials=[asset.serial_number])
            self._record("assignment.create", assignment, principal, {"technician_name": technician_name})
            created_id = assignment.id
        log_json(
            logger,
            {
                "event": "assignment_created",
                "assignment_id": str(created_id),
                "user_id": principal.user_id,
                "trace_id": self.trace_id,
            },
        )
        return created_id

    def _advance_once(self, assignment_id, action: AssignmentAction, principal: Principal, estimated_cost):
        with atomic(self.db):
            assignment = self._load(assignment_id, principal, for_update=True)
            if not self.policy.owns_branch(principal, assignment.center_branch_id):
                raise ForbiddenError(
                    "Only the maintenance center may work on this assignment",
                    error=ErrorCatalog.BRANCH_SCOPE_MISMATCH,
                )
            if assignment.status == AssignmentStatus.RETURNED.value:
                raise ConflictError("Assignment has already been returned", error=ErrorCatalog.TERMINAL_STATE)

            if action == AssignmentAction.START_INSPECTION:
                self._start_inspection(assignment, principal)
            elif action == AssignmentAction.SUBMIT_ESTIMATE:
                self._submit_estimate(assignment, principal, estimated_cost)
            else:
                self._return_to_origin(assignment, principal)

    def _start_inspection(self, assignment: ServiceAssignment, principal: Principal) -> None:
        self._require_status(assignment, {AssignmentStatus.ASSIGNED.value}, "start inspection")
        asset = self._locked_asset(assignment)
        if not self.ledger.start_maintenance(asset, assignment_id=assignment.id, actor=principal.user_id):
            raise LostRaceError("Asset changed while inspection was starting", serials=[assignment.serial_number])
        self._move(assignment, AssignmentStatus.UNDER_INSPECTION, principal)

    def _submit_estimate(self, assignment: ServiceAssignment, principal: Principal, estimated_cost) -> None:
        self._require_status(assignment, {AssignmentStatus.UNDER_INSPECTION.value}, "submit an estimate")
        if estimated_cost is None:
            raise ValidationError(["estimated_cost is required to submit an estimate"])
        cost = float(estimated_cost)
        if not math.isfinite(cost):
            raise ValidationError(["estimated_cost must be a finite number"])
        if cost < 0:
            raise ValidationError(["estimated_cost must not be negative"])

        if cost <= self.approval_threshold:
            self._move(assignment, AssignmentStatus.REPAIRED, principal, values={"estimated_cost": cost})
            return

        approval = ServiceApprovalRequest(
            id=uuid.uuid4(),
            assignment_id=assignment.id,
            requested_cost=cost,
            status=ApprovalStatus.PENDING.value,
            created_at=datetime.utcnow(),
        )
        self.db.add(approval)
        self.db.flush()
        self._move(
            assignment,
            AssignmentStatus.WAITING_APPROVAL,
            principal,
            values={"estimated_cost": cost, "approval_request_id": approval.id},
            detail={"approval_id": str(approval.id), "requested_cost": cost},
        )

    def _return_to_origin(self, assignment: ServiceAssignment, principal: Principal) -> None:
        self._require_status(
            assignment,
            {AssignmentStatus.REPAIRED.value, AssignmentStatus.REJECTED.value},
            "return",
        )
        if assignment.status == AssignmentStatus.REPAIRED.value:
            restore = AssetStatus.REPAIRED.value
        else:
            restore = restorable_status(assignment.prior_status)
        asset = self._locked_asset(assignment)
        if not self.ledger.release_assignment(
            asset,
            assignment_id=assignment.id,
            restore_status=restore,
            relocate_to=assignment.origin_branch_id,
            actor=principal.user_id,
        ):
            raise LostRaceError("Asset changed while being returned", serials=[assignment.serial_number])
        self._move(
            assignment,
            AssignmentStatus.RETURNED,
            principal,
            values={"returned_at": datetime.utcnow()},
            detail={"asset_status": restore},
        )

    def _respond_once(self, approval_id, decision: str, principal: Principal, notes: str | None):
        with atomic(self.db):
            approval = self._load_approval(approval_id, principal, for_update=True)
            assignment = self._load(approval.assignment_id, principal, for_update=True)
            if not self.policy.owns_branch(principal, assignment.origin_branch_id):
                raise ForbiddenError(
                    "Only the origin branch may answer this approval request",
                    error=ErrorCatalog.BRANCH_SCOPE_MISMATCH,
                )
            if approval.status != ApprovalStatus.PENDING.value:
                raise ConflictError(f"Approval request is already {approval.status}", error=ErrorCatalog.TERMINAL_STATE)
            self._require_status(assignment, {AssignmentStatus.WAITING_APPROVAL.value}, "answer approval for")
            if self.repo.resolve_approval(approval.id, target=decision, responded_by=principal.user_id, notes=notes) != 1:
                raise LostRaceError("Approval request changed concurrently")
            target = AssignmentStatus.REPAIRED if decision == ApprovalStatus.APPROVED.value else AssignmentStatus.REJECTED
            self._move(
                assignment,
                target,
                principal,
                detail={"approval_id": str(approval.id), "decision": decision, "notes": notes},
            )
            resolved_id = assignment.id
        return resolved_id

    def _move(
        self,
        assignment: ServiceAssignment,
        target: AssignmentStatus,
        principal: Principal,
        *,
        values: dict | None = None,
        detail: dict | None = None,
    ) -> None:
        if self.repo.transition_status(assignment.id, expected=assignment.status, target=target.value, values=values) != 1:
            raise LostRaceError(f"Assignment {assignment.id} changed concurrently", serials=[assignment.serial_number])
        payload = {"from_status": assignment.status, "to_status": target.value}
        payload.update(detail or {})
        self._record(f"assignment.{target.value.lower()}", assignment, principal, payload)

    def _locked_asset(self, assignment: ServiceAssignment):
        asset = self.assets.get(UniqueLookup("Asset", "id", assignment.asset_id), for_update=True)
        if asset is None:
            raise NotFoundError("Asset", assignment.asset_id)
        return asset

    def _require_status(self, assignment: ServiceAssignment, expected: set[str], verb: str) -> None:
        if assignment.status not in expected:
            raise ConflictError(f"Cannot {verb} an assignment in status {assignment.status}")

    def _load(self, assignment_id, principal: Principal, *, for_update: bool = False) -> ServiceAssignment:
        lookup = self.scoper.scope_unique_lookup(
            UniqueLookup("ServiceAssignment", "id", as_uuid(assignment_id)), principal, unique_operation_kind(for_update)
        )
        assignment = self.repo.get_assignment(lookup, for_update=for_update)
        if assignment is None:
            raise NotFoundError("ServiceAssignment", assignment_id)
        return assignment

    def _load_approval(self, approval_id, principal: Principal, *, for_update: bool = False) -> ServiceApprovalRequest:
        lookup = self.scoper.scope_unique_lookup(
            UniqueLookup("ServiceApprovalRequest", "id", as_uuid(approval_id)), principal, unique_operation_kind(for_update)
        )
        approval = self.repo.get_approval(lookup, for_update=for_update)
        if approval is None:
            raise NotFoundError("ServiceApprovalRequest", approval_id)
        return approval

    def _reload(self, assignment_id) -> ServiceAssignment:
        assignment = self.repo.get_assignment(UniqueLookup("ServiceAssignment", "id", as_uuid(assignment_id)))
        if assignment is None:
            raise NotFoundError("ServiceAssignment", assignment_id)
        return assignment

    def _record(self, action: str, assignment: ServiceAssignment, principal: Principal, detail: dict) -> None:
        payload = {
            "serial_number": assignment.serial_number,
            "origin_branch_id": str(assignment.origin_branch_id),
            "center_branch_id": str(assignment.center_branch_id),
        }
        payload.update(detail)
        self.audit.record_event(
            AuditEventPayload(
                actor=principal.user_id,
                actor_role=principal.role,
                branch_id=principal.branch_id,
                action=action,
                entity_type="ServiceAssignment",
                entity_id=str(assignment.id),
                trace_id=self.trace_id,
                detail=payload,
            )
        )
