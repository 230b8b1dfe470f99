from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.branchops.core.context import Principal
from app.branchops.core.deps import get_scope_policy, get_trace_id, require_principal
from app.branchops.core.filters import CollectionFilter
from app.branchops.core.scope import ScopePolicy
from app.branchops.db.models import ServiceApprovalRequest, ServiceAssignment
from app.branchops.db.session import get_db
from app.branchops.schemas.assignments import (
    ApprovalRequestResponse,
    ApprovalResponseRequest,
    AssignmentActionRequest,
    AssignmentCreateRequest,
    AssignmentListResponse,
    AssignmentResponse,
)
from app.branchops.services.assignments import AssignmentOrchestrator

router = APIRouter()


def _assignment_response(assignment: ServiceAssignment) -> AssignmentResponse:
    return AssignmentResponse(
        id=str(assignment.id),
        asset_id=str(assignment.asset_id),
        serial_number=assignment.serial_number,
        origin_branch_id=str(assignment.origin_branch_id),
        center_branch_id=str(assignment.center_branch_id),
        status=assignment.status,
        technician_name=assignment.technician_name,
        estimated_cost=assignment.estimated_cost,
        prior_status=assignment.prior_status,
        approval_request_id=str(assignment.approval_request_id) if assignment.approval_request_id else None,
        created_by=assignment.created_by,
        created_at=assignment.created_at,
        updated_at=assignment.updated_at,
        returned_at=assignment.returned_at,
    )


def _approval_response(approval: ServiceApprovalRequest) -> ApprovalRequestResponse:
    return ApprovalRequestResponse(
        id=str(approval.id),
        assignment_id=str(approval.assignment_id),
        requested_cost=approval.requested_cost,
        status=approval.status,
        responded_by=approval.responded_by,
        responded_at=approval.responded_at,
        notes=approval.notes,
    )


@router.get("/branchops/assignments", response_model=AssignmentListResponse)
def list_assignments(
    status: str | None = None,
    center_branch_id: UUID | None = None,
    origin_branch_id: UUID | None = None,
    bypass_scope: bool = False,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    flt = CollectionFilter("ServiceAssignment", operation="list_assignments")
    if status:
        flt = flt.where("status", status.upper())
    if center_branch_id:
        flt = flt.where("center_branch_id", str(center_branch_id))
    if origin_branch_id:
        flt = flt.where("origin_branch_id", str(origin_branch_id))
    if bypass_scope:
        flt = flt.with_bypass(True)
    rows = AssignmentOrchestrator(db, policy, trace_id=trace_id).list_assignments(flt, principal)
    return AssignmentListResponse(rows=[_assignment_response(row) for row in rows])


@router.post("/branchops/assignments", response_model=AssignmentResponse, status_code=201)
def create_assignment(
    payload: AssignmentCreateRequest,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    assignment = AssignmentOrchestrator(db, policy, trace_id=trace_id).create_assignment(
        payload.asset_id, principal, technician_name=payload.technician_name
    )
    return _assignment_response(assignment)


@router.get("/branchops/assignments/{assignment_id}", response_model=AssignmentResponse)
def get_assignment_detail(
    assignment_id: str,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    assignment = AssignmentOrchestrator(db, policy, trace_id=trace_id).get_assignment(assignment_id, principal)
    return _assignment_response(assignment)


@router.post("/branchops/assignments/{assignment_id}/actions", response_model=AssignmentResponse)
def assignment_actions(
    assignment_id: str,
    payload: AssignmentActionRequest,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    assignment = AssignmentOrchestrator(db, policy, trace_id=trace_id).advance_assignment(
        assignment_id,
        payload.action,
        principal,
        estimated_cost=payload.estimated_cost,
    )
    return _assignment_response(assignment)


@router.get("/branchops/approvals/{approval_id}", response_model=ApprovalRequestResponse)
def get_approval_detail(
    approval_id: str,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    approval = AssignmentOrchestrator(db, policy, trace_id=trace_id).get_approval(approval_id, principal)
    return _approval_response(approval)


@router.post("/branchops/approvals/{approval_id}/respond", response_model=AssignmentResponse)
def respond_to_approval(
    approval_id: str,
    payload: ApprovalResponseRequest,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    assignment = AssignmentOrchestrator(db, policy, trace_id=trace_id).respond_to_approval(
        approval_id, payload.decision, principal, notes=payload.notes
    )
    return _assignment_response(assignment)
