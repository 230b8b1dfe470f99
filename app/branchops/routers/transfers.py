from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.branchops.core.context import Principal
from app.branchops.core.deps import get_scope_policy, get_trace_id, require_principal
from app.branchops.core.filters import CollectionFilter
from app.branchops.core.scope import ScopePolicy
from app.branchops.db.models import TransferOrder
from app.branchops.db.session import get_db
from app.branchops.schemas.transfers import (
    TransferActionRequest,
    TransferCreateRequest,
    TransferItemResponse,
    TransferListResponse,
    TransferResponse,
    TransferValidationResponse,
)
from app.branchops.services.transfer_validator import TransferDraft
from app.branchops.services.transfers import TransferOrchestrator

router = APIRouter()


def _transfer_response(order: TransferOrder) -> TransferResponse:
    return TransferResponse(
        id=str(order.id),
        order_number=order.order_number,
        type=order.type,
        from_branch_id=str(order.from_branch_id),
        to_branch_id=str(order.to_branch_id),
        status=order.status,
        notes=order.notes,
        rejection_reason=order.rejection_reason,
        created_by=order.created_by,
        created_at=order.created_at,
        updated_at=order.updated_at,
        accepted_at=order.accepted_at,
        received_at=order.received_at,
        rejected_at=order.rejected_at,
        cancelled_at=order.cancelled_at,
        items=[
            TransferItemResponse(
                asset_id=str(item.asset_id),
                serial_number=item.serial_number,
                prior_status=item.prior_status,
            )
            for item in order.items
        ],
    )


def _draft(payload: TransferCreateRequest) -> TransferDraft:
    return TransferDraft(
        from_branch_id=payload.from_branch_id,
        to_branch_id=payload.to_branch_id,
        serials=tuple(payload.serials),
        type=payload.type,
        notes=payload.notes,
    )


def _orchestrator(db, policy: ScopePolicy, trace_id: str) -> TransferOrchestrator:
    return TransferOrchestrator(db, policy, trace_id=trace_id)


@router.get("/branchops/transfers", response_model=TransferListResponse)
def list_transfers(
    status: str | None = None,
    from_branch_id: UUID | None = None,
    to_branch_id: UUID | None = None,
    bypass_scope: bool = False,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    flt = CollectionFilter("TransferOrder", operation="list_transfers")
    if status:
        flt = flt.where("status", status.upper())
    if from_branch_id:
        flt = flt.where("from_branch_id", str(from_branch_id))
    if to_branch_id:
        flt = flt.where("to_branch_id", str(to_branch_id))
    if bypass_scope:
        flt = flt.with_bypass(True)
    orders = _orchestrator(db, policy, trace_id).list_transfers(flt, principal)
    return TransferListResponse(rows=[_transfer_response(order) for order in orders])


@router.post("/branchops/transfers/validate", response_model=TransferValidationResponse)
def validate_transfer(
    payload: TransferCreateRequest,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    result = _orchestrator(db, policy, trace_id).validate(_draft(payload), principal)
    return TransferValidationResponse(valid=result.valid, errors=result.errors, warnings=result.warnings)


@router.post("/branchops/transfers", response_model=TransferResponse, status_code=201)
def create_transfer(
    payload: TransferCreateRequest,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    order = _orchestrator(db, policy, trace_id).create(_draft(payload), principal)
    return _transfer_response(order)


@router.get("/branchops/transfers/{transfer_id}", response_model=TransferResponse)
def get_transfer_detail(
    transfer_id: str,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    order = _orchestrator(db, policy, trace_id).get_transfer(transfer_id, principal)
    return _transfer_response(order)


@router.post("/branchops/transfers/{transfer_id}/actions", response_model=TransferResponse)
def transfer_actions(
    transfer_id: str,
    payload: TransferActionRequest,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    orchestrator = _orchestrator(db, policy, trace_id)
    if payload.action == "accept":
        order = orchestrator.accept(transfer_id, principal)
    elif payload.action == "receive":
        order = orchestrator.receive(transfer_id, principal)
    elif payload.action == "reject":
        order = orchestrator.reject(transfer_id, payload.reason, principal)
    else:
        order = orchestrator.cancel(transfer_id, principal)
    return _transfer_response(order)
