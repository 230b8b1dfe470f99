from uuid import UUID

from fastapi import APIRouter, Depends

from app.branchops.core.context import Principal
from app.branchops.core.deps import get_scope_policy, get_trace_id, require_principal
from app.branchops.core.error_catalog import NotFoundError
from app.branchops.core.filters import CollectionFilter, UniqueLookup
from app.branchops.core.scope import ScopePolicy
from app.branchops.db.models import Asset, Customer
from app.branchops.db.session import get_db
from app.branchops.repos.assets import AssetRepository
from app.branchops.repos.customers import CustomerRepository
from app.branchops.schemas.assets import (
    AssetHistoryResponse,
    AssetListResponse,
    AssetMovementResponse,
    AssetResponse,
    CustomerListResponse,
    CustomerResponse,
)
from app.branchops.services.query_scoper import QueryScoper

router = APIRouter()


def _optional_str(value) -> str | None:
    return str(value) if value is not None else None


def _asset_response(asset: Asset) -> AssetResponse:
    return AssetResponse(
        id=str(asset.id),
        serial_number=asset.serial_number,
        kind=asset.kind,
        model=asset.model,
        status=asset.status,
        branch_id=str(asset.branch_id),
        origin_branch_id=_optional_str(asset.origin_branch_id),
        active_transfer_id=_optional_str(asset.active_transfer_id),
        active_assignment_id=_optional_str(asset.active_assignment_id),
        updated_at=asset.updated_at,
    )


def _customer_response(customer: Customer) -> CustomerResponse:
    return CustomerResponse(
        id=str(customer.id),
        branch_id=str(customer.branch_id),
        name=customer.name,
        phone=customer.phone,
    )


@router.get("/branchops/assets", response_model=AssetListResponse)
def list_assets(
    branch_id: UUID | None = None,
    status: str | None = None,
    kind: str | None = None,
    bypass_scope: bool = False,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    flt = CollectionFilter("Asset", operation="list_assets")
    if branch_id:
        flt = flt.where("branch_id", str(branch_id))
    if status:
        flt = flt.where("status", status.upper())
    if kind:
        flt = flt.where("kind", kind.upper())
    if bypass_scope:
        flt = flt.with_bypass(True)
    scoped = QueryScoper(db, policy, trace_id=trace_id).scope_collection_query(flt, principal)
    rows = AssetRepository(db).list_assets(scoped)
    return AssetListResponse(rows=[_asset_response(row) for row in rows])


@router.get("/branchops/assets/{serial_number}", response_model=AssetHistoryResponse)
def get_asset_history(
    serial_number: str,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    scoper = QueryScoper(db, policy, trace_id=trace_id)
    repo = AssetRepository(db)
    lookup = scoper.scope_unique_lookup(UniqueLookup("Asset", "serial_number", serial_number), principal)
    asset = repo.get(lookup)
    if asset is None:
        raise NotFoundError("Asset", serial_number)
    scoper.authorize_entity(asset, principal, "Asset")
    movements = [
        AssetMovementResponse(
            action=movement.action,
            from_branch_id=_optional_str(movement.from_branch_id),
            to_branch_id=_optional_str(movement.to_branch_id),
            from_status=movement.from_status,
            to_status=movement.to_status,
            reference_type=movement.reference_type,
            reference_id=str(movement.reference_id),
            performed_by=movement.performed_by,
            created_at=movement.created_at,
        )
        for movement in repo.list_movements(asset.id)
    ]
    return AssetHistoryResponse(asset=_asset_response(asset), movements=movements)


@router.get("/branchops/customers", response_model=CustomerListResponse)
def list_customers(
    branch_id: UUID | None = None,
    bypass_scope: bool = False,
    principal: Principal = Depends(require_principal),
    policy: ScopePolicy = Depends(get_scope_policy),
    trace_id: str = Depends(get_trace_id),
    db=Depends(get_db),
):
    flt = CollectionFilter("Customer", operation="list_customers")
    if branch_id:
        flt = flt.where("branch_id", str(branch_id))
    if bypass_scope:
        flt = flt.with_bypass(True)
    scoped = QueryScoper(db, policy, trace_id=trace_id).scope_collection_query(flt, principal)
    rows = CustomerRepository(db).list_customers(scoped)
    return CustomerListResponse(rows=[_customer_response(row) for row in rows])
