from datetime import datetime

from pydantic import BaseModel


class AssetResponse(BaseModel):
    id: str
    serial_number: str
    kind: str
    model: str | None
    status: str
    branch_id: str
    origin_branch_id: str | None
    active_transfer_id: str | None
    active_assignment_id: str | None
    updated_at: datetime | None


class AssetListResponse(BaseModel):
    rows: list[AssetResponse]


class AssetMovementResponse(BaseModel):
    action: str
    from_branch_id: str | None
    to_branch_id: str | None
    from_status: str | None
    to_status: str | None
    reference_type: str
    reference_id: str
    performed_by: str
    created_at: datetime


class AssetHistoryResponse(BaseModel):
    asset: AssetResponse
    movements: list[AssetMovementResponse]


class CustomerResponse(BaseModel):
    id: str
    branch_id: str
    name: str
    phone: str | None


class CustomerListResponse(BaseModel):
    rows: list[CustomerResponse]
