from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


_TRANSFER_CREATE_EXAMPLE = {
    "from_branch_id": "5f0c2b2e-8a47-4c1b-9d1c-0a6d0c1f7a10",
    "to_branch_id": "a4b8e9a2-3c0d-4d7e-8f59-1c2d3e4f5a6b",
    "type": "MAINTENANCE",
    "serials": ["SN-100", "SN-200"],
    "notes": "Screen faults reported by customer",
}


class TransferCreateRequest(BaseModel):
    from_branch_id: str
    to_branch_id: str
    type: Literal["MACHINE", "SIM", "MAINTENANCE", "RETURN_TO_BRANCH"] = "MACHINE"
    serials: list[str] = Field(default_factory=list)
    notes: str | None = None

    model_config = {"json_schema_extra": {"example": _TRANSFER_CREATE_EXAMPLE}}


class TransferActionRequest(BaseModel):
    action: Literal["accept", "receive", "reject", "cancel"]
    reason: str | None = None


class TransferItemResponse(BaseModel):
    asset_id: str
    serial_number: str
    prior_status: str


class TransferResponse(BaseModel):
    id: str
    order_number: str
    type: str
    from_branch_id: str
    to_branch_id: str
    status: str
    notes: str | None
    rejection_reason: str | None
    created_by: str
    created_at: datetime
    updated_at: datetime | None
    accepted_at: datetime | None
    received_at: datetime | None
    rejected_at: datetime | None
    cancelled_at: datetime | None
    items: list[TransferItemResponse]


class TransferListResponse(BaseModel):
    rows: list[TransferResponse]


class TransferValidationResponse(BaseModel):
    valid: bool
    errors: list[str]
    warnings: list[str]
