from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class AssignmentCreateRequest(BaseModel):
    asset_id: str
    technician_name: str | None = None


class AssignmentActionRequest(BaseModel):
    action: Literal["START_INSPECTION", "SUBMIT_ESTIMATE", "RETURN_TO_ORIGIN"]
    estimated_cost: float | None = None


class ApprovalResponseRequest(BaseModel):
    decision: Literal["APPROVED", "REJECTED"]
    notes: str | None = None


class AssignmentResponse(BaseModel):
    id: str
    asset_id: str
    serial_number: str
    origin_branch_id: str
    center_branch_id: str
    status: str
    technician_name: str | None
    estimated_cost: float | None
    prior_status: str
    approval_request_id: str | None
    created_by: str
    created_at: datetime
    updated_at: datetime | None
    returned_at: datetime | None


class AssignmentListResponse(BaseModel):
    rows: list[AssignmentResponse]


class ApprovalRequestResponse(BaseModel):
    id: str
    assignment_id: str
    requested_cost: float
    status: str
    responded_by: str | None
    responded_at: datetime | None
    notes: str | None
