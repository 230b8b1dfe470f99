from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from app.branchops.core.context import Principal
from app.branchops.core.scope import ScopePolicy, default_policy
from app.branchops.core.states import (
    LOCKED_ASSET_STATUSES,
    TRANSFER_TYPE_ASSET_KIND,
    AssetStatus,
    BranchType,
    TransferType,
)
from app.branchops.repos.assets import AssetRepository
from app.branchops.repos.branches import BranchRepository


def as_uuid(value) -> uuid.UUID | None:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


@dataclass(frozen=True)
class TransferDraft:
    from_branch_id: str
    to_branch_id: str
    serials: tuple[str, ...]
    type: str = TransferType.MACHINE.value
    notes: str | None = None


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    frozen_serials: list[str] = field(default_factory=list)


class TransferValidator:
    """Pre-flight checks for a proposed transfer.

    Every check runs and every violation is reported. Nothing is written; the
    orchestrator re-checks the asset facts under lock before it mutates.
    """

    def __init__(self, db, policy: ScopePolicy | None = None):
        self.policy = policy or default_policy()
        self.branches = BranchRepository(db)
        self.assets = AssetRepository(db)

    def validate(self, draft: TransferDraft, principal: Principal) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        frozen: list[str] = []

        from_id = as_uuid(draft.from_branch_id)
        to_id = as_uuid(draft.to_branch_id)
        transfer_type = (draft.type or "").strip().upper()

        if transfer_type not in TRANSFER_TYPE_ASSET_KIND:
            errors.append(f"Unknown transfer type: {draft.type}")

        if from_id is not None and to_id is not None:
            same_branch = from_id == to_id
        else:
            same_branch = str(draft.from_branch_id).strip().lower() == str(draft.to_branch_id).strip().lower()
        if same_branch:
            errors.append("Source and destination branch must differ")

        branches = self.branches.get_many([item for item in (from_id, to_id) if item is not None])
        source = branches.get(str(from_id)) if from_id else None
        destination = branches.get(str(to_id)) if to_id else None
        if source is None:
            errors.append(f"Source branch {draft.from_branch_id} not found")
        elif not source.is_active:
            errors.append(f"Source branch {source.code} is inactive")
        if destination is None:
            errors.append(f"Destination branch {draft.to_branch_id} not found")
        elif not destination.is_active:
            errors.append(f"Destination branch {destination.code} is inactive")
        if (
            transfer_type == TransferType.MAINTENANCE.value
            and destination is not None
            and destination.type != BranchType.CENTER.value
        ):
            errors.append("Maintenance transfers must target a maintenance center")

        if from_id is None or not self.policy.can_originate_from(principal, from_id):
            errors.append(f"Not authorized to transfer from branch {draft.from_branch_id}")

        serials = [str(serial).strip() for serial in draft.serials]
        if not serials:
            errors.append("Transfer must contain at least one item")
        seen: set[str] = set()
        for serial in serials:
            if serial in seen:
                errors.append(f"Duplicate serial {serial} in transfer")
            seen.add(serial)

        expected_kind = TRANSFER_TYPE_ASSET_KIND.get(transfer_type)
        assets = self.assets.get_by_serials(sorted(seen))
        for serial in sorted(seen):
            asset = assets.get(serial)
            if asset is None:
                errors.append(f"Asset {serial} not found")
                continue
            if from_id is not None and asset.branch_id != from_id:
                errors.append(f"Asset {serial} is not at the source branch")
            if expected_kind is not None and asset.kind != expected_kind:
                errors.append(f"Asset {serial} is a {asset.kind} and cannot travel on a {transfer_type} transfer")
            if asset.status in LOCKED_ASSET_STATUSES:
                errors.append(f"Asset {serial} is {asset.status} and cannot be transferred")
            if asset.active_transfer_id is not None:
                errors.append(f"Asset {serial} is frozen by an active transfer")
                frozen.append(serial)
            elif asset.active_assignment_id is not None:
                errors.append(f"Asset {serial} is frozen by an active service assignment")
                frozen.append(serial)
            if asset.status == AssetStatus.DEFECTIVE.value and transfer_type != TransferType.MAINTENANCE.value:
                warnings.append(f"Asset {serial} is DEFECTIVE; consider a MAINTENANCE transfer")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings, frozen_serials=frozen)
