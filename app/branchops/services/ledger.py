from __future__ import annotations

import logging
from datetime import datetime

from app.branchops.core.logging import log_json
from app.branchops.core.states import AssetStatus
from app.branchops.db.models import Asset, AssetMovement
from app.branchops.repos.assets import AssetRepository

logger = logging.getLogger(__name__)


class AssetLedger:
    """Sole writer of asset status, location and freeze markers.

    Every method issues one conditional UPDATE guarded by the state the caller
    last observed and returns ``True`` only when that state still held. A
    successful transition appends an ``AssetMovement`` in the same session.
    Callers own the transaction.
    """

    def __init__(self, db):
        self.db = db
        self.repo = AssetRepository(db)

    def freeze_for_transfer(self, asset: Asset, *, transfer_id, from_branch_id, actor: str) -> bool:
        return self._transition(
            asset,
            expected={
                "status": asset.status,
                "branch_id": from_branch_id,
                "active_transfer_id": None,
                "active_assignment_id": None,
            },
            values={"status": AssetStatus.IN_TRANSIT.value, "active_transfer_id": transfer_id},
            action="TRANSFER_OUT",
            reference=("TRANSFER", transfer_id),
            actor=actor,
        )

    def release_transfer(
        self,
        asset: Asset,
        *,
        transfer_id,
        restore_status: str,
        actor: str,
        action: str,
        relocate_to=None,
        origin_branch_id=None,
    ) -> bool:
        values = {"status": restore_status, "active_transfer_id": None}
        if relocate_to is not None:
            values["branch_id"] = relocate_to
        if origin_branch_id is not None:
            values["origin_branch_id"] = origin_branch_id
        return self._transition(
            asset,
            expected={"status": AssetStatus.IN_TRANSIT.value, "active_transfer_id": transfer_id},
            values=values,
            action=action,
            reference=("TRANSFER", transfer_id),
            actor=actor,
        )

    def freeze_for_assignment(self, asset: Asset, *, assignment_id, center_branch_id, actor: str) -> bool:
        return self._transition(
            asset,
            expected={
                "status": asset.status,
                "branch_id": center_branch_id,
                "active_transfer_id": None,
                "active_assignment_id": None,
            },
            values={"status": AssetStatus.ASSIGNED.value, "active_assignment_id": assignment_id},
            action="ASSIGNED",
            reference=("ASSIGNMENT", assignment_id),
            actor=actor,
        )

    def start_maintenance(self, asset: Asset, *, assignment_id, actor: str) -> bool:
        return self._transition(
            asset,
            expected={"status": AssetStatus.ASSIGNED.value, "active_assignment_id": assignment_id},
            values={"status": AssetStatus.UNDER_MAINTENANCE.value},
            action="MAINTENANCE_STARTED",
            reference=("ASSIGNMENT", assignment_id),
            actor=actor,
        )

    def release_assignment(
        self,
        asset: Asset,
        *,
        assignment_id,
        restore_status: str,
        relocate_to,
        actor: str,
    ) -> bool:
        return self._transition(
            asset,
            expected={"status": asset.status, "active_assignment_id": assignment_id},
            values={"status": restore_status, "branch_id": relocate_to, "active_assignment_id": None},
            action="RETURNED_TO_ORIGIN",
            reference=("ASSIGNMENT", assignment_id),
            actor=actor,
        )

    def _transition(self, asset: Asset, *, expected: dict, values: dict, action: str, reference, actor: str) -> bool:
        from_status = asset.status
        from_branch_id = asset.branch_id
        payload = dict(values)
        payload["updated_at"] = datetime.utcnow()
        updated = self.repo.conditional_update(asset.id, expected=expected, values=payload)
        if updated != 1:
            log_json(
                logger,
                {
                    "event": "asset_transition_missed",
                    "serial_number": asset.serial_number,
                    "action": action,
                    "expected_status": expected.get("status"),
                },
                level=logging.WARNING,
            )
            return False
        reference_type, reference_id = reference
        self.repo.add_movement(
            AssetMovement(
                asset_id=asset.id,
                serial_number=asset.serial_number,
                action=action,
                from_branch_id=from_branch_id,
                to_branch_id=values.get("branch_id", from_branch_id),
                from_status=from_status,
                to_status=values.get("status", from_status),
                reference_type=reference_type,
                reference_id=reference_id,
                performed_by=actor,
                created_at=datetime.utcnow(),
            )
        )
        return True
