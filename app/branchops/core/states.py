from enum import Enum


class BranchType(str, Enum):
    BRANCH = "BRANCH"
    CENTER = "CENTER"


class AssetKind(str, Enum):
    MACHINE = "MACHINE"
    SIM = "SIM"


class AssetStatus(str, Enum):
    NEW = "NEW"
    USED = "USED"
    STANDBY = "STANDBY"
    REPAIRED = "REPAIRED"
    DEFECTIVE = "DEFECTIVE"
    IN_TRANSIT = "IN_TRANSIT"
    SOLD = "SOLD"
    ASSIGNED = "ASSIGNED"
    UNDER_MAINTENANCE = "UNDER_MAINTENANCE"


LOCKED_ASSET_STATUSES = frozenset(
    {
        AssetStatus.IN_TRANSIT.value,
        AssetStatus.SOLD.value,
        AssetStatus.ASSIGNED.value,
        AssetStatus.UNDER_MAINTENANCE.value,
    }
)


class TransferType(str, Enum):
    MACHINE = "MACHINE"
    SIM = "SIM"
    MAINTENANCE = "MAINTENANCE"
    RETURN_TO_BRANCH = "RETURN_TO_BRANCH"


TRANSFER_TYPE_ASSET_KIND = {
    TransferType.MACHINE.value: AssetKind.MACHINE.value,
    TransferType.SIM.value: AssetKind.SIM.value,
    TransferType.MAINTENANCE.value: AssetKind.MACHINE.value,
    TransferType.RETURN_TO_BRANCH.value: AssetKind.MACHINE.value,
}


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    RECEIVED = "RECEIVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


TERMINAL_TRANSFER_STATUSES = frozenset(
    {TransferStatus.RECEIVED.value, TransferStatus.REJECTED.value, TransferStatus.CANCELLED.value}
)


class AssignmentStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    UNDER_INSPECTION = "UNDER_INSPECTION"
    WAITING_APPROVAL = "WAITING_APPROVAL"
    REPAIRED = "REPAIRED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"


class AssignmentAction(str, Enum):
    START_INSPECTION = "START_INSPECTION"
    SUBMIT_ESTIMATE = "SUBMIT_ESTIMATE"
    RETURN_TO_ORIGIN = "RETURN_TO_ORIGIN"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
