import uuid

import pytest
from sqlalchemy import select

from app.branchops.core.error_catalog import (
    ConflictError,
    ErrorCatalog,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.branchops.core.filters import CollectionFilter
from app.branchops.db.models import Asset, ServiceApprovalRequest
from app.branchops.repos.audit import AuditRepository
from app.branchops.services.assignments import AssignmentOrchestrator
from app.branchops.services.transfer_validator import TransferDraft
from app.branchops.services.transfers import TransferOrchestrator
from tests.db_utils import make_asset, make_branch, principal_for


def _asset(db, asset_id):
    return db.execute(select(Asset).where(Asset.id == asset_id).execution_options(populate_existing=True)).scalars().one()


def _setup(db, *, status="DEFECTIVE"):
    origin = make_branch(db, code="X")
    center = make_branch(db, code="CTR", type="CENTER")
    asset = make_asset(db, center, serial="SN-100", status=status, origin_branch=origin)
    return origin, center, asset


def _inspected(db, *, threshold=500.0):
    origin, center, asset = _setup(db)
    technician = principal_for("CENTER_MANAGER", center)
    orchestrator = AssignmentOrchestrator(db, approval_threshold=threshold)
    assignment = orchestrator.create_assignment(asset.id, technician, technician_name="Sam")
    orchestrator.advance_assignment(assignment.id, "START_INSPECTION", technician)
    return orchestrator, origin, center, asset, assignment, technician


def test_create_assignment_freezes_asset(db_session):
    origin, center, asset = _setup(db_session)
    orchestrator = AssignmentOrchestrator(db_session)

    assignment = orchestrator.create_assignment(asset.id, principal_for("CENTER_MANAGER", center), technician_name="Sam")

    assert assignment.status == "ASSIGNED"
    assert assignment.prior_status == "DEFECTIVE"
    assert assignment.origin_branch_id == origin.id
    assert assignment.center_branch_id == center.id
    refreshed = _asset(db_session, asset.id)
    assert refreshed.status == "ASSIGNED"
    assert refreshed.active_assignment_id == assignment.id


def test_assigned_asset_cannot_join_a_transfer(db_session):
    origin, center, asset = _setup(db_session)
    manager = principal_for("CENTER_MANAGER", center)
    AssignmentOrchestrator(db_session).create_assignment(asset.id, manager)

    with pytest.raises(ConflictError) as exc:
        TransferOrchestrator(db_session).create(
            TransferDraft(str(center.id), str(origin.id), ("SN-100",), type="RETURN_TO_BRANCH"), manager
        )
    assert exc.value.error == ErrorCatalog.ASSET_FROZEN


def test_estimate_at_or_below_threshold_repairs_directly(db_session):
    orchestrator, origin, center, asset, assignment, technician = _inspected(db_session)
    assert _asset(db_session, asset.id).status == "UNDER_MAINTENANCE"

    repaired = orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician, estimated_cost=500)

    assert repaired.status == "REPAIRED"
    assert repaired.estimated_cost == 500
    assert repaired.approval_request_id is None
    assert db_session.execute(select(ServiceApprovalRequest)).scalars().all() == []


def test_estimate_above_threshold_waits_for_origin_approval(db_session):
    orchestrator, origin, center, asset, assignment, technician = _inspected(db_session)

    waiting = orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician, estimated_cost=750.5)

    assert waiting.status == "WAITING_APPROVAL"
    approval = orchestrator.get_approval(waiting.approval_request_id, technician)
    assert approval.status == "PENDING"
    assert approval.requested_cost == 750.5

    with pytest.raises(ConflictError):
        orchestrator.advance_assignment(assignment.id, "RETURN_TO_ORIGIN", technician)

    with pytest.raises(ForbiddenError):
        orchestrator.respond_to_approval(approval.id, "APPROVED", technician)

    approved = orchestrator.respond_to_approval(
        approval.id, "APPROVED", principal_for("BRANCH_MANAGER", origin, user_id="boss"), notes="go ahead"
    )
    assert approved.status == "REPAIRED"
    approval = orchestrator.get_approval(approval.id, technician)
    assert approval.status == "APPROVED"
    assert approval.responded_by == "boss"
    assert approval.notes == "go ahead"

    with pytest.raises(ConflictError) as exc:
        orchestrator.respond_to_approval(approval.id, "REJECTED", principal_for("BRANCH_MANAGER", origin))
    assert exc.value.error == ErrorCatalog.TERMINAL_STATE


def test_repaired_asset_returns_to_origin(db_session):
    orchestrator, origin, center, asset, assignment, technician = _inspected(db_session)
    orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician, estimated_cost=100)

    returned = orchestrator.advance_assignment(assignment.id, "RETURN_TO_ORIGIN", technician)

    assert returned.status == "RETURNED"
    assert returned.returned_at is not None
    refreshed = _asset(db_session, asset.id)
    assert refreshed.branch_id == origin.id
    assert refreshed.status == "REPAIRED"
    assert refreshed.active_assignment_id is None

    with pytest.raises(ConflictError) as exc:
        orchestrator.advance_assignment(assignment.id, "RETURN_TO_ORIGIN", technician)
    assert exc.value.error == ErrorCatalog.TERMINAL_STATE


def test_rejected_repair_returns_asset_in_prior_status(db_session):
    orchestrator, origin, center, asset, assignment, technician = _inspected(db_session)
    waiting = orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician, estimated_cost=900)
    rejected = orchestrator.respond_to_approval(
        waiting.approval_request_id, "rejected", principal_for("BRANCH_MANAGER", origin)
    )
    assert rejected.status == "REJECTED"

    orchestrator.advance_assignment(assignment.id, "RETURN_TO_ORIGIN", technician)

    refreshed = _asset(db_session, asset.id)
    assert refreshed.branch_id == origin.id
    assert refreshed.status == "DEFECTIVE"


def test_out_of_order_actions_conflict(db_session):
    origin, center, asset = _setup(db_session)
    technician = principal_for("CENTER_MANAGER", center)
    orchestrator = AssignmentOrchestrator(db_session)
    assignment = orchestrator.create_assignment(asset.id, technician)

    with pytest.raises(ConflictError):
        orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician, estimated_cost=10)
    with pytest.raises(ValidationError):
        orchestrator.advance_assignment(assignment.id, "TELEPORT", technician)

    orchestrator.advance_assignment(assignment.id, "START_INSPECTION", technician)
    with pytest.raises(ValidationError):
        orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician)
    with pytest.raises(ValidationError):
        orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician, estimated_cost=-5)


def test_only_center_staff_may_advance(db_session):
    origin, center, asset = _setup(db_session)
    orchestrator = AssignmentOrchestrator(db_session)
    assignment = orchestrator.create_assignment(asset.id, principal_for("CENTER_MANAGER", center))

    with pytest.raises(ForbiddenError):
        orchestrator.advance_assignment(assignment.id, "START_INSPECTION", principal_for("BRANCH_MANAGER", origin))

    assert orchestrator.advance_assignment(
        assignment.id, "START_INSPECTION", principal_for("SUPER_ADMIN")
    ).status == "UNDER_INSPECTION"


def test_create_assignment_preconditions(db_session):
    origin, center, asset = _setup(db_session)
    orchestrator = AssignmentOrchestrator(db_session)
    manager = principal_for("CENTER_MANAGER", center)

    with pytest.raises(NotFoundError):
        orchestrator.create_assignment(uuid.uuid4(), manager)

    with pytest.raises(ForbiddenError):
        orchestrator.create_assignment(asset.id, principal_for("BRANCH_MANAGER", origin))

    at_branch = make_asset(db_session, origin, serial="SN-200")
    with pytest.raises(ConflictError):
        orchestrator.create_assignment(at_branch.id, principal_for("BRANCH_MANAGER", origin))

    no_origin = make_asset(db_session, center, serial="SN-300")
    with pytest.raises(ValidationError):
        orchestrator.create_assignment(no_origin.id, manager)

    sold = make_asset(db_session, center, serial="SN-400", status="SOLD", origin_branch=origin)
    with pytest.raises(ConflictError):
        orchestrator.create_assignment(sold.id, manager)

    orchestrator.create_assignment(asset.id, manager)
    with pytest.raises(ConflictError) as exc:
        orchestrator.create_assignment(asset.id, manager)
    assert exc.value.error == ErrorCatalog.ASSET_FROZEN


def test_maintenance_round_trip_through_transfer(db_session):
    origin = make_branch(db_session, code="X")
    center = make_branch(db_session, code="CTR", type="CENTER")
    asset = make_asset(db_session, origin, serial="SN-100", status="USED")
    transfers = TransferOrchestrator(db_session)
    order = transfers.create(
        TransferDraft(str(origin.id), str(center.id), ("SN-100",), type="MAINTENANCE"),
        principal_for("BRANCH_MANAGER", origin),
    )
    transfers.receive(order.id, principal_for("CENTER_MANAGER", center))
    technician = principal_for("TECHNICIAN", center)

    orchestrator = AssignmentOrchestrator(db_session)
    assignment = orchestrator.create_assignment(asset.id, technician)
    orchestrator.advance_assignment(assignment.id, "START_INSPECTION", technician)
    orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician, estimated_cost=50)
    orchestrator.advance_assignment(assignment.id, "RETURN_TO_ORIGIN", technician)

    refreshed = _asset(db_session, asset.id)
    assert (refreshed.branch_id, refreshed.status) == (origin.id, "REPAIRED")
    actions = [event.action for event in AuditRepository(db_session).list_for_entity("ServiceAssignment", str(assignment.id))]
    assert actions == [
        "assignment.create",
        "assignment.under_inspection",
        "assignment.repaired",
        "assignment.returned",
    ]


def test_list_assignments_is_scoped_to_origin_or_center(db_session):
    origin, center, asset = _setup(db_session)
    orchestrator = AssignmentOrchestrator(db_session)
    assignment = orchestrator.create_assignment(asset.id, principal_for("CENTER_MANAGER", center))
    outsider = make_branch(db_session, code="Z")

    flt = CollectionFilter("ServiceAssignment")
    assert [row.id for row in orchestrator.list_assignments(flt, principal_for("CS_AGENT", origin))] == [assignment.id]
    assert [row.id for row in orchestrator.list_assignments(flt, principal_for("CS_AGENT", center))] == [assignment.id]
    assert orchestrator.list_assignments(flt, principal_for("CS_AGENT", outsider)) == []


@pytest.mark.parametrize("cost", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_estimate_is_rejected(db_session, cost):
    orchestrator, origin, center, asset, assignment, technician = _inspected(db_session)

    with pytest.raises(ValidationError) as exc:
        orchestrator.advance_assignment(assignment.id, "SUBMIT_ESTIMATE", technician, estimated_cost=cost)

    assert exc.value.errors == ["estimated_cost must be a finite number"]
    current = orchestrator.get_assignment(assignment.id, technician)
    assert current.status == "UNDER_INSPECTION"
    assert current.estimated_cost is None
    assert db_session.execute(select(ServiceApprovalRequest)).scalars().all() == []
    assert _asset(db_session, asset.id).status == "UNDER_MAINTENANCE"
