import logging

from sqlalchemy import select

from app.branchops.db.models import AuditEvent
from tests.db_utils import bearer, make_asset, make_branch, make_customer


def _create_payload(source, destination, serials, type="MACHINE"):
    return {
        "from_branch_id": str(source.id),
        "to_branch_id": str(destination.id),
        "type": type,
        "serials": serials,
    }


def test_create_and_receive_transfer_over_http(client, db_session):
    origin = make_branch(db_session, code="X")
    center = make_branch(db_session, code="CTR", type="CENTER")
    make_asset(db_session, origin, serial="SN-100")
    sender = bearer("BRANCH_MANAGER", origin, user_id="sender")
    receiver = bearer("CENTER_MANAGER", center, user_id="receiver")

    created = client.post(
        "/branchops/transfers",
        headers={**sender, "X-Trace-ID": "trace-transfer-1"},
        json=_create_payload(origin, center, ["SN-100"], type="MAINTENANCE"),
    )
    assert created.status_code == 201
    order = created.json()
    assert order["status"] == "PENDING"
    assert order["order_number"].startswith("TO-")
    assert order["items"] == [
        {"asset_id": order["items"][0]["asset_id"], "serial_number": "SN-100", "prior_status": "NEW"}
    ]

    in_transit = client.get("/branchops/assets/SN-100", headers=sender)
    assert in_transit.status_code == 200
    assert in_transit.json()["asset"]["status"] == "IN_TRANSIT"
    assert in_transit.json()["asset"]["active_transfer_id"] == order["id"]

    received = client.post(f"/branchops/transfers/{order['id']}/actions", headers=receiver, json={"action": "receive"})
    assert received.status_code == 200
    assert received.json()["status"] == "RECEIVED"

    history = client.get("/branchops/assets/SN-100", headers=receiver).json()
    assert history["asset"]["branch_id"] == str(center.id)
    assert history["asset"]["origin_branch_id"] == str(origin.id)
    assert [movement["action"] for movement in history["movements"]] == ["TRANSFER_OUT", "TRANSFER_IN"]

    again = client.post(f"/branchops/transfers/{order['id']}/actions", headers=receiver, json={"action": "receive"})
    assert again.status_code == 409
    assert again.json()["code"] == "TERMINAL_STATE"

    create_event = db_session.execute(
        select(AuditEvent).where(AuditEvent.action == "transfer.create")
    ).scalars().one()
    assert create_event.trace_id == "trace-transfer-1"
    assert create_event.actor == "sender"


def test_requests_without_token_are_rejected(client):
    response = client.get("/branchops/transfers")
    assert response.status_code == 401
    payload = response.json()
    assert payload["code"] == "INVALID_TOKEN"
    assert payload["trace_id"]

    garbage = client.get("/branchops/transfers", headers={"Authorization": "Bearer not-a-jwt"})
    assert garbage.status_code == 401


def test_validate_endpoint_reports_every_problem(client, db_session):
    origin = make_branch(db_session, code="X")
    destination = make_branch(db_session, code="Y")
    make_asset(db_session, origin, serial="SN-100", status="DEFECTIVE")

    response = client.post(
        "/branchops/transfers/validate",
        headers=bearer("BRANCH_MANAGER", origin),
        json=_create_payload(origin, destination, ["SN-100", "SN-404"]),
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["valid"] is False
    assert payload["errors"] == ["Asset SN-404 not found"]
    assert payload["warnings"] == ["Asset SN-100 is DEFECTIVE; consider a MAINTENANCE transfer"]


def test_invalid_create_returns_validation_error(client, db_session):
    origin = make_branch(db_session, code="X")
    make_asset(db_session, origin, serial="SN-100")

    response = client.post(
        "/branchops/transfers",
        headers=bearer("BRANCH_MANAGER", origin),
        json=_create_payload(origin, origin, ["SN-100", "SN-404"]),
    )
    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert payload["details"]["errors"] == [
        "Source and destination branch must differ",
        "Asset SN-404 not found",
    ]


def test_frozen_asset_returns_conflict(client, db_session):
    origin = make_branch(db_session, code="X")
    center = make_branch(db_session, code="CTR", type="CENTER")
    other = make_branch(db_session, code="Y")
    make_asset(db_session, origin, serial="SN-100")
    headers = bearer("BRANCH_MANAGER", origin)
    first = client.post("/branchops/transfers", headers=headers, json=_create_payload(origin, center, ["SN-100"]))
    assert first.status_code == 201

    second = client.post("/branchops/transfers", headers=headers, json=_create_payload(origin, other, ["SN-100"]))
    assert second.status_code == 409
    payload = second.json()
    assert payload["code"] == "ASSET_FROZEN"
    assert payload["details"]["serials"] == ["SN-100"]


def test_foreign_branch_cannot_act_on_transfer(client, db_session):
    origin = make_branch(db_session, code="X")
    center = make_branch(db_session, code="CTR", type="CENTER")
    outsider = make_branch(db_session, code="Z")
    make_asset(db_session, origin, serial="SN-100")
    created = client.post(
        "/branchops/transfers",
        headers=bearer("BRANCH_MANAGER", origin),
        json=_create_payload(origin, center, ["SN-100"]),
    ).json()

    detail = client.get(f"/branchops/transfers/{created['id']}", headers=bearer("BRANCH_MANAGER", outsider))
    assert detail.status_code == 403
    assert detail.json()["code"] == "BRANCH_SCOPE_MISMATCH"

    accept = client.post(
        f"/branchops/transfers/{created['id']}/actions",
        headers=bearer("BRANCH_MANAGER", origin),
        json={"action": "accept"},
    )
    assert accept.status_code == 403

    missing = client.get(
        "/branchops/transfers/00000000-0000-0000-0000-000000000000", headers=bearer("SUPER_ADMIN")
    )
    assert missing.status_code == 404


def test_list_transfers_is_scoped_and_rejects_foreign_predicates(client, db_session):
    origin = make_branch(db_session, code="X")
    other = make_branch(db_session, code="Y")
    center = make_branch(db_session, code="CTR", type="CENTER")
    make_asset(db_session, origin, serial="SN-100")
    make_asset(db_session, other, serial="SN-200")
    client.post("/branchops/transfers", headers=bearer("BRANCH_MANAGER", origin), json=_create_payload(origin, center, ["SN-100"]))
    client.post("/branchops/transfers", headers=bearer("BRANCH_MANAGER", other), json=_create_payload(other, center, ["SN-200"]))

    own = client.get("/branchops/transfers", headers=bearer("CS_AGENT", origin))
    assert own.status_code == 200
    assert [row["from_branch_id"] for row in own.json()["rows"]] == [str(origin.id)]

    foreign = client.get(
        "/branchops/transfers", headers=bearer("CS_AGENT", origin), params={"from_branch_id": str(other.id)}
    )
    assert foreign.status_code == 403
    assert foreign.json()["code"] == "BRANCH_SCOPE_MISMATCH"

    everything = client.get("/branchops/transfers", headers=bearer("MANAGEMENT"))
    assert len(everything.json()["rows"]) == 2


def test_customers_are_scoped_to_branch(client, db_session):
    branch_x = make_branch(db_session, code="X")
    branch_y = make_branch(db_session, code="Y")
    make_customer(db_session, branch_x, "Customer 1")
    make_customer(db_session, branch_x, "Customer 2")
    make_customer(db_session, branch_y, "Customer 3")

    response = client.get("/branchops/customers", headers=bearer("CS_AGENT", branch_x))
    assert response.status_code == 200
    assert [row["name"] for row in response.json()["rows"]] == ["Customer 1", "Customer 2"]

    everyone = client.get("/branchops/customers", headers=bearer("SUPER_ADMIN"))
    assert len(everyone.json()["rows"]) == 3


def test_bypass_by_homeless_admin_is_audited(client, db_session):
    branch_x = make_branch(db_session, code="X")
    branch_y = make_branch(db_session, code="Y")
    make_customer(db_session, branch_x, "Customer 1")
    make_customer(db_session, branch_y, "Customer 3")

    response = client.get(
        "/branchops/customers",
        headers={**bearer("ADMIN_AFFAIRS", user_id="affairs"), "X-Trace-ID": "trace-bypass-1"},
        params={"bypass_scope": "true"},
    )
    assert response.status_code == 200
    assert len(response.json()["rows"]) == 2

    events = db_session.execute(select(AuditEvent).where(AuditEvent.action == "scope.bypass")).scalars().all()
    assert len(events) == 1
    assert events[0].actor == "affairs"
    assert events[0].trace_id == "trace-bypass-1"
    assert events[0].detail["entity"] == "Customer"


def test_bypass_by_ineligible_role_is_an_internal_error(client, db_session):
    branch_x = make_branch(db_session, code="X")

    response = client.get(
        "/branchops/customers",
        headers=bearer("CS_AGENT", branch_x),
        params={"bypass_scope": "true"},
    )
    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
    assert db_session.execute(select(AuditEvent)).scalars().all() == []


def test_request_log_carries_principal_and_error_code(client, db_session, caplog):
    branch_x = make_branch(db_session, code="X")

    with caplog.at_level(logging.INFO, logger="branchops.request"):
        client.get(
            "/branchops/transfers/00000000-0000-0000-0000-000000000000",
            headers={**bearer("CS_AGENT", branch_x, user_id="agent-7"), "X-Trace-ID": "trace-log-1"},
        )

    records = [record.getMessage() for record in caplog.records if record.name == "branchops.request"]
    assert records
    line = records[-1]
    assert '"trace_id": "trace-log-1"' in line
    assert '"user_id": "agent-7"' in line
    assert '"status_code": 404' in line
    assert '"error_code": "NOT_FOUND"' in line


def test_asset_listing_is_scoped_and_filterable(client, db_session):
    branch_x = make_branch(db_session, code="X")
    branch_y = make_branch(db_session, code="Y")
    make_asset(db_session, branch_x, serial="SN-100")
    make_asset(db_session, branch_x, serial="SIM-1", kind="SIM")
    make_asset(db_session, branch_y, serial="SN-200")

    own = client.get("/branchops/assets", headers=bearer("CS_AGENT", branch_x))
    assert own.status_code == 200
    assert {row["serial_number"] for row in own.json()["rows"]} == {"SN-100", "SIM-1"}

    sims = client.get("/branchops/assets", headers=bearer("CS_AGENT", branch_x), params={"kind": "sim"})
    assert [row["serial_number"] for row in sims.json()["rows"]] == ["SIM-1"]

    history = client.get("/branchops/assets/SN-200", headers=bearer("CS_AGENT", branch_x))
    assert history.status_code == 403
