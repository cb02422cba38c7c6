"""
tests/test_repairs.py -- Tests for services/repair_service.py and routers/repairs.py

Covers: repair numbering, intake validation (snake_case and camelCase
bodies), order linking, status dates, manager-only cancel, actions
(completion to testing, knowledge base capture), and the repair timer.

Called by: pytest
Depends on: app/services/repair_service.py, app/routers/repairs.py, conftest.py
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.models import RepairKnowledgeBase, RepairOrder, RepairTimeLog
from app.services import repair_service


def _intake(**overrides) -> dict:
    body = {
        "repair_source": "customer",
        "order_type": "warranty",
        "customer_name": "Sam Listener",
        "customer_email": "sam@example.com",
        "model": "Caldera",
        "repair_type": "sonic",
        "issues": [
            {"category": "audio", "specific_issue": "Left driver buzzing", "severity": "functional"},
        ],
    }
    body.update(overrides)
    return body


@pytest.fixture()
def repair(client):
    return client.post("/api/repairs", json=_intake()).json()


# ── Numbering ────────────────────────────────────────────────────────


def test_first_repair_number(db_session):
    assert repair_service.next_repair_number(db_session, 2026) == "REP-2026-0001"


def test_repair_number_increments_within_year(db_session):
    db_session.add(RepairOrder(repair_number="REP-2026-0041", repair_source="customer",
                               order_type="warranty", customer_name="A", customer_email="a@x",
                               model="Caldera", repair_type="sonic", status="intake"))
    db_session.add(RepairOrder(repair_number="REP-2025-0099", repair_source="customer",
                               order_type="warranty", customer_name="B", customer_email="b@x",
                               model="Caldera", repair_type="sonic", status="intake"))
    db_session.commit()
    assert repair_service.next_repair_number(db_session, 2026) == "REP-2026-0042"
    assert repair_service.next_repair_number(db_session, 2027) == "REP-2027-0001"


# ── Intake ───────────────────────────────────────────────────────────


def test_create_repair(client, repair):
    year = datetime.now(timezone.utc).year
    assert repair["repair_number"] == f"REP-{year}-0001"
    assert repair["status"] == "intake"
    assert repair["priority"] == "standard"
    assert repair["location"] == "Repair Wall"
    assert repair["issues"][0]["specific_issue"] == "Left driver buzzing"
    assert repair["totalTimeSpent"] == 0


def test_create_repair_camel_case(client):
    resp = client.post("/api/repairs", json={
        "repairSource": "internal",
        "orderType": "internal_qc",
        "customerName": "Workshop",
        "customerEmail": "qc@workshop.test",
        "model": "Atticus",
        "repairType": "finishing",
        "priority": "rush",
        "issues": [{"category": "cosmetic", "specificIssue": "Scratch", "severity": "cosmetic"}],
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["repair_source"] == "internal"
    assert data["priority"] == "rush"


def test_create_repair_requires_issue(client):
    resp = client.post("/api/repairs", json=_intake(issues=[]))
    assert resp.status_code == 400
    assert resp.json()["error"] == "At least one issue is required"


def test_create_repair_missing_customer(client):
    resp = client.post("/api/repairs", json=_intake(customer_email=None))
    assert resp.status_code == 400
    assert resp.json()["error"] == "customer_email is required"


def test_create_repair_invalid_repair_type(client):
    resp = client.post("/api/repairs", json=_intake(repair_type="electrical"))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid repair_type"


def test_create_repair_links_original_order(client, test_order):
    data = client.post("/api/repairs", json=_intake(original_order_number="#1001")).json()
    assert data["original_order_id"] == test_order.id
    assert data["original_order_number"] == "1001"


def test_create_repair_unknown_order_keeps_number(client):
    data = client.post("/api/repairs", json=_intake(original_order_number="9999")).json()
    assert data["original_order_id"] is None
    assert data["original_order_number"] == "9999"


# ── Read / update / cancel ───────────────────────────────────────────


def test_get_repair_detail(client, repair):
    data = client.get(f"/api/repairs/{repair['id']}").json()
    assert data["actions"] == []
    assert data["time_logs"] == []
    assert client.get("/api/repairs/999").status_code == 404


def test_list_repairs_filters(client, worker_client, repair, test_worker):
    client.post("/api/repairs", json=_intake(repair_type="finishing"))
    client.patch(f"/api/repairs/{repair['id']}", json={"assignedToId": test_worker.id})

    assert len(client.get("/api/repairs").json()["repairs"]) == 2
    assert len(client.get("/api/repairs?repairType=finishing").json()["repairs"]) == 1
    mine = worker_client.get("/api/repairs?assignedToMe=true").json()["repairs"]
    assert [r["id"] for r in mine] == [repair["id"]]


def test_status_change_stamps_date(client, repair):
    data = client.patch(f"/api/repairs/{repair['id']}", json={
        "status": "diagnosed", "estimatedCost": 120.0,
    }).json()
    assert data["status"] == "diagnosed"
    assert data["diagnosed_date"] is not None
    assert data["estimated_cost"] == 120.0


def test_update_cannot_cancel(client, repair):
    resp = client.patch(f"/api/repairs/{repair['id']}", json={"status": "cancelled"})
    assert resp.status_code == 400


def test_update_unknown_assignee(client, repair):
    resp = client.patch(f"/api/repairs/{repair['id']}", json={
        "status": "diagnosed", "assignedToId": 99999,
    })
    assert resp.status_code == 404
    assert resp.json()["error"] == "Assignee not found"
    assert client.get(f"/api/repairs/{repair['id']}").json()["status"] == "intake"


def test_cancel_is_manager_only(worker_client, client, repair):
    assert worker_client.delete(f"/api/repairs/{repair['id']}").status_code == 403
    resp = client.delete(f"/api/repairs/{repair['id']}")
    assert resp.json() == {"ok": True}
    data = client.get(f"/api/repairs/{repair['id']}").json()
    assert data["status"] == "cancelled"
    assert "Cancelled by manager" in data["internal_notes"]


# ── Issues & actions ─────────────────────────────────────────────────


def test_add_issue(client, repair):
    resp = client.post(f"/api/repairs/{repair['id']}/issues", json={
        "category": "cosmetic", "specificIssue": "Chipped veneer", "severity": "cosmetic",
    })
    assert resp.status_code == 201
    assert len(client.get(f"/api/repairs/{repair['id']}").json()["issues"]) == 2


def test_add_issue_bad_severity(client, repair):
    resp = client.post(f"/api/repairs/{repair['id']}/issues", json={
        "category": "audio", "specific_issue": "Hum", "severity": "annoying",
    })
    assert resp.status_code == 400


def test_repair_action_feeds_knowledge_base(client, db_session, repair):
    resp = client.post(f"/api/repairs/{repair['id']}/actions", json={
        "actionType": "repair",
        "actionDescription": "Replaced left driver",
        "timeSpentMinutes": 45,
        "partsUsed": [{"partName": "50mm driver", "unitCost": 35.0}],
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["repair_status"] == "intake"
    assert data["action"]["parts_used"][0]["part_name"] == "50mm driver"

    kb = db_session.query(RepairKnowledgeBase).one()
    assert kb.issue_category == "audio"
    assert kb.parts_used == ["50mm driver"]
    entries = client.get("/api/repairs/knowledge-base?model=Caldera").json()["entries"]
    assert entries[0]["solution_description"] == "Replaced left driver"


def test_completion_action_moves_to_testing(client, repair):
    data = client.post(f"/api/repairs/{repair['id']}/actions", json={
        "action_type": "note", "action_description": "Work completed, ready for listening test",
    }).json()
    assert data["repair_status"] == "testing"


def test_action_requires_description(client, repair):
    resp = client.post(f"/api/repairs/{repair['id']}/actions", json={"actionType": "repair"})
    assert resp.status_code == 400


# ── Timer ────────────────────────────────────────────────────────────


def test_start_timer_moves_to_in_progress(worker_client, client, repair, test_worker):
    resp = worker_client.post(f"/api/repairs/{repair['id']}/time/start",
                              json={"workDescription": "Driver swap"})
    assert resp.status_code == 201
    assert resp.json()["repair_status"] == "in_progress"
    data = client.get(f"/api/repairs/{repair['id']}").json()
    assert data["assigned_to"]["id"] == test_worker.id
    assert data["started_date"] is not None


def test_start_timer_twice(worker_client, repair):
    worker_client.post(f"/api/repairs/{repair['id']}/time/start")
    resp = worker_client.post(f"/api/repairs/{repair['id']}/time/start")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Timer already running"


def test_stop_timer(worker_client, db_session, repair):
    worker_client.post(f"/api/repairs/{repair['id']}/time/start")
    entry = db_session.query(RepairTimeLog).one()
    entry.start_time = datetime.now(timezone.utc) - timedelta(minutes=30)
    db_session.commit()

    resp = worker_client.post(f"/api/repairs/{repair['id']}/time/stop",
                              json={"returnLocation": "Shelf B"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["location"] == "Shelf B"
    assert data["time_log"]["duration_minutes"] == 30
    assert worker_client.get(f"/api/repairs/{repair['id']}").json()["totalTimeSpent"] == 30


def test_stop_timer_without_start(worker_client, repair):
    resp = worker_client.post(f"/api/repairs/{repair['id']}/time/stop")
    assert resp.status_code == 404
    assert resp.json()["error"] == "No active timer found"
