"""
tests/test_components.py -- Tests for services/component_service.py and routers/components.py

Covers: serial format, component creation and lookup, QR label generation
(PNG download and base64 JSON), scan error handling, serial search, and
the journey timeline.

Called by: pytest
Depends on: app/services/component_service.py, app/routers/components.py, conftest.py
"""

import base64
import json
import re
from datetime import datetime, timedelta, timezone

from app.models import InspectionResult, QualityCheckpoint, QualityHold, WorkTask
from app.services import component_service

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
SERIAL_RE = re.compile(r"^[A-Z0-9]{1,3}-\d{4}-[0-9A-F]{6}$")


# ── Serials ──────────────────────────────────────────────────────────


def test_serial_format():
    serial = component_service.generate_serial("Caldera")
    assert SERIAL_RE.match(serial)
    assert serial.startswith("CAL-")


def test_serial_without_model_uses_cup():
    assert component_service.generate_serial(None).startswith("CUP-")
    assert component_service.generate_serial("--").startswith("CUP-")


def test_serials_are_unique():
    serials = {component_service.generate_serial("Atticus") for _ in range(50)}
    assert len(serials) == 50


# ── Components ───────────────────────────────────────────────────────


def test_create_component(supervisor_client, supervisor):
    resp = supervisor_client.post("/api/components", json={
        "model": "Caldera", "wood_type": "Cocobolo", "grade": "B", "wood_batch_id": "WB-12",
    })
    assert resp.status_code == 201
    data = resp.json()
    assert SERIAL_RE.match(data["left_cup_serial"])
    assert data["left_cup_serial"] != data["right_cup_serial"]
    assert data["grade"] == "B"
    assert data["specifications"]["model"] == "Caldera"
    assert data["journey"][0]["stage"] == "created"
    assert data["journey"][0]["worker_id"] == supervisor.id
    assert data["rework_count"] == 0


def test_create_component_requires_model(supervisor_client):
    resp = supervisor_client.post("/api/components", json={"wood_type": "Walnut"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "model is required"


def test_create_component_bad_grade(supervisor_client):
    resp = supervisor_client.post("/api/components", json={"model": "Caldera", "grade": "C"})
    assert resp.status_code == 400


def test_create_component_requires_supervisor(worker_client):
    assert worker_client.post("/api/components", json={"model": "Caldera"}).status_code == 403


def test_list_and_get_components(supervisor_client, worker_client):
    created = supervisor_client.post("/api/components", json={"model": "Caldera"}).json()
    supervisor_client.post("/api/components", json={"model": "Atticus", "grade": "B"})

    assert len(worker_client.get("/api/components").json()["components"]) == 2
    by_grade = worker_client.get("/api/components?grade=B").json()["components"]
    assert [c["specifications"]["model"] for c in by_grade] == ["Atticus"]
    by_serial = worker_client.get(
        f"/api/components?serial={created['right_cup_serial']}").json()["components"]
    assert [c["id"] for c in by_serial] == [created["id"]]

    assert worker_client.get(f"/api/components/{created['id']}").json()["cup_pair_id"] == \
        created["cup_pair_id"]
    assert worker_client.get("/api/components/999").status_code == 404


# ── QR labels ────────────────────────────────────────────────────────


def test_qr_payload_is_compact_json():
    payload = component_service.qr_payload(7, "CAL-2601-AAAAAA", "CAL-2601-BBBBBB")
    assert " " not in payload
    data = json.loads(payload)
    assert data["id"] == 7
    assert data["l"] == "CAL-2601-AAAAAA"
    assert data["r"] == "CAL-2601-BBBBBB"
    assert isinstance(data["t"], int)


def test_generate_qr_png(worker_client):
    resp = worker_client.post("/api/qr/generate", json={
        "component_id": 1, "left_serial": "CAL-2601-AAAAAA", "right_serial": "CAL-2601-BBBBBB",
    })
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert 'filename="QR_CAL-2601-AAAAAA.png"' in resp.headers["content-disposition"]
    assert resp.content.startswith(PNG_MAGIC)


def test_generate_qr_json(worker_client):
    resp = worker_client.post("/api/qr/generate?format=json", json={
        "component_id": 1, "left_serial": "L", "right_serial": "R",
    })
    data = resp.json()
    assert json.loads(data["qr_data"])["id"] == 1
    assert base64.b64decode(data["image_base64"]).startswith(PNG_MAGIC)


def test_generate_qr_requires_fields(worker_client):
    resp = worker_client.post("/api/qr/generate", json={"component_id": 1})
    assert resp.status_code == 400


# ── Scan ─────────────────────────────────────────────────────────────


def test_scan_qr(supervisor_client, worker_client):
    comp = supervisor_client.post("/api/components", json={"model": "Caldera"}).json()
    qr_data = component_service.qr_payload(comp["id"], comp["left_cup_serial"],
                                           comp["right_cup_serial"])
    resp = worker_client.put("/api/qr/scan", json={"qr_data": qr_data})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["component"]["id"] == comp["id"]
    assert data["scanned_data"]["l"] == comp["left_cup_serial"]


def test_scan_empty(worker_client):
    resp = worker_client.put("/api/qr/scan", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "QR data is required"


def test_scan_not_json(worker_client):
    resp = worker_client.put("/api/qr/scan", json={"qr_data": "hello"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid QR code format"


def test_scan_json_without_id(worker_client):
    resp = worker_client.put("/api/qr/scan", json={"qr_data": '{"l": "x"}'})
    assert resp.json()["error"] == "Invalid QR code format"


def test_scan_unknown_component(worker_client):
    resp = worker_client.put("/api/qr/scan", json={"qr_data": '{"id": 404}'})
    assert resp.status_code == 404
    assert resp.json()["error"] == "Component not found"


# ── Search & journey ─────────────────────────────────────────────────


def test_search_by_either_serial(supervisor_client, worker_client):
    comp = supervisor_client.post("/api/components", json={"model": "Caldera"}).json()
    for serial in (comp["left_cup_serial"], comp["right_cup_serial"]):
        data = worker_client.get(f"/api/components/search?serial={serial}").json()
        assert data["id"] == comp["id"]
        assert data["current_task"] is None


def test_search_errors(worker_client):
    resp = worker_client.get("/api/components/search")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Serial number required"
    assert worker_client.get("/api/components/search?serial=NOPE-0000-000000").status_code == 404


def test_search_reports_open_task(supervisor_client, worker_client, db_session, test_worker):
    comp = supervisor_client.post("/api/components", json={"model": "Caldera"}).json()
    db_session.add(WorkTask(task_type="sanding", stage="sanding", status="in_progress",
                            component_tracking_id=comp["id"], assigned_to_id=test_worker.id))
    db_session.commit()
    data = worker_client.get(f"/api/components/search?serial={comp['left_cup_serial']}").json()
    assert data["current_task"]["stage"] == "sanding"
    assert data["current_task"]["assigned_to"] == "Test Worker"


def test_add_journey_entry(supervisor_client, worker_client, test_worker):
    comp = supervisor_client.post("/api/components", json={"model": "Caldera"}).json()
    resp = worker_client.post(f"/api/components/{comp['id']}/journey", json={
        "stage": "sanding", "duration_minutes": 45, "rework": True, "notes": "Grain tear-out",
    })
    assert resp.status_code == 200
    journey = resp.json()["journey"]
    assert len(journey) == 2
    assert journey[1]["stage"] == "sanding"
    assert journey[1]["worker_id"] == test_worker.id
    assert journey[1]["notes"] == "Grain tear-out"
    assert resp.json()["rework_count"] == 1


def test_add_journey_entry_errors(supervisor_client, worker_client):
    comp = supervisor_client.post("/api/components", json={"model": "Caldera"}).json()
    assert worker_client.post(f"/api/components/{comp['id']}/journey",
                              json={"stage": " "}).status_code == 400
    assert worker_client.post("/api/components/999/journey",
                              json={"stage": "sanding"}).status_code == 404


def test_journey_timeline(supervisor_client, worker_client, db_session, test_worker):
    comp = supervisor_client.post("/api/components", json={"model": "Caldera"}).json()
    worker_client.post(f"/api/components/{comp['id']}/journey", json={"stage": "sanding"})

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    cp = QualityCheckpoint(stage="sanding", checkpoint_type="post_work", name="Smoothness",
                           checks=["even"])
    db_session.add(cp)
    db_session.flush()
    db_session.add(InspectionResult(checkpoint_id=cp.id, component_tracking_id=comp["id"],
                                    worker_id=test_worker.id, passed=False,
                                    failed_checks=["even"], inspected_at=later))
    db_session.add(QualityHold(component_tracking_id=comp["id"], hold_reason="Crack",
                               severity="high", status="resolved", reported_by_id=test_worker.id,
                               created_at=later + timedelta(minutes=5),
                               resolved_at=later + timedelta(minutes=30)))
    db_session.commit()

    data = worker_client.get(f"/api/components/{comp['id']}/journey").json()
    types = [e["type"] for e in data["timeline"]]
    assert types == ["created", "stage", "inspection", "hold_created", "hold_resolved"]
    assert data["timeline"][2]["data"]["inspector"] == "Test Worker"
    assert data["summary"] == {
        "total_inspections": 1, "passed_inspections": 0, "total_holds": 1,
        "active_holds": 0, "current_grade": "A", "rework_count": 0,
    }


def test_journey_unknown_component(worker_client):
    assert worker_client.get("/api/components/999/journey").status_code == 404
