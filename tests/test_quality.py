"""
tests/test_quality.py -- Tests for services/quality_service.py and routers/quality.py

Covers: quality holds (batch linkage, resolution, escalation), pattern
upserts and their display defaults, checkpoint validation, checkpoint
templates (single default per stage/type), inspections
(rework, pattern recording, critical block_progress holds), and the
predictive alert thresholds.

Called by: pytest
Depends on: app/services/quality_service.py, app/routers/quality.py, conftest.py
"""

from datetime import datetime, timezone

import pytest

from app.models import (
    ComponentTracking,
    InspectionResult,
    QualityCheckpoint,
    QualityCheckpointTemplate,
    QualityHold,
    QualityPattern,
    WorkTask,
)
from app.services import quality_service


@pytest.fixture()
def batch_task(db_session, test_batch, test_worker):
    t = WorkTask(
        task_type="sanding",
        stage="sanding",
        order_item_id=test_batch.order_item_ids[0],
        batch_id=test_batch.id,
        assigned_to_id=test_worker.id,
        status="in_progress",
    )
    db_session.add(t)
    db_session.commit()
    return t


def _checkpoint(db, **kw):
    cp = QualityCheckpoint(
        stage=kw.pop("stage", "sanding"),
        checkpoint_type=kw.pop("checkpoint_type", "post_work"),
        name=kw.pop("name", "Surface smoothness"),
        checks=kw.pop("checks", ["no scratches", "even grain"]),
        severity=kw.pop("severity", "major"),
        on_failure=kw.pop("on_failure", "warn"),
        **kw,
    )
    db.add(cp)
    db.commit()
    return cp


# ── Holds ────────────────────────────────────────────────────────────


def test_create_hold_marks_batch(client, db_session, test_batch):
    resp = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "Finish bubbling", "severity": "high",
    })
    assert resp.status_code == 201
    hold = resp.json()
    assert hold["status"] == "active"
    assert hold["reported_by"]["name"] == "Test Manager"
    db_session.refresh(test_batch)
    assert test_batch.quality_hold_id == hold["id"]


def test_create_hold_requires_reason_and_severity(client, test_batch):
    resp = client.post("/api/quality/holds", json={"batch_id": test_batch.id})
    assert resp.status_code == 400
    assert resp.json()["error"] == "hold_reason and severity are required"


def test_create_hold_rejects_unknown_severity(client, test_batch):
    resp = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "x", "severity": "catastrophic",
    })
    assert resp.status_code == 400
    assert "Invalid severity" in resp.json()["error"]


def test_create_hold_needs_a_target(client):
    resp = client.post("/api/quality/holds", json={"hold_reason": "x", "severity": "low"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "batch_id or component_tracking_id is required"


def test_create_hold_unknown_batch(client):
    resp = client.post("/api/quality/holds", json={
        "batch_id": 999, "hold_reason": "x", "severity": "low",
    })
    assert resp.status_code == 404


def test_resolve_hold_clears_batch(client, db_session, test_batch):
    hold_id = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "Crack", "severity": "critical",
    }).json()["id"]

    resp = client.put(f"/api/quality/holds/{hold_id}", json={
        "status": "resolved", "resolution_notes": "Re-glued and sanded",
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "resolved"
    assert data["resolved_at"] is not None
    assert data["resolution_notes"] == "Re-glued and sanded"
    db_session.refresh(test_batch)
    assert test_batch.quality_hold_id is None


def test_resolve_one_of_two_holds_keeps_batch_held(client, db_session, test_batch):
    first = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "A", "severity": "low",
    }).json()["id"]
    second = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "B", "severity": "low",
    }).json()["id"]

    client.put(f"/api/quality/holds/{second}", json={"status": "resolved"})
    db_session.refresh(test_batch)
    assert test_batch.quality_hold_id == first
    assert quality_service.has_active_hold(db_session, test_batch.id)


def test_reopen_resolved_hold_restores_batch_hold(client, db_session, test_batch):
    hold_id = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "Crack", "severity": "high",
    }).json()["id"]
    client.put(f"/api/quality/holds/{hold_id}", json={"status": "resolved"})

    data = client.put(f"/api/quality/holds/{hold_id}", json={"status": "investigating"}).json()
    assert data["status"] == "investigating"
    assert data["resolved_at"] is None
    db_session.refresh(test_batch)
    assert test_batch.quality_hold_id == hold_id
    alerts = {a["type"]: a for a in quality_service.predictive_alerts(db_session)["alerts"]}
    assert alerts["active_holds"]["data"]["active"] == 1


def test_hold_unknown_assignee(client, test_batch):
    resp = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "x", "severity": "low", "assigned_to_id": 99999,
    })
    assert resp.status_code == 404
    assert resp.json()["error"] == "Assignee not found"

    hold_id = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "x", "severity": "low",
    }).json()["id"]
    resp = client.put(f"/api/quality/holds/{hold_id}", json={"assigned_to_id": 99999})
    assert resp.status_code == 404


def test_escalate_hold_sets_timestamp(client, test_batch):
    hold_id = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "Glue", "severity": "medium",
    }).json()["id"]
    data = client.put(f"/api/quality/holds/{hold_id}", json={"status": "escalated"}).json()
    assert data["escalated_at"] is not None
    assert data["resolved_at"] is None


def test_update_hold_invalid_status(client, test_batch):
    hold_id = client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "Glue", "severity": "medium",
    }).json()["id"]
    resp = client.put(f"/api/quality/holds/{hold_id}", json={"status": "closed"})
    assert resp.status_code == 400


def test_update_hold_requires_supervisor(worker_client):
    resp = worker_client.put("/api/quality/holds/1", json={"status": "resolved"})
    assert resp.status_code == 403


def test_list_holds_filters(client, test_batch):
    client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "Finish bubbling", "severity": "high",
    })
    client.post("/api/quality/holds", json={
        "batch_id": test_batch.id, "hold_reason": "Cracked cup", "severity": "low",
    })
    assert len(client.get("/api/quality/holds?status=all").json()["holds"]) == 2
    assert len(client.get("/api/quality/holds?severity=high").json()["holds"]) == 1
    found = client.get("/api/quality/holds?search=crack").json()["holds"]
    assert [h["hold_reason"] for h in found] == ["Cracked cup"]


# ── Patterns ─────────────────────────────────────────────────────────


def test_upsert_pattern_defaults(client):
    resp = client.post("/api/quality/patterns", json={"stage": "finishing", "issue_type": "runs"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["frequency"] == 1
    assert data["typical_cause"] == "Unknown cause"
    assert data["prevention_tip"] == "Follow standard procedures"


def test_upsert_pattern_accumulates(client):
    client.post("/api/quality/patterns", json={
        "stage": "finishing", "issue_type": "runs", "cause": "Too much lacquer",
    })
    data = client.post("/api/quality/patterns", json={
        "stage": "finishing", "issue_type": "runs", "cause": "Too much lacquer",
        "prevention_tip": "Thin coats", "severity_trend": "increasing",
    }).json()
    assert data["frequency"] == 2
    assert data["common_causes"] == ["Too much lacquer"]
    assert data["prevention_tip"] == "Thin coats"
    assert data["severity_trend"] == "increasing"


def test_upsert_pattern_manager_only(supervisor_client):
    resp = supervisor_client.post("/api/quality/patterns",
                                  json={"stage": "finishing", "issue_type": "runs"})
    assert resp.status_code == 403


def test_list_patterns_top_five(client, db_session):
    for i in range(7):
        db_session.add(QualityPattern(stage="sanding", issue_type=f"t{i}", occurrence_count=i + 1,
                                      last_seen=datetime.now(timezone.utc)))
    db_session.commit()
    patterns = client.get("/api/quality/patterns?stage=sanding").json()["patterns"]
    assert len(patterns) == 5
    assert patterns[0]["frequency"] == 7


# ── Checkpoints ──────────────────────────────────────────────────────


def test_create_checkpoint_defaults(client):
    resp = client.post("/api/quality/checkpoints", json={
        "stage": "finishing", "checkpoint_type": "gate", "checks": ["gloss even"],
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["severity"] == "major"
    assert data["on_failure"] == "warn"


def test_create_checkpoint_rejects_unknown_type(client):
    resp = client.post("/api/quality/checkpoints",
                       json={"stage": "finishing", "checkpoint_type": "random"})
    assert resp.status_code == 400


def test_create_checkpoint_rejects_unknown_on_failure(client):
    resp = client.post("/api/quality/checkpoints", json={
        "stage": "finishing", "checkpoint_type": "gate", "on_failure": "explode",
    })
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid severity or on_failure"


# ── Checkpoint templates ─────────────────────────────────────────────


def _template(**kw):
    body = {
        "stage_name": "sanding",
        "checkpoint_type": "post_work",
        "template_name": "Sanding exit check",
        "checks": [{
            "id": "c1", "description": "Surface smooth to touch",
            "requires_photo": True, "acceptance_criteria": "No visible scratches",
            "common_failures": ["swirl marks"],
        }],
    }
    body.update(kw)
    return body


def test_create_and_list_templates(client, worker_client):
    resp = client.post("/api/quality/checkpoint-templates", json=_template())
    assert resp.status_code == 201
    tpl = resp.json()["template"]
    assert tpl["checks"][0]["requires_measurement"] is False
    listed = worker_client.get("/api/quality/checkpoint-templates").json()["templates"]
    assert [t["id"] for t in listed] == [tpl["id"]]


def test_template_validation(client):
    resp = client.post("/api/quality/checkpoint-templates",
                       json=_template(checkpoint_type="whenever"))
    assert resp.status_code == 422
    resp = client.post("/api/quality/checkpoint-templates", json=_template(template_name=""))
    assert resp.status_code == 422


def test_new_default_template_unseats_old(client, db_session):
    first = client.post("/api/quality/checkpoint-templates",
                        json=_template(is_default=True)).json()["template"]
    second = client.post("/api/quality/checkpoint-templates",
                         json=_template(template_name="Stricter", is_default=True)).json()["template"]
    other_stage = client.post("/api/quality/checkpoint-templates",
                              json=_template(stage_name="assembly", is_default=True)).json()["template"]

    defaults = {t.id for t in db_session.query(QualityCheckpointTemplate).filter_by(is_default=True)}
    assert defaults == {second["id"], other_stage["id"]}
    assert first["id"] not in defaults


def test_update_template(client):
    tpl = client.post("/api/quality/checkpoint-templates", json=_template()).json()["template"]
    resp = client.put(f"/api/quality/checkpoint-templates/{tpl['id']}",
                      json=_template(template_name="Renamed", checks=[]))
    assert resp.json()["template"]["template_name"] == "Renamed"
    assert resp.json()["template"]["checks"] == []
    assert client.put("/api/quality/checkpoint-templates/999", json=_template()).status_code == 404


def test_delete_template(client):
    tpl = client.post("/api/quality/checkpoint-templates", json=_template()).json()["template"]
    assert client.delete(f"/api/quality/checkpoint-templates/{tpl['id']}").json() == {"success": True}
    assert client.get("/api/quality/checkpoint-templates").json()["templates"] == []


def test_default_template_cannot_be_deleted(client):
    tpl = client.post("/api/quality/checkpoint-templates",
                      json=_template(is_default=True)).json()["template"]
    resp = client.delete(f"/api/quality/checkpoint-templates/{tpl['id']}")
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Cannot delete default templates")


def test_templates_manager_only(supervisor_client):
    resp = supervisor_client.post("/api/quality/checkpoint-templates", json=_template())
    assert resp.status_code == 403


# ── Inspections ──────────────────────────────────────────────────────


def test_passing_inspection(client, db_session, batch_task):
    cp = _checkpoint(db_session)
    resp = client.post("/api/quality/inspections", json={
        "task_id": batch_task.id, "checkpoint_id": cp.id, "passed": True,
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["can_proceed"] is True
    assert data["hold"] is None
    db_session.refresh(batch_task)
    assert batch_task.quality_score == 100


def test_failing_warn_inspection_records_patterns(client, db_session, batch_task):
    cp = _checkpoint(db_session)
    data = client.post("/api/quality/inspections", json={
        "task_id": batch_task.id, "checkpoint_id": cp.id, "passed": False,
        "failed_checks": ["no scratches"], "root_cause": "Coarse grit",
    }).json()
    assert data["can_proceed"] is True
    db_session.refresh(batch_task)
    assert batch_task.rework_count == 1
    pattern = db_session.query(QualityPattern).filter_by(issue_type="no scratches").one()
    assert pattern.stage == "sanding"
    assert pattern.common_causes == ["Coarse grit"]


def test_failing_inspection_without_checks_uses_generic_pattern(client, db_session, batch_task):
    cp = _checkpoint(db_session)
    client.post("/api/quality/inspections", json={
        "task_id": batch_task.id, "checkpoint_id": cp.id, "passed": False,
    })
    assert db_session.query(QualityPattern).filter_by(issue_type="inspection_failed").count() == 1


def test_critical_block_progress_failure_holds_batch(client, db_session, batch_task, test_batch):
    cp = _checkpoint(db_session, name="Cup seal", severity="critical",
                     on_failure="block_progress")
    data = client.post("/api/quality/inspections", json={
        "task_id": batch_task.id, "checkpoint_id": cp.id, "passed": False,
    }).json()
    assert data["can_proceed"] is False
    assert data["hold"]["hold_reason"] == "Failed critical quality checkpoint: Cup seal"
    assert data["hold"]["severity"] == "critical"
    db_session.refresh(test_batch)
    assert test_batch.quality_hold_id == data["hold"]["id"]


def test_failure_appends_component_journey(client, db_session, batch_task, test_worker):
    comp = ComponentTracking(cup_pair_id="pair-1", left_cup_serial="CAL-2601-AAAAAA",
                             right_cup_serial="CAL-2601-BBBBBB", grade="A", journey=[])
    db_session.add(comp)
    db_session.commit()
    cp = _checkpoint(db_session)
    client.post("/api/quality/inspections", json={
        "task_id": batch_task.id, "checkpoint_id": cp.id, "passed": False,
        "component_tracking_id": comp.id,
    })
    db_session.refresh(comp)
    assert comp.journey[-1]["rework"] is True
    assert comp.rework_count() == 1


def test_inspection_unknown_checkpoint(client, batch_task):
    resp = client.post("/api/quality/inspections", json={
        "task_id": batch_task.id, "checkpoint_id": 999, "passed": True,
    })
    assert resp.status_code == 404


def test_list_inspections_needs_a_filter(client):
    assert client.get("/api/quality/inspections").status_code == 400


def test_list_inspections_by_task(client, db_session, batch_task):
    cp = _checkpoint(db_session)
    client.post("/api/quality/inspections", json={
        "task_id": batch_task.id, "checkpoint_id": cp.id, "passed": True,
    })
    data = client.get(f"/api/quality/inspections?task_id={batch_task.id}").json()
    assert len(data["inspections"]) == 1


# ── Predictive alerts ────────────────────────────────────────────────


def test_alerts_empty(supervisor_client):
    data = supervisor_client.get("/api/quality/predictive-alerts").json()
    assert data["alerts"] == []
    assert data["summary"]["total"] == 0


def test_alerts_pattern_severity_bands(db_session):
    now = datetime.now(timezone.utc)
    for issue_type, count in (("few", 10), ("some", 15), ("many", 25), ("lots", 60)):
        db_session.add(QualityPattern(stage="sanding", issue_type=issue_type,
                                      occurrence_count=count, last_seen=now))
    db_session.commit()
    alerts = quality_service.predictive_alerts(db_session)["alerts"]
    by_type = {a["data"]["occurrences"]: a["severity"] for a in alerts
               if a["type"] == "recurring_pattern"}
    assert by_type == {15: "info", 25: "warning", 60: "critical"}
    assert alerts[0]["severity"] == "critical"


def test_alerts_active_hold_and_stage_failures(db_session, batch_task, test_worker, test_batch):
    cp = _checkpoint(db_session)
    for passed in (True, True, True, False):
        db_session.add(InspectionResult(task_id=batch_task.id, checkpoint_id=cp.id,
                                        worker_id=test_worker.id, passed=passed))
    db_session.add(QualityHold(batch_id=test_batch.id, hold_reason="Crack", severity="critical",
                               status="active"))
    db_session.commit()

    data = quality_service.predictive_alerts(db_session)
    types = {a["type"]: a for a in data["alerts"]}
    assert types["stage_failure_rate"]["severity"] == "critical"
    assert types["active_holds"]["data"] == {"active": 1, "critical": 1}
    # only 4 inspections: too few for a worker alert
    assert "worker_quality" not in types


def test_alerts_worker_failure_rate(db_session, batch_task, test_worker):
    cp = _checkpoint(db_session)
    for passed in (True, True, True, True, False, True):
        db_session.add(InspectionResult(task_id=batch_task.id, checkpoint_id=cp.id,
                                        worker_id=test_worker.id, passed=passed))
    db_session.commit()
    alerts = quality_service.predictive_alerts(db_session)["alerts"]
    worker_alerts = [a for a in alerts if a["type"] == "worker_quality"]
    assert len(worker_alerts) == 1
    assert worker_alerts[0]["severity"] == "info"
    assert worker_alerts[0]["worker_id"] == test_worker.id


def test_alerts_component_rework(db_session):
    db_session.add(ComponentTracking(
        cup_pair_id="pair-2", left_cup_serial="L", right_cup_serial="R", grade="A",
        journey=[{"stage": "sanding", "rework": True}, {"stage": "finishing", "rework": True}],
    ))
    db_session.commit()
    alerts = quality_service.predictive_alerts(db_session)["alerts"]
    assert [a["type"] for a in alerts] == ["component_rework"]


def test_alerts_require_supervisor(worker_client):
    assert worker_client.get("/api/quality/predictive-alerts").status_code == 403
