"""
tests/test_time_tracking.py -- Tests for services/time_service.py and
routers/time_tracking.py

Covers: one open timer per worker, stop by id or latest, ownership,
elapsed minutes, and the per-batch summary (role scoping, averages).

Called by: pytest
Depends on: app/services/time_service.py, app/routers/time_tracking.py, conftest.py
"""

from datetime import datetime, timedelta, timezone

from app.models import TimeLog, WorkTask


def _closed_log(db, worker, batch, minutes, stage="sanding"):
    start = datetime.now(timezone.utc) - timedelta(minutes=minutes + 10)
    db.add(TimeLog(worker_id=worker.id, batch_id=batch.id, stage=stage, start_time=start,
                   end_time=start + timedelta(minutes=minutes), duration_minutes=minutes))
    db.commit()


def test_start_and_stop(worker_client, db_session, test_worker):
    resp = worker_client.post("/api/time/start", json={"stage": "sanding", "notes": "left cup"})
    assert resp.status_code == 201
    log_id = resp.json()["id"]
    assert resp.json()["is_active"] is True

    entry = db_session.get(TimeLog, log_id)
    entry.start_time = datetime.now(timezone.utc) - timedelta(minutes=25)
    db_session.commit()

    resp = worker_client.post("/api/time/stop", json={})
    assert resp.status_code == 200
    data = resp.json()
    assert data["is_active"] is False
    assert data["duration_minutes"] == 25


def test_second_timer_refused(worker_client):
    worker_client.post("/api/time/start", json={"stage": "sanding"})
    resp = worker_client.post("/api/time/start", json={"stage": "finishing"})
    assert resp.status_code == 400
    assert resp.json()["error"] == (
        "You already have an active timer. Stop it first before starting a new one."
    )


def test_start_requires_stage(worker_client):
    assert worker_client.post("/api/time/start", json={}).status_code == 400


def test_start_on_someone_elses_task(worker_client, db_session, other_worker):
    task = WorkTask(task_type="sanding", assigned_to_id=other_worker.id, status="assigned")
    db_session.add(task)
    db_session.commit()
    resp = worker_client.post("/api/time/start", json={"stage": "sanding", "task_id": task.id})
    assert resp.status_code == 403


def test_start_on_task_inherits_batch(worker_client, db_session, test_worker, test_batch):
    task = WorkTask(task_type="sanding", assigned_to_id=test_worker.id, status="in_progress",
                    batch_id=test_batch.id)
    db_session.add(task)
    db_session.commit()
    resp = worker_client.post("/api/time/start", json={"stage": "sanding", "task_id": task.id})
    assert resp.json()["batch_id"] == test_batch.id


def test_stop_without_timer(worker_client):
    resp = worker_client.post("/api/time/stop")
    assert resp.status_code == 404
    assert resp.json()["error"] == "No active timer found"


def test_stop_other_workers_log(worker_client, db_session, other_worker):
    entry = TimeLog(worker_id=other_worker.id, stage="qc", start_time=datetime.now(timezone.utc))
    db_session.add(entry)
    db_session.commit()
    resp = worker_client.post("/api/time/stop", json={"time_log_id": entry.id})
    assert resp.status_code == 404
    assert resp.json()["error"] == "Time log not found"


def test_stop_already_stopped(worker_client, db_session, test_worker, test_batch):
    _closed_log(db_session, test_worker, test_batch, 30)
    log_id = db_session.query(TimeLog).one().id
    resp = worker_client.post("/api/time/stop", json={"time_log_id": log_id})
    assert resp.status_code == 400


def test_current_timer(worker_client, db_session, test_worker):
    assert worker_client.get(f"/api/time/current/{test_worker.id}").json() == {"active_timer": None}
    db_session.add(TimeLog(worker_id=test_worker.id, stage="qc",
                           start_time=datetime.now(timezone.utc) - timedelta(minutes=12)))
    db_session.commit()
    timer = worker_client.get(f"/api/time/current/{test_worker.id}").json()["active_timer"]
    assert timer["stage"] == "qc"
    assert timer["elapsed_minutes"] == 12


def test_current_timer_other_worker_forbidden(worker_client, other_worker):
    assert worker_client.get(f"/api/time/current/{other_worker.id}").status_code == 403


def test_batch_summary_supervisor_sees_all(supervisor_client, db_session, test_worker,
                                           other_worker, test_batch):
    _closed_log(db_session, test_worker, test_batch, 30)
    _closed_log(db_session, other_worker, test_batch, 45)
    db_session.add(TimeLog(worker_id=other_worker.id, batch_id=test_batch.id, stage="sanding",
                           start_time=datetime.now(timezone.utc)))
    db_session.commit()

    data = supervisor_client.get(f"/api/time/batch/{test_batch.id}").json()
    assert data["summary"] == {
        "total_logs": 3,
        "completed_logs": 2,
        "active_logs": 1,
        "total_minutes": 75,
        "total_hours": 1.25,
        "average_minutes_per_log": 37.5,
    }

    data = supervisor_client.get(f"/api/time/batch/{test_batch.id}",
                                 params={"include_active": False,
                                         "worker_id": other_worker.id}).json()
    assert data["summary"]["total_logs"] == 1
    assert data["summary"]["total_minutes"] == 45


def test_batch_summary_worker_sees_own(worker_client, db_session, test_worker, other_worker,
                                       test_batch):
    _closed_log(db_session, test_worker, test_batch, 30)
    _closed_log(db_session, other_worker, test_batch, 45)
    data = worker_client.get(f"/api/time/batch/{test_batch.id}",
                             params={"worker_id": other_worker.id}).json()
    assert [t["worker_id"] for t in data["time_logs"]] == [test_worker.id]


def test_batch_summary_unknown_batch(worker_client):
    assert worker_client.get("/api/time/batch/999").status_code == 404
