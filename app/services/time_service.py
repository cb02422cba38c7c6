"""
time_service.py — Start/stop timers per worker.

Business Rules:
- At most one open timer (end_time IS NULL) per worker
- A timer tied to a task requires the task to be assigned to the caller
- Stopping computes duration_minutes (floored); stopping twice is a 400
- Workers see only their own timers; supervisors see everyone's

Called by: routers/time_tracking.py
Depends on: models (TimeLog, WorkTask, WorkBatch)
"""

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from ..models import TimeLog, WorkBatch, Worker, WorkTask
from ..utils import iso, minutes_between


def time_log_to_dict(t: TimeLog) -> dict:
    return {
        "id": t.id,
        "worker_id": t.worker_id,
        "worker_name": t.worker.name if t.worker else None,
        "task_id": t.task_id,
        "batch_id": t.batch_id,
        "stage": t.stage,
        "start_time": iso(t.start_time),
        "end_time": iso(t.end_time),
        "duration_minutes": t.duration_minutes,
        "notes": t.notes,
        "is_active": t.end_time is None,
    }


def _open_timer(db: Session, worker_id: int) -> TimeLog | None:
    return (
        db.query(TimeLog)
        .filter(TimeLog.worker_id == worker_id, TimeLog.end_time.is_(None))
        .order_by(TimeLog.start_time.desc())
        .first()
    )


def start_timer(db: Session, worker: Worker, stage: str, task_id: int | None = None,
                batch_id: int | None = None, notes: str | None = None) -> dict:
    if not stage:
        return {"error": "stage is required", "status": 400}
    if task_id:
        task = db.get(WorkTask, task_id)
        if not task:
            return {"error": "Task not found", "status": 404}
        if task.assigned_to_id != worker.id:
            return {"error": "Task is not assigned to you", "status": 403}
        batch_id = batch_id or task.batch_id
    if batch_id and not db.get(WorkBatch, batch_id):
        return {"error": "Batch not found", "status": 404}
    if _open_timer(db, worker.id):
        return {
            "error": "You already have an active timer. Stop it first before starting a new one.",
            "status": 400,
        }

    entry = TimeLog(
        worker_id=worker.id,
        task_id=task_id,
        batch_id=batch_id,
        stage=stage,
        start_time=datetime.now(timezone.utc),
        notes=notes,
    )
    db.add(entry)
    db.commit()
    logger.info("Timer #{} started by {} on {}", entry.id, worker.email, stage)
    return time_log_to_dict(entry)


def stop_timer(db: Session, worker: Worker, time_log_id: int | None = None) -> dict:
    if time_log_id:
        entry = db.get(TimeLog, time_log_id)
        if not entry or entry.worker_id != worker.id:
            return {"error": "Time log not found", "status": 404}
    else:
        entry = _open_timer(db, worker.id)
        if not entry:
            return {"error": "No active timer found", "status": 404}
    if entry.end_time is not None:
        return {"error": "Timer already stopped", "status": 400}

    entry.end_time = datetime.now(timezone.utc)
    entry.duration_minutes = minutes_between(entry.start_time, entry.end_time)
    db.commit()
    logger.info("Timer #{} stopped by {} after {} min", entry.id, worker.email,
                entry.duration_minutes)
    return time_log_to_dict(entry)


def current_timer(db: Session, worker_id: int) -> dict | None:
    entry = _open_timer(db, worker_id)
    if not entry:
        return None
    data = time_log_to_dict(entry)
    data["elapsed_minutes"] = minutes_between(entry.start_time, datetime.now(timezone.utc))
    return data


def batch_time_summary(db: Session, batch_id: int, viewer: Worker,
                       worker_id: int | None = None, include_active: bool = True) -> dict:
    if not db.get(WorkBatch, batch_id):
        return {"error": "Batch not found", "status": 404}

    q = db.query(TimeLog).filter(TimeLog.batch_id == batch_id)
    if viewer.role not in ("supervisor", "manager"):
        q = q.filter(TimeLog.worker_id == viewer.id)
    elif worker_id:
        q = q.filter(TimeLog.worker_id == worker_id)
    if not include_active:
        q = q.filter(TimeLog.end_time.isnot(None))
    logs = q.order_by(TimeLog.start_time.desc()).all()

    completed = [t for t in logs if t.end_time is not None]
    total_minutes = sum(t.duration_minutes or 0 for t in completed)
    return {
        "batch_id": batch_id,
        "time_logs": [time_log_to_dict(t) for t in logs],
        "summary": {
            "total_logs": len(logs),
            "completed_logs": len(completed),
            "active_logs": len(logs) - len(completed),
            "total_minutes": total_minutes,
            "total_hours": round(total_minutes / 60, 2),
            "average_minutes_per_log": (
                round(total_minutes / len(completed), 2) if completed else 0
            ),
        },
    }
