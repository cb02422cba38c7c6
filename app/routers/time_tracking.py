"""Time tracking API — start/stop timers and per-batch time summaries."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import can_view_worker, require_worker, unwrap
from ..models import Worker
from ..schemas.production import TimerStart, TimerStop
from ..services import time_service

router = APIRouter(tags=["time"])


@router.post("/api/time/start", status_code=201)
def start_timer(body: TimerStart, user: Worker = Depends(require_worker),
                db: Session = Depends(get_db)):
    return unwrap(
        time_service.start_timer(db, user, body.stage, body.task_id, body.batch_id, body.notes)
    )


@router.post("/api/time/stop")
def stop_timer(body: TimerStop | None = None, user: Worker = Depends(require_worker),
               db: Session = Depends(get_db)):
    return unwrap(time_service.stop_timer(db, user, body.time_log_id if body else None))


@router.get("/api/time/current/{worker_id}")
def current_timer(worker_id: int, user: Worker = Depends(require_worker),
                  db: Session = Depends(get_db)):
    if not can_view_worker(user, worker_id):
        raise HTTPException(403, "You can only view your own timer")
    return {"active_timer": time_service.current_timer(db, worker_id)}


@router.get("/api/time/batch/{batch_id}")
def batch_time(
    batch_id: int,
    worker_id: int | None = None,
    include_active: bool = True,
    user: Worker = Depends(require_worker),
    db: Session = Depends(get_db),
):
    return unwrap(time_service.batch_time_summary(db, batch_id, user, worker_id, include_active))
