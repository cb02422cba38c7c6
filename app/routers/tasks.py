"""
routers/tasks.py — Work task routes: create, assign, start, complete, QC

Business Rules:
- Supervisors create and assign; the assignee starts and completes
- Workers can only read their own queue
- QC submissions are limited to qc / quality_check stage tasks

Called by: main.py (router mount)
Depends on: services/task_service, services/order_service
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import can_view_worker, require_supervisor, require_worker, unwrap
from ..models import Worker
from ..schemas.production import QcSubmit, TaskAssign, TaskBulkAssign, TaskComplete, TaskCreate
from ..schemas.responses import TaskOut
from ..services import task_service
from ..services.order_service import order_items_with_tasks

router = APIRouter(tags=["tasks"])


@router.get("/api/tasks")
def list_tasks(
    status: str | None = None,
    assigned_to: int | None = None,
    batch_id: int | None = None,
    stage: str | None = None,
    limit: int = Query(200, ge=1, le=1000),
    user: Worker = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    return {"tasks": task_service.list_tasks(db, status, assigned_to, batch_id, stage, limit)}


@router.post("/api/tasks", response_model=TaskOut, status_code=201)
def create_task(body: TaskCreate, user: Worker = Depends(require_supervisor),
                db: Session = Depends(get_db)):
    return unwrap(task_service.create_task(db, body.model_dump(), user))


@router.get("/api/tasks/order-items")
def list_order_items(user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return {"items": order_items_with_tasks(db)}


@router.post("/api/tasks/assign")
def assign_task(body: TaskAssign, user: Worker = Depends(require_supervisor),
                db: Session = Depends(get_db)):
    return unwrap(task_service.assign_task(db, body.task_id, body.worker_id, user))


@router.post("/api/tasks/assign-bulk", status_code=201)
def assign_bulk(body: TaskBulkAssign, user: Worker = Depends(require_supervisor),
                db: Session = Depends(get_db)):
    return unwrap(task_service.assign_bulk(db, body.model_dump(), user))


@router.get("/api/tasks/worker/{worker_id}")
def worker_tasks(worker_id: int, user: Worker = Depends(require_worker),
                 db: Session = Depends(get_db)):
    if not can_view_worker(user, worker_id):
        raise HTTPException(403, "You can only view your own tasks")
    return {"tasks": task_service.worker_queue(db, worker_id)}


@router.post("/api/tasks/{task_id}/start", response_model=TaskOut)
def start_task(task_id: int, user: Worker = Depends(require_worker),
               db: Session = Depends(get_db)):
    return unwrap(task_service.start_task(db, task_id, user))


@router.post("/api/tasks/{task_id}/complete", response_model=TaskOut)
def complete_task(task_id: int, body: TaskComplete | None = None,
                  user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return unwrap(task_service.complete_task(db, task_id, user, body.notes if body else None))


@router.post("/api/tasks/{task_id}/qc")
def submit_qc(task_id: int, body: QcSubmit, user: Worker = Depends(require_worker),
              db: Session = Depends(get_db)):
    return unwrap(
        task_service.submit_qc(db, task_id, user, body.results, body.overall_status, body.notes)
    )
