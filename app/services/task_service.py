"""
task_service.py — Work task state machine.

    pending → assigned → in_progress → completed
                                     ↘ failed_qc (QC fail)

Business Rules:
- Only the assignee can start or complete a task
- Start requires pending or assigned; complete requires in_progress
- Assigning a worker sets status assigned; unassigning returns to pending
- Assignees must exist and be active
- QC can only be submitted on qc / quality_check stage tasks
- QC fail marks the task failed_qc, bumps rework_count and records a quality pattern
- Worker queues exclude completed tasks, urgent first, then oldest first

Called by: routers/tasks.py, services/workflow_service.py
Depends on: models, services/quality_service.py (record_pattern_occurrence)
"""

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import case
from sqlalchemy.orm import Session

from ..models import OrderItem, QcResult, Worker, WorkBatch, WorkLog, WorkTask
from ..utils import iso, minutes_between
from .quality_service import record_pattern_occurrence

TASK_STATUSES = ("pending", "assigned", "in_progress", "completed", "failed_qc")
PRIORITIES = ("low", "normal", "high", "urgent")
QC_STAGES = ("qc", "quality_check")

_PRIORITY_RANK = case(
    (WorkTask.priority == "urgent", 0),
    (WorkTask.priority == "high", 1),
    (WorkTask.priority == "normal", 2),
    else_=3,
)


def task_to_dict(t: WorkTask) -> dict:
    item = t.order_item
    return {
        "id": t.id,
        "task_type": t.task_type,
        "stage": t.stage,
        "task_description": t.task_description,
        "status": t.status,
        "priority": t.priority,
        "estimated_hours": t.estimated_hours,
        "actual_hours": t.actual_hours,
        "notes": t.notes,
        "rework_count": t.rework_count or 0,
        "quality_score": t.quality_score,
        "order_item_id": t.order_item_id,
        "batch_id": t.batch_id,
        "assigned_to": (
            {"id": t.assigned_to.id, "name": t.assigned_to.name} if t.assigned_to else None
        ),
        "order_item": (
            {
                "id": item.id,
                "product_name": item.product_name,
                "variant_title": item.variant_title,
                "quantity": item.quantity,
                "order_number": item.order.order_number if item.order else None,
                "customer_name": item.order.customer_name if item.order else None,
            }
            if item
            else None
        ),
        "due_date": iso(t.due_date),
        "assigned_at": iso(t.assigned_at),
        "started_at": iso(t.started_at),
        "completed_at": iso(t.completed_at),
        "created_at": iso(t.created_at),
    }


def _active_worker(db: Session, worker_id: int) -> Worker | None:
    w = db.get(Worker, worker_id)
    if not w or not w.is_active:
        return None
    return w


# ── Listing ──────────────────────────────────────────────────────────


def list_tasks(db: Session, status: str | None = None, assigned_to: int | None = None,
               batch_id: int | None = None, stage: str | None = None,
               limit: int = 200) -> list[dict]:
    q = db.query(WorkTask)
    if status:
        q = q.filter(WorkTask.status == status)
    if assigned_to:
        q = q.filter(WorkTask.assigned_to_id == assigned_to)
    if batch_id:
        q = q.filter(WorkTask.batch_id == batch_id)
    if stage:
        q = q.filter(WorkTask.stage == stage)
    tasks = q.order_by(WorkTask.created_at.desc()).limit(limit).all()
    return [task_to_dict(t) for t in tasks]


def worker_queue(db: Session, worker_id: int) -> list[dict]:
    tasks = (
        db.query(WorkTask)
        .filter(WorkTask.assigned_to_id == worker_id, WorkTask.status != "completed")
        .order_by(_PRIORITY_RANK, WorkTask.created_at.asc())
        .all()
    )
    return [task_to_dict(t) for t in tasks]


# ── Create / assign ──────────────────────────────────────────────────


def create_task(db: Session, body: dict, creator: Worker) -> dict:
    if not body.get("task_type") or not body.get("order_item_id"):
        return {"error": "task_type and order_item_id are required", "status": 400}
    priority = body.get("priority") or "normal"
    if priority not in PRIORITIES:
        return {"error": f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}", "status": 400}
    if not db.get(OrderItem, body["order_item_id"]):
        return {"error": "Order item not found", "status": 404}
    if body.get("batch_id") and not db.get(WorkBatch, body["batch_id"]):
        return {"error": "Batch not found", "status": 404}

    task = WorkTask(
        task_type=body["task_type"],
        stage=body.get("stage") or body["task_type"],
        task_description=body.get("task_description"),
        order_item_id=body["order_item_id"],
        batch_id=body.get("batch_id"),
        priority=priority,
        estimated_hours=body.get("estimated_hours"),
        due_date=body.get("due_date"),
        notes=body.get("notes"),
        status="pending",
        assigned_by_id=creator.id,
    )
    assignee_id = body.get("assigned_to_id")
    if assignee_id:
        if not _active_worker(db, assignee_id):
            return {"error": "Worker not found or inactive", "status": 400}
        task.assigned_to_id = assignee_id
        task.assigned_at = datetime.now(timezone.utc)
        task.status = "assigned"
    db.add(task)
    db.commit()
    logger.info("Task #{} ({}) created by {}", task.id, task.task_type, creator.email)
    return task_to_dict(task)


def assign_task(db: Session, task_id: int, worker_id: int | None, assigner: Worker) -> dict:
    task = db.get(WorkTask, task_id)
    if not task:
        return {"error": "Task not found", "status": 404}
    if task.status in ("in_progress", "completed"):
        return {"error": f"Cannot reassign a task that is {task.status}", "status": 400}

    if worker_id:
        if not _active_worker(db, worker_id):
            return {"error": "Worker not found or inactive", "status": 400}
        task.assigned_to_id = worker_id
        task.assigned_by_id = assigner.id
        task.assigned_at = datetime.now(timezone.utc)
        task.status = "assigned"
        task.manual_assignment = True
    else:
        task.assigned_to_id = None
        task.assigned_at = None
        task.status = "pending"
    db.commit()
    logger.info("Task #{} assigned to {} by {}", task.id, worker_id or "nobody", assigner.email)
    return task_to_dict(task)


def assign_bulk(db: Session, body: dict, assigner: Worker) -> dict:
    item_ids = body.get("order_item_ids") or []
    worker_id = body.get("worker_id")
    stage = body.get("stage")
    if not item_ids or not worker_id or not stage:
        return {"error": "order_item_ids, worker_id and stage are required", "status": 400}

    found = {i.id for i in db.query(OrderItem).filter(OrderItem.id.in_(item_ids)).all()}
    missing = [i for i in item_ids if i not in found]
    if missing:
        return {"error": f"Order items not found: {missing}", "status": 400}
    if not _active_worker(db, worker_id):
        return {"error": "Worker not found or inactive", "status": 400}

    status = body.get("status") or "assigned"
    if status not in ("pending", "assigned"):
        return {"error": "status must be pending or assigned", "status": 400}
    now = datetime.now(timezone.utc)
    tasks = []
    for item_id in item_ids:
        task = WorkTask(
            order_item_id=item_id,
            task_type=stage,
            stage=stage,
            task_description=body.get("task_description") or f"{stage.replace('_', ' ').title()} task",
            assigned_to_id=worker_id,
            assigned_by_id=assigner.id,
            assigned_at=now,
            status=status,
            priority=body.get("priority") or "normal",
            estimated_hours=body.get("estimated_hours") or 2.0,
            notes=body.get("notes"),
        )
        db.add(task)
        tasks.append(task)
    db.commit()
    logger.info("{} {} tasks bulk-assigned to worker #{} by {}",
                len(tasks), stage, worker_id, assigner.email)
    return {"success": True, "count": len(tasks), "tasks": [task_to_dict(t) for t in tasks]}


# ── Worker actions ───────────────────────────────────────────────────


def start_task(db: Session, task_id: int, worker: Worker) -> dict:
    task = db.get(WorkTask, task_id)
    if not task:
        return {"error": "Task not found", "status": 404}
    if task.assigned_to_id != worker.id:
        return {"error": "Task is not assigned to you", "status": 403}
    if task.status not in ("pending", "assigned"):
        return {"error": f"Task cannot be started from status {task.status}", "status": 400}

    now = datetime.now(timezone.utc)
    task.status = "in_progress"
    task.started_at = now
    if not task.assigned_at:
        task.assigned_at = now
    db.add(WorkLog(task_id=task.id, worker_id=worker.id, log_type="start"))
    db.commit()
    logger.info("Task #{} started by {}", task.id, worker.email)
    return task_to_dict(task)


def complete_task(db: Session, task_id: int, worker: Worker, notes: str | None = None) -> dict:
    task = db.get(WorkTask, task_id)
    if not task:
        return {"error": "Task not found", "status": 404}
    if task.assigned_to_id != worker.id:
        return {"error": "Task is not assigned to you", "status": 403}
    if task.status != "in_progress":
        return {"error": "Task must be in progress to complete", "status": 400}

    now = datetime.now(timezone.utc)
    started = task.started_at or task.assigned_at or now
    minutes = minutes_between(started, now)
    task.status = "completed"
    task.completed_at = now
    task.actual_hours = round(minutes / 60, 2)
    if notes:
        task.notes = f"{task.notes}\n{notes}" if task.notes else notes
    db.add(WorkLog(task_id=task.id, worker_id=worker.id, log_type="complete",
                   time_spent_minutes=minutes, notes=notes))
    db.commit()
    logger.info("Task #{} completed by {} in {} min", task.id, worker.email, minutes)
    return task_to_dict(task)


def submit_qc(db: Session, task_id: int, worker: Worker, results: dict,
              overall_status: str, notes: str | None = None) -> dict:
    task = db.get(WorkTask, task_id)
    if not task:
        return {"error": "Task not found", "status": 404}
    if task.stage not in QC_STAGES and task.task_type not in QC_STAGES:
        return {"error": "QC can only be submitted for quality check tasks", "status": 400}
    if overall_status not in ("pass", "fail"):
        return {"error": "overall_status must be pass or fail", "status": 400}
    if task.status in ("completed", "failed_qc"):
        return {"error": f"Task is already {task.status}", "status": 400}

    qc = QcResult(task_id=task.id, worker_id=worker.id, results=results or {},
                  overall_status=overall_status, inspector_notes=notes)
    db.add(qc)

    now = datetime.now(timezone.utc)
    if overall_status == "pass":
        task.status = "completed"
        task.completed_at = now
        task.quality_score = 100
    else:
        task.status = "failed_qc"
        task.rework_count = (task.rework_count or 0) + 1
        failed = [k for k, v in (results or {}).items() if v in (False, "fail", "failed")]
        item = task.order_item
        record_pattern_occurrence(
            db,
            stage=task.stage or "qc",
            issue_type=failed[0] if failed else "qc_failure",
            cause=notes,
            model=item.product_name if item else None,
            material=item.headphone_material if item else None,
        )
    db.commit()
    logger.info("QC {} for task #{} by {}", overall_status, task.id, worker.email)
    return {
        "success": True,
        "message": "QC passed" if overall_status == "pass" else "QC failed",
        "qc_result_id": qc.id,
        "task": task_to_dict(task),
    }
