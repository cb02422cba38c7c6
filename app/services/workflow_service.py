"""
workflow_service.py — Workflow templates, work batches, stage transitions.

Business Rules:
- A template needs a name, stages and stage_transitions; every stage needs
  "stage" and "name"
- Deleting a template only deactivates it
- Assigning a workflow to a batch moves it to the first stage
- Transition target must be a stage of the workflow (or "pending"), and must
  differ from the current stage
- A batch with an unresolved quality hold cannot transition (409)
- Every transition writes a StageTransition and a WorkflowExecutionLog row
- Generated tasks are skipped for items that already have a task at that stage
  in the batch; auto-assign picks the first active worker qualified for the stage

Called by: routers/workflows.py, routers/batches.py
Depends on: models, services/quality_service.py, services/task_service.py
"""

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from ..models import (
    OrderItem,
    StageTransition,
    WorkBatch,
    Worker,
    WorkerStageAssignment,
    WorkflowExecutionLog,
    WorkflowTemplate,
    WorkTask,
)
from ..utils import iso
from .quality_service import has_active_hold
from .task_service import task_to_dict

BATCH_TYPES = ("model", "wood_type", "custom")


# ── Workflow templates ───────────────────────────────────────────────


def workflow_to_dict(w: WorkflowTemplate) -> dict:
    return {
        "id": w.id,
        "name": w.name,
        "description": w.description,
        "stages": w.stages or [],
        "stage_transitions": w.stage_transitions or [],
        "trigger_rules": w.trigger_rules or {},
        "is_active": bool(w.is_active),
        "is_default": bool(w.is_default),
        "created_at": iso(w.created_at),
    }


def _validate_workflow(body: dict) -> str | None:
    if not body.get("name") or not body.get("stages") or body.get("stage_transitions") is None:
        return "name, stages and stage_transitions are required"
    for s in body["stages"]:
        if not isinstance(s, dict) or not s.get("stage") or not s.get("name"):
            return "Each stage needs a stage and a name"
    return None


def list_workflows(db: Session, include_inactive: bool = False) -> list[dict]:
    q = db.query(WorkflowTemplate)
    if not include_inactive:
        q = q.filter(WorkflowTemplate.is_active.is_(True))
    return [workflow_to_dict(w) for w in q.order_by(WorkflowTemplate.name).all()]


def get_workflow(db: Session, workflow_id: int) -> dict:
    w = db.get(WorkflowTemplate, workflow_id)
    if not w:
        return {"error": "Workflow not found", "status": 404}
    return workflow_to_dict(w)


def create_workflow(db: Session, body: dict, creator: Worker) -> dict:
    err = _validate_workflow(body)
    if err:
        return {"error": err, "status": 400}
    w = WorkflowTemplate(
        name=body["name"],
        description=body.get("description"),
        stages=list(body["stages"]),
        stage_transitions=list(body["stage_transitions"]),
        trigger_rules=body.get("trigger_rules") or {},
        is_default=bool(body.get("is_default")),
        created_by_id=creator.id,
    )
    db.add(w)
    db.commit()
    logger.info("Workflow #{} '{}' created by {}", w.id, w.name, creator.email)
    return workflow_to_dict(w)


def update_workflow(db: Session, workflow_id: int, body: dict) -> dict:
    w = db.get(WorkflowTemplate, workflow_id)
    if not w:
        return {"error": "Workflow not found", "status": 404}
    merged = {
        "name": body.get("name", w.name),
        "stages": body.get("stages", w.stages),
        "stage_transitions": body.get("stage_transitions", w.stage_transitions),
    }
    err = _validate_workflow(merged)
    if err:
        return {"error": err, "status": 400}
    w.name = merged["name"]
    w.stages = list(merged["stages"])
    w.stage_transitions = list(merged["stage_transitions"])
    for field in ("description", "trigger_rules", "is_active", "is_default"):
        if field in body:
            setattr(w, field, body[field])
    db.commit()
    return workflow_to_dict(w)


def deactivate_workflow(db: Session, workflow_id: int) -> dict:
    w = db.get(WorkflowTemplate, workflow_id)
    if not w:
        return {"error": "Workflow not found", "status": 404}
    w.is_active = False
    db.commit()
    logger.info("Workflow #{} deactivated", w.id)
    return {"ok": True}


def duplicate_workflow(db: Session, workflow_id: int, creator: Worker) -> dict:
    src = db.get(WorkflowTemplate, workflow_id)
    if not src:
        return {"error": "Workflow not found", "status": 404}
    copy = WorkflowTemplate(
        name=f"Copy of {src.name}",
        description=src.description,
        stages=[dict(s) for s in src.stages or []],
        stage_transitions=[dict(t) for t in src.stage_transitions or []],
        trigger_rules=dict(src.trigger_rules or {}),
        is_default=False,
        created_by_id=creator.id,
    )
    db.add(copy)
    db.commit()
    return workflow_to_dict(copy)


def preview_workflow(db: Session, workflow_id: int) -> dict:
    w = db.get(WorkflowTemplate, workflow_id)
    if not w:
        return {"error": "Workflow not found", "status": 404}
    stages = []
    for i, s in enumerate(w.stages or [], start=1):
        stages.append({
            "order": i,
            "stage": s.get("stage"),
            "name": s.get("name"),
            "estimated_hours": s.get("estimated_hours") or 0,
            "is_optional": bool(s.get("is_optional")),
            "next": next(
                (t.get("to_stage") for t in w.stage_transitions or []
                 if t.get("from_stage") == s.get("stage")),
                None,
            ),
        })
    return {
        "workflow": {"id": w.id, "name": w.name},
        "stages": stages,
        "total_stages": len(stages),
        "total_estimated_hours": round(sum(float(s["estimated_hours"]) for s in stages), 2),
    }


# ── Batches ──────────────────────────────────────────────────────────


def batch_to_dict(b: WorkBatch, with_tasks: bool = False) -> dict:
    data = {
        "id": b.id,
        "name": b.name,
        "batch_type": b.batch_type,
        "criteria": b.criteria or {},
        "order_item_ids": b.order_item_ids or [],
        "item_count": len(b.order_item_ids or []),
        "workflow_template_id": b.workflow_template_id,
        "workflow_name": b.workflow_template.name if b.workflow_template else None,
        "current_stage": b.current_stage,
        "status": b.status,
        "quality_hold_id": b.quality_hold_id,
        "first_pass_yield": b.first_pass_yield,
        "created_at": iso(b.created_at),
    }
    if with_tasks:
        data["tasks"] = [task_to_dict(t) for t in b.tasks]
    return data


def list_batches(db: Session, status: str | None = None) -> list[dict]:
    q = db.query(WorkBatch)
    if status:
        q = q.filter(WorkBatch.status == status)
    return [batch_to_dict(b) for b in q.order_by(WorkBatch.created_at.desc()).all()]


def get_batch(db: Session, batch_id: int) -> dict:
    b = db.get(WorkBatch, batch_id)
    if not b:
        return {"error": "Batch not found", "status": 404}
    return batch_to_dict(b, with_tasks=True)


def create_batch(db: Session, body: dict) -> dict:
    name = (body.get("name") or "").strip()
    batch_type = body.get("batch_type")
    item_ids = body.get("order_item_ids") or []
    if not name or not batch_type or not item_ids:
        return {"error": "name, batch_type and order_item_ids are required", "status": 400}
    if batch_type not in BATCH_TYPES:
        return {"error": f"batch_type must be one of: {', '.join(BATCH_TYPES)}", "status": 400}
    found = {i.id for i in db.query(OrderItem).filter(OrderItem.id.in_(item_ids)).all()}
    missing = [i for i in item_ids if i not in found]
    if missing:
        return {"error": f"Order items not found: {missing}", "status": 400}

    workflow = None
    if body.get("workflow_template_id"):
        workflow = db.get(WorkflowTemplate, body["workflow_template_id"])
        if not workflow:
            return {"error": "Workflow not found", "status": 404}

    batch = WorkBatch(
        name=name,
        batch_type=batch_type,
        criteria=body.get("criteria") or {},
        order_item_ids=list(item_ids),
        workflow_template_id=workflow.id if workflow else None,
        current_stage="pending",
        status="pending",
    )
    db.add(batch)
    db.commit()
    logger.info("Batch #{} '{}' created with {} items", batch.id, name, len(item_ids))
    return batch_to_dict(batch)


def assign_workflow(db: Session, batch_id: int, workflow_id: int) -> dict:
    batch = db.get(WorkBatch, batch_id)
    if not batch:
        return {"error": "Batch not found", "status": 404}
    workflow = db.get(WorkflowTemplate, workflow_id)
    if not workflow or not workflow.is_active:
        return {"error": "Workflow not found", "status": 404}
    names = workflow.stage_names()
    batch.workflow_template_id = workflow.id
    batch.current_stage = names[0] if names else "pending"
    db.commit()
    return batch_to_dict(batch)


def _auto_assignee(db: Session, stage: str) -> Worker | None:
    return (
        db.query(Worker)
        .join(WorkerStageAssignment, WorkerStageAssignment.worker_id == Worker.id)
        .filter(
            WorkerStageAssignment.stage == stage,
            WorkerStageAssignment.is_active.is_(True),
            Worker.is_active.is_(True),
        )
        .order_by(WorkerStageAssignment.created_at.asc())
        .first()
    )


def _create_stage_tasks(db: Session, batch: WorkBatch, stage_def: dict,
                        actor: Worker, auto_assign: bool) -> list[WorkTask]:
    stage = stage_def["stage"]
    assignee = _auto_assignee(db, stage) if auto_assign else None
    now = datetime.now(timezone.utc)
    created = []
    for item_id in batch.order_item_ids or []:
        exists = (
            db.query(WorkTask)
            .filter(WorkTask.batch_id == batch.id, WorkTask.order_item_id == item_id,
                    WorkTask.stage == stage)
            .first()
        )
        if exists:
            continue
        description = stage_def.get("description") or ""
        task = WorkTask(
            task_type=stage,
            stage=stage,
            task_description=f"{stage_def.get('name', stage)}: {description}".rstrip(": "),
            order_item_id=item_id,
            batch_id=batch.id,
            workflow_template_id=batch.workflow_template_id,
            estimated_hours=stage_def.get("estimated_hours"),
            priority="normal",
            status="assigned" if assignee else "pending",
            assigned_to_id=assignee.id if assignee else None,
            assigned_at=now if assignee else None,
            assigned_by_id=actor.id,
            auto_generated=True,
            manual_assignment=not auto_assign,
        )
        db.add(task)
        created.append(task)
    return created


def transition_batch(db: Session, batch_id: int, body: dict, actor: Worker) -> dict:
    to_stage = body.get("to_stage")
    if not to_stage:
        return {"error": "to_stage is required", "status": 400}
    batch = db.get(WorkBatch, batch_id)
    if not batch:
        return {"error": "Batch not found", "status": 404}
    if has_active_hold(db, batch.id):
        return {"error": "Batch is on quality hold", "status": 409}

    workflow = batch.workflow_template
    stage_def = workflow.find_stage(to_stage) if workflow else None
    if to_stage != "pending" and not stage_def:
        return {"error": f"Stage '{to_stage}' is not part of this workflow", "status": 400}
    if batch.current_stage == to_stage:
        return {"error": f"Batch is already at stage '{to_stage}'", "status": 400}

    from_stage = batch.current_stage
    batch.current_stage = to_stage
    batch.status = "active"
    db.add(StageTransition(
        batch_id=batch.id,
        workflow_template_id=batch.workflow_template_id,
        from_stage=from_stage,
        to_stage=to_stage,
        transition_type=body.get("transition_type") or "manual",
        transitioned_by_id=actor.id,
        notes=body.get("notes"),
    ))
    db.add(WorkflowExecutionLog(
        workflow_template_id=batch.workflow_template_id,
        batch_id=batch.id,
        stage=to_stage,
        action="stage_transition",
        action_details={"from_stage": from_stage, "to_stage": to_stage,
                        "notes": body.get("notes")},
        executed_by_id=actor.id,
    ))

    created = []
    if body.get("create_tasks") and stage_def:
        created = _create_stage_tasks(db, batch, stage_def, actor, bool(body.get("auto_assign")))
    db.commit()
    logger.info("Batch #{} moved {} -> {} by {} ({} tasks)",
                batch.id, from_stage, to_stage, actor.email, len(created))
    return {
        "batch": batch_to_dict(batch),
        "from_stage": from_stage,
        "to_stage": to_stage,
        "tasks_created": len(created),
    }


def generate_tasks(db: Session, batch_id: int, body: dict, actor: Worker) -> dict:
    batch = db.get(WorkBatch, batch_id)
    if not batch:
        return {"error": "Batch not found", "status": 404}
    if not batch.workflow_template:
        return {"error": "Batch has no workflow assigned", "status": 400}
    stage = body.get("stage") or batch.current_stage
    stage_def = batch.workflow_template.find_stage(stage) if stage else None
    if not stage_def:
        return {"error": f"Stage '{stage}' is not part of this workflow", "status": 400}

    created = _create_stage_tasks(db, batch, stage_def, actor, bool(body.get("auto_assign")))
    db.commit()
    logger.info("Generated {} {} tasks for batch #{}", len(created), stage, batch.id)
    return {"tasks_created": len(created), "tasks": [task_to_dict(t) for t in created]}


# ── Stage assignments ────────────────────────────────────────────────


def stage_assignment_to_dict(a: WorkerStageAssignment) -> dict:
    return {
        "id": a.id,
        "worker_id": a.worker_id,
        "worker_name": a.worker.name if a.worker else None,
        "stage": a.stage,
        "skill_level": a.skill_level,
        "is_active": bool(a.is_active),
    }


def list_stage_assignments(db: Session, stage: str | None = None,
                           worker_id: int | None = None) -> list[dict]:
    q = db.query(WorkerStageAssignment).filter(WorkerStageAssignment.is_active.is_(True))
    if stage:
        q = q.filter(WorkerStageAssignment.stage == stage)
    if worker_id:
        q = q.filter(WorkerStageAssignment.worker_id == worker_id)
    return [stage_assignment_to_dict(a) for a in q.order_by(WorkerStageAssignment.stage).all()]


def create_stage_assignment(db: Session, body: dict, manager: Worker) -> dict:
    worker_id = body.get("worker_id")
    stage = body.get("stage")
    if not worker_id or not stage:
        return {"error": "worker_id and stage are required", "status": 400}
    if not db.get(Worker, worker_id):
        return {"error": "Worker not found", "status": 404}
    existing = (
        db.query(WorkerStageAssignment)
        .filter(WorkerStageAssignment.worker_id == worker_id, WorkerStageAssignment.stage == stage)
        .first()
    )
    if existing:
        existing.is_active = True
        existing.skill_level = body.get("skill_level") or existing.skill_level
        assignment = existing
    else:
        assignment = WorkerStageAssignment(
            worker_id=worker_id,
            stage=stage,
            skill_level=body.get("skill_level") or "intermediate",
            assigned_by_id=manager.id,
        )
        db.add(assignment)
    db.commit()
    return stage_assignment_to_dict(assignment)


def deactivate_stage_assignment(db: Session, assignment_id: int) -> dict:
    a = db.get(WorkerStageAssignment, assignment_id)
    if not a:
        return {"error": "Stage assignment not found", "status": 404}
    a.is_active = False
    db.commit()
    return {"ok": True}
