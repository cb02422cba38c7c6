"""
repair_service.py — Repair orders from intake to shipped.

    intake → diagnosed → approved → in_progress → testing → completed → shipped
    (any) → cancelled   (manager only, soft delete)

Business Rules:
- Repair numbers are REP-YYYY-NNNN, sequential within the year
- At least one issue is required at intake
- original_order_number links to an imported order when one matches
- Status changes stamp the matching *_date column
- A completion action moves the repair to testing; repair/fix actions are
  captured in the knowledge base
- One running timer per worker per repair; starting work on an intake,
  diagnosed or approved repair moves it to in_progress and assigns the worker

Called by: routers/repairs.py
Depends on: models (RepairOrder, RepairIssue, RepairAction, RepairPartUsed,
            RepairTimeLog, RepairKnowledgeBase, Order)
"""

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from ..models import (
    Order,
    RepairAction,
    RepairIssue,
    RepairKnowledgeBase,
    RepairOrder,
    RepairPartUsed,
    RepairTimeLog,
    Worker,
)
from ..utils import iso, minutes_between

REPAIR_STATUSES = (
    "intake", "diagnosed", "approved", "in_progress", "testing", "completed", "shipped", "cancelled",
)
REPAIR_SOURCES = ("customer", "internal")
ORDER_TYPES = ("customer_return", "warranty", "internal_qc")
REPAIR_TYPES = ("production", "finishing", "sonic")
PRIORITIES = ("standard", "rush")
ISSUE_SEVERITIES = ("cosmetic", "functional", "critical")

_STATUS_DATES = {
    "diagnosed": "diagnosed_date",
    "approved": "approved_date",
    "in_progress": "started_date",
    "completed": "completed_date",
    "shipped": "shipped_date",
}
_TIMER_STARTS_WORK = ("intake", "diagnosed", "approved")


# ── Serialization ────────────────────────────────────────────────────


def _issue_to_dict(i: RepairIssue) -> dict:
    return {"id": i.id, "category": i.category, "specific_issue": i.specific_issue,
            "severity": i.severity, "discovered_at": iso(i.discovered_at)}


def _action_to_dict(a: RepairAction) -> dict:
    return {
        "id": a.id,
        "action_type": a.action_type,
        "action_description": a.action_description,
        "performed_by": a.performed_by.name if a.performed_by else None,
        "time_spent_minutes": a.time_spent_minutes,
        "completed_at": iso(a.completed_at),
        "parts_used": [
            {"part_name": p.part_name, "part_number": p.part_number,
             "quantity": p.quantity, "unit_cost": p.unit_cost}
            for p in a.parts_used
        ],
    }


def _time_log_to_dict(t: RepairTimeLog) -> dict:
    return {
        "id": t.id,
        "worker_id": t.worker_id,
        "worker_name": t.worker.name if t.worker else None,
        "start_time": iso(t.start_time),
        "end_time": iso(t.end_time),
        "duration_minutes": t.duration_minutes,
        "work_description": t.work_description,
    }


def repair_to_dict(r: RepairOrder, detail: bool = False) -> dict:
    data = {
        "id": r.id,
        "repair_number": r.repair_number,
        "repair_source": r.repair_source,
        "order_type": r.order_type,
        "original_order_id": r.original_order_id,
        "original_order_number": r.original_order_number,
        "customer_name": r.customer_name,
        "customer_email": r.customer_email,
        "customer_phone": r.customer_phone,
        "model": r.model,
        "serial_number": r.serial_number,
        "wood_type": r.wood_type,
        "status": r.status,
        "priority": r.priority,
        "repair_type": r.repair_type,
        "location": r.location,
        "estimated_cost": r.estimated_cost,
        "final_cost": r.final_cost,
        "customer_approved": r.customer_approved,
        "assigned_to": (
            {"id": r.assigned_to.id, "name": r.assigned_to.name} if r.assigned_to else None
        ),
        "received_date": iso(r.received_date),
        "diagnosed_date": iso(r.diagnosed_date),
        "approved_date": iso(r.approved_date),
        "started_date": iso(r.started_date),
        "completed_date": iso(r.completed_date),
        "shipped_date": iso(r.shipped_date),
        "customer_note": r.customer_note,
        "issues": [_issue_to_dict(i) for i in r.issues],
        "totalTimeSpent": sum(t.duration_minutes or 0 for t in r.time_logs),
        "created_at": iso(r.created_at),
    }
    if detail:
        data["internal_notes"] = r.internal_notes
        data["actions"] = [_action_to_dict(a) for a in r.actions]
        data["time_logs"] = [_time_log_to_dict(t) for t in r.time_logs]
    return data


# ── Numbering ────────────────────────────────────────────────────────


def next_repair_number(db: Session, year: int | None = None) -> str:
    year = year or datetime.now(timezone.utc).year
    prefix = f"REP-{year}-"
    last = (
        db.query(RepairOrder.repair_number)
        .filter(RepairOrder.repair_number.like(f"{prefix}%"))
        .order_by(RepairOrder.repair_number.desc())
        .first()
    )
    seq = int(last[0].rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{seq:04d}"


# ── CRUD ─────────────────────────────────────────────────────────────


def list_repairs(db: Session, worker: Worker, status: str | None = None,
                 assigned_to_me: bool = False, repair_type: str | None = None,
                 priority: str | None = None) -> list[dict]:
    q = db.query(RepairOrder)
    if status:
        q = q.filter(RepairOrder.status == status)
    if assigned_to_me:
        q = q.filter(RepairOrder.assigned_to_id == worker.id)
    if repair_type:
        q = q.filter(RepairOrder.repair_type == repair_type)
    if priority:
        q = q.filter(RepairOrder.priority == priority)
    return [repair_to_dict(r) for r in q.order_by(RepairOrder.created_at.desc()).all()]


def get_repair(db: Session, repair_id: int) -> dict:
    r = db.get(RepairOrder, repair_id)
    if not r:
        return {"error": "Repair not found", "status": 404}
    return repair_to_dict(r, detail=True)


def create_repair(db: Session, body: dict, creator: Worker) -> dict:
    for field in ("customer_name", "customer_email", "model", "repair_source",
                  "order_type", "repair_type"):
        if not body.get(field):
            return {"error": f"{field} is required", "status": 400}
    if body["repair_source"] not in REPAIR_SOURCES:
        return {"error": "Invalid repair_source", "status": 400}
    if body["order_type"] not in ORDER_TYPES:
        return {"error": "Invalid order_type", "status": 400}
    if body["repair_type"] not in REPAIR_TYPES:
        return {"error": "Invalid repair_type", "status": 400}
    priority = body.get("priority") or "standard"
    if priority not in PRIORITIES:
        return {"error": "Invalid priority", "status": 400}
    issues = body.get("issues") or []
    if not issues:
        return {"error": "At least one issue is required", "status": 400}
    for issue in issues:
        if not issue.get("category") or not issue.get("specific_issue") \
                or issue.get("severity") not in ISSUE_SEVERITIES:
            return {"error": "Each issue needs category, specific_issue and a valid severity",
                    "status": 400}

    original_order = None
    order_number = (body.get("original_order_number") or "").strip().lstrip("#")
    if order_number:
        original_order = db.query(Order).filter(Order.order_number == order_number).first()

    repair = RepairOrder(
        repair_number=next_repair_number(db),
        repair_source=body["repair_source"],
        order_type=body["order_type"],
        original_order_id=original_order.id if original_order else None,
        original_order_number=order_number or None,
        customer_name=body["customer_name"],
        customer_email=body["customer_email"],
        customer_phone=body.get("customer_phone"),
        model=body["model"],
        serial_number=body.get("serial_number"),
        wood_type=body.get("wood_type"),
        priority=priority,
        repair_type=body["repair_type"],
        location=body.get("location") or "Repair Wall",
        customer_note=body.get("customer_note"),
        internal_notes=body.get("internal_notes"),
        created_by_id=creator.id,
        status="intake",
    )
    for issue in issues:
        repair.issues.append(RepairIssue(
            category=issue["category"],
            specific_issue=issue["specific_issue"],
            severity=issue["severity"],
            discovered_by_id=creator.id,
        ))
    db.add(repair)
    db.commit()
    logger.info("Repair {} created by {} ({} issues)", repair.repair_number, creator.email,
                len(issues))
    return repair_to_dict(repair, detail=True)


def update_repair(db: Session, repair_id: int, body: dict, worker: Worker) -> dict:
    repair = db.get(RepairOrder, repair_id)
    if not repair:
        return {"error": "Repair not found", "status": 404}
    if body.get("assigned_to_id") and not db.get(Worker, body["assigned_to_id"]):
        return {"error": "Assignee not found", "status": 404}
    status = body.get("status")
    if status:
        if status not in REPAIR_STATUSES or status == "cancelled":
            return {"error": "Invalid status", "status": 400}
        if status != repair.status:
            repair.status = status
            date_field = _STATUS_DATES.get(status)
            if date_field:
                setattr(repair, date_field, datetime.now(timezone.utc))
    for field in ("location", "estimated_cost", "final_cost", "customer_approved",
                  "assigned_to_id", "internal_notes", "customer_note", "priority",
                  "serial_number", "wood_type"):
        if field in body:
            setattr(repair, field, body[field])
    db.commit()
    logger.info("Repair {} updated by {} (status={})", repair.repair_number, worker.email,
                repair.status)
    return repair_to_dict(repair, detail=True)


def cancel_repair(db: Session, repair_id: int, manager: Worker) -> dict:
    repair = db.get(RepairOrder, repair_id)
    if not repair:
        return {"error": "Repair not found", "status": 404}
    repair.status = "cancelled"
    note = "Cancelled by manager"
    repair.internal_notes = f"{repair.internal_notes}\n{note}" if repair.internal_notes else note
    db.commit()
    logger.info("Repair {} cancelled by {}", repair.repair_number, manager.email)
    return {"ok": True}


# ── Issues & actions ─────────────────────────────────────────────────


def add_issue(db: Session, repair_id: int, body: dict, worker: Worker) -> dict:
    repair = db.get(RepairOrder, repair_id)
    if not repair:
        return {"error": "Repair not found", "status": 404}
    if not body.get("category") or not body.get("specific_issue") \
            or body.get("severity") not in ISSUE_SEVERITIES:
        return {"error": "category, specific_issue and a valid severity are required",
                "status": 400}
    issue = RepairIssue(
        repair_order_id=repair.id,
        category=body["category"],
        specific_issue=body["specific_issue"],
        severity=body["severity"],
        discovered_by_id=worker.id,
    )
    db.add(issue)
    db.commit()
    return _issue_to_dict(issue)


def _is_completion(action_type: str, description: str) -> bool:
    return action_type == "completed" or "complet" in description.lower()


def add_action(db: Session, repair_id: int, body: dict, worker: Worker) -> dict:
    repair = db.get(RepairOrder, repair_id)
    if not repair:
        return {"error": "Repair not found", "status": 404}
    action_type = body.get("action_type")
    description = body.get("action_description")
    if not action_type or not description:
        return {"error": "action_type and action_description are required", "status": 400}

    action = RepairAction(
        repair_order_id=repair.id,
        action_type=action_type,
        action_description=description,
        performed_by_id=worker.id,
        time_spent_minutes=body.get("time_spent_minutes"),
    )
    for part in body.get("parts_used") or []:
        if not part.get("part_name"):
            continue
        action.parts_used.append(RepairPartUsed(
            part_name=part["part_name"],
            part_number=part.get("part_number"),
            quantity=part.get("quantity") or 1,
            unit_cost=part.get("unit_cost"),
        ))
    db.add(action)

    if _is_completion(action_type, description):
        repair.status = "testing"
        repair.completed_date = datetime.now(timezone.utc)

    if action_type in ("repair", "fix") and repair.issues:
        first = repair.issues[0]
        db.add(RepairKnowledgeBase(
            repair_order_id=repair.id,
            model=repair.model,
            issue_category=first.category,
            issue_description=first.specific_issue,
            solution_description=description,
            technician_id=worker.id,
            technician_name=worker.name,
            time_to_repair_minutes=body.get("time_spent_minutes"),
            parts_used=[p.get("part_name") for p in body.get("parts_used") or []
                        if p.get("part_name")],
            tags=[repair.repair_type, first.severity],
        ))
    db.commit()
    logger.info("Repair {} action '{}' by {}", repair.repair_number, action_type, worker.email)
    return {"action": _action_to_dict(action), "repair_status": repair.status}


def search_knowledge_base(db: Session, model: str | None = None,
                          category: str | None = None, limit: int = 20) -> list[dict]:
    q = db.query(RepairKnowledgeBase)
    if model:
        q = q.filter(RepairKnowledgeBase.model == model)
    if category:
        q = q.filter(RepairKnowledgeBase.issue_category == category)
    return [
        {
            "id": k.id,
            "model": k.model,
            "issue_category": k.issue_category,
            "issue_description": k.issue_description,
            "solution_description": k.solution_description,
            "technician_name": k.technician_name,
            "time_to_repair_minutes": k.time_to_repair_minutes,
            "parts_used": k.parts_used or [],
        }
        for k in q.order_by(RepairKnowledgeBase.created_at.desc()).limit(limit).all()
    ]


# ── Timers ───────────────────────────────────────────────────────────


def start_repair_timer(db: Session, repair_id: int, worker: Worker,
                       work_description: str | None = None) -> dict:
    repair = db.get(RepairOrder, repair_id)
    if not repair:
        return {"error": "Repair not found", "status": 404}
    running = (
        db.query(RepairTimeLog)
        .filter(RepairTimeLog.repair_order_id == repair.id,
                RepairTimeLog.worker_id == worker.id,
                RepairTimeLog.end_time.is_(None))
        .first()
    )
    if running:
        return {"error": "Timer already running", "status": 400}

    now = datetime.now(timezone.utc)
    entry = RepairTimeLog(repair_order_id=repair.id, worker_id=worker.id, start_time=now,
                          work_description=work_description)
    db.add(entry)
    if repair.status in _TIMER_STARTS_WORK:
        repair.status = "in_progress"
        repair.started_date = repair.started_date or now
        repair.assigned_to_id = worker.id
    db.commit()
    logger.info("Repair {} timer started by {}", repair.repair_number, worker.email)
    return {"time_log": _time_log_to_dict(entry), "repair_status": repair.status}


def stop_repair_timer(db: Session, repair_id: int, worker: Worker,
                      return_location: str | None = None) -> dict:
    repair = db.get(RepairOrder, repair_id)
    if not repair:
        return {"error": "Repair not found", "status": 404}
    entry = (
        db.query(RepairTimeLog)
        .filter(RepairTimeLog.repair_order_id == repair.id,
                RepairTimeLog.worker_id == worker.id,
                RepairTimeLog.end_time.is_(None))
        .order_by(RepairTimeLog.start_time.desc())
        .first()
    )
    if not entry:
        return {"error": "No active timer found", "status": 404}
    entry.end_time = datetime.now(timezone.utc)
    entry.duration_minutes = minutes_between(entry.start_time, entry.end_time)
    if return_location:
        repair.location = return_location
    db.commit()
    logger.info("Repair {} timer stopped by {} after {} min", repair.repair_number,
                worker.email, entry.duration_minutes)
    return {"time_log": _time_log_to_dict(entry), "location": repair.location}
