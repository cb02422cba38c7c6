"""
quality_service.py — Holds, patterns, checkpoints, inspections and predictive alerts.

Business Rules:
- A hold targets a batch or a component (at least one required)
- Creating a hold on a batch points batch.quality_hold_id at it
- Resolving the last active hold of a batch clears batch.quality_hold_id
- Moving a hold back out of resolved clears resolved_at and re-points the batch at it
- Patterns are unique per (stage, issue_type); new occurrences bump the count
  and union the cause / model / material lists
- A failed inspection on a critical, blocking checkpoint places a critical hold
  on the task's batch
- Predictive alerts are computed on read, nothing is stored
- Only one checkpoint template per (stage, checkpoint_type) is the default;
  default templates cannot be deleted

Called by: routers/quality.py, services/task_service.py, services/issue_service.py
Depends on: models (QualityHold, QualityPattern, QualityCheckpoint, InspectionResult,
            ComponentTracking, WorkBatch, WorkTask)
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from ..models import (
    ComponentTracking,
    InspectionResult,
    QualityCheckpoint,
    QualityCheckpointTemplate,
    QualityHold,
    QualityPattern,
    WorkBatch,
    Worker,
    WorkTask,
)
from ..utils import iso

log = logging.getLogger(__name__)

HOLD_SEVERITIES = ("low", "medium", "high", "critical")
HOLD_STATUSES = ("active", "investigating", "escalated", "resolved")
CHECKPOINT_TYPES = ("pre_work", "in_process", "post_work", "gate")
CHECKPOINT_SEVERITIES = ("minor", "major", "critical")
ON_FAILURE = ("warn", "block_progress")

_SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}


def _union(existing: list | None, value) -> list:
    items = list(existing or [])
    if value and value not in items:
        items.append(value)
    return items


# ── Holds ────────────────────────────────────────────────────────────


def hold_to_dict(h: QualityHold) -> dict:
    return {
        "id": h.id,
        "batch_id": h.batch_id,
        "component_tracking_id": h.component_tracking_id,
        "hold_reason": h.hold_reason,
        "severity": h.severity,
        "status": h.status,
        "reported_by": (
            {"id": h.reported_by.id, "name": h.reported_by.name} if h.reported_by else None
        ),
        "assigned_to": (
            {"id": h.assigned_to.id, "name": h.assigned_to.name} if h.assigned_to else None
        ),
        "resolution_notes": h.resolution_notes,
        "escalated_at": iso(h.escalated_at),
        "resolved_at": iso(h.resolved_at),
        "created_at": iso(h.created_at),
    }


def list_holds(db: Session, status: str | None = None, severity: str | None = None,
               search: str | None = None) -> list[dict]:
    q = db.query(QualityHold)
    if status and status != "all":
        q = q.filter(QualityHold.status == status)
    if severity and severity != "all":
        q = q.filter(QualityHold.severity == severity)
    if search:
        q = q.filter(QualityHold.hold_reason.ilike(f"%{search}%"))
    return [hold_to_dict(h) for h in q.order_by(QualityHold.created_at.desc()).all()]


def has_active_hold(db: Session, batch_id: int) -> bool:
    return (
        db.query(QualityHold)
        .filter(QualityHold.batch_id == batch_id, QualityHold.status != "resolved")
        .first()
        is not None
    )


def create_hold(db: Session, body: dict, reporter_id: int, commit: bool = True) -> dict:
    reason = (body.get("hold_reason") or "").strip()
    severity = body.get("severity")
    batch_id = body.get("batch_id")
    component_id = body.get("component_tracking_id")
    if not reason or not severity:
        return {"error": "hold_reason and severity are required", "status": 400}
    if severity not in HOLD_SEVERITIES:
        return {"error": f"Invalid severity. Must be one of: {', '.join(HOLD_SEVERITIES)}",
                "status": 400}
    if not batch_id and not component_id:
        return {"error": "batch_id or component_tracking_id is required", "status": 400}

    batch = None
    if batch_id:
        batch = db.get(WorkBatch, batch_id)
        if not batch:
            return {"error": "Batch not found", "status": 404}
    if component_id and not db.get(ComponentTracking, component_id):
        return {"error": "Component not found", "status": 404}
    assignee_id = body.get("assigned_to_id")
    if assignee_id and not db.get(Worker, assignee_id):
        return {"error": "Assignee not found", "status": 404}

    hold = QualityHold(
        batch_id=batch_id,
        component_tracking_id=component_id,
        hold_reason=reason,
        severity=severity,
        status="active",
        reported_by_id=reporter_id,
        assigned_to_id=assignee_id,
    )
    db.add(hold)
    db.flush()
    if batch:
        batch.quality_hold_id = hold.id
    if commit:
        db.commit()
    log.info("Quality hold #%s (%s) placed on batch=%s component=%s",
             hold.id, severity, batch_id, component_id)
    return hold_to_dict(hold)


def update_hold(db: Session, hold_id: int, body: dict) -> dict:
    hold = db.get(QualityHold, hold_id)
    if not hold:
        return {"error": "Quality hold not found", "status": 404}

    now = datetime.now(timezone.utc)
    status = body.get("status")
    if status and status not in HOLD_STATUSES:
        return {"error": f"Invalid status. Must be one of: {', '.join(HOLD_STATUSES)}",
                "status": 400}
    if body.get("assigned_to_id") and not db.get(Worker, body["assigned_to_id"]):
        return {"error": "Assignee not found", "status": 404}

    if status:
        hold.status = status
        if status == "resolved":
            hold.resolved_at = now
        else:
            hold.resolved_at = None
            if status == "escalated":
                hold.escalated_at = now
    if "resolution_notes" in body:
        hold.resolution_notes = body["resolution_notes"]
    if "assigned_to_id" in body:
        hold.assigned_to_id = body["assigned_to_id"]
    db.flush()

    batch = db.get(WorkBatch, hold.batch_id) if hold.batch_id else None
    if batch:
        if hold.status != "resolved":
            if status or batch.quality_hold_id is None:
                batch.quality_hold_id = hold.id
        else:
            remaining = (
                db.query(QualityHold)
                .filter(QualityHold.batch_id == batch.id, QualityHold.status != "resolved")
                .order_by(QualityHold.created_at.desc())
                .first()
            )
            batch.quality_hold_id = remaining.id if remaining else None
    db.commit()
    log.info("Quality hold #%s updated: status=%s", hold.id, hold.status)
    return hold_to_dict(hold)


# ── Patterns ─────────────────────────────────────────────────────────


def pattern_to_dict(p: QualityPattern) -> dict:
    causes = p.common_causes or []
    tips = p.prevention_tips or []
    return {
        "id": p.id,
        "stage": p.stage,
        "issue_type": p.issue_type,
        "frequency": p.occurrence_count,
        "last_seen": iso(p.last_seen),
        "typical_cause": causes[0] if causes else "Unknown cause",
        "prevention_tip": tips[0] if tips else "Follow standard procedures",
        "common_causes": causes,
        "effective_solutions": p.effective_solutions or [],
        "prevention_tips": tips,
        "affected_models": p.affected_models or [],
        "affected_materials": p.affected_materials or [],
        "severity_trend": p.severity_trend,
    }


def list_patterns(db: Session, stage: str | None = None, issue_type: str | None = None,
                  limit: int = 5) -> list[dict]:
    q = db.query(QualityPattern)
    if stage:
        q = q.filter(QualityPattern.stage == stage)
    if issue_type:
        q = q.filter(QualityPattern.issue_type == issue_type)
    patterns = (
        q.order_by(QualityPattern.occurrence_count.desc(), QualityPattern.last_seen.desc())
        .limit(limit)
        .all()
    )
    return [pattern_to_dict(p) for p in patterns]


def record_pattern_occurrence(db: Session, stage: str, issue_type: str, cause: str | None = None,
                              solution: str | None = None, prevention: str | None = None,
                              model: str | None = None,
                              material: str | None = None) -> QualityPattern:
    """Bump (or start) the (stage, issue_type) pattern. Caller commits."""
    now = datetime.now(timezone.utc)
    pattern = (
        db.query(QualityPattern)
        .filter(QualityPattern.stage == stage, QualityPattern.issue_type == issue_type)
        .first()
    )
    if pattern:
        pattern.occurrence_count = (pattern.occurrence_count or 0) + 1
        pattern.last_seen = now
    else:
        pattern = QualityPattern(stage=stage, issue_type=issue_type, occurrence_count=1,
                                 last_seen=now)
        db.add(pattern)
    pattern.common_causes = _union(pattern.common_causes, cause)
    pattern.effective_solutions = _union(pattern.effective_solutions, solution)
    pattern.prevention_tips = _union(pattern.prevention_tips, prevention)
    pattern.affected_models = _union(pattern.affected_models, model)
    pattern.affected_materials = _union(pattern.affected_materials, material)
    db.flush()
    return pattern


def upsert_pattern(db: Session, body: dict) -> dict:
    stage = body.get("stage")
    issue_type = body.get("issue_type")
    if not stage or not issue_type:
        return {"error": "stage and issue_type are required", "status": 400}
    pattern = record_pattern_occurrence(
        db, stage, issue_type,
        cause=body.get("cause"),
        solution=body.get("solution"),
        prevention=body.get("prevention_tip"),
        model=body.get("model"),
        material=body.get("material"),
    )
    if body.get("severity_trend"):
        pattern.severity_trend = body["severity_trend"]
    db.commit()
    return pattern_to_dict(pattern)


# ── Checkpoints ──────────────────────────────────────────────────────


def checkpoint_to_dict(c: QualityCheckpoint) -> dict:
    return {
        "id": c.id,
        "workflow_template_id": c.workflow_template_id,
        "stage": c.stage,
        "name": c.name,
        "checkpoint_type": c.checkpoint_type,
        "checks": c.checks or [],
        "severity": c.severity,
        "on_failure": c.on_failure,
        "is_active": bool(c.is_active),
    }


def list_checkpoints(db: Session, stage: str | None = None,
                     workflow_template_id: int | None = None) -> list[dict]:
    q = db.query(QualityCheckpoint).filter(QualityCheckpoint.is_active.is_(True))
    if stage:
        q = q.filter(QualityCheckpoint.stage == stage)
    if workflow_template_id:
        q = q.filter(QualityCheckpoint.workflow_template_id == workflow_template_id)
    return [checkpoint_to_dict(c) for c in q.order_by(QualityCheckpoint.stage).all()]


def create_checkpoint(db: Session, body: dict) -> dict:
    if not body.get("stage") or not body.get("checkpoint_type"):
        return {"error": "stage and checkpoint_type are required", "status": 400}
    if body["checkpoint_type"] not in CHECKPOINT_TYPES:
        return {"error": f"checkpoint_type must be one of: {', '.join(CHECKPOINT_TYPES)}",
                "status": 400}
    severity = body.get("severity") or "major"
    on_failure = body.get("on_failure") or "warn"
    if severity not in CHECKPOINT_SEVERITIES or on_failure not in ON_FAILURE:
        return {"error": "Invalid severity or on_failure", "status": 400}
    cp = QualityCheckpoint(
        workflow_template_id=body.get("workflow_template_id"),
        stage=body["stage"],
        name=body.get("name"),
        checkpoint_type=body["checkpoint_type"],
        checks=list(body.get("checks") or []),
        severity=severity,
        on_failure=on_failure,
    )
    db.add(cp)
    db.commit()
    return checkpoint_to_dict(cp)


# ── Checkpoint templates ─────────────────────────────────────────────


def template_to_dict(t: QualityCheckpointTemplate) -> dict:
    return {
        "id": t.id,
        "stage_name": t.stage_name,
        "checkpoint_type": t.checkpoint_type,
        "template_name": t.template_name,
        "checks": t.checks or [],
        "is_default": bool(t.is_default),
        "created_at": iso(t.created_at),
    }


def list_templates(db: Session) -> list[dict]:
    rows = (
        db.query(QualityCheckpointTemplate)
        .order_by(QualityCheckpointTemplate.stage_name, QualityCheckpointTemplate.checkpoint_type)
        .all()
    )
    return [template_to_dict(t) for t in rows]


def _clear_defaults(db: Session, stage_name: str, checkpoint_type: str,
                    keep_id: int | None = None) -> None:
    q = db.query(QualityCheckpointTemplate).filter(
        QualityCheckpointTemplate.stage_name == stage_name,
        QualityCheckpointTemplate.checkpoint_type == checkpoint_type,
        QualityCheckpointTemplate.is_default.is_(True),
    )
    if keep_id:
        q = q.filter(QualityCheckpointTemplate.id != keep_id)
    for other in q.all():
        other.is_default = False


def save_template(db: Session, body: dict, template_id: int | None = None) -> dict:
    """Create (template_id None) or replace a template. A new default unseats the old one."""
    if template_id is None:
        t = QualityCheckpointTemplate()
    else:
        t = db.get(QualityCheckpointTemplate, template_id)
    if t is None:
        return {"error": "Template not found", "status": 404}
    if body.get("is_default"):
        _clear_defaults(db, body["stage_name"], body["checkpoint_type"], template_id)
    t.stage_name = body["stage_name"]
    t.checkpoint_type = body["checkpoint_type"]
    t.template_name = body["template_name"]
    t.checks = list(body.get("checks") or [])
    t.is_default = bool(body.get("is_default"))
    db.add(t)
    db.commit()
    log.info("Checkpoint template #%s saved (%s/%s)", t.id, t.stage_name, t.checkpoint_type)
    return template_to_dict(t)


def delete_template(db: Session, template_id: int) -> dict:
    t = db.get(QualityCheckpointTemplate, template_id)
    if not t:
        return {"error": "Template not found", "status": 404}
    if t.is_default:
        return {"error": "Cannot delete default templates. Remove default status first.",
                "status": 400}
    db.delete(t)
    db.commit()
    return {"success": True}


# ── Inspections ──────────────────────────────────────────────────────


def inspection_to_dict(r: InspectionResult) -> dict:
    return {
        "id": r.id,
        "task_id": r.task_id,
        "checkpoint_id": r.checkpoint_id,
        "component_tracking_id": r.component_tracking_id,
        "worker_id": r.worker_id,
        "passed": bool(r.passed),
        "failed_checks": r.failed_checks or [],
        "root_cause": r.root_cause,
        "corrective_action": r.corrective_action,
        "notes": r.notes,
        "measurement_data": r.measurement_data or {},
        "stage": r.checkpoint.stage if r.checkpoint else None,
        "inspected_at": iso(r.inspected_at),
    }


def record_inspection(db: Session, body: dict, worker_id: int) -> dict:
    if not body.get("task_id") or not body.get("checkpoint_id") or "passed" not in body:
        return {"error": "task_id, checkpoint_id and passed are required", "status": 400}
    task = db.get(WorkTask, body["task_id"])
    if not task:
        return {"error": "Task not found", "status": 404}
    checkpoint = db.get(QualityCheckpoint, body["checkpoint_id"])
    if not checkpoint:
        return {"error": "Checkpoint not found", "status": 404}

    passed = bool(body["passed"])
    failed_checks = list(body.get("failed_checks") or [])
    component = None
    component_id = body.get("component_tracking_id") or task.component_tracking_id
    if component_id:
        component = db.get(ComponentTracking, component_id)

    result = InspectionResult(
        task_id=task.id,
        checkpoint_id=checkpoint.id,
        component_tracking_id=component.id if component else None,
        worker_id=worker_id,
        passed=passed,
        failed_checks=failed_checks,
        root_cause=body.get("root_cause"),
        corrective_action=body.get("corrective_action"),
        prevention_suggestion=body.get("prevention_suggestion"),
        time_to_resolve=body.get("time_to_resolve"),
        notes=body.get("notes"),
        measurement_data=body.get("measurement_data") or {},
    )
    db.add(result)

    hold = None
    if passed:
        task.quality_score = 100
    else:
        task.rework_count = (task.rework_count or 0) + 1
        if component:
            component.journey = list(component.journey or []) + [{
                "stage": checkpoint.stage,
                "action": "inspection_failed",
                "worker_id": worker_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "rework": True,
                "failed_checks": failed_checks,
            }]
        for check in failed_checks or ["inspection_failed"]:
            record_pattern_occurrence(
                db, checkpoint.stage, str(check),
                cause=body.get("root_cause"),
                solution=body.get("corrective_action"),
                prevention=body.get("prevention_suggestion"),
            )
        if checkpoint.severity == "critical" and checkpoint.on_failure == "block_progress" \
                and task.batch_id:
            hold = create_hold(db, {
                "batch_id": task.batch_id,
                "hold_reason": "Failed critical quality checkpoint: "
                               f"{checkpoint.name or checkpoint.stage}",
                "severity": "critical",
            }, worker_id, commit=False)
    db.commit()
    log.info("Inspection #%s on task #%s: %s", result.id, task.id, "pass" if passed else "fail")
    can_proceed = passed or checkpoint.on_failure != "block_progress"
    return {
        "inspection": inspection_to_dict(result),
        "can_proceed": can_proceed,
        "hold": hold,
    }


def list_inspections(db: Session, task_id: int | None = None,
                     component_tracking_id: int | None = None) -> dict:
    if not task_id and not component_tracking_id:
        return {"error": "task_id or component_tracking_id is required", "status": 400}
    q = db.query(InspectionResult)
    if task_id:
        q = q.filter(InspectionResult.task_id == task_id)
    if component_tracking_id:
        q = q.filter(InspectionResult.component_tracking_id == component_tracking_id)
    rows = q.order_by(InspectionResult.inspected_at.desc()).all()
    return {"inspections": [inspection_to_dict(r) for r in rows]}


# ── Predictive alerts ────────────────────────────────────────────────


def _pattern_alerts(db: Session) -> list[dict]:
    alerts = []
    for p in db.query(QualityPattern).filter(QualityPattern.occurrence_count > 10).all():
        count = p.occurrence_count
        severity = "critical" if count > 50 else "warning" if count > 20 else "info"
        recs = list(p.prevention_tips or []) or list(p.effective_solutions or [])
        alerts.append({
            "type": "recurring_pattern",
            "severity": severity,
            "title": f"Recurring {p.issue_type} at {p.stage}",
            "message": f"{p.issue_type} has occurred {count} times at {p.stage}",
            "stage": p.stage,
            "recommendations": recs[:3],
            "data": {"pattern_id": p.id, "occurrences": count},
        })
    return alerts


def _stage_failure_alerts(db: Session, since: datetime) -> list[dict]:
    rows = (
        db.query(QualityCheckpoint.stage, InspectionResult.passed)
        .select_from(InspectionResult)
        .join(QualityCheckpoint, InspectionResult.checkpoint_id == QualityCheckpoint.id)
        .filter(InspectionResult.inspected_at >= since)
        .all()
    )
    totals: dict[str, list[int]] = {}
    for stage, passed in rows:
        t = totals.setdefault(stage, [0, 0])
        t[0] += 1
        if not passed:
            t[1] += 1

    alerts = []
    for stage, (total, failed) in totals.items():
        rate = failed / total
        if rate <= 0.1:
            continue
        alerts.append({
            "type": "stage_failure_rate",
            "severity": "critical" if rate > 0.2 else "warning",
            "title": f"High failure rate at {stage}",
            "message": f"{round(rate * 100, 1)}% of inspections failed at {stage} in the last 7 days",
            "stage": stage,
            "recommendations": [
                "Review standard operating procedure for this stage",
                "Check tooling and material quality",
                "Schedule refresher training for workers on this stage",
            ],
            "data": {"total": total, "failed": failed, "failure_rate": round(rate, 3)},
        })
    return alerts


def _worker_alerts(db: Session, since: datetime) -> list[dict]:
    totals: dict[int, list[int]] = {}
    for worker_id, passed in (
        db.query(InspectionResult.worker_id, InspectionResult.passed)
        .filter(InspectionResult.inspected_at >= since)
        .all()
    ):
        t = totals.setdefault(worker_id, [0, 0])
        t[0] += 1
        if not passed:
            t[1] += 1

    alerts = []
    for worker_id, (total, failed) in totals.items():
        rate = failed / total
        if total <= 5 or rate <= 0.15:
            continue
        alerts.append({
            "type": "worker_quality",
            "severity": "warning" if rate > 0.25 else "info",
            "title": "Worker inspection failures above normal",
            "message": f"Worker #{worker_id} failed {failed} of {total} inspections",
            "worker_id": worker_id,
            "recommendations": ["Pair with a senior worker", "Review recent failed checks"],
            "data": {"total": total, "failed": failed, "failure_rate": round(rate, 3)},
        })
    return alerts


def _component_alerts(db: Session) -> list[dict]:
    alerts = []
    for c in db.query(ComponentTracking).all():
        reworks = c.rework_count()
        if reworks < 2:
            continue
        alerts.append({
            "type": "component_rework",
            "severity": "warning",
            "title": f"Component {c.cup_pair_id} reworked {reworks} times",
            "message": "Repeated rework on the same cup pair",
            "component_tracking_id": c.id,
            "recommendations": ["Inspect wood batch for defects", "Consider downgrading to grade B"],
            "data": {"rework_count": reworks, "wood_batch_id": c.wood_batch_id},
        })
    return alerts


def _hold_alerts(db: Session) -> list[dict]:
    holds = db.query(QualityHold).filter(QualityHold.status != "resolved").all()
    if not holds:
        return []
    critical = sum(1 for h in holds if h.severity == "critical")
    return [{
        "type": "active_holds",
        "severity": "critical" if critical else "warning",
        "title": f"{len(holds)} active quality hold(s)",
        "message": f"{critical} critical" if critical else "No critical holds",
        "recommendations": ["Resolve or escalate open holds"],
        "data": {"active": len(holds), "critical": critical},
    }]


def predictive_alerts(db: Session) -> dict:
    since = datetime.now(timezone.utc) - timedelta(days=7)
    alerts = (
        _pattern_alerts(db)
        + _stage_failure_alerts(db, since)
        + _worker_alerts(db, since)
        + _component_alerts(db)
        + _hold_alerts(db)
    )
    alerts.sort(key=lambda a: _SEVERITY_ORDER.get(a["severity"], 3))
    return {
        "alerts": alerts,
        "summary": {
            "total": len(alerts),
            "critical": sum(1 for a in alerts if a["severity"] == "critical"),
            "warning": sum(1 for a in alerts if a["severity"] == "warning"),
            "info": sum(1 for a in alerts if a["severity"] == "info"),
        },
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
