"""
issue_service.py — Production issue reports from the shop floor.

Business Rules:
- stage, issue_type, severity, title and description are required
- Referenced task / batch / order item must exist
- Every report counts as a quality pattern occurrence for (stage, issue_type)
- A critical issue on a batch places a critical quality hold on it
- Only open issues can be resolved (resolved | wont_fix)

Called by: routers/issues.py
Depends on: models, services/quality_service.py
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ..models import OrderItem, ProductionIssue, WorkBatch, Worker, WorkTask
from ..utils import iso
from .quality_service import create_hold, record_pattern_occurrence

log = logging.getLogger(__name__)

ISSUE_TYPES = ("defect", "material", "tooling", "process", "other")
SEVERITIES = ("low", "medium", "high", "critical")
RESOLUTIONS = ("resolved", "wont_fix")


def issue_to_dict(i: ProductionIssue) -> dict:
    return {
        "id": i.id,
        "stage": i.stage,
        "issue_type": i.issue_type,
        "severity": i.severity,
        "title": i.title,
        "description": i.description,
        "image_urls": i.image_urls or [],
        "task_id": i.task_id,
        "batch_id": i.batch_id,
        "order_item_id": i.order_item_id,
        "reported_by": (
            {"id": i.reported_by.id, "name": i.reported_by.name} if i.reported_by else None
        ),
        "resolution_status": i.resolution_status,
        "resolution_notes": i.resolution_notes,
        "resolved_at": iso(i.resolved_at),
        "created_at": iso(i.created_at),
    }


def report_issue(db: Session, body: dict, reporter: Worker) -> dict:
    for field in ("stage", "issue_type", "severity", "title", "description"):
        if not body.get(field):
            return {"error": f"{field} is required", "status": 400}
    if body["issue_type"] not in ISSUE_TYPES:
        return {"error": f"issue_type must be one of: {', '.join(ISSUE_TYPES)}", "status": 400}
    if body["severity"] not in SEVERITIES:
        return {"error": f"severity must be one of: {', '.join(SEVERITIES)}", "status": 400}
    for key, model, label in (
        ("task_id", WorkTask, "Task"),
        ("batch_id", WorkBatch, "Batch"),
        ("order_item_id", OrderItem, "Order item"),
    ):
        if body.get(key) and not db.get(model, body[key]):
            return {"error": f"{label} not found", "status": 404}

    issue = ProductionIssue(
        reported_by_id=reporter.id,
        task_id=body.get("task_id"),
        batch_id=body.get("batch_id"),
        order_item_id=body.get("order_item_id"),
        stage=body["stage"],
        issue_type=body["issue_type"],
        severity=body["severity"],
        title=body["title"].strip(),
        description=body["description"],
        image_urls=list(body.get("image_urls") or []),
        resolution_status="open",
    )
    db.add(issue)
    record_pattern_occurrence(db, issue.stage, issue.issue_type, cause=issue.title)

    hold = None
    if issue.severity == "critical" and issue.batch_id:
        hold = create_hold(db, {
            "batch_id": issue.batch_id,
            "hold_reason": f"Critical production issue: {issue.title}",
            "severity": "critical",
        }, reporter.id, commit=False)
    db.commit()
    log.info("Production issue #%s (%s/%s) reported by %s",
             issue.id, issue.stage, issue.severity, reporter.email)
    return {"issue": issue_to_dict(issue), "hold": hold}


def resolve_issue(db: Session, issue_id: int, resolution_status: str,
                  notes: str | None, resolver: Worker) -> dict:
    if resolution_status not in RESOLUTIONS:
        return {"error": f"resolution_status must be one of: {', '.join(RESOLUTIONS)}",
                "status": 400}
    issue = db.get(ProductionIssue, issue_id)
    if not issue:
        return {"error": "Issue not found", "status": 404}
    if issue.resolution_status != "open":
        return {"error": "Issue is already resolved", "status": 400}
    issue.resolution_status = resolution_status
    issue.resolution_notes = notes
    issue.resolved_by_id = resolver.id
    issue.resolved_at = datetime.now(timezone.utc)
    db.commit()
    log.info("Production issue #%s marked %s by %s", issue.id, resolution_status, resolver.email)
    return issue_to_dict(issue)


def issues_by_stage(db: Session, stage: str) -> dict:
    issues = db.query(ProductionIssue).filter(ProductionIssue.stage == stage).all()
    issues.sort(key=lambda i: (i.resolution_status != "open", -(i.created_at.timestamp()
                                                                  if i.created_at else 0)))
    open_count = sum(1 for i in issues if i.resolution_status == "open")
    return {
        "stage": stage,
        "issues": [issue_to_dict(i) for i in issues],
        "counts": {
            "total": len(issues),
            "open": open_count,
            "resolved": len(issues) - open_count,
            "critical_open": sum(
                1 for i in issues if i.resolution_status == "open" and i.severity == "critical"
            ),
        },
    }
