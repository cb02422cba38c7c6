"""
routers/quality.py — Quality holds, patterns, checkpoints, templates, inspections, alerts

Business Rules:
- Any worker can place a hold or record an inspection
- Updating holds and defining checkpoints is supervisor+; editing patterns is manager-only
- Predictive alerts are supervisor+
- Checkpoint templates are readable by any worker, managed by managers only

Called by: main.py (router mount)
Depends on: services/quality_service
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_manager, require_supervisor, require_worker, unwrap
from ..models import Worker
from ..schemas.quality import (
    CheckpointCreate,
    CheckpointTemplateSave,
    HoldCreate,
    HoldUpdate,
    InspectionCreate,
    PatternUpsert,
)
from ..schemas.responses import AlertsResponse
from ..services import quality_service

router = APIRouter(tags=["quality"])


# ── Holds ────────────────────────────────────────────────────────────


@router.get("/api/quality/holds")
def list_holds(
    status: str | None = None,
    severity: str | None = None,
    search: str | None = None,
    user: Worker = Depends(require_worker),
    db: Session = Depends(get_db),
):
    return {"holds": quality_service.list_holds(db, status, severity, search)}


@router.post("/api/quality/holds", status_code=201)
def create_hold(body: HoldCreate, user: Worker = Depends(require_worker),
                db: Session = Depends(get_db)):
    return unwrap(quality_service.create_hold(db, body.model_dump(), user.id))


@router.put("/api/quality/holds/{hold_id}")
def update_hold(hold_id: int, body: HoldUpdate, user: Worker = Depends(require_supervisor),
                db: Session = Depends(get_db)):
    return unwrap(quality_service.update_hold(db, hold_id, body.model_dump(exclude_unset=True)))


# ── Patterns ─────────────────────────────────────────────────────────


@router.get("/api/quality/patterns")
def list_patterns(
    stage: str | None = None,
    issue_type: str | None = None,
    limit: int = Query(5, ge=1, le=100),
    user: Worker = Depends(require_worker),
    db: Session = Depends(get_db),
):
    return {"patterns": quality_service.list_patterns(db, stage, issue_type, limit)}


@router.post("/api/quality/patterns")
def upsert_pattern(body: PatternUpsert, user: Worker = Depends(require_manager),
                   db: Session = Depends(get_db)):
    return unwrap(quality_service.upsert_pattern(db, body.model_dump()))


# ── Checkpoints & inspections ────────────────────────────────────────


@router.get("/api/quality/checkpoints")
def list_checkpoints(stage: str | None = None, workflow_template_id: int | None = None,
                     user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return {"checkpoints": quality_service.list_checkpoints(db, stage, workflow_template_id)}


@router.post("/api/quality/checkpoints", status_code=201)
def create_checkpoint(body: CheckpointCreate, user: Worker = Depends(require_supervisor),
                      db: Session = Depends(get_db)):
    return unwrap(quality_service.create_checkpoint(db, body.model_dump()))


@router.post("/api/quality/inspections", status_code=201)
def record_inspection(body: InspectionCreate, user: Worker = Depends(require_worker),
                      db: Session = Depends(get_db)):
    return unwrap(quality_service.record_inspection(db, body.model_dump(), user.id))


@router.get("/api/quality/inspections")
def list_inspections(task_id: int | None = None, component_tracking_id: int | None = None,
                     user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return unwrap(quality_service.list_inspections(db, task_id, component_tracking_id))


# ── Checkpoint templates ─────────────────────────────────────────────


@router.get("/api/quality/checkpoint-templates")
def list_templates(user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return {"templates": quality_service.list_templates(db)}


@router.post("/api/quality/checkpoint-templates", status_code=201)
def create_template(body: CheckpointTemplateSave, user: Worker = Depends(require_manager),
                    db: Session = Depends(get_db)):
    return {"template": unwrap(quality_service.save_template(db, body.model_dump()))}


@router.put("/api/quality/checkpoint-templates/{template_id}")
def update_template(template_id: int, body: CheckpointTemplateSave,
                    user: Worker = Depends(require_manager), db: Session = Depends(get_db)):
    return {"template": unwrap(quality_service.save_template(db, body.model_dump(), template_id))}


@router.delete("/api/quality/checkpoint-templates/{template_id}")
def delete_template(template_id: int, user: Worker = Depends(require_manager),
                    db: Session = Depends(get_db)):
    return unwrap(quality_service.delete_template(db, template_id))


# ── Alerts ───────────────────────────────────────────────────────────


@router.get("/api/quality/predictive-alerts", response_model=AlertsResponse)
def predictive_alerts(user: Worker = Depends(require_supervisor), db: Session = Depends(get_db)):
    return quality_service.predictive_alerts(db)
