"""
routers/qc.py — QC step configuration, per-step checklists and checklist submissions

Business Rules:
- Any worker can read steps and checklists; only managers replace them
- Submissions: workers for themselves, managers for anyone
- The worker picker lists active workers only

Called by: main.py (router mount)
Depends on: services/qc_service
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_manager, require_worker, unwrap
from ..models import Worker
from ..schemas.qc import QcChecklistSave, QcStepsSave, QcSubmissionCreate
from ..services import qc_service

router = APIRouter(tags=["qc"])


@router.get("/api/settings/qc-steps")
def list_steps(user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return {"steps": qc_service.list_steps(db)}


@router.post("/api/settings/qc-steps")
def save_steps(body: QcStepsSave, user: Worker = Depends(require_manager),
               db: Session = Depends(get_db)):
    steps = [s.model_dump() for s in body.steps]
    return unwrap(qc_service.save_steps(db, steps, user))


@router.get("/api/settings/qc-steps/{step}/checklist")
def list_checklist(step: str, user: Worker = Depends(require_worker),
                   db: Session = Depends(get_db)):
    return {"items": qc_service.list_checklist(db, step)}


@router.post("/api/settings/qc-steps/{step}/checklist")
def save_checklist(step: str, body: QcChecklistSave, user: Worker = Depends(require_manager),
                   db: Session = Depends(get_db)):
    items = [i.model_dump() for i in body.items]
    return unwrap(qc_service.save_checklist(db, step, items, user))


@router.post("/api/qc/submissions", status_code=201)
def create_submission(body: QcSubmissionCreate, user: Worker = Depends(require_worker),
                      db: Session = Depends(get_db)):
    return unwrap(qc_service.create_submission(db, body.model_dump(), user))


@router.get("/api/qc/submissions")
def list_submissions(
    worker_id: int | None = None,
    production_step: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    user: Worker = Depends(require_worker),
    db: Session = Depends(get_db),
):
    return {"submissions": qc_service.list_submissions(
        db, user, worker_id, production_step, from_date, to_date)}


@router.get("/api/qc/workers")
def list_workers(user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return {"workers": qc_service.list_active_workers(db)}
