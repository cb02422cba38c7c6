"""Production issues API — report from the floor, resolve (supervisor+), per-stage view."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_supervisor, require_worker, unwrap
from ..models import Worker
from ..schemas.quality import IssueReport, IssueResolve
from ..services import issue_service

router = APIRouter(tags=["issues"])


@router.post("/api/issues/report", status_code=201)
def report_issue(body: IssueReport, user: Worker = Depends(require_worker),
                 db: Session = Depends(get_db)):
    return unwrap(issue_service.report_issue(db, body.model_dump(), user))


@router.post("/api/issues/{issue_id}/resolve")
def resolve_issue(issue_id: int, body: IssueResolve, user: Worker = Depends(require_supervisor),
                  db: Session = Depends(get_db)):
    return unwrap(issue_service.resolve_issue(
        db, issue_id, body.resolution_status, body.resolution_notes, user
    ))


@router.get("/api/issues/by-stage/{stage}")
def issues_by_stage(stage: str, user: Worker = Depends(require_worker),
                    db: Session = Depends(get_db)):
    return issue_service.issues_by_stage(db, stage)
