"""
routers/error_reports.py — Tester bug reports

Business Rules:
- Any approved worker can file a report
- Listing, detail, triage and export are manager-only

Called by: main.py (router mount)
Depends on: services/bug_report_service
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_manager, require_worker, unwrap
from ..models import Worker
from ..schemas.settings import BugReportCreate, BugReportUpdate
from ..services import bug_report_service

router = APIRouter(tags=["bug-reports"])

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("/api/testing/bugs", status_code=201)
def create_bug_report(body: BugReportCreate, user: Worker = Depends(require_worker),
                      db: Session = Depends(get_db)):
    return unwrap(bug_report_service.create_report(db, body.model_dump(), user))


@router.get("/api/testing/bugs")
def list_bug_reports(status: str | None = None, severity: str | None = None,
                     user: Worker = Depends(require_manager), db: Session = Depends(get_db)):
    reports = bug_report_service.query_reports(db, status, severity)
    return [bug_report_service.report_to_dict(r) for r in reports]


@router.get("/api/testing/bugs/export/xlsx")
def export_bug_reports(status: str | None = None, user: Worker = Depends(require_manager),
                       db: Session = Depends(get_db)):
    reports = bug_report_service.query_reports(db, status, limit=2000)
    return Response(
        content=bug_report_service.export_xlsx(reports),
        media_type=XLSX_TYPE,
        headers={"Content-Disposition": "attachment; filename=bug_reports.xlsx"},
    )


@router.get("/api/testing/bugs/{report_id}")
def get_bug_report(report_id: int, user: Worker = Depends(require_manager),
                   db: Session = Depends(get_db)):
    return unwrap(bug_report_service.get_report(db, report_id))


@router.put("/api/testing/bugs/{report_id}")
def update_bug_report(report_id: int, body: BugReportUpdate,
                      user: Worker = Depends(require_manager), db: Session = Depends(get_db)):
    return unwrap(bug_report_service.update_report(
        db, report_id, body.status, body.admin_notes, user
    ))
