"""Tester bug reports: submission, manager triage, spreadsheet export.

Business Rules:
- Screenshots are stored as base64 text and capped at max_screenshot_bytes
- Listings never carry the screenshot, only has_screenshot
- resolved/closed stamps the resolver; reopening clears it

Called by: routers/error_reports.py
Depends on: models (BugReport), openpyxl
"""

from datetime import datetime, timezone
from io import BytesIO

from loguru import logger
from openpyxl import Workbook
from sqlalchemy.orm import Session

from ..config import settings
from ..models import BugReport, Worker
from ..utils import iso

CLOSED_STATUSES = ("resolved", "closed")
EXPORT_COLUMNS = (
    "ID", "Title", "Severity", "Status", "Reporter", "Description", "Steps", "URL",
    "Browser", "Console Errors", "Notes", "Created", "Resolved",
)


def report_to_dict(r: BugReport, detail: bool = False) -> dict:
    data = {
        "id": r.id,
        "title": r.title,
        "severity": r.severity,
        "status": r.status,
        "reporter_name": r.reporter.name if r.reporter else None,
        "reporter_email": r.reporter.email if r.reporter else None,
        "current_url": r.current_url,
        "created_at": iso(r.created_at),
        "resolved_at": iso(r.resolved_at),
    }
    if not detail:
        data["has_screenshot"] = bool(r.screenshot_b64)
        return data
    data.update(
        description=r.description,
        steps_to_reproduce=r.steps_to_reproduce,
        screenshot=r.screenshot_b64,
        browser_info=r.browser_info,
        console_errors=r.console_errors,
        admin_notes=r.admin_notes,
        resolved_by_email=r.resolved_by.email if r.resolved_by else None,
    )
    return data


def create_report(db: Session, body: dict, reporter: Worker) -> dict:
    screenshot = body.get("screenshot") or None
    if screenshot and len(screenshot) > settings.max_screenshot_bytes:
        return {"error": "Screenshot too large", "status": 400}
    report = BugReport(
        worker_id=reporter.id,
        title=body["title"].strip(),
        description=body.get("description"),
        severity=body.get("severity") or "medium",
        steps_to_reproduce=body.get("steps_to_reproduce"),
        screenshot_b64=screenshot,
        current_url=body.get("current_url"),
        browser_info=body.get("browser_info"),
        console_errors=body.get("console_errors"),
    )
    db.add(report)
    db.commit()
    logger.info("Bug report #{} ({}) filed by {}", report.id, report.severity, reporter.email)
    return {"id": report.id, "status": "created"}


def query_reports(db: Session, status: str | None = None, severity: str | None = None,
                  limit: int = 500) -> list[BugReport]:
    q = db.query(BugReport)
    if status:
        q = q.filter(BugReport.status == status)
    if severity:
        q = q.filter(BugReport.severity == severity)
    return q.order_by(BugReport.created_at.desc()).limit(limit).all()


def get_report(db: Session, report_id: int) -> dict:
    report = db.get(BugReport, report_id)
    if not report:
        return {"error": "Report not found", "status": 404}
    return report_to_dict(report, detail=True)


def update_report(db: Session, report_id: int, status: str | None, admin_notes: str | None,
                  manager: Worker) -> dict:
    report = db.get(BugReport, report_id)
    if not report:
        return {"error": "Report not found", "status": 404}
    if status:
        report.status = status
        if status in CLOSED_STATUSES:
            report.resolved_at = datetime.now(timezone.utc)
            report.resolved_by_id = manager.id
        elif status == "open":
            report.resolved_at = None
            report.resolved_by_id = None
    if admin_notes is not None:
        report.admin_notes = admin_notes
    db.commit()
    logger.info("Bug report #{} now {} ({})", report.id, report.status, manager.email)
    return {"id": report.id, "status": report.status}


def export_xlsx(reports: list[BugReport]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Bug Reports"
    ws.append(list(EXPORT_COLUMNS))
    for r in reports:
        ws.append([
            r.id, r.title, r.severity, r.status,
            r.reporter.email if r.reporter else "",
            r.description or "", r.steps_to_reproduce or "", r.current_url or "",
            r.browser_info or "", r.console_errors or "", r.admin_notes or "",
            iso(r.created_at) or "", iso(r.resolved_at) or "",
        ])
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()
