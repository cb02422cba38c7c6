"""
test_routers_bug_reports.py — Tests for tester bug reports.

Tests submission by any worker, manager listing, detail, status updates,
and the Excel export.

Called by: pytest
Depends on: app/routers/error_reports.py, app/services/bug_report_service.py, conftest.py
"""

import io
from datetime import datetime, timezone

import pytest
from openpyxl import load_workbook
from sqlalchemy.orm import Session

from app.models import BugReport, Worker


@pytest.fixture()
def sample_report(db_session: Session, test_worker: Worker) -> BugReport:
    report = BugReport(
        worker_id=test_worker.id,
        title="Timer button does nothing",
        description="Clock-in button on the queue page is unresponsive",
        severity="high",
        current_url="https://tracker.example.com/queue",
        browser_info="Mozilla/5.0 Safari/17",
        console_errors='[{"msg":"TypeError: undefined"}]',
        screenshot_b64="iVBORw0KGgo=",
        status="open",
        created_at=datetime.now(timezone.utc),
    )
    db_session.add(report)
    db_session.commit()
    db_session.refresh(report)
    return report


# ── Submit (any worker) ──────────────────────────────────────────────


class TestCreateBugReport:
    def test_submit(self, worker_client, db_session):
        resp = worker_client.post("/api/testing/bugs", json={
            "title": "  QR scan fails  ",
            "description": "Camera opens but never reads",
            "severity": "critical",
        })
        assert resp.status_code == 201
        assert resp.json()["status"] == "created"
        report = db_session.get(BugReport, resp.json()["id"])
        assert report.title == "QR scan fails"
        assert report.status == "open"

    def test_default_severity(self, worker_client, db_session):
        report_id = worker_client.post("/api/testing/bugs", json={"title": "Typo"}).json()["id"]
        assert db_session.get(BugReport, report_id).severity == "medium"

    def test_title_required(self, worker_client):
        assert worker_client.post("/api/testing/bugs", json={"title": ""}).status_code == 422

    def test_invalid_severity(self, worker_client):
        resp = worker_client.post("/api/testing/bugs", json={"title": "x", "severity": "meh"})
        assert resp.status_code == 422

    def test_screenshot_too_large(self, worker_client, monkeypatch):
        from app.config import settings

        monkeypatch.setattr(settings, "max_screenshot_bytes", 10)
        resp = worker_client.post("/api/testing/bugs", json={
            "title": "Big", "screenshot": "A" * 11,
        })
        assert resp.status_code == 400
        assert resp.json()["error"] == "Screenshot too large"


# ── Manager views ────────────────────────────────────────────────────


class TestListBugReports:
    def test_list_omits_screenshot(self, client, sample_report):
        data = client.get("/api/testing/bugs").json()
        assert len(data) == 1
        assert data[0]["has_screenshot"] is True
        assert "screenshot" not in data[0]
        assert data[0]["reporter_email"] == "worker@workshop.test"

    def test_filter_by_status(self, client, sample_report):
        assert client.get("/api/testing/bugs?status=resolved").json() == []
        assert len(client.get("/api/testing/bugs?severity=high").json()) == 1

    def test_requires_manager(self, worker_client):
        assert worker_client.get("/api/testing/bugs").status_code == 403


class TestBugReportDetail:
    def test_detail_includes_screenshot(self, client, sample_report):
        data = client.get(f"/api/testing/bugs/{sample_report.id}").json()
        assert data["screenshot"] == "iVBORw0KGgo="
        assert data["reporter_name"] == "Test Worker"

    def test_not_found(self, client):
        resp = client.get("/api/testing/bugs/99999")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Report not found"


class TestUpdateBugReport:
    def test_resolve_stamps_resolver(self, client, db_session, sample_report, manager):
        resp = client.put(f"/api/testing/bugs/{sample_report.id}", json={
            "status": "resolved", "admin_notes": "Fixed in 1.4.0",
        })
        assert resp.json() == {"id": sample_report.id, "status": "resolved"}
        db_session.refresh(sample_report)
        assert sample_report.resolved_at is not None
        assert sample_report.resolved_by_id == manager.id
        assert sample_report.admin_notes == "Fixed in 1.4.0"

    def test_reopen_clears_resolution(self, client, db_session, sample_report):
        client.put(f"/api/testing/bugs/{sample_report.id}", json={"status": "closed"})
        client.put(f"/api/testing/bugs/{sample_report.id}", json={"status": "open"})
        db_session.refresh(sample_report)
        assert sample_report.resolved_at is None
        assert sample_report.resolved_by_id is None

    def test_invalid_status(self, client, sample_report):
        resp = client.put(f"/api/testing/bugs/{sample_report.id}", json={"status": "done"})
        assert resp.status_code == 422


class TestExport:
    def test_xlsx_export(self, client, sample_report):
        resp = client.get("/api/testing/bugs/export/xlsx")
        assert resp.status_code == 200
        assert "bug_reports.xlsx" in resp.headers["content-disposition"]
        ws = load_workbook(io.BytesIO(resp.content)).active
        rows = list(ws.iter_rows(values_only=True))
        assert rows[0][:4] == ("ID", "Title", "Severity", "Status")
        assert rows[1][1] == "Timer button does nothing"
        assert rows[1][4] == "worker@workshop.test"
