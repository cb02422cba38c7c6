"""
dependencies.py — Shared FastAPI Dependencies

Reusable dependency functions for authentication and role checks. All
routers import from here instead of defining their own auth logic.

Business Rules:
- get_worker returns None if not logged in (non-throwing)
- require_worker raises 401 if not logged in, 403 if inactive or not approved
- require_supervisor raises 403 unless role is supervisor or manager
- require_manager raises 403 unless role is manager
- can_view_worker: workers see only their own data, supervisors see everyone

Called by: all routers
Depends on: models, database
"""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .database import get_db
from .models import Worker

ROLES = ("worker", "supervisor", "manager")
SUPERVISOR_ROLES = ("supervisor", "manager")


# ── Authentication ────────────────────────────────────────────────────


def get_worker(request: Request, db: Session) -> Worker | None:
    """Return current worker from session, or None if not logged in."""
    wid = request.session.get("worker_id")
    if not wid:
        return None
    return db.get(Worker, wid)


def require_worker(request: Request, db: Session = Depends(get_db)) -> Worker:
    """Dependency: raises 401 if no authenticated worker, 403 if not active and approved."""
    worker = get_worker(request, db)
    if not worker:
        raise HTTPException(401, "Not authenticated")
    if not worker.is_active:
        request.session.clear()
        raise HTTPException(403, "Account is not active")
    if worker.approval_status != "approved":
        raise HTTPException(403, "Account is awaiting approval")
    return worker


def require_supervisor(request: Request, db: Session = Depends(get_db)) -> Worker:
    """Dependency: requires supervisor or manager role."""
    worker = require_worker(request, db)
    if worker.role not in SUPERVISOR_ROLES:
        raise HTTPException(403, "Supervisor or manager access required")
    return worker


def require_manager(request: Request, db: Session = Depends(get_db)) -> Worker:
    """Dependency: raises 403 if worker is not a manager."""
    worker = require_worker(request, db)
    if worker.role != "manager":
        raise HTTPException(403, "Manager access required")
    return worker


# ── Access helpers ────────────────────────────────────────────────────


def is_supervisor(worker: Worker) -> bool:
    return worker.role in SUPERVISOR_ROLES


def can_view_worker(viewer: Worker, worker_id: int) -> bool:
    """Workers may only look at their own tasks/timers; supervisors see all."""
    return is_supervisor(viewer) or viewer.id == worker_id


def unwrap(result):
    """Turn a service error dict into an HTTPException, pass anything else through."""
    if isinstance(result, dict) and "error" in result:
        raise HTTPException(result.get("status", 400), result["error"])
    return result
