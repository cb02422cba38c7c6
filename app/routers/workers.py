"""
routers/workers.py — Worker management: approvals, roles, invitations, stage skills

Business Rules:
- Supervisors can list workers; every change is manager-only
- Managers cannot deactivate, suspend or re-role themselves
- Stage assignments drive auto-assignment of generated tasks

Called by: main.py (router mount)
Depends on: services/worker_service, services/workflow_service
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_manager, require_supervisor, unwrap
from ..models import Worker
from ..schemas.auth import (
    InvitationCreate,
    ReasonBody,
    StageAssignmentCreate,
    WorkerApprove,
    WorkerRoleUpdate,
    WorkerStatusUpdate,
)
from ..schemas.responses import OkResponse
from ..services import worker_service, workflow_service

router = APIRouter(tags=["workers"])


@router.get("/api/workers")
def list_workers(
    status: str | None = Query(None, pattern="^(pending|active|inactive)$"),
    user: Worker = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    return {"workers": worker_service.list_workers(db, status)}


@router.post("/api/workers/update-status")
def update_status(
    body: WorkerStatusUpdate,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return unwrap(worker_service.update_status(db, body.worker_id, body.is_active, user))


@router.post("/api/workers/update-role")
def update_role(
    body: WorkerRoleUpdate,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return unwrap(worker_service.update_role(db, body.worker_id, body.role, user))


@router.post("/api/workers/{worker_id}/approve")
def approve(
    worker_id: int,
    body: WorkerApprove | None = None,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    role = body.role if body else None
    return unwrap(worker_service.approve_worker(db, worker_id, user, role))


@router.post("/api/workers/{worker_id}/reject")
def reject(
    worker_id: int,
    body: ReasonBody,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return unwrap(worker_service.reject_worker(db, worker_id, user, body.reason))


@router.post("/api/workers/{worker_id}/suspend")
def suspend(
    worker_id: int,
    body: ReasonBody,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return unwrap(worker_service.suspend_worker(db, worker_id, user, body.reason))


@router.post("/api/workers/{worker_id}/reactivate")
def reactivate(worker_id: int, user: Worker = Depends(require_manager), db: Session = Depends(get_db)):
    return unwrap(worker_service.reactivate_worker(db, worker_id, user))


@router.post("/api/workers/invitations", status_code=201)
def invite(
    body: InvitationCreate,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return unwrap(worker_service.create_invitation(db, body.email, body.role, user))


# ── Stage assignments ────────────────────────────────────────────────


@router.get("/api/workers/stage-assignments")
def list_stage_assignments(
    stage: str | None = None,
    worker_id: int | None = None,
    user: Worker = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    return {"assignments": workflow_service.list_stage_assignments(db, stage, worker_id)}


@router.post("/api/workers/stage-assignments", status_code=201)
def create_stage_assignment(
    body: StageAssignmentCreate,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return unwrap(workflow_service.create_stage_assignment(db, body.model_dump(), user))


@router.delete("/api/workers/stage-assignments/{assignment_id}", response_model=OkResponse)
def delete_stage_assignment(
    assignment_id: int,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return unwrap(workflow_service.deactivate_stage_assignment(db, assignment_id))
