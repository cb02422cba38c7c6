"""Workflow template API — CRUD, duplicate and stage preview (supervisor+)."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_manager, require_supervisor, unwrap
from ..models import Worker
from ..schemas.production import WorkflowCreate, WorkflowUpdate
from ..schemas.responses import OkResponse
from ..services import workflow_service

router = APIRouter(tags=["workflows"])


@router.get("/api/workflows")
def list_workflows(include_inactive: bool = False, user: Worker = Depends(require_supervisor),
                   db: Session = Depends(get_db)):
    return {"workflows": workflow_service.list_workflows(db, include_inactive)}


@router.post("/api/workflows", status_code=201)
def create_workflow(body: WorkflowCreate, user: Worker = Depends(require_supervisor),
                    db: Session = Depends(get_db)):
    return unwrap(workflow_service.create_workflow(db, body.model_dump(), user))


@router.get("/api/workflows/{workflow_id}")
def get_workflow(workflow_id: int, user: Worker = Depends(require_supervisor),
                 db: Session = Depends(get_db)):
    return unwrap(workflow_service.get_workflow(db, workflow_id))


@router.put("/api/workflows/{workflow_id}")
def update_workflow(workflow_id: int, body: WorkflowUpdate,
                    user: Worker = Depends(require_supervisor), db: Session = Depends(get_db)):
    return unwrap(workflow_service.update_workflow(db, workflow_id, body.model_dump(exclude_unset=True)))


@router.delete("/api/workflows/{workflow_id}", response_model=OkResponse)
def delete_workflow(workflow_id: int, user: Worker = Depends(require_manager),
                    db: Session = Depends(get_db)):
    return unwrap(workflow_service.deactivate_workflow(db, workflow_id))


@router.post("/api/workflows/{workflow_id}/duplicate", status_code=201)
def duplicate_workflow(workflow_id: int, user: Worker = Depends(require_supervisor),
                       db: Session = Depends(get_db)):
    return unwrap(workflow_service.duplicate_workflow(db, workflow_id, user))


@router.get("/api/workflows/{workflow_id}/preview")
def preview_workflow(workflow_id: int, user: Worker = Depends(require_supervisor),
                     db: Session = Depends(get_db)):
    return unwrap(workflow_service.preview_workflow(db, workflow_id))
