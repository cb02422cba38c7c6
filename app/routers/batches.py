"""
routers/batches.py — Work batches: create, assign workflow, move between stages

Business Rules:
- Supervisor or manager only
- A batch on quality hold cannot change stage (409)
- Stage moves and task generation are logged in the workflow execution log

Called by: main.py (router mount)
Depends on: services/workflow_service
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_supervisor, unwrap
from ..models import Worker
from ..schemas.production import (
    BatchAssignWorkflow,
    BatchCreate,
    BatchGenerateTasks,
    BatchTransition,
)
from ..services import workflow_service

router = APIRouter(tags=["batches"])


@router.get("/api/batches")
def list_batches(status: str | None = None, user: Worker = Depends(require_supervisor),
                 db: Session = Depends(get_db)):
    return {"batches": workflow_service.list_batches(db, status)}


@router.post("/api/batches", status_code=201)
def create_batch(body: BatchCreate, user: Worker = Depends(require_supervisor),
                 db: Session = Depends(get_db)):
    return unwrap(workflow_service.create_batch(db, body.model_dump()))


@router.get("/api/batches/{batch_id}")
def get_batch(batch_id: int, user: Worker = Depends(require_supervisor),
              db: Session = Depends(get_db)):
    return unwrap(workflow_service.get_batch(db, batch_id))


@router.post("/api/batches/{batch_id}/workflow")
def assign_workflow(batch_id: int, body: BatchAssignWorkflow,
                    user: Worker = Depends(require_supervisor), db: Session = Depends(get_db)):
    return unwrap(workflow_service.assign_workflow(db, batch_id, body.workflow_template_id))


@router.post("/api/batches/{batch_id}/transition")
def transition(batch_id: int, body: BatchTransition,
               user: Worker = Depends(require_supervisor), db: Session = Depends(get_db)):
    return unwrap(workflow_service.transition_batch(db, batch_id, body.model_dump(), user))


@router.post("/api/batches/{batch_id}/generate-tasks", status_code=201)
def generate_tasks(batch_id: int, body: BatchGenerateTasks,
                   user: Worker = Depends(require_supervisor), db: Session = Depends(get_db)):
    return unwrap(workflow_service.generate_tasks(db, batch_id, body.model_dump(), user))
