"""
routers/repairs.py — Repair orders, issues, actions, timers and knowledge base

Business Rules:
- Any approved, active worker can create and work repairs
- Cancel (soft delete) is manager-only
- Filters use the intake screen's names: assignedToMe, repairType

Called by: main.py (router mount)
Depends on: services/repair_service
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_manager, require_worker, unwrap
from ..models import Worker
from ..schemas.repairs import (
    RepairActionCreate,
    RepairCreate,
    RepairIssueCreate,
    RepairTimerStart,
    RepairTimerStop,
    RepairUpdate,
)
from ..schemas.responses import OkResponse
from ..services import repair_service

router = APIRouter(tags=["repairs"])


@router.get("/api/repairs")
def list_repairs(
    status: str | None = None,
    assigned_to_me: bool = Query(False, alias="assignedToMe"),
    repair_type: str | None = Query(None, alias="repairType"),
    priority: str | None = None,
    user: Worker = Depends(require_worker),
    db: Session = Depends(get_db),
):
    return {"repairs": repair_service.list_repairs(
        db, user, status, assigned_to_me, repair_type, priority
    )}


@router.post("/api/repairs", status_code=201)
def create_repair(body: RepairCreate, user: Worker = Depends(require_worker),
                  db: Session = Depends(get_db)):
    return unwrap(repair_service.create_repair(db, body.model_dump(), user))


@router.get("/api/repairs/knowledge-base")
def knowledge_base(model: str | None = None, category: str | None = None,
                   user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return {"entries": repair_service.search_knowledge_base(db, model, category)}


@router.get("/api/repairs/{repair_id}")
def get_repair(repair_id: int, user: Worker = Depends(require_worker),
               db: Session = Depends(get_db)):
    return unwrap(repair_service.get_repair(db, repair_id))


@router.patch("/api/repairs/{repair_id}")
def update_repair(repair_id: int, body: RepairUpdate, user: Worker = Depends(require_worker),
                  db: Session = Depends(get_db)):
    return unwrap(repair_service.update_repair(db, repair_id, body.model_dump(exclude_unset=True), user))


@router.delete("/api/repairs/{repair_id}", response_model=OkResponse)
def cancel_repair(repair_id: int, user: Worker = Depends(require_manager),
                  db: Session = Depends(get_db)):
    return unwrap(repair_service.cancel_repair(db, repair_id, user))


@router.post("/api/repairs/{repair_id}/issues", status_code=201)
def add_issue(repair_id: int, body: RepairIssueCreate, user: Worker = Depends(require_worker),
              db: Session = Depends(get_db)):
    return unwrap(repair_service.add_issue(db, repair_id, body.model_dump(), user))


@router.post("/api/repairs/{repair_id}/actions", status_code=201)
def add_action(repair_id: int, body: RepairActionCreate, user: Worker = Depends(require_worker),
               db: Session = Depends(get_db)):
    return unwrap(repair_service.add_action(db, repair_id, body.model_dump(), user))


@router.post("/api/repairs/{repair_id}/time/start", status_code=201)
def start_timer(repair_id: int, body: RepairTimerStart | None = None,
                user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    description = body.work_description if body else None
    return unwrap(repair_service.start_repair_timer(db, repair_id, user, description))


@router.post("/api/repairs/{repair_id}/time/stop")
def stop_timer(repair_id: int, body: RepairTimerStop | None = None,
               user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    location = body.return_location if body else None
    return unwrap(repair_service.stop_repair_timer(db, repair_id, user, location))
