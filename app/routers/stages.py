"""
routers/stages.py — Production stage catalogue (built-in + custom)

Business Rules:
- Any worker can list stages; supervisors and managers create custom stages

Called by: main.py (router mount)
Depends on: services/stage_service
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_supervisor, require_worker, unwrap
from ..models import Worker
from ..schemas.production import CustomStageCreate
from ..services import stage_service

router = APIRouter(tags=["stages"])


@router.get("/api/stages/custom")
def list_custom_stages(user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return stage_service.list_custom_stages(db)


@router.post("/api/stages/custom", status_code=201)
def create_custom_stage(body: CustomStageCreate, user: Worker = Depends(require_supervisor),
                        db: Session = Depends(get_db)):
    return unwrap(stage_service.create_custom_stage(db, body.model_dump(), user))


@router.get("/api/stages/all")
def all_stages(
    type: str = Query("all", pattern="^(standard|custom|all)$"),
    include_optional: bool = True,
    user: Worker = Depends(require_worker),
    db: Session = Depends(get_db),
):
    return stage_service.all_stages(db, type, include_optional)
