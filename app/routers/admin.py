"""Admin API — system health and QC checklist defaults for managers."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text as sqltext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_manager
from ..models import Worker
from ..services.qc_service import populate_default_checklists
from ..services.worker_service import get_system_health

router = APIRouter(tags=["admin"])
log = logging.getLogger(__name__)


@router.get("/api/admin/health")
def api_health(user: Worker = Depends(require_manager), db: Session = Depends(get_db)):
    try:
        db.execute(sqltext("SELECT 1"))
    except SQLAlchemyError as e:
        log.error("Health check: database unreachable: %s", e)
        return {"database": "unreachable", "error": str(e)}
    return {"database": "ok", **get_system_health(db)}


@router.post("/api/admin/populate-qc-checklists")
def populate_qc_checklists(user: Worker = Depends(require_manager), db: Session = Depends(get_db)):
    return populate_default_checklists(db, user)
