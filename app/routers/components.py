"""
routers/components.py — Component (cup pair) tracking and QR labels

Business Rules:
- Creating components is supervisor+; any worker can list, view and scan
- QR generate returns a PNG download, or base64 JSON with ?format=json
- Any worker can record a stage move on a component's journey

Called by: main.py (router mount)
Depends on: services/component_service
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_supervisor, require_worker, unwrap
from ..models import Worker
from ..schemas.quality import ComponentCreate, JourneyEntry, QrGenerate, QrScan
from ..services import component_service

router = APIRouter(tags=["components"])


@router.get("/api/components")
def list_components(
    cup_pair_id: str | None = None,
    grade: str | None = None,
    serial: str | None = None,
    user: Worker = Depends(require_worker),
    db: Session = Depends(get_db),
):
    return {"components": component_service.list_components(db, cup_pair_id, grade, serial)}


@router.post("/api/components", status_code=201)
def create_component(body: ComponentCreate, user: Worker = Depends(require_supervisor),
                     db: Session = Depends(get_db)):
    return unwrap(component_service.create_component(db, body.model_dump(), user))


@router.get("/api/components/search")
def search_component(serial: str | None = None, user: Worker = Depends(require_worker),
                     db: Session = Depends(get_db)):
    return unwrap(component_service.search_component(db, serial))


@router.get("/api/components/{component_id}")
def get_component(component_id: int, user: Worker = Depends(require_worker),
                  db: Session = Depends(get_db)):
    return unwrap(component_service.get_component(db, component_id))


@router.get("/api/components/{component_id}/journey")
def component_journey(component_id: int, user: Worker = Depends(require_worker),
                      db: Session = Depends(get_db)):
    return unwrap(component_service.component_journey(db, component_id))


@router.post("/api/components/{component_id}/journey")
def add_journey_entry(component_id: int, body: JourneyEntry, user: Worker = Depends(require_worker),
                      db: Session = Depends(get_db)):
    return unwrap(component_service.add_journey_entry(db, component_id, body.model_dump(), user))


@router.post("/api/qr/generate")
def generate_qr(
    body: QrGenerate,
    format: str = Query("png", pattern="^(png|json)$"),
    user: Worker = Depends(require_worker),
):
    if not body.component_id or not body.left_serial or not body.right_serial:
        raise HTTPException(400, "component_id, left_serial and right_serial are required")
    payload = component_service.qr_payload(body.component_id, body.left_serial, body.right_serial)
    if format == "json":
        return {
            "qr_data": payload,
            "image_base64": component_service.render_qr_base64(payload),
            "content_type": "image/png",
        }
    return Response(
        content=component_service.render_qr_png(payload),
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="QR_{body.left_serial}.png"'},
    )


@router.put("/api/qr/scan")
def scan_qr(body: QrScan, user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return unwrap(component_service.scan_qr(db, body.qr_data or ""))
