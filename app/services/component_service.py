"""Component tracking and QR labels for matched cup pairs.

Business Rules:
- Each cup gets its own serial ({MODEL}-{YYMM}-{HEX}); the pair shares a uuid cup_pair_id
- The journey starts with a single "created" entry
- QR payload is compact JSON {id, l, r, t}; t is epoch milliseconds
- Scanning resolves the payload back to the component by id
- Search matches either cup serial; the journey timeline merges stage moves,
  task start/finish, inspections and holds in time order

Called by: routers/components.py
Depends on: models (ComponentTracking, WorkTask, InspectionResult, QualityHold), qrcode
"""

import base64
import json
import logging
import secrets
import time
import uuid
from datetime import datetime, timezone
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models import ComponentTracking, InspectionResult, QualityHold, Worker, WorkTask
from ..utils import iso

log = logging.getLogger(__name__)

GRADES = ("A", "B")


def component_to_dict(c: ComponentTracking) -> dict:
    return {
        "id": c.id,
        "cup_pair_id": c.cup_pair_id,
        "left_cup_serial": c.left_cup_serial,
        "right_cup_serial": c.right_cup_serial,
        "wood_batch_id": c.wood_batch_id,
        "grade": c.grade,
        "specifications": c.specifications or {},
        "journey": c.journey or [],
        "source_tracking": c.source_tracking or {},
        "final_metrics": c.final_metrics or {},
        "rework_count": c.rework_count(),
        "created_at": iso(c.created_at),
    }


def generate_serial(model: str | None) -> str:
    prefix = "".join(ch for ch in (model or "CUP").upper() if ch.isalnum())[:3] or "CUP"
    return f"{prefix}-{datetime.now(timezone.utc):%y%m}-{secrets.token_hex(3).upper()}"


def list_components(db: Session, cup_pair_id: str | None = None, grade: str | None = None,
                    serial: str | None = None, limit: int = 100) -> list[dict]:
    q = db.query(ComponentTracking)
    if cup_pair_id:
        q = q.filter(ComponentTracking.cup_pair_id == cup_pair_id)
    if grade:
        q = q.filter(ComponentTracking.grade == grade)
    if serial:
        q = q.filter(or_(ComponentTracking.left_cup_serial == serial,
                         ComponentTracking.right_cup_serial == serial))
    rows = q.order_by(ComponentTracking.created_at.desc()).limit(limit).all()
    return [component_to_dict(c) for c in rows]


def get_component(db: Session, component_id: int) -> dict:
    c = db.get(ComponentTracking, component_id)
    if not c:
        return {"error": "Component not found", "status": 404}
    return component_to_dict(c)


def create_component(db: Session, body: dict, creator: Worker) -> dict:
    model = body.get("model")
    if not model:
        return {"error": "model is required", "status": 400}
    grade = body.get("grade") or "A"
    if grade not in GRADES:
        return {"error": "grade must be A or B", "status": 400}

    c = ComponentTracking(
        cup_pair_id=str(uuid.uuid4()),
        left_cup_serial=generate_serial(model),
        right_cup_serial=generate_serial(model),
        wood_batch_id=body.get("wood_batch_id"),
        grade=grade,
        source_tracking=body.get("source_tracking") or {},
        specifications={
            "model": model,
            "wood_type": body.get("wood_type"),
            "finish_type": body.get("finish_type"),
            "customer_order_id": body.get("order_item_id"),
            "custom_requirements": list(body.get("custom_requirements") or []),
        },
        journey=[{
            "stage": "created",
            "worker_id": creator.id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration_minutes": 0,
            "rework": False,
        }],
    )
    db.add(c)
    db.commit()
    log.info("Component %s created (%s / %s)", c.id, c.left_cup_serial, c.right_cup_serial)
    return component_to_dict(c)


# ── QR codes ─────────────────────────────────────────────────────────


def qr_payload(component_id: int, left_serial: str, right_serial: str) -> str:
    return json.dumps(
        {"id": component_id, "l": left_serial, "r": right_serial, "t": int(time.time() * 1000)},
        separators=(",", ":"),
    )


def render_qr_png(data: str, box_size: int = 8, border: int = 2) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_qr_base64(data: str) -> str:
    return base64.b64encode(render_qr_png(data)).decode("ascii")


def parse_qr(qr_data: str) -> dict | None:
    """Decoded payload, or None when it is not one of our labels."""
    try:
        data = json.loads(qr_data)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or "id" not in data:
        return None
    return data


def scan_qr(db: Session, qr_data: str) -> dict:
    if not qr_data:
        return {"error": "QR data is required", "status": 400}
    data = parse_qr(qr_data)
    if data is None:
        return {"error": "Invalid QR code format", "status": 400}
    try:
        component_id = int(data["id"])
    except (TypeError, ValueError):
        return {"error": "Invalid QR code format", "status": 400}
    c = db.get(ComponentTracking, component_id)
    if not c:
        return {"error": "Component not found", "status": 404}
    return {"success": True, "component": component_to_dict(c), "scanned_data": data}


# ── Search & journey ─────────────────────────────────────────────────


def search_component(db: Session, serial: str | None) -> dict:
    serial = (serial or "").strip()
    if not serial:
        return {"error": "Serial number required", "status": 400}
    c = (
        db.query(ComponentTracking)
        .filter(or_(ComponentTracking.left_cup_serial == serial,
                    ComponentTracking.right_cup_serial == serial))
        .first()
    )
    if not c:
        return {"error": "Component not found", "status": 404}
    data = component_to_dict(c)
    task = (
        db.query(WorkTask)
        .filter(WorkTask.component_tracking_id == c.id, WorkTask.status != "completed")
        .order_by(WorkTask.created_at.desc())
        .first()
    )
    data["current_task"] = (
        {
            "id": task.id,
            "stage": task.stage,
            "status": task.status,
            "assigned_to": task.assigned_to.name if task.assigned_to else None,
        }
        if task
        else None
    )
    return data


def add_journey_entry(db: Session, component_id: int, body: dict, worker: Worker) -> dict:
    c = db.get(ComponentTracking, component_id)
    if not c:
        return {"error": "Component not found", "status": 404}
    stage = (body.get("stage") or "").strip()
    if not stage:
        return {"error": "stage is required", "status": 400}
    entry = {
        "stage": stage,
        "action": body.get("action") or "stage_completed",
        "worker_id": worker.id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "duration_minutes": body.get("duration_minutes") or 0,
        "rework": bool(body.get("rework")),
    }
    if body.get("notes"):
        entry["notes"] = body["notes"]
    c.journey = list(c.journey or []) + [entry]
    db.commit()
    log.info("Component %s journey: %s by %s", c.id, stage, worker.email)
    return component_to_dict(c)


def _parse_ts(value) -> datetime | None:
    if isinstance(value, datetime):
        return value
    try:
        ts = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def component_journey(db: Session, component_id: int) -> dict:
    """Chronological timeline of a cup pair: creation, stage moves, tasks, inspections, holds."""
    c = db.get(ComponentTracking, component_id)
    if not c:
        return {"error": "Component not found", "status": 404}

    events: list[tuple[datetime, dict]] = []

    def add(ts, event_type: str, description: str, data: dict | None = None):
        ts = _parse_ts(ts)
        if ts:
            events.append((ts, {"timestamp": ts.isoformat(), "type": event_type,
                                "description": description, "data": data or {}}))

    add(c.created_at, "created",
        f"Component created with serials {c.left_cup_serial} / {c.right_cup_serial}",
        {"model": (c.specifications or {}).get("model"), "grade": c.grade})

    # Failed inspections are also written to the journey; they come in below
    for entry in c.journey or []:
        if not isinstance(entry, dict) or entry.get("stage") == "created":
            continue
        if entry.get("action") == "inspection_failed":
            continue
        add(entry.get("timestamp"), "rework" if entry.get("rework") else "stage",
            f"{entry.get('stage')}: {entry.get('action') or 'stage_completed'}",
            {k: v for k, v in entry.items() if k != "timestamp"})

    tasks = db.query(WorkTask).filter(WorkTask.component_tracking_id == c.id).all()
    for t in tasks:
        worker = t.assigned_to.name if t.assigned_to else None
        add(t.started_at, "task_started", f"{t.task_type} started",
            {"task_id": t.id, "worker": worker, "batch_id": t.batch_id})
        add(t.completed_at, "task_completed", f"{t.task_type} completed",
            {"task_id": t.id, "status": t.status})

    inspections = (
        db.query(InspectionResult)
        .filter(InspectionResult.component_tracking_id == c.id)
        .order_by(InspectionResult.inspected_at.asc())
        .all()
    )
    for r in inspections:
        name = (r.checkpoint.name or r.checkpoint.stage) if r.checkpoint else "Inspection"
        add(r.inspected_at, "inspection", f"{name} checkpoint", {
            "passed": bool(r.passed),
            "stage": r.checkpoint.stage if r.checkpoint else None,
            "inspector": r.worker.name if r.worker else None,
            "failed_checks": r.failed_checks or [],
        })

    holds = (
        db.query(QualityHold)
        .filter(QualityHold.component_tracking_id == c.id)
        .order_by(QualityHold.created_at.asc())
        .all()
    )
    for h in holds:
        add(h.created_at, "hold_created", f"Quality hold: {h.hold_reason}",
            {"hold_id": h.id, "severity": h.severity})
        if h.status == "resolved":
            add(h.resolved_at, "hold_resolved", "Quality hold resolved",
                {"hold_id": h.id, "resolution_notes": h.resolution_notes})

    events.sort(key=lambda e: e[0])
    return {
        "component": component_to_dict(c),
        "timeline": [e for _, e in events],
        "summary": {
            "total_inspections": len(inspections),
            "passed_inspections": sum(1 for r in inspections if r.passed),
            "total_holds": len(holds),
            "active_holds": sum(1 for h in holds if h.status != "resolved"),
            "current_grade": c.grade,
            "rework_count": c.rework_count(),
        },
    }
