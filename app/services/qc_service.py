"""QC checklists — manager-defined production steps, per-step checklists, worker submissions.

Business Rules:
- Saving steps or a step's checklist replaces the whole list; order is kept
  via sort_order 10, 20, 30, ...
- Checklist items are keyed by step value; saving a checklist requires an
  active step with that value
- Workers submit only for themselves; managers may submit for anyone
- Workers see only their own submissions; managers see all and can filter
- Populating defaults wipes every checklist, then refills the active steps
  that have a built-in list

Called by: routers/qc.py, routers/admin.py
Depends on: models (QcProductionStep, QcChecklistItem, QcSubmission, Worker)
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..models import QcChecklistItem, QcProductionStep, QcSubmission, Worker
from ..utils import iso

log = logging.getLogger(__name__)

SORT_STEP = 10


# ── Steps ────────────────────────────────────────────────────────────


def list_steps(db: Session) -> list[dict]:
    rows = (
        db.query(QcProductionStep)
        .filter(QcProductionStep.is_active.is_(True))
        .order_by(QcProductionStep.sort_order)
        .all()
    )
    return [{"value": s.value, "label": s.label, "sort_order": s.sort_order} for s in rows]


def save_steps(db: Session, steps: list[dict], manager: Worker) -> dict:
    cleaned = []
    for step in steps:
        value = step.get("value")
        label = step.get("label")
        if not isinstance(value, str) or not isinstance(label, str) or not value or not label:
            return {"error": "Each step must have both value and label as strings", "status": 400}
        cleaned.append((value.strip(), label.strip()))
    values = [v for v, _ in cleaned]
    if len(set(values)) != len(values):
        return {"error": "Step values must be unique", "status": 400}

    db.query(QcProductionStep).delete()
    for i, (value, label) in enumerate(cleaned, start=1):
        db.add(QcProductionStep(value=value, label=label, sort_order=i * SORT_STEP))
    db.commit()
    log.info("QC production steps replaced by %s: %s", manager.email, values)
    return {"success": True, "message": "QC production steps saved successfully",
            "stepsCount": len(cleaned)}


# ── Checklists ───────────────────────────────────────────────────────


def list_checklist(db: Session, step: str) -> list[dict]:
    rows = (
        db.query(QcChecklistItem)
        .filter(QcChecklistItem.production_step_value == step,
                QcChecklistItem.is_active.is_(True))
        .order_by(QcChecklistItem.sort_order)
        .all()
    )
    return [{"id": i.id, "item_text": i.item_text, "sort_order": i.sort_order} for i in rows]


def save_checklist(db: Session, step: str, items: list[dict], manager: Worker) -> dict:
    texts = []
    for item in items:
        text = item.get("item_text")
        if not isinstance(text, str) or not text.strip():
            return {"error": "Each item must have item_text as a string", "status": 400}
        texts.append(text.strip())
    exists = (
        db.query(QcProductionStep)
        .filter(QcProductionStep.value == step, QcProductionStep.is_active.is_(True))
        .first()
    )
    if not exists:
        return {"error": "Production step not found", "status": 404}

    db.query(QcChecklistItem).filter(QcChecklistItem.production_step_value == step).delete()
    for i, text in enumerate(texts, start=1):
        db.add(QcChecklistItem(production_step_value=step, item_text=text,
                               sort_order=i * SORT_STEP))
    db.commit()
    log.info("QC checklist for %s replaced by %s (%s items)", step, manager.email, len(texts))
    return {"success": True, "message": "Checklist items saved successfully",
            "itemsCount": len(texts)}


# ── Submissions ──────────────────────────────────────────────────────


def submission_to_dict(s: QcSubmission) -> dict:
    return {
        "id": s.id,
        "worker_id": s.worker_id,
        "worker_name": s.worker_name,
        "production_step": s.production_step,
        "checklist_items": s.checklist_items or [],
        "overall_notes": s.overall_notes,
        "product_info": s.product_info or {},
        "submitted_by_id": s.submitted_by_id,
        "submitted_at": iso(s.submitted_at),
    }


def create_submission(db: Session, body: dict, submitter: Worker) -> dict:
    worker_id = body.get("worker_id")
    worker_name = (body.get("worker_name") or "").strip()
    step = (body.get("production_step") or "").strip()
    items = body.get("checklist_items")
    if not worker_id or not worker_name or not step or items is None:
        return {"error": "Missing required fields", "status": 400}
    if submitter.role != "manager" and submitter.id != worker_id:
        return {"error": "Not authorized to submit for other workers", "status": 403}
    if not db.get(Worker, worker_id):
        return {"error": "Worker not found", "status": 404}

    submission = QcSubmission(
        worker_id=worker_id,
        worker_name=worker_name,
        production_step=step,
        checklist_items=list(items),
        overall_notes=body.get("overall_notes"),
        product_info=body.get("product_info") or {},
        submitted_by_id=submitter.id,
    )
    db.add(submission)
    db.commit()
    log.info("QC checklist #%s submitted: step=%s worker=%s items=%s",
             submission.id, step, worker_id, len(submission.checklist_items))
    return {"success": True, "submission_id": submission.id}


def list_submissions(
    db: Session,
    viewer: Worker,
    worker_id: int | None = None,
    production_step: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> list[dict]:
    q = db.query(QcSubmission)
    if viewer.role != "manager":
        q = q.filter(QcSubmission.worker_id == viewer.id)
    elif worker_id:
        q = q.filter(QcSubmission.worker_id == worker_id)
    if production_step:
        q = q.filter(QcSubmission.production_step == production_step)
    if from_date:
        q = q.filter(QcSubmission.submitted_at >= from_date)
    if to_date:
        q = q.filter(QcSubmission.submitted_at <= to_date)
    return [submission_to_dict(s) for s in q.order_by(QcSubmission.submitted_at.desc()).all()]


def list_active_workers(db: Session) -> list[dict]:
    rows = db.query(Worker).filter(Worker.is_active.is_(True)).order_by(Worker.name).all()
    return [{"id": w.id, "name": w.name, "email": w.email} for w in rows]


# ── Defaults ─────────────────────────────────────────────────────────

DEFAULT_CHECKLISTS = {
    "inventory_intake": [
        "Cup Count Verification: number of cups received matches what was shipped.",
        "Grade Check: all cups are A stock, not B stock.",
        "Wood Type Validation: wood type matches the product ordered.",
        "Matching Pairs: left and right cups and baffles are matched for each unit.",
    ],
    "sanding_pre_work": [
        "Left/Right Pairing: cups are paired correctly as left and right.",
        "Grille Fit Pre-Check: grilles fit before sanding begins.",
        "Drilling Completion: gimbal and jack holes are drilled out.",
        "Wood Match: wood matches the work order.",
    ],
    "sanding_post_work": [
        "Surface Smoothness: uniform, without gouges or unevenness.",
        "Shape Accuracy: consistent with the example pieces for the model.",
        "Edge Treatment: edges rounded or beveled as needed.",
        "Gimbal Fit: gimbals fit after sanding.",
    ],
    "finishing_post_work": [
        "Slots Stained: slots evenly and adequately stained.",
        "Bottom Rim Stained: bottom rim has proper stain treatment.",
        "Finish Cleanliness: no niblets, hairs or debris in the finish.",
    ],
    "final_assembly": [
        "Parts Verification: all parts match the assigned specs.",
        "Grille Fit: grille fits and slots are darkened as needed.",
        "Gimbal Tension: even tension on both sides.",
        "Audio Test (Sonic Sweeps): no buzzes or rattles.",
        "Audio Test (In Phase): stereo phase test passes.",
    ],
    "acoustic_aesthetic_qc": [
        "Listening Test: sound signature matches the reference unit.",
        "Cosmetic Review: no blemishes, fingerprints or mismatched grain.",
        "Headband Stamp: stamp is present on the headband.",
    ],
    "shipping": [
        "Cleaning: all surfaces wiped, metal and wood polished.",
        "Accessory Inclusion: cables, case and documentation present.",
        "Packaging Inspection: items secured for transit.",
        "Pre-Pack Confirmation: matches the Shopify order.",
    ],
}


def populate_default_checklists(db: Session, manager: Worker) -> dict:
    """Replace every checklist with the built-in defaults for the active steps that have one."""
    steps = (
        db.query(QcProductionStep)
        .filter(QcProductionStep.is_active.is_(True))
        .order_by(QcProductionStep.sort_order)
        .all()
    )
    db.query(QcChecklistItem).delete()
    summary = []
    for step in steps:
        texts = DEFAULT_CHECKLISTS.get(step.value)
        if not texts:
            continue
        for i, text in enumerate(texts, start=1):
            db.add(QcChecklistItem(production_step_value=step.value, item_text=text,
                                   sort_order=i * SORT_STEP))
        summary.append({"step": step.label, "value": step.value, "itemCount": len(texts)})
    db.commit()
    total = sum(s["itemCount"] for s in summary)
    log.info("Default QC checklists populated by %s: %s items", manager.email, total)
    return {
        "success": True,
        "message": f"Populated {total} checklist items across {len(steps)} production steps",
        "totalItems": total,
        "stepsProcessed": len(steps),
        "summary": summary,
    }
