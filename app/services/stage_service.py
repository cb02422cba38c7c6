"""Production stage catalogue: the built-in stages plus shop-defined custom stages.

Business Rules:
- stage_code is letters, digits and underscores; unique across custom and
  built-in stages
- Custom stages are listed alphabetically by name after the built-in ones
- Custom stages are never optional

Called by: routers/stages.py
Depends on: models (CustomStage)
"""

import re

from loguru import logger
from sqlalchemy.orm import Session

from ..models import CustomStage, Worker
from ..utils import iso

_CODE_RE = re.compile(r"^[A-Za-z0-9_]+$")

STANDARD_STAGES = (
    {"stage": "sanding", "name": "Sanding",
     "description": "Sand headphone cups to prepare for finishing",
     "estimated_hours": 2.0, "required_skills": ["sanding"], "is_optional": False},
    {"stage": "finishing", "name": "UV Coating",
     "description": "Apply UV protective coating",
     "estimated_hours": 1.5, "required_skills": ["finishing"], "is_optional": False},
    {"stage": "sub_assembly", "name": "Sub Assembly",
     "description": "Prepare components for main assembly",
     "estimated_hours": 1.0, "required_skills": ["assembly"], "is_optional": True},
    {"stage": "assembly", "name": "Assembly",
     "description": "Main headphone assembly process",
     "estimated_hours": 3.0, "required_skills": ["assembly"], "is_optional": False},
    {"stage": "initial_qc", "name": "Initial QC",
     "description": "Initial quality control inspection",
     "estimated_hours": 0.5, "required_skills": ["qc"], "is_optional": False},
    {"stage": "acoustic_testing", "name": "Acoustic Testing",
     "description": "Test acoustic performance and tuning",
     "estimated_hours": 1.0, "required_skills": ["acoustic_testing"], "is_optional": False},
    {"stage": "final_qc", "name": "Final QC",
     "description": "Final quality control and approval",
     "estimated_hours": 0.5, "required_skills": ["qc"], "is_optional": False},
    {"stage": "packaging", "name": "Packaging",
     "description": "Package headphones for shipping",
     "estimated_hours": 0.5, "required_skills": ["packaging"], "is_optional": False},
    {"stage": "shipping", "name": "Shipping",
     "description": "Prepare for shipment and logistics",
     "estimated_hours": 0.25, "required_skills": ["shipping"], "is_optional": False},
)
STANDARD_CODES = frozenset(s["stage"] for s in STANDARD_STAGES)


def custom_stage_to_dict(s: CustomStage) -> dict:
    return {
        "id": s.id,
        "stage_code": s.stage_code,
        "stage_name": s.stage_name,
        "description": s.description,
        "default_estimated_hours": s.default_estimated_hours,
        "required_skills": s.required_skills or [],
        "is_active": bool(s.is_active),
        "created_by": {"id": s.created_by.id, "name": s.created_by.name} if s.created_by else None,
        "created_at": iso(s.created_at),
    }


def _active_custom(db: Session) -> list[CustomStage]:
    return (
        db.query(CustomStage)
        .filter(CustomStage.is_active.is_(True))
        .order_by(CustomStage.stage_name)
        .all()
    )


def list_custom_stages(db: Session) -> list[dict]:
    return [custom_stage_to_dict(s) for s in _active_custom(db)]


def create_custom_stage(db: Session, body: dict, creator: Worker) -> dict:
    code = (body.get("stage_code") or "").strip()
    name = (body.get("stage_name") or "").strip()
    if not code or not name:
        return {"error": "Missing required fields: stage_code and stage_name are required",
                "status": 400}
    if not _CODE_RE.match(code):
        return {"error": "stage_code must contain only letters, numbers, and underscores",
                "status": 400}
    if code in STANDARD_CODES or db.query(CustomStage).filter_by(stage_code=code).first():
        return {"error": "A stage with this code already exists", "status": 400}

    stage = CustomStage(
        stage_code=code,
        stage_name=name,
        description=body.get("description"),
        default_estimated_hours=body.get("default_estimated_hours"),
        required_skills=list(body.get("required_skills") or []),
        created_by_id=creator.id,
    )
    db.add(stage)
    db.commit()
    logger.info("Custom stage {} ({}) created by {}", code, name, creator.email)
    return custom_stage_to_dict(stage)


def all_stages(db: Session, stage_type: str | None = None, include_optional: bool = True) -> list[dict]:
    """Built-in and custom stages in one shape. stage_type: standard | custom | all."""
    standard = [{**s, "is_standard": True, "is_custom": False} for s in STANDARD_STAGES]
    custom = [
        {
            "stage": s.stage_code,
            "name": s.stage_name,
            "description": s.description or "",
            "estimated_hours": s.default_estimated_hours or 1.0,
            "required_skills": s.required_skills or [],
            "is_optional": False,
            "is_standard": False,
            "is_custom": True,
            "created_by_id": s.created_by_id,
        }
        for s in _active_custom(db)
    ]
    if stage_type == "standard":
        stages = standard
    elif stage_type == "custom":
        stages = custom
    else:
        stages = standard + custom
    if not include_optional:
        stages = [s for s in stages if not s["is_optional"]]
    return stages
