"""
schemas/qc.py — Pydantic models for QC steps, checklists and submissions

Step and item fields stay loose so the service can answer 400 with its own
message.

Called by: routers/qc.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class QcStepIn(BaseModel):
    value: str | None = None
    label: str | None = None


class QcStepsSave(BaseModel):
    steps: list[QcStepIn]


class QcChecklistItemIn(BaseModel):
    item_text: str | None = None


class QcChecklistSave(BaseModel):
    items: list[QcChecklistItemIn]


class QcSubmissionCreate(BaseModel):
    worker_id: int | None = None
    worker_name: str | None = None
    production_step: str | None = None
    checklist_items: list[dict] | None = None
    overall_notes: str | None = None
    product_info: dict = Field(default_factory=dict)
