"""
schemas/quality.py — Pydantic models for holds, patterns, checkpoints,
inspections, production issues, component labels and journeys,
and checkpoint templates

Called by: routers/quality.py, routers/issues.py, routers/components.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class HoldCreate(BaseModel):
    hold_reason: str | None = None
    severity: str | None = None
    batch_id: int | None = None
    component_tracking_id: int | None = None
    assigned_to_id: int | None = None


class HoldUpdate(BaseModel):
    status: str | None = None
    resolution_notes: str | None = None
    assigned_to_id: int | None = None


class PatternUpsert(BaseModel):
    stage: str | None = None
    issue_type: str | None = None
    cause: str | None = None
    solution: str | None = None
    prevention_tip: str | None = None
    model: str | None = None
    material: str | None = None
    severity_trend: str | None = Field(default=None, pattern=r"^(increasing|stable|decreasing)$")


class CheckpointCreate(BaseModel):
    stage: str | None = None
    checkpoint_type: str | None = None
    name: str | None = None
    workflow_template_id: int | None = None
    checks: list = Field(default_factory=list)
    severity: str | None = None
    on_failure: str | None = None


class InspectionCreate(BaseModel):
    task_id: int
    checkpoint_id: int
    passed: bool
    component_tracking_id: int | None = None
    failed_checks: list[str] = Field(default_factory=list)
    root_cause: str | None = None
    corrective_action: str | None = None
    prevention_suggestion: str | None = None
    time_to_resolve: int | None = None
    notes: str | None = None
    measurement_data: dict = Field(default_factory=dict)


class IssueReport(BaseModel):
    stage: str | None = None
    issue_type: str | None = None
    severity: str | None = None
    title: str | None = None
    description: str | None = None
    task_id: int | None = None
    batch_id: int | None = None
    order_item_id: int | None = None
    image_urls: list[str] = Field(default_factory=list)


class IssueResolve(BaseModel):
    resolution_status: str = "resolved"
    resolution_notes: str | None = None


class ComponentCreate(BaseModel):
    model: str | None = None
    wood_type: str | None = None
    finish_type: str | None = None
    grade: str = "A"
    wood_batch_id: str | None = None
    order_item_id: int | None = None
    source_tracking: dict | None = None
    custom_requirements: list[str] = Field(default_factory=list)


class QrGenerate(BaseModel):
    component_id: int | None = None
    left_serial: str | None = None
    right_serial: str | None = None


class QrScan(BaseModel):
    qr_data: str | None = None


class JourneyEntry(BaseModel):
    stage: str | None = None
    action: str | None = None
    duration_minutes: int = Field(default=0, ge=0)
    rework: bool = False
    notes: str | None = None


class CheckpointTemplateCheck(BaseModel):
    id: str
    description: str = Field(min_length=1)
    requires_photo: bool = False
    requires_measurement: bool = False
    acceptance_criteria: str = Field(min_length=1)
    common_failures: list[str] = Field(default_factory=list)


class CheckpointTemplateSave(BaseModel):
    stage_name: str = Field(min_length=1)
    checkpoint_type: str = Field(pattern=r"^(pre_work|in_process|post_work|gate)$")
    template_name: str = Field(min_length=1)
    checks: list[CheckpointTemplateCheck] = Field(default_factory=list)
    is_default: bool = False
