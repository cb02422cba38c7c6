"""
schemas/production.py — Pydantic models for tasks, timers, workflows and batches

Most fields are optional here; required-field and enum checks live in the
services so the API answers 400 with a readable message.

Called by: routers/tasks.py, routers/time_tracking.py, routers/workflows.py,
           routers/batches.py, routers/stages.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


# ── Tasks ───────────────────────────────────────────────────────────────


class TaskCreate(BaseModel):
    task_type: str | None = None
    order_item_id: int | None = None
    stage: str | None = None
    task_description: str | None = None
    batch_id: int | None = None
    assigned_to_id: int | None = None
    priority: str | None = None
    estimated_hours: float | None = None
    due_date: datetime | None = None
    notes: str | None = None


class TaskAssign(BaseModel):
    task_id: int
    worker_id: int | None = None


class TaskBulkAssign(BaseModel):
    order_item_ids: list[int] = Field(default_factory=list)
    worker_id: int | None = None
    stage: str | None = None
    estimated_hours: float = 2.0
    status: str = "assigned"
    priority: str = "normal"
    task_description: str | None = None
    notes: str | None = None


class TaskComplete(BaseModel):
    notes: str | None = None


class QcSubmit(BaseModel):
    results: dict = Field(default_factory=dict)
    overall_status: str
    notes: str | None = None


# ── Time tracking ───────────────────────────────────────────────────────


class TimerStart(BaseModel):
    stage: str = ""
    task_id: int | None = None
    batch_id: int | None = None
    notes: str | None = None


class TimerStop(BaseModel):
    time_log_id: int | None = None


# ── Workflows ───────────────────────────────────────────────────────────


class WorkflowStage(BaseModel, extra="allow"):
    stage: str | None = None
    name: str | None = None
    estimated_hours: float | None = None
    description: str | None = None
    is_optional: bool = False


class WorkflowCreate(BaseModel):
    name: str | None = None
    description: str | None = None
    stages: list[WorkflowStage] = Field(default_factory=list)
    stage_transitions: list[dict] | None = None
    trigger_rules: dict | None = None
    is_default: bool = False


class WorkflowUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    stages: list[WorkflowStage] | None = None
    stage_transitions: list[dict] | None = None
    trigger_rules: dict | None = None
    is_active: bool | None = None
    is_default: bool | None = None


# ── Batches ─────────────────────────────────────────────────────────────


class BatchCreate(BaseModel):
    name: str | None = None
    batch_type: str | None = None
    order_item_ids: list[int] = Field(default_factory=list)
    criteria: dict | None = None
    workflow_template_id: int | None = None


class BatchAssignWorkflow(BaseModel):
    workflow_template_id: int


class BatchTransition(BaseModel):
    to_stage: str | None = None
    notes: str | None = None
    transition_type: str = "manual"
    create_tasks: bool = False
    auto_assign: bool = False


class BatchGenerateTasks(BaseModel):
    stage: str | None = None
    auto_assign: bool = False


# ── Stages ──────────────────────────────────────────────────────────────


class CustomStageCreate(BaseModel):
    stage_code: str | None = None
    stage_name: str | None = None
    description: str | None = None
    default_estimated_hours: float | None = Field(default=None, ge=0)
    required_skills: list[str] = Field(default_factory=list)
