"""
schemas/responses.py — Shared response models for OpenAPI documentation

Base wrappers plus typed response models for the most-used endpoints.
Used as response_model= on router decorators.

Called by: routers/*.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# ── Base Wrappers ───────────────────────────────────────────────────────


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = ""


# ── Workers ─────────────────────────────────────────────────────────────


class WorkerOut(BaseModel, extra="allow"):
    id: int
    name: str
    email: str
    role: str = "worker"
    is_active: bool = False
    approval_status: str = "pending"


class WorkerStatsResponse(BaseModel):
    totalTasks: int = 0
    inProgress: int = 0
    completed: int = 0
    urgent: int = 0


# ── Tasks ───────────────────────────────────────────────────────────────


class TaskOut(BaseModel, extra="allow"):
    id: int
    task_type: str
    stage: str | None = None
    status: str = "pending"
    priority: str = "normal"
    rework_count: int = 0


# ── Quality ─────────────────────────────────────────────────────────────


class AlertsResponse(BaseModel, extra="allow"):
    alerts: list[dict] = Field(default_factory=list)
    summary: dict = Field(default_factory=dict)


# ── Shopify ─────────────────────────────────────────────────────────────


class ShopifyImportResponse(BaseModel, extra="allow"):
    success: bool = True
    order_id: int | None = None
    itemsCreated: int = 0
    tasksCreated: int = 0
    details: list[str] = Field(default_factory=list)
