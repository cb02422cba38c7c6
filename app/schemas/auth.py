"""
schemas/auth.py — Pydantic models for login, registration and worker management

Business Rules:
- Emails are trimmed and lower-cased before lookup
- Missing registration fields reach the service as "" so it can answer 400
- Roles are worker | supervisor | manager

Called by: routers/auth.py, routers/workers.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

ROLE_PATTERN = r"^(worker|supervisor|manager)$"


class _EmailBody(BaseModel):
    email: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str | None) -> str:
        return (v or "").strip().lower()


class RegisterRequest(_EmailBody):
    password: str = ""
    name: str = ""
    invitation_token: str | None = None


class LoginRequest(_EmailBody):
    password: str = ""


class WorkerStatusUpdate(BaseModel):
    worker_id: int
    is_active: bool


class WorkerRoleUpdate(BaseModel):
    worker_id: int
    role: str


class WorkerApprove(BaseModel):
    role: str | None = Field(default=None, pattern=ROLE_PATTERN)


class ReasonBody(BaseModel):
    reason: str | None = None


class InvitationCreate(_EmailBody):
    role: str = "worker"


class StageAssignmentCreate(BaseModel):
    worker_id: int
    stage: str
    skill_level: str | None = Field(default=None, pattern=r"^(trainee|intermediate|expert)$")
