"""Workers, invitations, stage assignments and the user-management audit trail."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class Worker(Base):
    __tablename__ = "workers"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255))
    role = Column(String(20), default="worker", nullable=False)  # worker | supervisor | manager
    is_active = Column(Boolean, default=False, nullable=False)

    # Approval workflow: pending → approved | rejected; approved ⇄ suspended
    approval_status = Column(String(20), default="pending", nullable=False)
    approved_at = Column(UTCDateTime)
    approved_by_id = Column(Integer, ForeignKey("workers.id"))
    rejection_reason = Column(Text)
    suspended_at = Column(UTCDateTime)
    suspension_reason = Column(Text)

    skills = Column(JSON, default=list)
    last_active_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    approved_by = relationship("Worker", remote_side=[id], foreign_keys=[approved_by_id])
    stage_assignments = relationship("WorkerStageAssignment", back_populates="worker",
                                     foreign_keys="WorkerStageAssignment.worker_id")

    @property
    def can_work(self) -> bool:
        return bool(self.is_active) and self.approval_status == "approved"

    @property
    def is_supervisor(self) -> bool:
        return self.role in ("manager", "supervisor")


class WorkerInvitation(Base):
    """Pre-approved signup. Registering with the token skips manager approval."""

    __tablename__ = "worker_invitations"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(20), default="worker", nullable=False)
    invitation_token = Column(String(64), unique=True, nullable=False)
    invited_by_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    accepted_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    invited_by = relationship("Worker", foreign_keys=[invited_by_id])


class WorkerStageAssignment(Base):
    """Which production stages a worker is qualified for (used by auto-assign)."""

    __tablename__ = "worker_stage_assignments"
    id = Column(Integer, primary_key=True)
    worker_id = Column(Integer, ForeignKey("workers.id", ondelete="CASCADE"), nullable=False)
    stage = Column(String(50), nullable=False)
    skill_level = Column(String(20), default="intermediate")  # trainee | intermediate | expert
    is_active = Column(Boolean, default=True, nullable=False)
    assigned_by_id = Column(Integer, ForeignKey("workers.id"))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    worker = relationship("Worker", back_populates="stage_assignments", foreign_keys=[worker_id])

    __table_args__ = (
        Index("ix_stage_assign_stage_active", "stage", "is_active"),
        Index("ix_stage_assign_worker_stage", "worker_id", "stage", unique=True),
    )


class UserManagementAudit(Base):
    __tablename__ = "user_management_audit_log"
    id = Column(Integer, primary_key=True)
    actor_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    target_worker_id = Column(Integer, ForeignKey("workers.id"))
    target_email = Column(String(255))
    action_type = Column(String(50), nullable=False)
    previous_value = Column(JSON)
    new_value = Column(JSON)
    reason = Column(Text)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    actor = relationship("Worker", foreign_keys=[actor_id])

    __table_args__ = (Index("ix_audit_target_created", "target_worker_id", "created_at"),)
