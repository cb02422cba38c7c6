"""Production models — workflow templates, batches, tasks, QC results and time."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class WorkflowTemplate(Base):
    """Ordered stage definitions a batch moves through.

    stages: [{"stage": "sanding", "name": "Sanding", "estimated_hours": 2,
              "description": "...", "is_optional": false}, ...]
    stage_transitions: [{"from_stage": "sanding", "to_stage": ["finishing"],
                         "auto_transition": false}, ...]
    """

    __tablename__ = "workflow_templates"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    stages = Column(JSON, nullable=False, default=list)
    stage_transitions = Column(JSON, nullable=False, default=list)
    trigger_rules = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    created_by_id = Column(Integer, ForeignKey("workers.id"))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    created_by = relationship("Worker", foreign_keys=[created_by_id])

    def stage_names(self) -> list[str]:
        return [s.get("stage") for s in (self.stages or []) if isinstance(s, dict)]

    def find_stage(self, stage: str) -> dict | None:
        for s in self.stages or []:
            if isinstance(s, dict) and s.get("stage") == stage:
                return s
        return None


class WorkBatch(Base):
    __tablename__ = "work_batches"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    batch_type = Column(String(20), nullable=False)  # model | wood_type | custom
    criteria = Column(JSON, default=dict)
    order_item_ids = Column(JSON, nullable=False, default=list)
    workflow_template_id = Column(Integer, ForeignKey("workflow_templates.id"))
    current_stage = Column(String(50))
    status = Column(String(20), default="pending")  # pending | active | on_hold | completed
    # Points at the latest active hold; no FK because quality_holds references batches
    quality_hold_id = Column(Integer)
    first_pass_yield = Column(Float)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    workflow_template = relationship("WorkflowTemplate")
    tasks = relationship("WorkTask", back_populates="batch")

    __table_args__ = (Index("ix_batches_status_stage", "status", "current_stage"),)


class WorkTask(Base):
    __tablename__ = "work_tasks"
    id = Column(Integer, primary_key=True)
    task_type = Column(String(50), nullable=False)
    stage = Column(String(50))
    task_description = Column(Text)
    order_item_id = Column(Integer, ForeignKey("order_items.id", ondelete="CASCADE"))
    batch_id = Column(Integer, ForeignKey("work_batches.id"))
    workflow_template_id = Column(Integer, ForeignKey("workflow_templates.id"))
    component_tracking_id = Column(Integer, ForeignKey("component_tracking.id"))

    assigned_to_id = Column(Integer, ForeignKey("workers.id"))
    assigned_by_id = Column(Integer, ForeignKey("workers.id"))

    # pending → assigned → in_progress → completed | failed_qc
    status = Column(String(20), default="pending", nullable=False)
    priority = Column(String(10), default="normal", nullable=False)  # low | normal | high | urgent
    estimated_hours = Column(Float)
    actual_hours = Column(Float)
    due_date = Column(UTCDateTime)
    notes = Column(Text)
    auto_generated = Column(Boolean, default=False)
    manual_assignment = Column(Boolean, default=True)
    quality_score = Column(Integer)
    rework_count = Column(Integer, default=0, nullable=False)

    assigned_at = Column(UTCDateTime)
    started_at = Column(UTCDateTime)
    completed_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    order_item = relationship("OrderItem", back_populates="tasks")
    batch = relationship("WorkBatch", back_populates="tasks")
    assigned_to = relationship("Worker", foreign_keys=[assigned_to_id])
    assigned_by = relationship("Worker", foreign_keys=[assigned_by_id])
    qc_results = relationship("QcResult", back_populates="task", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_tasks_assignee_status", "assigned_to_id", "status"),
        Index("ix_tasks_item_type", "order_item_id", "task_type"),
        Index("ix_tasks_batch_stage", "batch_id", "stage"),
    )


class StageTransition(Base):
    __tablename__ = "stage_transitions"
    id = Column(Integer, primary_key=True)
    batch_id = Column(Integer, ForeignKey("work_batches.id", ondelete="CASCADE"))
    order_item_id = Column(Integer, ForeignKey("order_items.id"))
    workflow_template_id = Column(Integer, ForeignKey("workflow_templates.id"))
    from_stage = Column(String(50))
    to_stage = Column(String(50), nullable=False)
    transition_type = Column(String(20), default="manual")  # manual | auto | rework
    transitioned_by_id = Column(Integer, ForeignKey("workers.id"))
    notes = Column(Text)
    transition_time = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    transitioned_by = relationship("Worker", foreign_keys=[transitioned_by_id])


class WorkflowExecutionLog(Base):
    __tablename__ = "workflow_execution_log"
    id = Column(Integer, primary_key=True)
    workflow_template_id = Column(Integer, ForeignKey("workflow_templates.id"))
    batch_id = Column(Integer, ForeignKey("work_batches.id", ondelete="CASCADE"))
    order_item_id = Column(Integer, ForeignKey("order_items.id"))
    stage = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    action_details = Column(JSON, default=dict)
    execution_type = Column(String(20), default="manual")
    executed_by_id = Column(Integer, ForeignKey("workers.id"))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))


class QcResult(Base):
    __tablename__ = "qc_results"
    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("work_tasks.id", ondelete="CASCADE"))
    worker_id = Column(Integer, ForeignKey("workers.id"))
    results = Column(JSON, nullable=False, default=dict)
    overall_status = Column(String(10), nullable=False)  # pass | fail
    inspector_notes = Column(Text)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    task = relationship("WorkTask", back_populates="qc_results")
    worker = relationship("Worker")


class WorkLog(Base):
    """Summary row written when a task completes."""

    __tablename__ = "work_logs"
    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("work_tasks.id", ondelete="CASCADE"))
    worker_id = Column(Integer, ForeignKey("workers.id"))
    log_type = Column(String(20), nullable=False)  # start | complete | note
    time_spent_minutes = Column(Integer)
    notes = Column(Text)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))


class TimeLog(Base):
    """A worker's start/stop timer. end_time IS NULL means the timer is running."""

    __tablename__ = "time_logs"
    id = Column(Integer, primary_key=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    task_id = Column(Integer, ForeignKey("work_tasks.id"))
    batch_id = Column(Integer, ForeignKey("work_batches.id"))
    stage = Column(String(50), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime)
    duration_minutes = Column(Integer)
    notes = Column(Text)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    worker = relationship("Worker")
    task = relationship("WorkTask")

    __table_args__ = (
        Index("ix_time_logs_worker_open", "worker_id", "end_time"),
        Index("ix_time_logs_batch", "batch_id"),
    )


class CustomStage(Base):
    """Shop-defined stage offered next to the standard ones in workflow builders."""

    __tablename__ = "custom_stages"
    id = Column(Integer, primary_key=True)
    stage_code = Column(String(50), unique=True, nullable=False)
    stage_name = Column(String(255), nullable=False)
    description = Column(Text)
    default_estimated_hours = Column(Float)
    required_skills = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by_id = Column(Integer, ForeignKey("workers.id"))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    created_by = relationship("Worker", foreign_keys=[created_by_id])
