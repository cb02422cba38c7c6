"""Quality models — holds, patterns, checkpoints, inspections, component tracking, issues."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class ComponentTracking(Base):
    """A matched pair of headphone cups followed through production.

    journey: [{"stage": ..., "action": ..., "worker_id": ..., "timestamp": ...,
               "rework": bool}, ...]
    """

    __tablename__ = "component_tracking"
    id = Column(Integer, primary_key=True)
    cup_pair_id = Column(String(64), unique=True, nullable=False)
    left_cup_serial = Column(String(64), unique=True, nullable=False)
    right_cup_serial = Column(String(64), unique=True, nullable=False)
    wood_batch_id = Column(String(64))
    grade = Column(String(1), default="A", nullable=False)  # A | B
    specifications = Column(JSON, nullable=False, default=dict)
    journey = Column(JSON, default=list)
    source_tracking = Column(JSON, default=dict)
    final_metrics = Column(JSON, default=dict)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def rework_count(self) -> int:
        return sum(1 for j in (self.journey or []) if isinstance(j, dict) and j.get("rework"))


class QualityHold(Base):
    __tablename__ = "quality_holds"
    id = Column(Integer, primary_key=True)
    batch_id = Column(Integer, ForeignKey("work_batches.id"))
    component_tracking_id = Column(Integer, ForeignKey("component_tracking.id"))
    hold_reason = Column(Text, nullable=False)
    severity = Column(String(10), nullable=False)  # low | medium | high | critical
    status = Column(String(20), default="active", nullable=False)  # active | investigating | escalated | resolved
    reported_by_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    assigned_to_id = Column(Integer, ForeignKey("workers.id"))
    resolution_notes = Column(Text)
    escalated_at = Column(UTCDateTime)
    resolved_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    batch = relationship("WorkBatch")
    component = relationship("ComponentTracking")
    reported_by = relationship("Worker", foreign_keys=[reported_by_id])
    assigned_to = relationship("Worker", foreign_keys=[assigned_to_id])

    __table_args__ = (
        Index("ix_holds_status_created", "status", "created_at"),
        Index("ix_holds_batch_status", "batch_id", "status"),
    )


class QualityPattern(Base):
    """Recurring issue per (stage, issue_type), built up from QC failures and issue reports."""

    __tablename__ = "quality_patterns"
    id = Column(Integer, primary_key=True)
    stage = Column(String(50), nullable=False)
    issue_type = Column(String(100), nullable=False)
    occurrence_count = Column(Integer, default=1, nullable=False)
    last_seen = Column(UTCDateTime)
    common_causes = Column(JSON, default=list)
    effective_solutions = Column(JSON, default=list)
    prevention_tips = Column(JSON, default=list)
    affected_models = Column(JSON, default=list)
    affected_materials = Column(JSON, default=list)
    severity_trend = Column(String(20), default="stable")  # increasing | stable | decreasing
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_patterns_stage_issue", "stage", "issue_type", unique=True),
    )


class QualityCheckpoint(Base):
    __tablename__ = "quality_checkpoints"
    id = Column(Integer, primary_key=True)
    workflow_template_id = Column(Integer, ForeignKey("workflow_templates.id"))
    stage = Column(String(50), nullable=False)
    name = Column(String(255))
    checkpoint_type = Column(String(20), nullable=False)  # pre_work | in_process | post_work | gate
    checks = Column(JSON, nullable=False, default=list)
    severity = Column(String(10), default="major", nullable=False)  # minor | major | critical
    on_failure = Column(String(20), default="warn", nullable=False)  # warn | block_progress
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class QualityCheckpointTemplate(Base):
    """Reusable check list for a (stage, checkpoint_type); at most one default per pair.

    checks: [{"id": ..., "description": ..., "requires_photo": bool,
              "requires_measurement": bool, "acceptance_criteria": ...,
              "common_failures": [...]}, ...]
    """

    __tablename__ = "quality_checkpoint_templates"
    id = Column(Integer, primary_key=True)
    stage_name = Column(String(50), nullable=False)
    checkpoint_type = Column(String(20), nullable=False)
    template_name = Column(String(255), nullable=False)
    checks = Column(JSON, nullable=False, default=list)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_templates_stage_type", "stage_name", "checkpoint_type"),)


class InspectionResult(Base):
    __tablename__ = "inspection_results"
    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("work_tasks.id"))
    checkpoint_id = Column(Integer, ForeignKey("quality_checkpoints.id"))
    component_tracking_id = Column(Integer, ForeignKey("component_tracking.id"))
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    passed = Column(Boolean, nullable=False)
    failed_checks = Column(JSON, default=list)
    root_cause = Column(Text)
    corrective_action = Column(Text)
    prevention_suggestion = Column(Text)
    time_to_resolve = Column(Integer)
    notes = Column(Text)
    measurement_data = Column(JSON, default=dict)
    inspected_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    checkpoint = relationship("QualityCheckpoint")
    worker = relationship("Worker")

    __table_args__ = (Index("ix_inspections_created", "created_at"),)


class ProductionIssue(Base):
    __tablename__ = "production_issues"
    id = Column(Integer, primary_key=True)
    reported_by_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    task_id = Column(Integer, ForeignKey("work_tasks.id"))
    batch_id = Column(Integer, ForeignKey("work_batches.id"))
    order_item_id = Column(Integer, ForeignKey("order_items.id"))
    stage = Column(String(50), nullable=False)
    issue_type = Column(String(20), nullable=False)  # defect | material | tooling | process | other
    severity = Column(String(10), nullable=False)  # low | medium | high | critical
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    image_urls = Column(JSON, default=list)

    resolution_status = Column(String(20), default="open", nullable=False)  # open | resolved | wont_fix
    resolution_notes = Column(Text)
    resolved_by_id = Column(Integer, ForeignKey("workers.id"))
    resolved_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    reported_by = relationship("Worker", foreign_keys=[reported_by_id])
    resolved_by = relationship("Worker", foreign_keys=[resolved_by_id])

    __table_args__ = (Index("ix_issues_stage_status", "stage", "resolution_status"),)
