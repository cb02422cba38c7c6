"""Repair models — repair orders with issues, actions, parts, timers and the knowledge base."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class RepairOrder(Base):
    __tablename__ = "repair_orders"
    id = Column(Integer, primary_key=True)
    repair_number = Column(String(20), unique=True, nullable=False)
    repair_source = Column(String(20), nullable=False)  # customer | internal
    order_type = Column(String(20), nullable=False)  # customer_return | warranty | internal_qc
    original_order_id = Column(Integer, ForeignKey("orders.id"))
    original_order_number = Column(String(50))

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(50))

    model = Column(String(100), nullable=False)
    serial_number = Column(String(100))
    wood_type = Column(String(100))

    # intake → diagnosed → approved → in_progress → testing → completed → shipped (| cancelled)
    status = Column(String(20), default="intake", nullable=False)
    priority = Column(String(10), default="standard", nullable=False)  # standard | rush
    repair_type = Column(String(20), nullable=False)  # production | finishing | sonic
    location = Column(String(100), default="Repair Wall")

    estimated_cost = Column(Float)
    final_cost = Column(Float)
    customer_approved = Column(Boolean)

    assigned_to_id = Column(Integer, ForeignKey("workers.id"))
    created_by_id = Column(Integer, ForeignKey("workers.id"), nullable=False)

    received_date = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    diagnosed_date = Column(UTCDateTime)
    approved_date = Column(UTCDateTime)
    started_date = Column(UTCDateTime)
    completed_date = Column(UTCDateTime)
    shipped_date = Column(UTCDateTime)

    customer_note = Column(Text)
    internal_notes = Column(Text)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    assigned_to = relationship("Worker", foreign_keys=[assigned_to_id])
    created_by = relationship("Worker", foreign_keys=[created_by_id])
    original_order = relationship("Order")
    issues = relationship("RepairIssue", back_populates="repair", cascade="all, delete-orphan",
                          order_by="RepairIssue.id")
    actions = relationship("RepairAction", back_populates="repair", cascade="all, delete-orphan",
                           order_by="RepairAction.id")
    time_logs = relationship("RepairTimeLog", back_populates="repair", cascade="all, delete-orphan",
                             order_by="RepairTimeLog.id")

    __table_args__ = (
        Index("ix_repairs_status_created", "status", "created_at"),
        Index("ix_repairs_assigned", "assigned_to_id"),
    )


class RepairIssue(Base):
    __tablename__ = "repair_issues"
    id = Column(Integer, primary_key=True)
    repair_order_id = Column(Integer, ForeignKey("repair_orders.id", ondelete="CASCADE"), nullable=False)
    category = Column(String(100), nullable=False)
    specific_issue = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False)  # cosmetic | functional | critical
    discovered_by_id = Column(Integer, ForeignKey("workers.id"))
    discovered_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    repair = relationship("RepairOrder", back_populates="issues")


class RepairAction(Base):
    __tablename__ = "repair_actions"
    id = Column(Integer, primary_key=True)
    repair_order_id = Column(Integer, ForeignKey("repair_orders.id", ondelete="CASCADE"), nullable=False)
    action_type = Column(String(50), nullable=False)
    action_description = Column(Text, nullable=False)
    performed_by_id = Column(Integer, ForeignKey("workers.id"))
    time_spent_minutes = Column(Integer)
    completed_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    repair = relationship("RepairOrder", back_populates="actions")
    performed_by = relationship("Worker")
    parts_used = relationship("RepairPartUsed", back_populates="action", cascade="all, delete-orphan")


class RepairPartUsed(Base):
    __tablename__ = "repair_parts_used"
    id = Column(Integer, primary_key=True)
    repair_action_id = Column(Integer, ForeignKey("repair_actions.id", ondelete="CASCADE"), nullable=False)
    part_name = Column(String(255), nullable=False)
    part_number = Column(String(100))
    quantity = Column(Integer, default=1, nullable=False)
    unit_cost = Column(Float)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    action = relationship("RepairAction", back_populates="parts_used")


class RepairTimeLog(Base):
    __tablename__ = "repair_time_logs"
    id = Column(Integer, primary_key=True)
    repair_order_id = Column(Integer, ForeignKey("repair_orders.id", ondelete="CASCADE"), nullable=False)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime)
    duration_minutes = Column(Integer)
    work_description = Column(Text)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    repair = relationship("RepairOrder", back_populates="time_logs")
    worker = relationship("Worker")


class RepairKnowledgeBase(Base):
    """Solutions captured from repair/fix actions, searchable by model and issue."""

    __tablename__ = "repair_knowledge_base"
    id = Column(Integer, primary_key=True)
    repair_order_id = Column(Integer, ForeignKey("repair_orders.id", ondelete="SET NULL"))
    model = Column(String(100), nullable=False)
    issue_category = Column(String(100), nullable=False)
    issue_description = Column(Text, nullable=False)
    solution_description = Column(Text, nullable=False)
    technician_id = Column(Integer, ForeignKey("workers.id"))
    technician_name = Column(String(255))
    time_to_repair_minutes = Column(Integer)
    parts_used = Column(JSON, default=list)
    success_rate = Column(Float)
    tags = Column(JSON, default=list)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("ix_kb_model_category", "model", "issue_category"),)
