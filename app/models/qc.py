"""QC checklist models — configurable production steps, their checklists, and submissions."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class QcProductionStep(Base):
    __tablename__ = "qc_production_steps"
    id = Column(Integer, primary_key=True)
    value = Column(String(100), unique=True, nullable=False)
    label = Column(String(255), nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))


class QcChecklistItem(Base):
    __tablename__ = "qc_checklist_items"
    id = Column(Integer, primary_key=True)
    # Keyed by step value so the step list can be replaced without touching items
    production_step_value = Column(String(100), nullable=False)
    item_text = Column(Text, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_checklist_step_order", "production_step_value", "sort_order"),)


class QcSubmission(Base):
    """One completed checklist.

    checklist_items: [{"id": ..., "item_text": ..., "passed": bool, "notes": ...}, ...]
    product_info: free-form {"model": ..., "serial_number": ..., "wood_type": ...}
    """

    __tablename__ = "qc_submissions"
    id = Column(Integer, primary_key=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    worker_name = Column(String(255), nullable=False)
    production_step = Column(String(100), nullable=False)
    checklist_items = Column(JSON, nullable=False, default=list)
    overall_notes = Column(Text)
    product_info = Column(JSON, default=dict)
    submitted_by_id = Column(Integer, ForeignKey("workers.id"))
    submitted_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    worker = relationship("Worker", foreign_keys=[worker_id])

    __table_args__ = (Index("ix_qc_submissions_worker_time", "worker_id", "submitted_at"),)
