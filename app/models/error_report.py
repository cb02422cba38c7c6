"""Bug report model — filed by workers from the testing screen."""

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class BugReport(Base):
    __tablename__ = "bug_reports"

    id = Column(Integer, primary_key=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    severity = Column(String(10), default="medium", nullable=False)  # low | medium | high | critical
    steps_to_reproduce = Column(Text)
    screenshot_b64 = Column(Text)

    # Auto-captured context
    current_url = Column(String(2048))
    browser_info = Column(String(512))
    console_errors = Column(Text)  # JSON string

    # Status workflow: open → in_progress → resolved | closed
    status = Column(String(20), default="open", nullable=False)
    admin_notes = Column(Text)
    resolved_at = Column(UTCDateTime)
    resolved_by_id = Column(Integer, ForeignKey("workers.id"))

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    reporter = relationship("Worker", foreign_keys=[worker_id])
    resolved_by = relationship("Worker", foreign_keys=[resolved_by_id])

    __table_args__ = (
        Index("ix_bug_reports_worker_created", "worker_id", "created_at"),
        Index("ix_bug_reports_status_created", "status", "created_at"),
    )
