"""Shopify sync log — one row per review fetch or import run."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Float, ForeignKey, Index, Integer, String, Text

from ..database import UTCDateTime
from .base import Base


class SyncLog(Base):
    __tablename__ = "sync_logs"
    id = Column(Integer, primary_key=True)
    source = Column(String(50), nullable=False, default="shopify")
    action = Column(String(20), nullable=False)  # review | import | test
    status = Column(String(20), nullable=False)  # success | error
    started_at = Column(UTCDateTime, nullable=False)
    finished_at = Column(UTCDateTime)
    duration_seconds = Column(Float)
    row_counts = Column(JSON)
    error_message = Column(Text)
    triggered_by_id = Column(Integer, ForeignKey("workers.id"))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_sync_source_time", "source", "started_at"),)
