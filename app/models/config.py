"""Runtime configuration editable from the manager settings screens."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Integer, String

from ..database import UTCDateTime
from .base import Base


class SystemConfig(Base):
    """Key-value runtime configuration. Values are JSON (lists, dicts, scalars)."""

    __tablename__ = "system_config"
    id = Column(Integer, primary_key=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(JSON, nullable=False)
    encrypted = Column(Boolean, default=False, nullable=False)
    description = Column(String(500))
    updated_by = Column(String(255))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
