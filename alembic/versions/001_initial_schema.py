"""initial schema - workers, production, quality, repairs, settings

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Existing databases created by startup create_all: `alembic stamp 001_initial`.
New databases: `alembic upgrade head`.
"""
from typing import Sequence, Union

from alembic import op

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create every table from the ORM metadata (checkfirst, idempotent)."""
    from app.models import Base

    Base.metadata.create_all(bind=op.get_bind(), checkfirst=True)


def downgrade() -> None:
    """Drop all tables. Dev/test only."""
    from app.models import Base

    Base.metadata.drop_all(bind=op.get_bind())
