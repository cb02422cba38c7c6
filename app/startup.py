"""
startup.py — Boot-time schema sync and seed data

The ORM models (app/models/) are the schema. On every boot create_all
(checkfirst) adds anything missing, default settings rows are seeded, and
on PostgreSQL the status columns get CHECK constraints that the ORM does
not express. Alembic owns real migrations; this only fills gaps.

Called by: main.py lifespan
Depends on: database.py (engine, SessionLocal), models, services/settings_service.py
"""

import logging
import os

from sqlalchemy import text as sqltext
from sqlalchemy.exc import SQLAlchemyError

from .database import SessionLocal, engine

log = logging.getLogger(__name__)

# (table, constraint name, condition)
CHECK_CONSTRAINTS = (
    ("workers", "chk_worker_role", "role IN ('worker','supervisor','manager')"),
    ("workers", "chk_worker_approval",
     "approval_status IN ('pending','approved','rejected','suspended')"),
    ("work_tasks", "chk_task_status",
     "status IN ('pending','assigned','in_progress','completed','failed_qc')"),
    ("work_tasks", "chk_task_priority", "priority IN ('low','normal','high','urgent')"),
    ("time_logs", "chk_time_duration", "duration_minutes IS NULL OR duration_minutes >= 0"),
    ("quality_holds", "chk_hold_severity", "severity IN ('low','medium','high','critical')"),
    ("quality_holds", "chk_hold_status",
     "status IN ('active','investigating','escalated','resolved')"),
    ("repair_orders", "chk_repair_status",
     "status IN ('intake','diagnosed','approved','in_progress','testing','completed',"
     "'shipped','cancelled')"),
    ("repair_orders", "chk_repair_priority", "priority IN ('standard','rush')"),
    ("component_tracking", "chk_component_grade", "grade IN ('A','B')"),
)


def run_startup_migrations() -> None:
    if os.environ.get("TESTING"):
        log.info("TESTING set, startup schema sync skipped")
        return

    from .models import Base

    Base.metadata.create_all(bind=engine, checkfirst=True)
    seed_default_settings()
    if engine.dialect.name == "postgresql":
        with engine.connect() as conn:
            added = sum(ensure_check_constraint(conn, *c) for c in CHECK_CONSTRAINTS)
        log.info("CHECK constraints: %d added, %d present", added,
                 len(CHECK_CONSTRAINTS) - added)
    log.info("Startup schema sync complete")


def seed_default_settings() -> None:
    """Insert headphone_models and shopify_config rows when missing."""
    from .models import SystemConfig
    from .services.settings_service import (
        DEFAULT_HEADPHONE_MODELS,
        DEFAULT_SHOPIFY_CONFIG,
        HEADPHONE_MODELS_KEY,
        SHOPIFY_CONFIG_KEY,
    )

    defaults = {
        HEADPHONE_MODELS_KEY: (list(DEFAULT_HEADPHONE_MODELS),
                               "Model names used to recognise headphones in Shopify orders"),
        SHOPIFY_CONFIG_KEY: (dict(DEFAULT_SHOPIFY_CONFIG), "Shopify store connection"),
    }
    db = SessionLocal()
    try:
        present = {k for (k,) in db.query(SystemConfig.key).filter(
            SystemConfig.key.in_(list(defaults))).all()}
        for key, (value, desc) in defaults.items():
            if key in present:
                continue
            db.add(SystemConfig(key=key, value=value, description=desc, updated_by="system"))
            log.info("Seeded setting %s", key)
        db.commit()
    finally:
        db.close()


def ensure_check_constraint(conn, table: str, name: str, condition: str) -> bool:
    """Add a NOT VALID check (existing rows untouched). True when it was added."""
    exists = conn.execute(
        sqltext("SELECT 1 FROM pg_constraint WHERE conname = :name"), {"name": name}
    ).first()
    if exists:
        return False
    try:
        conn.execute(sqltext(
            f"ALTER TABLE {table} ADD CONSTRAINT {name} CHECK ({condition}) NOT VALID"
        ))
        conn.commit()
    except SQLAlchemyError as e:
        log.warning("Could not add %s on %s: %s", name, table, e)
        conn.rollback()
        return False
    return True
