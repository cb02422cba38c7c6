"""
conftest.py — Shared Test Fixtures for the production tracker

Provides an in-memory SQLite database, FastAPI TestClients with auth
overrides per role, and factory fixtures for workers, orders, batches
and workflow templates.

Business Rules:
- All tests run against an isolated in-memory DB (no prod data risk)
- Auth is overridden so tests don't need a login round-trip
- Each test function gets fresh tables

Called by: all test files via pytest autodiscovery
Depends on: app.models (Base), app.database (get_db), app.dependencies
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["RATE_LIMIT_ENABLED"] = "false"

from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import Base, Order, OrderItem, WorkBatch, Worker, WorkflowTemplate

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default — turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    from app.services.settings_service import clear_config_cache

    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        clear_config_cache()


def _make_worker(db: Session, email: str, name: str, role: str,
                 approval_status: str = "approved", is_active: bool = True) -> Worker:
    w = Worker(
        email=email,
        name=name,
        role=role,
        is_active=is_active,
        approval_status=approval_status,
        created_at=datetime.now(timezone.utc),
    )
    db.add(w)
    db.commit()
    db.refresh(w)
    return w


@pytest.fixture()
def test_worker(db_session: Session) -> Worker:
    """An approved, active bench worker."""
    return _make_worker(db_session, "worker@workshop.test", "Test Worker", "worker")


@pytest.fixture()
def other_worker(db_session: Session) -> Worker:
    return _make_worker(db_session, "other@workshop.test", "Other Worker", "worker")


@pytest.fixture()
def supervisor(db_session: Session) -> Worker:
    return _make_worker(db_session, "supervisor@workshop.test", "Test Supervisor", "supervisor")


@pytest.fixture()
def manager(db_session: Session) -> Worker:
    """A manager for approval and configuration endpoints."""
    return _make_worker(db_session, "manager@workshop.test", "Test Manager", "manager")


@pytest.fixture()
def pending_worker(db_session: Session) -> Worker:
    """A self-registered worker awaiting approval."""
    return _make_worker(db_session, "pending@workshop.test", "Pending Worker", "worker",
                        approval_status="pending", is_active=False)


@pytest.fixture()
def test_workflow(db_session: Session, manager: Worker) -> WorkflowTemplate:
    """Three-stage workflow: sanding → finishing → qc."""
    wf = WorkflowTemplate(
        name="Standard Wood Build",
        description="Default build for wooden cups",
        stages=[
            {"stage": "sanding", "name": "Sanding", "estimated_hours": 2},
            {"stage": "finishing", "name": "Finishing", "estimated_hours": 3},
            {"stage": "qc", "name": "Quality Check", "estimated_hours": 0.5},
        ],
        stage_transitions=[
            {"from_stage": "sanding", "to_stage": ["finishing"], "auto_transition": False},
            {"from_stage": "finishing", "to_stage": ["qc"], "auto_transition": False},
        ],
        created_by_id=manager.id,
    )
    db_session.add(wf)
    db_session.commit()
    db_session.refresh(wf)
    return wf


@pytest.fixture()
def test_order(db_session: Session) -> Order:
    """A Shopify order with one headphone line item."""
    order = Order(
        shopify_order_id=5550001,
        order_number="1001",
        customer_name="Jane Listener",
        customer_email="jane@example.com",
        total_price=1999.0,
        order_date=datetime.now(timezone.utc),
        status="pending",
    )
    order.items.append(OrderItem(
        shopify_line_item_id=7770001,
        product_name="Caldera Closed",
        variant_title="Cocobolo / Vegan pads",
        quantity=1,
        price=1999.0,
        headphone_material="Cocobolo",
        product_category="headphone",
        requires_custom_work=False,
        product_data={"model": "Caldera", "wood_type": "Cocobolo"},
    ))
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


@pytest.fixture()
def test_batch(db_session: Session, test_order: Order, test_workflow: WorkflowTemplate) -> WorkBatch:
    """An active batch on the sanding stage of test_workflow."""
    batch = WorkBatch(
        name="Caldera Cocobolo #1",
        batch_type="model",
        criteria={"model": "Caldera"},
        order_item_ids=[test_order.items[0].id],
        workflow_template_id=test_workflow.id,
        current_stage="sanding",
        status="active",
    )
    db_session.add(batch)
    db_session.commit()
    db_session.refresh(batch)
    return batch


# ── Clients ──────────────────────────────────────────────────────────


def _forbidden(detail: str):
    def _raise():
        raise HTTPException(403, detail)
    return _raise


class _RoleClient(TestClient):
    """TestClient that re-applies its own auth overrides on every request.

    Role clients share one app, so a test holding two of them would
    otherwise act as whichever fixture ran last.
    """

    def __init__(self, app, overrides: dict):
        super().__init__(app)
        self._overrides = overrides

    def request(self, *args, **kwargs):
        self.app.dependency_overrides.update(self._overrides)
        return super().request(*args, **kwargs)


def _role_client(db_session: Session, user: Worker, role: str):
    from app.database import get_db
    from app.dependencies import require_manager, require_supervisor, require_worker
    from app.main import app

    def _override_db():
        yield db_session

    overrides = {get_db: _override_db, require_worker: lambda: user}
    if role in ("supervisor", "manager"):
        overrides[require_supervisor] = lambda: user
    else:
        overrides[require_supervisor] = _forbidden("Supervisor or manager access required")
    if role == "manager":
        overrides[require_manager] = lambda: user
    else:
        overrides[require_manager] = _forbidden("Manager access required")
    app.dependency_overrides.update(overrides)
    return app, _RoleClient(app, overrides)


@pytest.fixture()
def client(db_session: Session, manager: Worker) -> TestClient:
    """TestClient authenticated as a manager (every role check passes)."""
    app, c = _role_client(db_session, manager, "manager")
    with c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def supervisor_client(db_session: Session, supervisor: Worker) -> TestClient:
    app, c = _role_client(db_session, supervisor, "supervisor")
    with c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def worker_client(db_session: Session, test_worker: Worker) -> TestClient:
    """TestClient authenticated as a plain worker (manager/supervisor checks 403)."""
    app, c = _role_client(db_session, test_worker, "worker")
    with c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def anon_client(db_session: Session) -> TestClient:
    """TestClient with only the DB overridden (real session auth)."""
    from app.database import get_db
    from app.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
