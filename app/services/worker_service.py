"""Worker service — registration, login, approval workflow, role management, health.

Business Rules:
- Self-registration creates a pending, inactive worker unless a valid
  invitation token is supplied (then approved + active with the invited role)
- Email addresses are unique, stored lower-cased
- Managers cannot deactivate themselves or change their own role
- Every management action writes a user_management_audit_log row
- Login refuses pending, rejected and suspended accounts with 403

Called by: routers/auth.py, routers/workers.py, routers/admin.py
Depends on: models (Worker, WorkerInvitation, UserManagementAudit, WorkTask)
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from sqlalchemy import func as sqlfunc
from sqlalchemy.orm import Session

from ..config import APP_VERSION
from ..models import (
    Order,
    QualityHold,
    RepairOrder,
    TimeLog,
    UserManagementAudit,
    Worker,
    WorkerInvitation,
    WorkTask,
)

log = logging.getLogger(__name__)

VALID_ROLES = ("worker", "supervisor", "manager")
INVITATION_TTL_DAYS = 7
# bcrypt only reads the first 72 bytes and 5.x rejects longer input
MAX_PASSWORD_BYTES = 72


# ── Passwords ────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def check_password(password: str, password_hash: str | None) -> bool:
    if not password_hash or password_too_long(password):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        log.warning("Unreadable password hash")
        return False


# ── Serialization ────────────────────────────────────────────────────


def worker_to_dict(w: Worker) -> dict:
    return {
        "id": w.id,
        "name": w.name,
        "email": w.email,
        "role": w.role,
        "is_active": bool(w.is_active),
        "approval_status": w.approval_status,
        "skills": w.skills or [],
        "approved_at": w.approved_at.isoformat() if w.approved_at else None,
        "suspended_at": w.suspended_at.isoformat() if w.suspended_at else None,
        "last_active_at": w.last_active_at.isoformat() if w.last_active_at else None,
        "created_at": w.created_at.isoformat() if w.created_at else None,
    }


def _audit(db: Session, actor: Worker, target: Worker | None, action: str,
           previous=None, new=None, reason: str | None = None,
           target_email: str | None = None) -> None:
    db.add(UserManagementAudit(
        actor_id=actor.id,
        target_worker_id=target.id if target else None,
        target_email=target.email if target else target_email,
        action_type=action,
        previous_value=previous,
        new_value=new,
        reason=reason,
    ))


# ── Registration & login ─────────────────────────────────────────────


def register_worker(db: Session, email: str, password: str, name: str,
                    invitation_token: str | None = None) -> dict:
    email = (email or "").strip().lower()
    name = (name or "").strip()
    if not email or not password or not name:
        return {"error": "Email, password, and name are required", "status": 400}
    if password_too_long(password):
        return {"error": "Password too long", "status": 400}
    if db.query(Worker).filter(Worker.email == email).first():
        return {"error": "An account with this email already exists", "status": 400}

    invitation = None
    if invitation_token:
        now = datetime.now(timezone.utc)
        invitation = (
            db.query(WorkerInvitation)
            .filter(
                WorkerInvitation.invitation_token == invitation_token,
                WorkerInvitation.accepted_at.is_(None),
            )
            .first()
        )
        if invitation and (invitation.expires_at < now or invitation.email.lower() != email):
            invitation = None

    worker = Worker(
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=invitation.role if invitation else "worker",
        is_active=bool(invitation),
        approval_status="approved" if invitation else "pending",
    )
    if invitation:
        worker.approved_at = datetime.now(timezone.utc)
        worker.approved_by_id = invitation.invited_by_id
        invitation.accepted_at = datetime.now(timezone.utc)
    db.add(worker)
    db.commit()
    log.info("Worker registered: %s (%s)", email, worker.approval_status)
    return {
        "worker": worker_to_dict(worker),
        "requires_approval": worker.approval_status == "pending",
    }


def authenticate(db: Session, email: str, password: str) -> dict:
    worker = db.query(Worker).filter(Worker.email == (email or "").strip().lower()).first()
    if not worker or not check_password(password or "", worker.password_hash):
        return {"error": "Invalid email or password", "status": 401}
    if worker.approval_status == "pending":
        return {"error": "Your account is awaiting manager approval", "status": 403}
    if worker.approval_status == "rejected":
        return {"error": "Your registration was not approved", "status": 403}
    if worker.approval_status == "suspended" or not worker.is_active:
        return {"error": "Your account is not active", "status": 403}
    worker.last_active_at = datetime.now(timezone.utc)
    db.commit()
    return {"worker": worker}


# ── Listing ──────────────────────────────────────────────────────────


def list_workers(db: Session, status: str | None = None) -> list[dict]:
    q = db.query(Worker)
    if status == "pending":
        q = q.filter(Worker.approval_status == "pending")
    elif status == "active":
        q = q.filter(Worker.is_active.is_(True), Worker.approval_status == "approved")
    elif status == "inactive":
        q = q.filter(Worker.is_active.is_(False), Worker.approval_status != "pending")
    return [worker_to_dict(w) for w in q.order_by(Worker.name).all()]


# ── Management ───────────────────────────────────────────────────────


def update_status(db: Session, worker_id: int, is_active: bool, manager: Worker) -> dict:
    target = db.get(Worker, worker_id)
    if not target:
        return {"error": "Worker not found", "status": 404}
    if target.id == manager.id and not is_active:
        return {"error": "Cannot deactivate yourself", "status": 400}
    previous = bool(target.is_active)
    target.is_active = is_active
    _audit(db, manager, target, "activate" if is_active else "deactivate",
           {"is_active": previous}, {"is_active": is_active})
    db.commit()
    log.info("Manager %s set worker %s is_active=%s", manager.email, target.email, is_active)
    return worker_to_dict(target)


def update_role(db: Session, worker_id: int, role: str, manager: Worker) -> dict:
    if role not in VALID_ROLES:
        return {"error": f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}", "status": 400}
    target = db.get(Worker, worker_id)
    if not target:
        return {"error": "Worker not found", "status": 404}
    if target.id == manager.id:
        return {"error": "Cannot change your own role", "status": 400}
    old_role = target.role
    target.role = role
    _audit(db, manager, target, "role_change", {"role": old_role}, {"role": role})
    db.commit()
    log.info("Manager %s changed %s role: %s -> %s", manager.email, target.email, old_role, role)
    return worker_to_dict(target)


def approve_worker(db: Session, worker_id: int, manager: Worker, role: str | None = None) -> dict:
    target = db.get(Worker, worker_id)
    if not target:
        return {"error": "Worker not found", "status": 404}
    if target.approval_status == "approved":
        return {"error": "Worker is already approved", "status": 400}
    if role is not None and role not in VALID_ROLES:
        return {"error": f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}", "status": 400}
    previous = target.approval_status
    target.approval_status = "approved"
    target.is_active = True
    target.approved_at = datetime.now(timezone.utc)
    target.approved_by_id = manager.id
    target.rejection_reason = None
    if role:
        target.role = role
    _audit(db, manager, target, "approve", {"approval_status": previous},
           {"approval_status": "approved", "role": target.role})
    db.commit()
    log.info("Worker %s approved by %s", target.email, manager.email)
    return worker_to_dict(target)


def reject_worker(db: Session, worker_id: int, manager: Worker, reason: str | None) -> dict:
    target = db.get(Worker, worker_id)
    if not target:
        return {"error": "Worker not found", "status": 404}
    if target.approval_status != "pending":
        return {"error": "Only pending workers can be rejected", "status": 400}
    target.approval_status = "rejected"
    target.is_active = False
    target.rejection_reason = reason
    _audit(db, manager, target, "reject", {"approval_status": "pending"},
           {"approval_status": "rejected"}, reason)
    db.commit()
    log.info("Worker %s rejected by %s", target.email, manager.email)
    return worker_to_dict(target)


def suspend_worker(db: Session, worker_id: int, manager: Worker, reason: str | None) -> dict:
    target = db.get(Worker, worker_id)
    if not target:
        return {"error": "Worker not found", "status": 404}
    if target.id == manager.id:
        return {"error": "Cannot suspend yourself", "status": 400}
    if target.approval_status != "approved":
        return {"error": "Only approved workers can be suspended", "status": 400}
    target.approval_status = "suspended"
    target.is_active = False
    target.suspended_at = datetime.now(timezone.utc)
    target.suspension_reason = reason
    _audit(db, manager, target, "suspend", {"approval_status": "approved"},
           {"approval_status": "suspended"}, reason)
    db.commit()
    log.info("Worker %s suspended by %s", target.email, manager.email)
    return worker_to_dict(target)


def reactivate_worker(db: Session, worker_id: int, manager: Worker) -> dict:
    target = db.get(Worker, worker_id)
    if not target:
        return {"error": "Worker not found", "status": 404}
    if target.approval_status != "suspended":
        return {"error": "Only suspended workers can be reactivated", "status": 400}
    target.approval_status = "approved"
    target.is_active = True
    target.suspended_at = None
    target.suspension_reason = None
    _audit(db, manager, target, "reactivate", {"approval_status": "suspended"},
           {"approval_status": "approved"})
    db.commit()
    return worker_to_dict(target)


def create_invitation(db: Session, email: str, role: str, manager: Worker) -> dict:
    email = (email or "").strip().lower()
    if not email:
        return {"error": "Email is required", "status": 400}
    if role not in VALID_ROLES:
        return {"error": f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}", "status": 400}
    if db.query(Worker).filter(Worker.email == email).first():
        return {"error": "An account with this email already exists", "status": 400}
    invitation = WorkerInvitation(
        email=email,
        role=role,
        invitation_token=secrets.token_urlsafe(32),
        invited_by_id=manager.id,
        expires_at=datetime.now(timezone.utc) + timedelta(days=INVITATION_TTL_DAYS),
    )
    db.add(invitation)
    _audit(db, manager, None, "invite", None, {"email": email, "role": role}, target_email=email)
    db.commit()
    log.info("Invitation for %s (%s) created by %s", email, role, manager.email)
    return {
        "id": invitation.id,
        "email": invitation.email,
        "role": invitation.role,
        "invitation_token": invitation.invitation_token,
        "expires_at": invitation.expires_at.isoformat(),
    }


# ── Stats ────────────────────────────────────────────────────────────


def get_worker_stats(db: Session, worker: Worker) -> dict:
    """Dashboard counters for the logged-in worker."""
    base = db.query(WorkTask).filter(WorkTask.assigned_to_id == worker.id)
    week_ago = datetime.now(timezone.utc) - timedelta(days=7)
    return {
        "totalTasks": base.filter(WorkTask.status != "failed_qc").count(),
        "inProgress": base.filter(WorkTask.status == "in_progress").count(),
        "completed": base.filter(
            WorkTask.status == "completed", WorkTask.completed_at >= week_ago
        ).count(),
        "urgent": base.filter(
            WorkTask.priority == "urgent", WorkTask.status.notin_(("completed", "failed_qc"))
        ).count(),
    }


# ── System Health ────────────────────────────────────────────────────


def get_system_health(db: Session) -> dict:
    """Version and row counts for the manager health screen."""
    counts = {}
    for label, model in [
        ("workers", Worker),
        ("orders", Order),
        ("work_tasks", WorkTask),
        ("time_logs", TimeLog),
        ("quality_holds", QualityHold),
        ("repair_orders", RepairOrder),
    ]:
        counts[label] = db.query(sqlfunc.count(model.id)).scalar() or 0

    pending_approvals = db.query(Worker).filter(Worker.approval_status == "pending").count()
    open_timers = db.query(TimeLog).filter(TimeLog.end_time.is_(None)).count()
    return {
        "version": APP_VERSION,
        "db_stats": counts,
        "pending_approvals": pending_approvals,
        "open_timers": open_timers,
    }
