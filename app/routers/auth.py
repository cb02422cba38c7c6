"""
routers/auth.py — Authentication & Session Routes

Handles email/password registration, login, logout and the current
worker's profile and dashboard counters.

Business Rules:
- Self-registered workers wait for manager approval unless invited
- Session stores only worker_id; the worker is re-read on every request
- Login and registration are rate limited per client IP
- Email normalized to lowercase on login

Called by: main.py (router mount)
Depends on: dependencies, services/worker_service, rate_limit
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..dependencies import require_worker
from ..models import Worker
from ..rate_limit import limiter
from ..schemas.auth import LoginRequest, RegisterRequest
from ..schemas.responses import OkResponse, WorkerStatsResponse
from ..services.worker_service import (
    authenticate,
    get_worker_stats,
    register_worker,
    worker_to_dict,
)

router = APIRouter(tags=["auth"])


@router.post("/api/auth/register", status_code=201)
@limiter.limit(settings.rate_limit_auth)
def register(request: Request, body: RegisterRequest, db: Session = Depends(get_db)):
    result = register_worker(db, body.email, body.password, body.name, body.invitation_token)
    if "error" in result:
        raise HTTPException(result.get("status", 400), result["error"])
    if not result["requires_approval"]:
        request.session["worker_id"] = result["worker"]["id"]
    message = (
        "Registration received. A manager must approve your account before you can log in."
        if result["requires_approval"]
        else "Registration complete."
    )
    return {**result, "message": message}


@router.post("/api/auth/login")
@limiter.limit(settings.rate_limit_auth)
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)):
    result = authenticate(db, body.email, body.password)
    if "error" in result:
        logger.info("Login refused for {}: {}", body.email, result["error"])
        raise HTTPException(result.get("status", 401), result["error"])
    worker = result["worker"]
    request.session.clear()
    request.session["worker_id"] = worker.id
    logger.info("Worker {} logged in", worker.email)
    return {"worker": worker_to_dict(worker)}


@router.post("/api/auth/logout", response_model=OkResponse)
def logout(request: Request):
    request.session.clear()
    return {"ok": True}


@router.get("/api/worker/me")
def me(worker: Worker = Depends(require_worker)):
    return worker_to_dict(worker)


@router.get("/api/worker/stats", response_model=WorkerStatsResponse)
def my_stats(worker: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    return get_worker_stats(db, worker)
