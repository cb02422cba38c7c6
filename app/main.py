"""
main.py — Headphone Production Tracker API

App assembly: lifespan, middleware, error handlers, and router mounts. All
business logic lives in services/; routers are thin HTTP adapters.

Business Rules:
- Every response carries X-Request-ID (8 chars) plus the security headers
- /api/v1/... is an alias of /api/...; responses say X-API-Version: v1
- Errors always come back as ErrorResponse JSON

Called by: uvicorn (app.main:app)
Depends on: config, logging_config, startup, rate_limit, routers/*
"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware

from .config import APP_VERSION, settings
from .http_client import close_clients
from .logging_config import setup_logging
from .rate_limit import limiter
from .routers import (
    admin,
    auth,
    batches,
    components,
    error_reports,
    issues,
    orders,
    qc,
    quality,
    repairs,
    shopify,
    stages,
    tasks,
    testing,
    time_tracking,
    workers,
    workflows,
)
from .routers import settings as settings_router
from .schemas.errors import ErrorResponse
from .schemas.responses import HealthResponse
from .startup import run_startup_migrations

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    run_startup_migrations()
    logger.info("Production tracker {} ready", APP_VERSION)
    yield
    await close_clients()
    logger.info("Shutdown complete")


app = FastAPI(title="Headphone Production Tracker", version=APP_VERSION, lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    max_age=settings.session_max_age,
    https_only=settings.app_url.startswith("https"),
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ── Middleware ───────────────────────────────────────────────────────────


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag the request, time it, and stamp the response headers."""
    req_id = uuid.uuid4().hex[:8]
    request.state.request_id = req_id
    start = time.perf_counter()
    with logger.contextualize(request_id=req_id):
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        if request.url.path != "/health":
            logger.info(
                "{} {} → {} ({:.0f}ms)",
                request.method, request.url.path, response.status_code, elapsed_ms,
            )
    response.headers["X-Request-ID"] = req_id
    for name, value in _SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


@app.middleware("http")
async def api_version_middleware(request: Request, call_next):
    """Rewrite /api/v1/... to /api/... and advertise the version."""
    path = request.scope["path"]
    if path.startswith("/api/v1/"):
        request.scope["path"] = "/api/" + path[len("/api/v1/"):]
    response = await call_next(request)
    response.headers["X-API-Version"] = "v1"
    return response


# ── Error handlers ───────────────────────────────────────────────────────


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    body = ErrorResponse(
        error=str(exc.detail), status_code=exc.status_code, request_id=_request_id(request)
    )
    return JSONResponse(body.model_dump(), status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    detail = getattr(exc, "detail", None) or "Not Found"
    body = ErrorResponse(error=str(detail), status_code=404, request_id=_request_id(request))
    return JSONResponse(body.model_dump(), status_code=404)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", [])), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    body = ErrorResponse(
        error="Validation error", status_code=422, request_id=_request_id(request), detail=errors
    )
    return JSONResponse(body.model_dump(), status_code=422)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
    body = ErrorResponse(
        error="Internal server error", status_code=500, request_id=_request_id(request)
    )
    return JSONResponse(body.model_dump(), status_code=500)


# ── Routes ───────────────────────────────────────────────────────────────


@app.get("/health", response_model=HealthResponse)
def health():
    return {"status": "ok", "version": APP_VERSION}


for _router in (
    auth.router,
    workers.router,
    settings_router.router,
    shopify.router,
    orders.router,
    tasks.router,
    time_tracking.router,
    workflows.router,
    batches.router,
    quality.router,
    qc.router,
    stages.router,
    issues.router,
    components.router,
    repairs.router,
    error_reports.router,
    testing.router,
    admin.router,
):
    app.include_router(_router)
