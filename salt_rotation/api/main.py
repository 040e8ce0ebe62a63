"""
HTTP surface for the rotation service.

Every non-admin request doubles as the application lifecycle event that runs
the overdue check, so a missed or failed daily run is recovered by ordinary
traffic.
"""

import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .schemas import (
    HealthResponse,
    ManualRotationRequest,
    RotationAttemptResponse,
    RotationRunResponse,
    RotationStatusResponse,
    SnapshotListResponse,
)
from ..core import heartbeat
from ..core.config import VERSION, debug_enabled, get_admin_token, get_backup_keep, is_rotation_disabled
from ..core.db import health_check, init_db
from ..core.orchestrator import get_orchestrator
from ..core.schema import TriggerSource
from ..util.logging import logger, audit_event

ADMIN_PREFIX = "/admin"


def scheduled_rotation():
    get_orchestrator().execute(TriggerSource.SCHEDULED)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    try:
        heartbeat.ensure_scheduled(scheduled_rotation)
    except ValueError as e:
        logger.error(f"Daily rotation not scheduled: {e}")
    heartbeat.start_in_background()
    yield
    heartbeat.stop()


app = FastAPI(
    title="Salt Rotation Service",
    version=VERSION,
    description="Daily secret rotation with backup-before-mutate and overdue recovery",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)


@app.middleware("http")
async def overdue_rotation_check(request: Request, call_next):
    """Run the overdue check before serving non-admin requests."""
    if not request.url.path.startswith(ADMIN_PREFIX):
        try:
            await run_in_threadpool(get_orchestrator().check_overdue_and_run)
        except Exception as e:
            # Rotation problems must never take down the hosting request
            logger.exception(f"Overdue rotation check failed: {e}")
    return await call_next(request)


def require_admin(x_admin_token: Optional[str] = Header(default=None)):
    expected = get_admin_token()
    if not expected:
        raise HTTPException(status_code=503, detail="Admin token not configured (ROTATION_ADMIN_TOKEN)")
    if not x_admin_token or not secrets.compare_digest(x_admin_token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Invalid admin token")


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check()
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        rotation_disabled=is_rotation_disabled(),
    )


@app.get("/rotation/status", response_model=RotationStatusResponse)
def rotation_status(limit: int = 10):
    """Last success, overdue flag and recent attempts."""
    orchestrator = get_orchestrator()
    attempts = orchestrator.audit_log.recent_attempts(limit=max(1, min(limit, 100)))

    return RotationStatusResponse(
        last_success=orchestrator.audit_log.most_recent_success_timestamp(),
        overdue=orchestrator.is_overdue(),
        rotation_disabled=is_rotation_disabled(),
        snapshot_count=len(orchestrator.store.list_snapshot_ids()),
        recent_attempts=[RotationAttemptResponse(**a.to_dict()) for a in attempts],
        scheduler=heartbeat.get_status(),
    )


@app.post("/admin/rotation/run", response_model=RotationRunResponse, dependencies=[Depends(require_admin)])
def run_rotation(req: Optional[ManualRotationRequest] = None):
    """Trigger a manual rotation."""
    audit_event("rotation.manual_trigger", {"source": "api"}, {"reason": req.reason if req else ""})

    report = get_orchestrator().execute(TriggerSource.MANUAL)
    if report is None:
        return RotationRunResponse(executed=False)

    return RotationRunResponse(
        executed=True,
        status=report.attempt.status.value if report.attempt else None,
        states=[s.value for s in report.states],
        snapshot_id=report.snapshot_id,
        error=report.attempt.error if report.attempt else "",
        pruned=report.pruned,
        notified=report.notified,
    )


@app.get("/admin/rotation/snapshots", response_model=SnapshotListResponse, dependencies=[Depends(require_admin)])
def list_snapshots():
    """Snapshot ids only; values never leave the store over HTTP."""
    return SnapshotListResponse(
        snapshot_ids=get_orchestrator().store.list_snapshot_ids(),
        retention=get_backup_keep(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
