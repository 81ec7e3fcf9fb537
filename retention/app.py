"""
FastAPI application — administrative API for the job catalog and the
execution log. Run with: python -m retention serve
"""
import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Depends, Header, Body
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from core.errors import RetentionError
from retention.database import SessionLocal, init_db, engine
from retention.dependencies import check_processing_order
from retention.jobs import Action, JobDefinition, JobPayload
from retention.models import RetireJob, utcnow
from retention.scheduler import scheduler
from services.log_service import ExecutionLogService

logger = logging.getLogger(__name__)

API_KEY = os.environ.get("RETENTION_API_KEY")
ALLOW_INSECURE = os.environ.get("RETENTION_ALLOW_INSECURE", "false").lower() == "true"
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("RETENTION_ALLOWED_ORIGINS", "http://localhost:8002").split(",")
    if origin.strip()
]


def require_admin_api_key(x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
    """Protect administrative endpoints with API key."""
    if ALLOW_INSECURE:
        return

    if not API_KEY:
        raise HTTPException(
            status_code=503,
            detail="RETENTION_API_KEY is not configured. Set it or enable RETENTION_ALLOW_INSECURE=true only for development.",
        )

    if not x_api_key or not secrets.compare_digest(x_api_key, API_KEY):
        raise HTTPException(status_code=401, detail="Invalid API key")


# ============================================================================
# Pydantic Schemas
# ============================================================================

class JobUpdate(BaseModel):
    source_schema: Optional[str] = None
    source_table: Optional[str] = None
    date_column: Optional[str] = None
    target_store: Optional[str] = None
    target_schema: Optional[str] = None
    target_table: Optional[str] = None
    retention_days: Optional[int] = None
    batch_size: Optional[int] = None
    action: Optional[Action] = None
    dry_run: Optional[bool] = None
    processing_order: Optional[int] = None
    is_enabled: Optional[bool] = None
    notes: Optional[str] = None


def _job_dict(j: RetireJob):
    return {
        "id": j.id,
        "source_schema": j.source_schema,
        "source_table": j.source_table,
        "date_column": j.date_column,
        "target_store": j.target_store,
        "target_schema": j.target_schema,
        "target_table": j.target_table,
        "retention_days": j.retention_days,
        "batch_size": j.batch_size,
        "action": j.action,
        "dry_run": j.dry_run,
        "processing_order": j.processing_order,
        "is_enabled": j.is_enabled,
        "notes": j.notes,
        "created_at": j.created_at.isoformat() if j.created_at else None,
        "updated_at": j.updated_at.isoformat() if j.updated_at else None,
    }


def _validated_payload(data: dict) -> JobPayload:
    """Reject invalid definitions at catalog-write time."""
    try:
        return JobPayload.model_validate(data)
    except ValidationError as e:
        raise HTTPException(400, f"Invalid job definition: {e.errors(include_url=False)}")


def _payload_columns(payload: JobPayload) -> dict:
    values = payload.model_dump()
    values["action"] = payload.action.value
    return values


# ============================================================================
# Lifecycle
# ============================================================================

@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    scheduler.start()
    if ALLOW_INSECURE:
        logger.warning("[SECURITY] RETENTION_ALLOW_INSECURE=true. API key checks are disabled.")
    elif not API_KEY:
        logger.error("[SECURITY] RETENTION_API_KEY is not set. Administrative API endpoints will reject requests.")
    logger.info("[APP] Retention engine API started")
    yield
    scheduler.shutdown()


app = FastAPI(title="Retention Engine", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# API — Job Catalog
# ============================================================================

@app.get("/api/jobs")
def list_jobs(_auth: None = Depends(require_admin_api_key)):
    """List catalog jobs in processing order."""
    session = SessionLocal()
    try:
        jobs = session.query(RetireJob).order_by(
            RetireJob.processing_order.asc(), RetireJob.id.asc()
        ).all()
        return {"jobs": [_job_dict(j) for j in jobs]}
    finally:
        session.close()


@app.post("/api/jobs")
def create_job(body: Dict[str, Any] = Body(...), _auth: None = Depends(require_admin_api_key)):
    """Register a new retire job; invalid definitions are rejected with 400."""
    payload = _validated_payload(body)
    session = SessionLocal()
    try:
        db_job = RetireJob(**_payload_columns(payload))
        session.add(db_job)
        session.commit()
        session.refresh(db_job)
        return {"id": db_job.id, "status": "created"}
    finally:
        session.close()


@app.get("/api/jobs/order-check")
def get_order_check(_auth: None = Depends(require_admin_api_key)):
    """Compare enabled jobs' processing order with the store's foreign keys."""
    session = SessionLocal()
    try:
        rows = session.query(RetireJob).filter(RetireJob.is_enabled == True).all()  # noqa: E712
        definitions = []
        invalid = []
        for row in rows:
            try:
                definitions.append(JobDefinition.model_validate(row))
            except ValidationError:
                invalid.append(row.id)
    finally:
        session.close()
    return {
        "advisories": check_processing_order(definitions, engine),
        "invalid_jobs": invalid,
    }


@app.get("/api/jobs/{job_id}")
def get_job(job_id: int, _auth: None = Depends(require_admin_api_key)):
    """Get a specific job."""
    session = SessionLocal()
    try:
        j = session.query(RetireJob).filter(RetireJob.id == job_id).first()
        if not j:
            raise HTTPException(404, "Job not found")
        return _job_dict(j)
    finally:
        session.close()


@app.put("/api/jobs/{job_id}")
def update_job(job_id: int, updates: JobUpdate, _auth: None = Depends(require_admin_api_key)):
    """Update a job; the merged definition must still be valid."""
    session = SessionLocal()
    try:
        j = session.query(RetireJob).filter(RetireJob.id == job_id).first()
        if not j:
            raise HTTPException(404, "Job not found")

        merged = {name: getattr(j, name) for name in JobPayload.model_fields}
        merged.update(updates.model_dump(exclude_unset=True))
        payload = _validated_payload(merged)

        for field, value in _payload_columns(payload).items():
            setattr(j, field, value)
        j.updated_at = utcnow()
        session.commit()
        return {"id": j.id, "status": "updated"}
    finally:
        session.close()


@app.post("/api/jobs/{job_id}/toggle")
def toggle_job(job_id: int, active: bool = Query(...), _auth: None = Depends(require_admin_api_key)):
    """Enable or disable a job."""
    session = SessionLocal()
    try:
        j = session.query(RetireJob).filter(RetireJob.id == job_id).first()
        if not j:
            raise HTTPException(404, "Job not found")
        j.is_enabled = active
        session.commit()
        return {"id": j.id, "is_enabled": active}
    finally:
        session.close()


@app.delete("/api/jobs/{job_id}")
def delete_job(job_id: int, _auth: None = Depends(require_admin_api_key)):
    """Delete a job. Its execution log entries are kept."""
    session = SessionLocal()
    try:
        j = session.query(RetireJob).filter(RetireJob.id == job_id).first()
        if not j:
            raise HTTPException(404, "Job not found")
        session.delete(j)
        session.commit()
        return {"status": "deleted"}
    finally:
        session.close()


@app.get("/api/jobs/{job_id}/history")
def get_job_history(job_id: int, limit: int = Query(10, ge=1, le=100), _auth: None = Depends(require_admin_api_key)):
    """Recent execution log entries for a job."""
    return ExecutionLogService.get_job_history(job_id, limit)


# ============================================================================
# API — Runs / Execution Log
# ============================================================================

@app.post("/api/runs")
async def trigger_run(_auth: None = Depends(require_admin_api_key)):
    """Run every enabled job now and return the run summary."""
    try:
        summary = await scheduler.trigger_run()
    except RetentionError as e:
        raise HTTPException(500, f"Run aborted: {e}")
    return summary.as_dict()


@app.get("/api/runs")
def list_runs(limit: int = Query(20, ge=1, le=200), _auth: None = Depends(require_admin_api_key)):
    """Recent runs with totals."""
    return ExecutionLogService.list_runs(limit)


@app.get("/api/runs/{run_number}")
def get_run(run_number: int, _auth: None = Depends(require_admin_api_key)):
    """All execution log entries of a run."""
    result = ExecutionLogService.get_run(run_number)
    if not result["success"]:
        raise HTTPException(404, result["error"])
    return result


@app.get("/api/status")
def get_status(_auth: None = Depends(require_admin_api_key)):
    """Job health plus scheduler state."""
    result = ExecutionLogService.get_status()
    result["scheduler"] = scheduler.get_status()
    return result
