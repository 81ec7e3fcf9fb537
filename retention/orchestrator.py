"""
One pass over the enabled jobs of the catalog.

Jobs run strictly one after another in (processing_order, id) order. Every
job gets exactly one execution log row, ERROR included; a failing job never
stops the ones after it. Only catalog/log failures and unresolvable store
aliases abort the run.
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from core.errors import JobConfigurationError
from retention.catalog import ExecutionLog, JobCatalog
from retention.database import SessionLocal
from retention.dependencies import check_processing_order
from retention.executor import BatchExecutor
from retention.jobs import ERROR_LABEL, BatchPlan, JobDefinition, RunSummary
from retention.models import utcnow
from retention.stores import StoreRegistry

logger = logging.getLogger(__name__)

MAX_TABLE_NAME = 300


def _table_name(row) -> str:
    name = f"{row.source_schema}.{row.source_table}" if row.source_schema else f"{row.source_table}"
    return name[:MAX_TABLE_NAME]


async def run_all(session_factory=SessionLocal, registry: Optional[StoreRegistry] = None,
                  executor: Optional[BatchExecutor] = None, now: Optional[datetime] = None) -> RunSummary:
    """
    Execute every enabled retire job once and log each outcome.

    `now` pins the cutoff reference time for all jobs (tests, replays);
    by default each job uses its own start time.
    """
    catalog = JobCatalog(session_factory)
    log = ExecutionLog(session_factory)
    owns_registry = registry is None
    registry = registry or StoreRegistry()
    executor = executor or BatchExecutor()
    executor.pacer.restart()

    try:
        run_number = await asyncio.to_thread(log.next_run_number)
        rows = await asyncio.to_thread(catalog.load_enabled)
        summary = RunSummary(run_number=run_number)
        logger.info(f"[RUN] Starting run {run_number} with {len(rows)} enabled jobs")

        definitions: Dict[int, JobDefinition] = {}
        invalid: Dict[int, str] = {}
        for row in rows:
            try:
                definitions[row.id] = JobDefinition.model_validate(row)
            except ValidationError as e:
                invalid[row.id] = f"Invalid job definition: {e}"

        # Fatal before any job runs.
        await asyncio.to_thread(registry.resolve_all, [
            job.remote_alias for job in definitions.values() if job.plan is BatchPlan.COPY_THEN_DELETE
        ])

        try:
            summary.advisories = await asyncio.to_thread(
                check_processing_order, list(definitions.values()), registry.local.engine
            )
        except SQLAlchemyError as e:
            logger.warning(f"[RUN] Processing-order check skipped: {e}")
        for advisory in summary.advisories:
            logger.warning(f"[RUN] Processing order: {advisory}")

        for row in rows:
            started_at = utcnow()
            clock = time.monotonic()
            error_message = None
            try:
                if row.id in invalid:
                    raise JobConfigurationError(invalid[row.id])
                job = definitions[row.id]
                target = None
                if job.plan is BatchPlan.COPY_THEN_DELETE:
                    target = registry.resolve(job.remote_alias)
                outcome = await executor.run_job(job, registry.local, target, now or started_at)
                label, rows_affected = outcome.label, outcome.rows_affected
            except Exception as e:
                label, rows_affected, error_message = ERROR_LABEL, 0, str(e) or type(e).__name__
                summary.jobs_failed += 1
                logger.error(f"[RUN] Job {row.id} ({_table_name(row)}) failed: {error_message}")

            duration_ms = int((time.monotonic() - clock) * 1000)
            await asyncio.to_thread(
                log.append,
                run_number=run_number,
                job_id=row.id,
                action=label,
                table_name=_table_name(row),
                rows_affected=rows_affected,
                is_dry_run=bool(row.dry_run),
                started_at=started_at,
                duration_ms=duration_ms,
                error_message=error_message,
            )
            summary.jobs_processed += 1
            summary.rows_affected += rows_affected

        logger.info(
            f"[RUN] Run {run_number} complete: {summary.jobs_processed} jobs, "
            f"{summary.jobs_failed} failed, {summary.rows_affected} rows"
        )
        return summary
    finally:
        if owns_registry:
            registry.dispose()
