"""
Job catalog reads and execution log writes.

The engine reads the catalog once at the start of a run and appends one log
row per job. Any failure here is fatal to the run (CatalogError).
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from core.errors import CatalogError
from retention.database import SessionLocal
from retention.models import ExecutionLogEntry, RetireJob

logger = logging.getLogger(__name__)


class CatalogRow:
    """Detached snapshot of a retire_jobs row, taken before any job runs."""

    FIELDS = (
        "id", "source_schema", "source_table", "date_column",
        "target_store", "target_schema", "target_table",
        "retention_days", "batch_size", "action", "dry_run",
        "processing_order", "is_enabled", "notes",
    )

    def __init__(self, job: RetireJob):
        for name in self.FIELDS:
            setattr(self, name, getattr(job, name))

    def __repr__(self):
        return f"<CatalogRow {self.id} {self.action} {self.source_table}>"


class JobCatalog:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def load_enabled(self) -> List[CatalogRow]:
        """All enabled jobs ordered by (processing_order, id)."""
        session = self.session_factory()
        try:
            jobs = session.query(RetireJob).filter(
                RetireJob.is_enabled == True  # noqa: E712
            ).order_by(RetireJob.processing_order.asc(), RetireJob.id.asc()).all()
            return [CatalogRow(job) for job in jobs]
        except SQLAlchemyError as e:
            raise CatalogError(f"Job catalog unreadable: {e}") from e
        finally:
            session.close()


class ExecutionLog:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def next_run_number(self) -> int:
        session = self.session_factory()
        try:
            current = session.query(func.max(ExecutionLogEntry.run_number)).scalar()
            return (current or 0) + 1
        except SQLAlchemyError as e:
            raise CatalogError(f"Execution log unreadable: {e}") from e
        finally:
            session.close()

    def append(self, run_number: int, job_id: int, action: str, table_name: Optional[str],
               rows_affected: int, is_dry_run: bool, started_at: datetime,
               duration_ms: int, error_message: Optional[str] = None) -> int:
        session = self.session_factory()
        try:
            entry = ExecutionLogEntry(
                run_number=run_number,
                job_id=job_id,
                action=action,
                table_name=table_name,
                rows_affected=rows_affected,
                is_dry_run=bool(is_dry_run),
                started_at=started_at,
                duration_ms=duration_ms,
                error_message=error_message,
            )
            session.add(entry)
            session.commit()
            return entry.id
        except SQLAlchemyError as e:
            session.rollback()
            raise CatalogError(f"Execution log unwritable: {e}") from e
        finally:
            session.close()
