"""
Read-only reporting over the execution log for the
admin API and external monitoring.
"""
import logging

from sqlalchemy import case, func

from retention.database import SessionLocal
from retention.jobs import ERROR_LABEL
from retention.models import ExecutionLogEntry, RetireJob

logger = logging.getLogger(__name__)


def _entry_dict(entry: ExecutionLogEntry):
    return {
        "id": entry.id,
        "run_number": entry.run_number,
        "job_id": entry.job_id,
        "action": entry.action,
        "table_name": entry.table_name,
        "rows_affected": entry.rows_affected,
        "is_dry_run": entry.is_dry_run,
        "started_at": entry.started_at.isoformat() if entry.started_at else None,
        "duration_ms": entry.duration_ms,
        "error_message": entry.error_message,
    }


class ExecutionLogService:
    session_factory = SessionLocal

    @classmethod
    def list_runs(cls, limit: int = 20):
        """Most recent runs with per-run totals."""
        session = cls.session_factory()
        try:
            failed = func.sum(case((ExecutionLogEntry.action == ERROR_LABEL, 1), else_=0))
            rows = session.query(
                ExecutionLogEntry.run_number,
                func.min(ExecutionLogEntry.started_at),
                func.count(ExecutionLogEntry.id),
                failed,
                func.sum(ExecutionLogEntry.rows_affected),
                func.sum(ExecutionLogEntry.duration_ms),
            ).group_by(ExecutionLogEntry.run_number).order_by(
                ExecutionLogEntry.run_number.desc()
            ).limit(limit).all()

            data = [{
                "run_number": run_number,
                "started_at": started.isoformat() if started else None,
                "jobs": jobs,
                "failed": int(failed_count or 0),
                "rows_affected": int(rows_affected or 0),
                "duration_ms": int(duration or 0),
            } for run_number, started, jobs, failed_count, rows_affected, duration in rows]

            return {"success": True, "data": data, "count": len(data)}
        except Exception as e:
            logger.error(f"List runs error: {e}")
            return {"success": False, "error": str(e)}
        finally:
            session.close()

    @classmethod
    def get_run(cls, run_number: int):
        """All log entries of one run, in execution order."""
        session = cls.session_factory()
        try:
            entries = session.query(ExecutionLogEntry).filter(
                ExecutionLogEntry.run_number == run_number
            ).order_by(ExecutionLogEntry.id.asc()).all()
            if not entries:
                return {"success": False, "error": f"Run {run_number} not found"}
            return {
                "success": True,
                "run_number": run_number,
                "data": [_entry_dict(e) for e in entries],
                "count": len(entries),
            }
        except Exception as e:
            logger.error(f"Get run error: {e}")
            return {"success": False, "error": str(e)}
        finally:
            session.close()

    @classmethod
    def get_job_history(cls, job_id: int, limit: int = 10):
        """Recent log entries for one job."""
        session = cls.session_factory()
        try:
            entries = session.query(ExecutionLogEntry).filter(
                ExecutionLogEntry.job_id == job_id
            ).order_by(ExecutionLogEntry.run_number.desc()).limit(limit).all()
            return {
                "success": True,
                "job_id": job_id,
                "data": [_entry_dict(e) for e in entries],
                "count": len(entries),
            }
        except Exception as e:
            logger.error(f"Job history error: {e}")
            return {"success": False, "error": str(e)}
        finally:
            session.close()

    @classmethod
    def get_status(cls):
        """Overview of every job with its latest outcome."""
        session = cls.session_factory()
        try:
            jobs = session.query(RetireJob).order_by(
                RetireJob.processing_order.asc(), RetireJob.id.asc()
            ).all()
            healthy = 0
            error = 0
            never_run = 0

            details = []
            for job in jobs:
                last = session.query(ExecutionLogEntry).filter_by(
                    job_id=job.id
                ).order_by(ExecutionLogEntry.run_number.desc()).first()

                if last is None:
                    never_run += 1
                elif last.action == ERROR_LABEL:
                    error += 1
                else:
                    healthy += 1

                details.append({
                    "id": job.id,
                    "table": job.source_table,
                    "action": job.action,
                    "enabled": job.is_enabled,
                    "processing_order": job.processing_order,
                    "last_action": last.action if last else None,
                    "last_rows": last.rows_affected if last else None,
                    "last_run": last.run_number if last else None,
                    "last_error": last.error_message if last else None,
                })

            return {
                "success": True,
                "summary": {
                    "total": len(jobs),
                    "healthy": healthy,
                    "error": error,
                    "never_run": never_run,
                },
                "jobs": details,
            }
        except Exception as e:
            logger.error(f"Job status error: {e}")
            return {"success": False, "error": str(e)}
        finally:
            session.close()
