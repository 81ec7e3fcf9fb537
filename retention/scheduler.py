"""
Run scheduler — triggers a retention run on a cron schedule.
Uses APScheduler's AsyncIOScheduler; runs never overlap inside one process.
"""
import asyncio
import logging
import os
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from retention.jobs import RunSummary
from retention.orchestrator import run_all

logger = logging.getLogger(__name__)

RUN_CRON = os.environ.get("RETENTION_CRON", "0 2 * * *")  # Daily at 2 AM
RUN_JOB_KEY = "retention_run"


class RetentionScheduler:
    """Owns the cron trigger and serializes cron and manual runs."""

    def __init__(self, cron_expression: str = RUN_CRON, run=run_all):
        self.cron_expression = cron_expression
        self.scheduler = AsyncIOScheduler()
        self._run = run
        self._lock: Optional[asyncio.Lock] = None
        self.last_summary: Optional[RunSummary] = None
        self.last_error: Optional[str] = None

    @property
    def lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @property
    def running(self) -> bool:
        return self._lock is not None and self._lock.locked()

    def start(self):
        """Start the scheduler with the configured cron trigger."""
        self.scheduler.start()
        try:
            trigger = CronTrigger.from_crontab(self.cron_expression)
            self.scheduler.add_job(
                self._scheduled_run,
                trigger=trigger,
                id=RUN_JOB_KEY,
                name="Retention run",
                replace_existing=True,
                misfire_grace_time=60,
                coalesce=True,
                max_instances=1,
            )
            logger.info(f"[SCHEDULER] Started (cron={self.cron_expression})")
        except ValueError as e:
            logger.error(f"[SCHEDULER] Invalid cron expression '{self.cron_expression}': {e}")

    def shutdown(self):
        """Gracefully shut down the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("[SCHEDULER] Shutdown complete")

    async def _scheduled_run(self):
        try:
            await self.trigger_run()
        except Exception as e:
            # Already recorded in last_error; keep the scheduler alive for the next tick.
            logger.error(f"[SCHEDULER] Scheduled run failed: {e}")

    async def trigger_run(self) -> RunSummary:
        """Run now, waiting for any run already in progress to finish first."""
        async with self.lock:
            logger.info("[SCHEDULER] Retention run starting")
            try:
                summary = await self._run()
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"[SCHEDULER] Retention run aborted: {e}")
                raise
            self.last_summary = summary
            self.last_error = None
            return summary

    def get_next_run(self) -> Optional[str]:
        job = self.scheduler.get_job(RUN_JOB_KEY)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()

    def get_status(self) -> dict:
        return {
            "cron": self.cron_expression,
            "running": self.running,
            "next_run": self.get_next_run(),
            "last_summary": self.last_summary.as_dict() if self.last_summary else None,
            "last_error": self.last_error,
        }


# Global instance
scheduler = RetentionScheduler()
