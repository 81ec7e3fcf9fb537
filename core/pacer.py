import asyncio
import os
import time
from typing import Optional

BATCH_PAUSE_MS = float(os.environ.get("RETENTION_BATCH_PAUSE_MS", "100"))
_deadline_env = os.environ.get("RETENTION_RUN_DEADLINE_SECONDS")
RUN_DEADLINE_SECONDS: Optional[float] = float(_deadline_env) if _deadline_env else None


class BatchPacer:
    """Inter-batch pause plus an optional wall-clock deadline for one run."""

    def __init__(self, pause_seconds: float = BATCH_PAUSE_MS / 1000.0,
                 deadline_seconds: Optional[float] = RUN_DEADLINE_SECONDS):
        self.pause_seconds = max(0.0, pause_seconds)
        self.deadline_seconds = deadline_seconds
        self.started_at = time.monotonic()
        self.total_pauses = 0
        self.total_pause_seconds = 0.0

    def restart(self):
        """Reset the deadline clock (called at the start of each run)."""
        self.started_at = time.monotonic()

    def expired(self) -> bool:
        if self.deadline_seconds is None:
            return False
        return time.monotonic() - self.started_at >= self.deadline_seconds

    async def wait(self):
        # Suspends only this coroutine; the scheduler loop keeps running.
        self.total_pauses += 1
        if self.pause_seconds <= 0:
            await asyncio.sleep(0)
            return
        start = time.monotonic()
        await asyncio.sleep(self.pause_seconds)
        self.total_pause_seconds += time.monotonic() - start

    def snapshot(self):
        return {
            "pauses_total": self.total_pauses,
            "total_pause_seconds": round(self.total_pause_seconds, 6),
            "pause_seconds": self.pause_seconds,
            "deadline_seconds": self.deadline_seconds,
        }
