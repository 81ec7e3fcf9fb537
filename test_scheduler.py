import asyncio

import pytest

from core.errors import CatalogError
from retention.jobs import RunSummary
from retention.scheduler import RetentionScheduler


@pytest.mark.asyncio
async def test_trigger_run_records_summary():
    async def fake_run():
        return RunSummary(run_number=3, jobs_processed=2, rows_affected=10)

    scheduler = RetentionScheduler(run=fake_run)
    summary = await scheduler.trigger_run()

    assert summary.run_number == 3
    status = scheduler.get_status()
    assert status["last_summary"]["rows_affected"] == 10
    assert status["last_error"] is None
    assert status["running"] is False


@pytest.mark.asyncio
async def test_trigger_run_records_fatal_error():
    async def failing_run():
        raise CatalogError("catalog unreachable")

    scheduler = RetentionScheduler(run=failing_run)
    with pytest.raises(CatalogError):
        await scheduler.trigger_run()
    assert "catalog unreachable" in scheduler.get_status()["last_error"]

    # The cron path logs instead of raising.
    await scheduler._scheduled_run()


@pytest.mark.asyncio
async def test_runs_never_overlap():
    active = 0
    peak = 0

    async def slow_run():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return RunSummary(run_number=1)

    scheduler = RetentionScheduler(run=slow_run)
    await asyncio.gather(scheduler.trigger_run(), scheduler.trigger_run(), scheduler.trigger_run())
    assert peak == 1


@pytest.mark.asyncio
async def test_start_registers_cron_job():
    scheduler = RetentionScheduler(cron_expression="0 2 * * *")
    scheduler.start()
    try:
        assert scheduler.get_next_run() is not None
    finally:
        scheduler.shutdown()


@pytest.mark.asyncio
async def test_invalid_cron_is_logged_not_raised():
    scheduler = RetentionScheduler(cron_expression="not a cron")
    scheduler.start()
    try:
        assert scheduler.get_next_run() is None
    finally:
        scheduler.shutdown()
