"""Background job scheduler wiring."""

import pytest

from ticketflow.main import build_scheduler
from ticketflow.shared.infrastructure.scheduler import JobScheduler


@pytest.mark.asyncio
async def test_registers_background_jobs(container, settings):
    scheduler = build_scheduler(container, settings)

    assert scheduler.job_ids == ["escalation_sweep", "outbox_dispatch", "idempotency_purge"]
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_start_and_stop():
    calls = []

    async def job():
        calls.append(1)

    scheduler = JobScheduler()
    scheduler.add_job("noop", job, 3600)
    await scheduler.start()
    try:
        assert scheduler.is_running
        with pytest.raises(RuntimeError):
            scheduler.add_job("late", job, 60)
    finally:
        await scheduler.stop()
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_failing_job_is_contained():
    async def broken():
        raise ValueError("boom")

    scheduler = JobScheduler()
    scheduler.add_job("broken", broken, 60)

    await JobScheduler._run(scheduler._jobs[0])
