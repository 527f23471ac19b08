"""Tests for the periodic billing scheduler."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from app.services.billing_scheduler import BillingScheduler, setup_billing_cron_job


async def wait_for_runs(scheduler: BillingScheduler, count: int, timeout: float = 2.0) -> None:
    async def _poll():
        while scheduler.run_count < count:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.asyncio
async def test_runs_after_startup_delay_then_periodically():
    job = AsyncMock()
    scheduler = BillingScheduler(job, startup_delay=0.01, interval=0.05)

    scheduler.start()
    try:
        await wait_for_runs(scheduler, 3)
    finally:
        await scheduler.stop()

    assert job.await_count >= 3
    assert scheduler.last_run_at is not None


@pytest.mark.asyncio
async def test_first_run_waits_for_startup_delay():
    job = AsyncMock()
    scheduler = BillingScheduler(job, startup_delay=10, interval=10)

    scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.stop()

    job.assert_not_awaited()
    assert scheduler.run_count == 0


@pytest.mark.asyncio
async def test_failing_job_does_not_stop_the_schedule():
    job = AsyncMock(side_effect=RuntimeError("database unavailable"))
    scheduler = BillingScheduler(job, startup_delay=0, interval=0.02)

    scheduler.start()
    try:
        await wait_for_runs(scheduler, 3)
        assert scheduler.is_running
    finally:
        await scheduler.stop()

    assert job.await_count >= 3


@pytest.mark.asyncio
async def test_runs_never_overlap():
    active = 0
    peak = 0

    async def slow_job():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.05)
        active -= 1

    scheduler = BillingScheduler(slow_job, startup_delay=0, interval=0.01)

    scheduler.start()
    try:
        await wait_for_runs(scheduler, 3)
    finally:
        await scheduler.stop()

    assert peak == 1


@pytest.mark.asyncio
async def test_stop_cancels_the_loop():
    job = AsyncMock()
    scheduler = BillingScheduler(job, startup_delay=0, interval=0.02)

    scheduler.start()
    await wait_for_runs(scheduler, 1)
    await scheduler.stop()
    runs = scheduler.run_count
    await asyncio.sleep(0.06)

    assert not scheduler.is_running
    assert scheduler.run_count == runs


@pytest.mark.asyncio
async def test_start_twice_keeps_a_single_loop():
    job = AsyncMock()
    scheduler = BillingScheduler(job, startup_delay=10, interval=10)

    scheduler.start()
    first_task = scheduler._task
    scheduler.start()

    assert scheduler._task is first_task
    await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_without_start_is_a_no_op():
    scheduler = BillingScheduler(AsyncMock(), startup_delay=0, interval=1)

    await scheduler.stop()

    assert not scheduler.is_running


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        BillingScheduler(AsyncMock(), startup_delay=0, interval=0)


@pytest.mark.asyncio
async def test_setup_billing_cron_job_starts_scheduler():
    job = AsyncMock()

    scheduler = setup_billing_cron_job(job, startup_delay=0, interval=0.05)
    try:
        assert scheduler.is_running
        await wait_for_runs(scheduler, 1)
    finally:
        await scheduler.stop()

    job.assert_awaited()


@pytest.mark.asyncio
async def test_setup_billing_cron_job_defaults_to_settings():
    with patch("app.services.billing_scheduler.settings") as mock_settings:
        mock_settings.BILLING_STARTUP_DELAY_SECONDS = 30.0
        mock_settings.billing_interval_seconds = 3600.0
        scheduler = setup_billing_cron_job(AsyncMock())

    try:
        assert scheduler.startup_delay == 30.0
        assert scheduler.interval == 3600.0
    finally:
        await scheduler.stop()
