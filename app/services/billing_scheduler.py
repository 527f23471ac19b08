"""Periodic trigger for the billing job"""

import asyncio
import contextlib
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from app.config import settings
from app.core.logging import get_logger
from app.services.billing_service import run_billing_cron_jobs
from app.utils.time import get_utc_now

logger = get_logger(__name__)


class BillingScheduler:
    """
    Runs a job once after a startup delay, then on a fixed period.

    Firing times are measured from start(), so a slow run does not shift the
    following ones. Runs never overlap: a run that outlasts the period makes
    the scheduler skip the slots it missed.
    """

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        startup_delay: float,
        interval: float,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.job = job
        self.startup_delay = max(0.0, startup_delay)
        self.interval = interval
        self.run_count = 0
        self.last_run_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop. Calling it twice is a no-op."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run_forever(), name="billing-scheduler")
        logger.info(
            "Billing cron job scheduled",
            extra={"startup_delay": self.startup_delay, "interval_seconds": self.interval},
        )

    async def stop(self) -> None:
        """Cancel the loop, waiting for an in-flight run to be cancelled."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Billing cron job stopped")

    async def _run_once(self) -> None:
        try:
            await self.job()
        except Exception:
            logger.exception("Billing job run failed")
        finally:
            self.run_count += 1
            self.last_run_at = get_utc_now()

    async def _run_forever(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()

        await asyncio.sleep(self.startup_delay)
        await self._run_once()

        tick = 1
        while True:
            fire_at = started + tick * self.interval
            now = loop.time()
            if fire_at < now:
                missed = int((now - fire_at) // self.interval) + 1
                logger.warning(
                    "Billing job overran its period, skipping missed runs",
                    extra={"missed_runs": missed},
                )
                tick += missed
                continue
            await asyncio.sleep(fire_at - now)
            await self._run_once()
            tick += 1


def setup_billing_cron_job(
    job: Optional[Callable[[], Awaitable[Any]]] = None,
    startup_delay: Optional[float] = None,
    interval: Optional[float] = None,
) -> BillingScheduler:
    """Create and start the billing scheduler; must be called from a running event loop."""
    if job is None:
        job = run_billing_cron_jobs

    scheduler = BillingScheduler(
        job,
        startup_delay=settings.BILLING_STARTUP_DELAY_SECONDS if startup_delay is None else startup_delay,
        interval=settings.billing_interval_seconds if interval is None else interval,
    )
    scheduler.start()
    return scheduler
