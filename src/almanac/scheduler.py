"""Rollup scheduler — cron-driven reconciliation sweeps via APScheduler.

Wraps APScheduler's ``AsyncIOScheduler`` to run a :class:`ReconciliationJob`
on a cron trigger (hourly by default).  At most one sweep runs at a time;
a trigger that fires while the previous sweep is still running is skipped
and the next sweep catches up.

APScheduler is imported lazily (only in :meth:`start`) so the module
can be imported without triggering heavy dependencies at import time.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from almanac.analytics.models import RollupResult
from almanac.analytics.rollup import ReconciliationJob

_JOB_ID = "analytics_rollup"


class RollupScheduler:
    """Config-driven scheduler for the periodic reconciliation sweep.

    Args:
        job: The reconciliation job to run.
        cron: APScheduler cron fields, e.g. ``{"minute": 0}`` for hourly.
        timezone: Timezone for cron triggers.
    """

    def __init__(self, job: ReconciliationJob, cron: dict[str, Any] | None = None, timezone: str = "UTC"):
        self.job = job
        self.cron = cron or {"minute": 0}
        self._timezone = timezone
        self._scheduler: Any = None  # AsyncIOScheduler, lazily created
        self.last_result: RollupResult | None = None

    @classmethod
    def from_config(cls, job: ReconciliationJob, config: Any) -> RollupScheduler:
        """Build from a Config object.

        Expected config layout::

            scheduler:
              enabled: true
              timezone: UTC
              cron: { minute: 0 }
        """
        return cls(
            job,
            cron=config.get("scheduler.cron") or {"minute": 0},
            timezone=config.get("scheduler.timezone") or "UTC",
        )

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        """Create the APScheduler instance, add the sweep, and start.

        Must be called from a running asyncio event loop.
        """
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        from apscheduler.triggers.cron import CronTrigger

        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._scheduler.add_job(
            self.run_once,
            trigger=CronTrigger(timezone=self._timezone, **self.cron),
            id=_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"RollupScheduler started: cron={self.cron}, tz={self._timezone}")

    def shutdown(self) -> None:
        """Stop the APScheduler instance."""
        if self._scheduler:
            self._scheduler.shutdown()
            logger.info("RollupScheduler shut down")

    @property
    def apscheduler(self) -> Any:
        """Expose the raw APScheduler instance. None until :meth:`start` is called."""
        return self._scheduler

    # ── Sweep ──────────────────────────────────────────────────────

    async def run_once(self) -> RollupResult | None:
        """Run one sweep; sweep-level failures are logged, not raised into APScheduler."""
        try:
            self.last_result = await self.job.run()
        except Exception as e:
            logger.error(f"Periodic rollup failed: {e!r}")
            return None
        return self.last_result
