"""Periodic purge of expired attempt-ledger records with APScheduler."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.settings import settings

logger = logging.getLogger(__name__)

JOB_ID = "ledger_cleanup"


class LedgerCleanupScheduler:
    """Runs ``cleanup_old_attempts`` on a fixed interval, independent of traffic."""

    def __init__(self, interval_seconds: int | None = None):
        self.interval_seconds = interval_seconds or settings.rate_limit_cleanup_interval_seconds
        self.scheduler = AsyncIOScheduler()
        self._running = False
        self.last_removed: int | None = None

    def start(self) -> None:
        if self._running:
            logger.warning("Ledger cleanup scheduler already running")
            return

        self.scheduler.add_job(
            self.run_cleanup,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Attempt ledger cleanup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._running = True
        logger.info(
            "Ledger cleanup scheduled every %ds (next run: %s)",
            self.interval_seconds,
            self.get_status()["next_run_time"],
        )

    def stop(self) -> None:
        if not self._running:
            return
        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Ledger cleanup scheduler stopped")

    async def run_cleanup(self) -> int:
        from auth.rate_limiter import get_login_rate_limiter

        try:
            limiter = await get_login_rate_limiter()
            removed = await limiter.cleanup_old_attempts()
        except Exception as e:
            logger.error("Ledger cleanup failed: %s", e, exc_info=True)
            return 0

        self.last_removed = removed
        return removed

    def get_status(self) -> dict:
        next_run = None
        job = self.scheduler.get_job(JOB_ID)
        if job and job.next_run_time:
            next_run = job.next_run_time.isoformat()

        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "next_run_time": next_run,
            "last_removed": self.last_removed,
        }


_scheduler: LedgerCleanupScheduler | None = None


def get_cleanup_scheduler() -> LedgerCleanupScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = LedgerCleanupScheduler()
    return _scheduler
