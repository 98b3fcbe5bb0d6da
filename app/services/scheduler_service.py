import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import settings


logger = logging.getLogger(__name__)

PURGE_JOB_ID = "license_purge"


class LicenseRetentionScheduler:
    """Scheduler for periodic purging of expired issued licenses"""

    def __init__(self):
        self.scheduler: AsyncIOScheduler | None = None
        self._purge_func: Callable[[], Awaitable[int]] | None = None

    async def _purge_job(self) -> None:
        """Background job that applies the retention policy"""
        if self._purge_func is None:
            return
        logger.info("Scheduled license purge triggered")
        try:
            purged = await self._purge_func()
            logger.info("Scheduled license purge removed %s records", purged)
        except Exception as e:
            logger.error(f"Exception in scheduled license purge: {e}", exc_info=True)

    def start(self, purge_func: Callable[[], Awaitable[int]]) -> None:
        """Start the scheduler with the license purge job"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(settings.license_purge_cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", settings.license_purge_cron, exc)
            raise

        self._purge_func = purge_func
        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._purge_job,
            trigger=trigger,
            id=PURGE_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=settings.license_purge_misfire_grace_sec
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next license purge: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")
        self.scheduler = None
        self._purge_func = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled purge time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(PURGE_JOB_ID)
        return job.next_run_time if job else None


license_scheduler = LicenseRetentionScheduler()
