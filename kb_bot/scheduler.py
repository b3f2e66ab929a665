"""Calendar scheduler invoking the sync handler."""
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from kb_bot import settings
from kb_bot.checkpoint import FiringCheckpoint
from kb_bot.errors import SchedulerFiringFailure
from kb_bot.logging_conf import logger

JOB_ID = "data-sync"
MISFIRE_GRACE_SECONDS = 60


class SyncScheduler:
    """
    Fires the sync handler on a cron schedule in UTC.

    Each firing invokes the handler ``1 + retry_attempts`` times at most,
    stopping at the first success. With the default of zero retries a failed
    firing waits for the next scheduled instant.
    """

    def __init__(
        self,
        handler: Callable[[], None],
        schedule: Optional[Dict[str, str]] = None,
        checkpoint: Optional[FiringCheckpoint] = None,
        retry_attempts: int = settings.SYNC_RETRY_ATTEMPTS,
    ):
        self.handler = handler
        self.schedule = dict(schedule or settings.SYNC_SCHEDULE)
        self.checkpoint = checkpoint
        self.retry_attempts = retry_attempts
        self.trigger = CronTrigger(
            minute=self.schedule["minute"],
            hour=self.schedule["hour"],
            day_of_week=self.schedule["day_of_week"],
            timezone="UTC",
        )
        self._scheduler: Optional[BackgroundScheduler] = None

    def start(self):
        """Start the scheduler in a background thread."""
        if self._scheduler is not None:
            logger.warning("Scheduler is already running")
            return

        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._scheduler.add_job(
            self.fire,
            trigger=self.trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )
        self._scheduler.start()
        logger.info(f"Scheduler started (next sync: {self.next_fire_time()})")

    def stop(self):
        """Stop the scheduler."""
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")

    def next_fire_time(self, now: Optional[datetime] = None) -> Optional[datetime]:
        now = now or datetime.now(timezone.utc)
        return self.trigger.get_next_fire_time(None, now)

    def fire(self) -> bool:
        """Perform one firing. Failures are logged, never raised."""
        fired_at = datetime.now(timezone.utc)
        logger.info(f"Data sync firing at {fired_at.isoformat()}")

        error = None
        for attempt in range(1 + self.retry_attempts):
            try:
                self.handler()
            except Exception as e:
                error = SchedulerFiringFailure(f"attempt {attempt + 1}: {type(e).__name__}: {e}")
                logger.error(f"Data sync failed: {error}", exc_info=True)
                continue
            self._record(fired_at, True)
            logger.info("Data sync firing completed")
            return True

        self._record(fired_at, False, str(error))
        return False

    def _record(self, fired_at: datetime, succeeded: bool, error: Optional[str] = None) -> None:
        if self.checkpoint is not None:
            self.checkpoint.record(fired_at, succeeded, error)
