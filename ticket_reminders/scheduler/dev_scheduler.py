"""Dev Scheduler - In-process trigger for notification runs

Production deployments call the cron endpoint on a fixed cadence. For local
development this scheduler fires the same run in-process. Both paths go
through the coordinator's run lock, so running them side by side is safe.
"""
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..engine.coordinator import SchedulerCoordinator, build_coordinator
from ..utils.idgen import generate_correlation_id
from ..utils.logger import get_logger, set_correlation_id

logger = get_logger(__name__)

JOB_ID = "run_notifications"


class NotificationScheduler:
    """APScheduler wrapper that runs the coordinator at a fixed interval"""

    def __init__(
        self,
        coordinator: Optional[SchedulerCoordinator] = None,
        interval_minutes: Optional[int] = None
    ):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.coordinator = coordinator or build_coordinator()
        self.interval_minutes = interval_minutes or settings.scheduler_interval_minutes
        self._is_running = False

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._run_notifications,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Run notification scheduler",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(f"Scheduler started, running every {self.interval_minutes} minutes")

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Dev scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def _run_notifications(self) -> None:
        set_correlation_id(generate_correlation_id())
        summary = await self.coordinator.run()
        if not summary.ok:
            logger.error(
                f"Scheduled notification run failed: {summary.error}",
                extra={"run_id": summary.run_id}
            )


# Global scheduler instance
_scheduler: Optional[NotificationScheduler] = None


def get_scheduler() -> NotificationScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = NotificationScheduler()
    return _scheduler


def start_scheduler() -> None:
    """Start the global scheduler"""
    get_scheduler().start()


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None


def is_scheduler_running() -> bool:
    """True when the global scheduler has been started"""
    return _scheduler is not None and _scheduler.is_running
