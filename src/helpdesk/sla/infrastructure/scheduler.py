"""
SLA Background Scheduler
========================

APScheduler wrapper running the periodic SLA breach scan.
"""

from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SLAScheduler:
    """
    Wrapper for APScheduler for background SLA evaluation.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[BackgroundScheduler] = None
        self._running = False

    def start(self, job_func: Callable[[], None]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        if self.interval_seconds <= 0:
            logger.info("SLA scheduler disabled", extra={"interval_seconds": self.interval_seconds})
            return

        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_evaluation",
            name="SLA Evaluation Job",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
