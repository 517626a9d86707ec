"""GrowStage Scheduler — APScheduler-based interval trigger for batch runs."""

import logging
import threading

from apscheduler.schedulers.background import BackgroundScheduler

from growstage.core.batch import BatchResult, BatchScheduler
from growstage.core.config import Settings

logger = logging.getLogger("growstage.scheduler")


class GrowStageScheduler:
    """Runs the batch engine on an interval.

    Default interval: 1 hour (configurable). The engine itself has no notion
    of cadence; this is just one caller of `BatchScheduler.run_all`.
    """

    def __init__(self, batch: BatchScheduler, settings: Settings):
        self.batch = batch
        self.settings = settings
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        self._cancel = threading.Event()
        self.last_result: BatchResult | None = None

    def _run_batch(self) -> BatchResult | None:
        """Run one batch from the APScheduler worker thread."""
        try:
            self.last_result = self.batch.run_all(cancel_event=self._cancel)
            return self.last_result
        except Exception as e:
            logger.error(f"Scheduled batch failed: {e}", exc_info=True)
            return None

    def start(self) -> None:
        """Start the scheduler with configured interval."""
        self._cancel.clear()
        self.scheduler.add_job(
            self._run_batch,
            "interval",
            minutes=self.settings.scheduler_interval_minutes,
            id="growstage_batch",
            name="GrowStage Batch",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started — interval: {self.settings.scheduler_interval_minutes} minutes")

    def stop(self) -> None:
        """Cancel the running batch between plants and stop the scheduler."""
        self._cancel.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def trigger_now(self) -> BatchResult | None:
        """Run one batch synchronously."""
        return self._run_batch()
