"""APScheduler-based periodic trigger for scraping runs.

Runs the orchestrator on a fixed interval until a shutdown signal arrives.
A failed run is logged and the next one still fires on schedule.
"""

import asyncio
import signal
from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from price_scraper.scrapers.models import RunSummary
from price_scraper.scrapers.orchestrator import ScrapeOrchestrator

logger = structlog.get_logger(__name__)

JOB_ID = "scrape_run"


class PeriodicScrapeScheduler:
    """Fires one scraping run every ``interval_seconds``.

    - The first run starts immediately
    - max_instances=1: a firing that lands while a run is still in progress
      is skipped (APScheduler logs a warning), so runs never overlap
    - Errors are caught and logged so the schedule keeps going
    """

    def __init__(self, orchestrator: ScrapeOrchestrator, interval_seconds: int = 60):
        """Initialize the scheduler.

        Args:
            orchestrator: Orchestrator whose run() is triggered
            interval_seconds: Seconds between run starts
        """
        if interval_seconds < 1:
            raise ValueError("interval_seconds must be at least 1")

        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="scrape_scheduler")
        self.runs_completed = 0
        self.runs_failed = 0
        self._job: Optional[Job] = None
        self._shutdown: Optional[asyncio.Event] = None
        self._running_task: Optional[asyncio.Task] = None

    def start(self) -> Job:
        """Register the interval job and start the scheduler.

        Must be called from inside a running event loop.
        """
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return self._job

        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone="UTC")
        self._job = self.scheduler.add_job(
            func=self.run_once,
            trigger=trigger,
            id=JOB_ID,
            name="Scrape all providers",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.start()
        self.logger.info("scheduler_started", interval_seconds=self.interval_seconds)
        return self._job

    def stop(self, wait: bool = True) -> None:
        """Shut the scheduler down.

        The asyncio executor cancels a job that is still running, so serve()
        pauses the schedule and drains the current run before calling this.
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            self.logger.info(
                "scheduler_stopped",
                runs_completed=self.runs_completed,
                runs_failed=self.runs_failed,
            )
        else:
            self.logger.warning("scheduler_not_running")

    async def run_once(self) -> Optional[RunSummary]:
        """Run the orchestrator once, logging instead of raising on failure.

        This is the function APScheduler calls.

        Returns:
            The run summary, or None if the run failed
        """
        self._running_task = asyncio.current_task()
        try:
            summary = await self.orchestrator.run()
        except Exception as e:
            self.runs_failed += 1
            self.logger.error(
                "scrape_job_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return None
        finally:
            self._running_task = None

        self.runs_completed += 1
        self.logger.info("scrape_job_completed", next_run_in_seconds=self.interval_seconds)
        return summary

    def is_running(self) -> bool:
        return self.scheduler.running

    def request_shutdown(self) -> None:
        """Ask serve() to stop. Safe to call from a signal handler."""
        if self._shutdown is not None:
            self._shutdown.set()

    async def serve(self) -> None:
        """Start the schedule and block until SIGINT/SIGTERM or request_shutdown()."""
        self._shutdown = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Windows event loops do not support signal handlers
                pass

        self.start()
        try:
            await self._shutdown.wait()
            self.logger.info("shutdown_requested")
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except (NotImplementedError, RuntimeError):
                    pass
            if self.scheduler.running:
                self.scheduler.pause()
            await self._wait_for_running_run()
            self.stop()

    async def _wait_for_running_run(self) -> None:
        """Let an in-flight run finish; runs are never cancelled midway."""
        task = self._running_task
        if task is not None and not task.done():
            self.logger.info("waiting_for_running_scrape")
            await asyncio.wait({task})
