"""Scheduler service - runs the evaluation jobs periodically.

Two interval jobs:
- evaluate_servers every ``evaluation_interval_seconds``
- check_monitors every ``monitor_tick_seconds``; each monitor is only probed
  once its own ``interval_minutes`` has elapsed, so the tick only bounds how
  late a check can be

Both jobs use ``max_instances=1``: a tick that fires while the previous run
is still going is skipped rather than stacked. The same jobs can also be
driven by an external cron through ``POST /api/evaluate``; per-entity locks
in the evaluation service keep the two from racing.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..errors import ConfigurationError
from .evaluation import EvaluationService

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for scheduling periodic evaluation runs."""

    def __init__(
        self,
        evaluation: EvaluationService,
        evaluation_interval_seconds: int = 60,
        monitor_tick_seconds: int = 30,
    ):
        self.evaluation = evaluation
        self.evaluation_interval_seconds = evaluation_interval_seconds
        self.monitor_tick_seconds = monitor_tick_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self._evaluate_servers,
            trigger=IntervalTrigger(seconds=self.evaluation_interval_seconds),
            id="evaluate_servers",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=self.evaluation_interval_seconds,
        )

        self.scheduler.add_job(
            self._check_monitors,
            trigger=IntervalTrigger(seconds=self.monitor_tick_seconds),
            id="check_monitors",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=self.monitor_tick_seconds,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (servers every {self.evaluation_interval_seconds}s, "
            f"monitor tick {self.monitor_tick_seconds}s)"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def _evaluate_servers(self):
        try:
            summary = await self.evaluation.evaluate_servers()
            if summary.alerts_created or summary.errors:
                logger.info(
                    f"Server evaluation: {summary.servers_evaluated} evaluated, "
                    f"{summary.alerts_created} alerts, {summary.errors} errors"
                )
        except ConfigurationError as e:
            logger.warning(f"Server evaluation skipped: {e}")
        except Exception as e:
            logger.error(f"Error evaluating servers: {e}")

    async def _check_monitors(self):
        try:
            summary = await self.evaluation.check_monitors()
            if summary.monitors_checked:
                logger.debug(
                    f"Monitor tick: {summary.monitors_checked} checked, "
                    f"{summary.alerts_created} alerts, {summary.errors} errors"
                )
        except ConfigurationError as e:
            logger.warning(f"Monitor checks skipped: {e}")
        except Exception as e:
            logger.error(f"Error running checks: {e}")
