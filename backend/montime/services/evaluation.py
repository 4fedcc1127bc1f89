"""Evaluation service - the batch job over servers and external monitors.

Capacity: entities are evaluated concurrently up to ``max_concurrency``, each
in its own session. Evaluation of a single entity is serialised by a
per-entity lock, so two overlapping runs (scheduler tick plus a cron call,
say) take turns on the same server or monitor instead of racing on its
debounce lookup or its open incident.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models import Alert, Metric, Monitor, Server
from ..schemas.evaluation import EvaluationSummary, MonitorCheckOutcome
from ..schemas.settings import ThresholdConfig
from ..utils.db_utils import raise_if_missing_relation, retry_on_lock, utcnow
from ..utils.locks import KeyedLock
from .alert_settings import resolve_threshold_config
from .alerts import AlertRecorder
from .evaluator import evaluate
from .incidents import IncidentTracker
from .notifier import AlertNotice, NotificationDispatcher
from .probes import ProbeRunner

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 10


class EvaluationService:
    """Runs the threshold evaluator over servers and the probe runner over monitors."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        probe_runner: ProbeRunner,
        dispatcher: NotificationDispatcher,
        recorder: Optional[AlertRecorder] = None,
        tracker: Optional[IncidentTracker] = None,
        locks: Optional[KeyedLock] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.session_factory = session_factory
        self.probe_runner = probe_runner
        self.dispatcher = dispatcher
        self.recorder = recorder or AlertRecorder()
        self.tracker = tracker or IncidentTracker()
        self.locks = locks or KeyedLock()
        self.max_concurrency = max(1, max_concurrency)

    async def run(self, now: Optional[datetime] = None) -> EvaluationSummary:
        """Evaluate every server, then check every due monitor."""
        servers = await self.evaluate_servers(now=now)
        monitors = await self.check_monitors(now=now)
        return servers.merge(monitors)

    # Servers

    async def evaluate_servers(self, now: Optional[datetime] = None) -> EvaluationSummary:
        """Evaluate the latest sample of every server."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Server.id).order_by(Server.id))
                server_ids = list(result.scalars().all())
        except DBAPIError as e:
            raise_if_missing_relation(e, "Servers table")
            raise

        logger.debug(f"Evaluating {len(server_ids)} servers")
        return await self._run_isolated(
            [lambda sid=sid: self.evaluate_server(sid, now=now) for sid in server_ids],
            [f"server {sid}" for sid in server_ids],
            now,
        )

    async def evaluate_server(self, server_id: int, now: Optional[datetime] = None) -> EvaluationSummary:
        """Evaluate one server and notify on a new alert."""
        now = now or utcnow()
        summary = EvaluationSummary(timestamp=now)

        async with self.locks.hold(("server", server_id)):
            async with self.session_factory() as session:
                server = await session.get(Server, server_id)
                if server is None:
                    return summary

                result = await session.execute(
                    select(Metric)
                    .where(Metric.server_id == server_id)
                    .order_by(Metric.created_at.desc())
                    .limit(1)
                )
                latest = result.scalar_one_or_none()

                config = await resolve_threshold_config(session, server=server)
                condition = evaluate(
                    latest.cpu_usage if latest else None,
                    latest.memory_usage if latest else None,
                    latest.disk_usage if latest else None,
                    server.last_seen_at,
                    config,
                    now=now,
                )
                if condition is not None and condition.type == "down":
                    server.status = "offline"

                alert = None
                if condition is not None and config.enabled:
                    alert = await self.recorder.record(session, condition, server_id=server.id, now=now)
                await retry_on_lock(session.commit)
                server_name = server.name

        summary.servers_evaluated = 1
        if alert is not None:
            summary.alerts_created = 1
            summary.notifications_failed = await self._notify(alert, server_name, config)
        return summary

    # Monitors

    async def check_monitors(
        self,
        monitor_id: Optional[int] = None,
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> EvaluationSummary:
        """Probe enabled monitors that are due, or all of them with ``force``.

        With ``monitor_id`` only that monitor is probed; a forced check of a
        named monitor runs even if it is disabled.
        """
        try:
            async with self.session_factory() as session:
                query = select(Monitor.id).order_by(Monitor.id)
                if monitor_id is not None:
                    query = query.where(Monitor.id == monitor_id)
                else:
                    query = query.where(Monitor.enabled.is_(True))
                result = await session.execute(query)
                monitor_ids = list(result.scalars().all())
        except DBAPIError as e:
            raise_if_missing_relation(e, "Monitors table")
            raise

        logger.debug(f"Checking {len(monitor_ids)} monitors (force={force})")
        return await self._run_isolated(
            [lambda mid=mid: self.check_monitor(mid, force=force, now=now) for mid in monitor_ids],
            [f"monitor {mid}" for mid in monitor_ids],
            now,
        )

    async def check_monitor(
        self,
        monitor_id: int,
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> EvaluationSummary:
        """Probe one monitor, track its incident and notify on a new alert."""
        summary = EvaluationSummary(timestamp=now or utcnow())

        async with self.locks.hold(("monitor", monitor_id)):
            async with self.session_factory() as session:
                monitor = await session.get(Monitor, monitor_id)
                if monitor is None or (not monitor.enabled and not force):
                    return summary
                if not self.probe_runner.supports(monitor.type):
                    logger.warning(f"Monitor {monitor.id} has unsupported type {monitor.type!r}; skipped")
                    return summary
                if not force and not self._is_due(monitor, now or utcnow()):
                    return summary

                result = await self.probe_runner.probe(monitor)
                # Timestamp after the probe, so check rows and incidents line up with the verdict
                checked_at = now or utcnow()
                condition = await self.tracker.record(session, monitor, result, now=checked_at)

                config = await resolve_threshold_config(session, monitor=monitor)
                alert = None
                if condition is not None and config.enabled:
                    alert = await self.recorder.record(session, condition, monitor_id=monitor.id, now=checked_at)
                await retry_on_lock(session.commit)
                monitor_name = monitor.name

        logger.debug(f"Monitor {monitor_name}: {result.status} ({result.message})")
        summary.monitors_checked = 1
        summary.results.append(MonitorCheckOutcome(
            monitor_id=monitor_id,
            name=monitor_name,
            status=result.status,
            success=result.success,
            response_time_ms=result.response_time_ms,
            status_code=result.status_code,
            message=result.message,
        ))
        if alert is not None:
            summary.alerts_created = 1
            summary.notifications_failed = await self._notify(alert, monitor_name, config)
        return summary

    @staticmethod
    def _is_due(monitor: Monitor, now: datetime) -> bool:
        if monitor.last_checked_at is None:
            return True
        interval = timedelta(minutes=monitor.interval_minutes or 5)
        return now - monitor.last_checked_at >= interval

    # Shared

    async def _run_isolated(
        self,
        jobs: List[Callable[[], Awaitable[EvaluationSummary]]],
        labels: List[str],
        now: Optional[datetime],
    ) -> EvaluationSummary:
        """Run jobs with bounded parallelism; one failing job never stops the rest."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def guarded(job, label):
            async with semaphore:
                try:
                    return await job()
                except Exception as e:
                    logger.error(f"Error evaluating {label}: {type(e).__name__}: {e}")
                    return EvaluationSummary(success=True, errors=1, timestamp=now or utcnow())

        summary = EvaluationSummary(timestamp=now or utcnow())
        for part in await asyncio.gather(*[guarded(job, label) for job, label in zip(jobs, labels)]):
            summary = summary.merge(part)
        return summary

    async def _notify(self, alert: Alert, entity_name: str, config: ThresholdConfig) -> int:
        """Dispatch a committed alert. Returns the number of failed channels."""
        report = await self.dispatcher.dispatch(AlertNotice.from_alert(alert, entity_name), config)
        return len(report.failed)
