"""Incident tracker - downtime lifecycle of external monitors."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Incident, Monitor, MonitorCheck
from ..utils.db_utils import utcnow
from .evaluator import AlertCondition, SEVERITY_CRITICAL, SEVERITY_INFO
from .probes import ProbeResult

logger = logging.getLogger(__name__)


class IncidentTracker:
    """State machine over a monitor's status: unknown, up, down.

    Only up->down and down->up are transitions with effects. Leaving
    ``unknown`` and repeating the current status change nothing but the
    monitor's last-check fields.
    """

    async def open_incident(self, session: AsyncSession, monitor_id: int) -> Optional[Incident]:
        """The newest open incident of a monitor, if any."""
        result = await session.execute(
            select(Incident)
            .where(Incident.monitor_id == monitor_id, Incident.status == "open")
            .order_by(Incident.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def record(
        self,
        session: AsyncSession,
        monitor: Monitor,
        result: ProbeResult,
        now: Optional[datetime] = None,
    ) -> Optional[AlertCondition]:
        """Apply one probe verdict to ``monitor``.

        Appends a check row, updates the monitor and opens or closes an
        incident on a transition. Returns the condition to alert on, if any.
        Nothing is committed here.
        """
        now = now or utcnow()
        old_status = monitor.status or "unknown"
        new_status = result.status

        session.add(MonitorCheck(
            monitor_id=monitor.id,
            success=result.success,
            response_time_ms=result.response_time_ms,
            status_code=result.status_code,
            message=result.message,
            checked_at=now,
        ))

        monitor.status = new_status
        monitor.last_checked_at = now
        monitor.last_response_time_ms = result.response_time_ms

        if old_status == "up" and new_status == "down":
            return await self._on_down(session, monitor, result, now)
        if old_status == "down" and new_status == "up":
            return await self._on_up(session, monitor, now)
        return None

    async def _on_down(
        self,
        session: AsyncSession,
        monitor: Monitor,
        result: ProbeResult,
        now: datetime,
    ) -> AlertCondition:
        existing = await self.open_incident(session, monitor.id)
        if existing is not None:
            # Status and incident table disagree; keep the one that is open
            logger.warning(f"Monitor {monitor.id} went down with incident {existing.id} still open")
        else:
            session.add(Incident(
                monitor_id=monitor.id,
                started_at=now,
                status="open",
                message=result.message,
            ))
            logger.info(f"Incident opened for monitor {monitor.name}: {result.message}")

        return AlertCondition(
            type="monitor_down",
            severity=SEVERITY_CRITICAL,
            message=f'Monitor "{monitor.name}" is DOWN: {result.message}',
        )

    async def _on_up(self, session: AsyncSession, monitor: Monitor, now: datetime) -> AlertCondition:
        incident = await self.open_incident(session, monitor.id)
        if incident is not None:
            incident.resolved_at = now
            incident.status = "resolved"
            incident.duration_seconds = int((now - incident.started_at).total_seconds())
            logger.info(f"Incident {incident.id} resolved for monitor {monitor.name} after {incident.duration_seconds}s")

        return AlertCondition(
            type="monitor_up",
            severity=SEVERITY_INFO,
            message=f'Monitor "{monitor.name}" is back UP',
        )
