"""External monitor endpoints - manual checks and check/incident history."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_evaluation_service, require_cron_secret
from ..models import Incident, Monitor, MonitorCheck
from ..schemas.evaluation import EvaluationSummary
from ..schemas.monitor import (
    IncidentList,
    IncidentResponse,
    MonitorCheckList,
    MonitorCheckRequest,
    MonitorCheckResponse,
    MonitorResponse,
    MonitorStatusResponse,
    UptimeStats,
)
from ..services.evaluation import EvaluationService
from ..utils.db_utils import is_missing_relation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/monitors", tags=["monitors"])

STATUS_CHECKS = 100
STATUS_INCIDENTS = 30


@router.post("/check", response_model=EvaluationSummary, dependencies=[Depends(require_cron_secret)])
async def check_monitors(
    data: Optional[MonitorCheckRequest] = None,
    db: AsyncSession = Depends(get_db),
    evaluation: EvaluationService = Depends(get_evaluation_service),
):
    """Probe one monitor, or every enabled monitor, regardless of interval."""
    monitor_id = data.monitor_id if data else None
    if monitor_id is not None:
        monitor = await db.get(Monitor, monitor_id)
        if not monitor:
            raise HTTPException(status_code=404, detail="Monitor not found")
        # The check runs in its own session
        await db.close()

    return await evaluation.check_monitors(monitor_id=monitor_id, force=True)


async def _get_monitor_or_404(db: AsyncSession, monitor_id: int) -> Monitor:
    monitor = await db.get(Monitor, monitor_id)
    if not monitor:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return monitor


@router.get("/{monitor_id}/checks", response_model=MonitorCheckList)
async def get_monitor_checks(
    monitor_id: int,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Recent probe verdicts of a monitor, newest first."""
    try:
        await _get_monitor_or_404(db, monitor_id)
        result = await db.execute(
            select(MonitorCheck)
            .where(MonitorCheck.monitor_id == monitor_id)
            .order_by(MonitorCheck.checked_at.desc())
            .limit(limit)
        )
    except DBAPIError as e:
        if is_missing_relation(e):
            return MonitorCheckList(checks=[], message="Monitor checks table not yet configured")
        raise

    checks = result.scalars().all()
    return MonitorCheckList(checks=[MonitorCheckResponse.model_validate(c) for c in checks])


@router.get("/{monitor_id}/incidents", response_model=IncidentList)
async def get_monitor_incidents(
    monitor_id: int,
    limit: int = Query(50, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Downtime spans of a monitor, newest first."""
    try:
        await _get_monitor_or_404(db, monitor_id)
        result = await db.execute(
            select(Incident)
            .where(Incident.monitor_id == monitor_id)
            .order_by(Incident.started_at.desc())
            .limit(limit)
        )
    except DBAPIError as e:
        if is_missing_relation(e):
            return IncidentList(incidents=[], message="Monitor incidents table not yet configured")
        raise

    incidents = result.scalars().all()
    return IncidentList(incidents=[IncidentResponse.model_validate(i) for i in incidents])


def uptime_stats(checks: List[MonitorCheck]) -> UptimeStats:
    """Share of successful checks, in percent to two decimals."""
    successful = sum(1 for c in checks if c.success)
    percentage = round(successful / len(checks) * 100, 2) if checks else 0.0
    return UptimeStats(uptime_percentage=percentage, total_checks=len(checks), successful_checks=successful)


@router.get("/{monitor_id}/status", response_model=MonitorStatusResponse)
async def get_monitor_status(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """A monitor with its last 100 checks, last 30 incidents and uptime over those checks."""
    try:
        monitor = await _get_monitor_or_404(db, monitor_id)
        checks = (await db.execute(
            select(MonitorCheck)
            .where(MonitorCheck.monitor_id == monitor_id)
            .order_by(MonitorCheck.checked_at.desc())
            .limit(STATUS_CHECKS)
        )).scalars().all()
        incidents = (await db.execute(
            select(Incident)
            .where(Incident.monitor_id == monitor_id)
            .order_by(Incident.started_at.desc())
            .limit(STATUS_INCIDENTS)
        )).scalars().all()
    except DBAPIError as e:
        if is_missing_relation(e):
            raise HTTPException(status_code=503, detail="Monitors not configured")
        raise

    return MonitorStatusResponse(
        monitor=MonitorResponse.model_validate(monitor),
        checks=[MonitorCheckResponse.model_validate(c) for c in checks],
        incidents=[IncidentResponse.model_validate(i) for i in incidents],
        stats=uptime_stats(checks),
    )
