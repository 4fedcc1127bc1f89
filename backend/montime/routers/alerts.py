"""Alert API endpoints."""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Alert
from ..schemas.alert import AlertList, AlertResponse, AlertUpdate
from ..utils.db_utils import is_missing_relation, retry_on_lock, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/alerts", tags=["alerts"])

ALERTS_NOT_CONFIGURED = "Alerts table not yet configured"
MAX_ALERTS = 100


@router.get("", response_model=AlertList)
async def list_alerts(
    status: Optional[Literal["active", "resolved"]] = None,
    severity: Optional[str] = None,
    server_id: Optional[int] = None,
    monitor_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """List alerts, newest first."""
    query = select(Alert)
    if status == "active":
        query = query.where(Alert.resolved.is_(False))
    elif status == "resolved":
        query = query.where(Alert.resolved.is_(True))
    if severity:
        query = query.where(Alert.severity == severity)
    if server_id is not None:
        query = query.where(Alert.server_id == server_id)
    if monitor_id is not None:
        query = query.where(Alert.monitor_id == monitor_id)

    try:
        result = await db.execute(query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(MAX_ALERTS))
    except DBAPIError as e:
        if is_missing_relation(e):
            return AlertList(alerts=[], message=ALERTS_NOT_CONFIGURED)
        raise

    return AlertList(alerts=[AlertResponse.model_validate(a) for a in result.scalars().all()])


@router.get("/recent", response_model=AlertList)
async def recent_alerts(
    limit: int = Query(10, ge=1, le=MAX_ALERTS),
    db: AsyncSession = Depends(get_db),
):
    """The most recent alerts of any kind."""
    try:
        result = await db.execute(
            select(Alert).order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit)
        )
    except DBAPIError as e:
        if is_missing_relation(e):
            return AlertList(alerts=[], message=ALERTS_NOT_CONFIGURED)
        raise

    return AlertList(alerts=[AlertResponse.model_validate(a) for a in result.scalars().all()])


async def _get_alert_or_error(db: AsyncSession, alert_id: int) -> Alert:
    try:
        alert = await db.get(Alert, alert_id)
    except DBAPIError as e:
        if is_missing_relation(e):
            raise HTTPException(status_code=503, detail=ALERTS_NOT_CONFIGURED)
        raise
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(alert_id: int, db: AsyncSession = Depends(get_db)):
    """Get a specific alert."""
    return await _get_alert_or_error(db, alert_id)


@router.patch("/{alert_id}", response_model=AlertResponse)
async def update_alert(alert_id: int, data: AlertUpdate, db: AsyncSession = Depends(get_db)):
    """Acknowledge and/or resolve an alert.

    Timestamps and the acting user are recorded on the first transition only.
    """
    if not data.acknowledged and not data.resolved:
        raise HTTPException(status_code=400, detail="Nothing to update: set acknowledged and/or resolved")

    alert = await _get_alert_or_error(db, alert_id)
    now = utcnow()

    if data.acknowledged and not alert.acknowledged:
        alert.acknowledged = True
        alert.acknowledged_at = now
        alert.acknowledged_by = data.user
    if data.resolved and not alert.resolved:
        alert.resolved = True
        alert.resolved_at = now
        alert.resolved_by = data.user

    await retry_on_lock(db.commit)
    await db.refresh(alert)
    logger.info(f"Alert {alert.id} updated: acknowledged={alert.acknowledged}, resolved={alert.resolved}")
    return alert
