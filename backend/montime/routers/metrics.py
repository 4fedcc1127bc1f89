"""Metric endpoints - ingestion and recent samples."""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_dispatcher, get_ingestion_service
from ..errors import ValidationError
from ..models import Metric, Server
from ..schemas.metrics import IngestResponse, MetricList, MetricResponse
from ..services.ingestion import IngestionService
from ..services.notifier import AlertNotice, NotificationDispatcher
from ..utils.db_utils import raise_if_missing_relation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/metrics", tags=["metrics"])

MAX_RECENT_METRICS = 1000


@router.post("/ingest", response_model=IngestResponse)
async def ingest_metrics(
    request: Request,
    background_tasks: BackgroundTasks,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    ingestion: IngestionService = Depends(get_ingestion_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Record a metric sample pushed by a server.

    The server is identified by its API key as a bearer token. A critical
    sample raises an alert whose notifications go out after the response.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")

    server = await ingestion.authenticate(db, authorization[len("Bearer "):].strip())
    if server is None:
        raise HTTPException(status_code=401, detail="Invalid server token")

    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON") from None

    outcome = await ingestion.ingest(db, server, payload)

    if outcome.alert is not None:
        notice = AlertNotice.from_alert(outcome.alert, outcome.server_name)
        background_tasks.add_task(dispatcher.dispatch, notice, outcome.config)

    return IngestResponse(status=outcome.status)


@router.get("/recent", response_model=MetricList)
async def recent_metrics(
    server_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=MAX_RECENT_METRICS),
    db: AsyncSession = Depends(get_db),
):
    """A server's most recent samples, newest first."""
    if server_id is None:
        raise HTTPException(status_code=400, detail="server_id is required")

    try:
        server = await db.get(Server, server_id)
        if not server:
            raise HTTPException(status_code=404, detail="Server not found")
        result = await db.execute(
            select(Metric)
            .where(Metric.server_id == server_id)
            .order_by(Metric.created_at.desc(), Metric.id.desc())
            .limit(limit)
        )
    except DBAPIError as e:
        raise_if_missing_relation(e, "Metrics table")
        raise

    return MetricList(metrics=[MetricResponse.model_validate(m) for m in result.scalars().all()])
