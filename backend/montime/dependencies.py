"""FastAPI dependencies - services wired onto ``app.state`` by ``create_app``."""
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

from .config import Settings
from .services.evaluation import EvaluationService
from .services.ingestion import IngestionService
from .services.notifier import NotificationDispatcher

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_evaluation_service(request: Request) -> EvaluationService:
    return request.app.state.evaluation


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


async def require_cron_secret(
    request: Request,
    x_cron_secret: Optional[str] = Header(None),
) -> None:
    """Gate for the evaluation triggers.

    503 while no secret is configured, 401 on a missing or wrong header.
    """
    expected = get_settings(request).cron_secret
    if not expected:
        logger.warning("Evaluation trigger rejected - no cron secret configured")
        raise HTTPException(status_code=503, detail="Cron secret not configured on server")
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret.encode(), expected.encode()):
        logger.warning("Evaluation trigger rejected - invalid cron secret")
        raise HTTPException(status_code=401, detail="Invalid cron secret")
