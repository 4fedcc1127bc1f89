"""Cron-triggered batch evaluation endpoint."""
import logging

from fastapi import APIRouter, Depends

from ..dependencies import get_evaluation_service, require_cron_secret
from ..schemas.evaluation import EvaluationSummary
from ..services.evaluation import EvaluationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["evaluation"])


@router.post("/evaluate", response_model=EvaluationSummary, dependencies=[Depends(require_cron_secret)])
async def run_evaluation(evaluation: EvaluationService = Depends(get_evaluation_service)):
    """Evaluate every server and check every due monitor."""
    summary = await evaluation.run()
    logger.info(
        f"Evaluation run: {summary.servers_evaluated} servers, {summary.monitors_checked} monitors, "
        f"{summary.alerts_created} alerts, {summary.errors} errors"
    )
    return summary
