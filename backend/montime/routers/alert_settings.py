"""Alert settings endpoints - test notification."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import get_dispatcher
from ..errors import ChannelDeliveryError
from ..schemas.settings import NotificationTestRequest
from ..services.notifier import AlertNotice, NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/alert-settings", tags=["alert-settings"])

TEST_ENTITY_NAME = "Test Server"


def build_test_notice() -> AlertNotice:
    """A synthetic CPU warning, as a real evaluation would produce it."""
    return AlertNotice(
        alert_id="test-alert",
        entity_id="test-server",
        entity_name=TEST_ENTITY_NAME,
        type="cpu_high",
        severity="warning",
        message="This is a test alert from Montime. Your notification channel is configured correctly!",
        current_value=87.5,
        threshold_value=85.0,
    )


@router.post("/test")
async def test_notification(
    data: NotificationTestRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Send a test alert through a single channel of the given settings."""
    config = data.settings.model_copy(update={"notification_channels": [data.channel]})
    try:
        await dispatcher.send(data.channel, build_test_notice(), config)
    except ChannelDeliveryError as e:
        logger.warning(f"Test notification via {data.channel} failed: {e}")
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

    return {"success": True, "message": f"Test notification sent successfully via {data.channel}"}
