"""Alert recorder - debounce, then persist."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Alert
from ..utils.db_utils import utcnow
from .debounce import DebounceGate
from .evaluator import AlertCondition

logger = logging.getLogger(__name__)

# Alert types that describe a recovery rather than a fault
RECOVERY_TYPES = {"monitor_up"}


class AlertRecorder:
    """Turns a detected condition into an Alert row if the debounce gate allows it.

    The row is flushed, not committed. Notification is the caller's job and
    must wait until the transaction holding the row has committed.
    """

    def __init__(self, debounce: Optional[DebounceGate] = None):
        self.debounce = debounce or DebounceGate()

    async def record(
        self,
        session: AsyncSession,
        condition: AlertCondition,
        server_id: Optional[int] = None,
        monitor_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Alert]:
        now = now or utcnow()
        allowed = await self.debounce.should_trigger(
            session, condition.type, server_id=server_id, monitor_id=monitor_id, now=now
        )
        if not allowed:
            return None

        alert = Alert(
            server_id=server_id,
            monitor_id=monitor_id,
            type=condition.type,
            severity=condition.severity,
            message=condition.message,
            current_value=condition.current_value,
            threshold_value=condition.threshold_value,
            created_at=now,
        )
        if condition.type in RECOVERY_TYPES:
            alert.resolved = True
            alert.resolved_at = now
        session.add(alert)
        await session.flush()

        entity = f"server {server_id}" if server_id is not None else f"monitor {monitor_id}"
        logger.info(f"Alert {alert.id} created for {entity}: {condition.type} ({condition.severity})")
        return alert
