"""Debounce gate - suppresses repeat alerts inside a sliding window."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Alert
from ..utils.db_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 30


class DebounceGate:
    """Permits an alert only if the same (entity, type) has not fired recently.

    The window slides: it is measured back from ``now`` on every call, so a
    fault that persists fires again as soon as the last alert of its type is
    older than the window, roughly once per window.
    """

    def __init__(self, window_minutes: int = DEFAULT_WINDOW_MINUTES):
        self.window = timedelta(minutes=window_minutes)

    async def last_alert_at(
        self,
        session: AsyncSession,
        alert_type: str,
        server_id: Optional[int] = None,
        monitor_id: Optional[int] = None,
    ) -> Optional[datetime]:
        """Creation time of the newest alert of this type for the entity."""
        if (server_id is None) == (monitor_id is None):
            raise ValueError("Exactly one of server_id or monitor_id is required")

        query = select(Alert.created_at).where(Alert.type == alert_type)
        if server_id is not None:
            query = query.where(Alert.server_id == server_id)
        else:
            query = query.where(Alert.monitor_id == monitor_id)

        result = await session.execute(query.order_by(Alert.created_at.desc()).limit(1))
        return result.scalar_one_or_none()

    async def should_trigger(
        self,
        session: AsyncSession,
        alert_type: str,
        server_id: Optional[int] = None,
        monitor_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """True iff no alert of this type for the entity is younger than the window."""
        now = now or utcnow()
        last = await self.last_alert_at(session, alert_type, server_id=server_id, monitor_id=monitor_id)
        if last is None or last <= now - self.window:
            return True

        entity = f"server {server_id}" if server_id is not None else f"monitor {monitor_id}"
        logger.debug(f"Alert {alert_type} for {entity} suppressed: last fired at {last.isoformat()}")
        return False
