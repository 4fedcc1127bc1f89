"""Alert settings resolver - which thresholds and channels apply to an entity."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AlertSettings, Monitor, Server
from ..schemas.settings import ThresholdConfig
from ..utils.db_utils import raise_if_missing_relation

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = (
    "enabled",
    "cpu_threshold",
    "memory_threshold",
    "disk_threshold",
    "down_threshold_seconds",
    "notification_channels",
    "email_recipients",
    "slack_webhook_url",
    "webhook_url",
    "webhook_headers",
)


def config_from_row(row: Optional[AlertSettings]) -> ThresholdConfig:
    """Build a ThresholdConfig, letting defaults fill columns left NULL."""
    if row is None:
        return ThresholdConfig()
    values = {}
    for name in _CONFIG_FIELDS:
        value = getattr(row, name)
        if value is not None:
            values[name] = value
    return ThresholdConfig(**values)


async def _settings_row(session: AsyncSession, **filters) -> Optional[AlertSettings]:
    query = select(AlertSettings)
    for column, value in filters.items():
        query = query.where(getattr(AlertSettings, column) == value)
    result = await session.execute(query.limit(1))
    return result.scalar_one_or_none()


async def resolve_threshold_config(
    session: AsyncSession,
    server: Optional[Server] = None,
    monitor: Optional[Monitor] = None,
) -> ThresholdConfig:
    """Effective configuration for a server or a monitor.

    Servers use their own row, else their group's row, else defaults.
    Monitors use their own row, else defaults. With no recipients configured
    the entity's owner is emailed.
    """
    if (server is None) == (monitor is None):
        raise ValueError("Exactly one of server or monitor is required")

    try:
        if server is not None:
            row = await _settings_row(session, server_id=server.id)
            if row is None and server.group_id is not None:
                row = await _settings_row(session, group_id=server.group_id)
            owner_email = server.owner_email
        else:
            row = await _settings_row(session, monitor_id=monitor.id)
            owner_email = monitor.owner_email
    except DBAPIError as e:
        raise_if_missing_relation(e, "Alert settings table")
        raise

    config = config_from_row(row)
    if not config.email_recipients and owner_email:
        config.email_recipients = [owner_email]
    return config
