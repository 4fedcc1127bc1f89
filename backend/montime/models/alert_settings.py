"""AlertSettings model - threshold and channel configuration."""

from sqlalchemy import JSON, Boolean, Column, Float, Integer, String, DateTime, ForeignKey

from ..database import Base
from ..utils.db_utils import utcnow


# Defaults applied when no settings row exists for an entity
DEFAULT_CPU_THRESHOLD = 85.0
DEFAULT_MEMORY_THRESHOLD = 80.0
DEFAULT_DISK_THRESHOLD = 90.0
DEFAULT_DOWN_THRESHOLD_SECONDS = 120
DEFAULT_NOTIFICATION_CHANNELS = ["email"]


class AlertSettings(Base):
    """Per-server, per-group or per-monitor alert configuration.

    A server's own row wins over its group's row.
    """

    __tablename__ = "alert_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    server_id = Column(Integer, ForeignKey("servers.id", ondelete="CASCADE"), nullable=True, unique=True)
    group_id = Column(Integer, nullable=True, unique=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=True, unique=True)
    enabled = Column(Boolean, default=True, nullable=False)
    cpu_threshold = Column(Float, default=DEFAULT_CPU_THRESHOLD)
    memory_threshold = Column(Float, default=DEFAULT_MEMORY_THRESHOLD)
    disk_threshold = Column(Float, default=DEFAULT_DISK_THRESHOLD)
    down_threshold_seconds = Column(Integer, default=DEFAULT_DOWN_THRESHOLD_SECONDS)
    notification_channels = Column(JSON, default=lambda: list(DEFAULT_NOTIFICATION_CHANNELS))
    email_recipients = Column(JSON, nullable=True)  # list of addresses
    slack_webhook_url = Column(String, nullable=True)
    webhook_url = Column(String, nullable=True)
    webhook_headers = Column(JSON, nullable=True)  # extra headers, merged over Content-Type
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
