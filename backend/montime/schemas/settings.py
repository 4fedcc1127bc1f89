"""Alert settings schemas for API and evaluation."""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.alert_settings import (
    DEFAULT_CPU_THRESHOLD,
    DEFAULT_MEMORY_THRESHOLD,
    DEFAULT_DISK_THRESHOLD,
    DEFAULT_DOWN_THRESHOLD_SECONDS,
    DEFAULT_NOTIFICATION_CHANNELS,
)

ChannelName = Literal["email", "slack", "webhook"]


class ThresholdConfig(BaseModel):
    """Resolved alert configuration for one entity."""
    enabled: bool = True
    cpu_threshold: float = Field(DEFAULT_CPU_THRESHOLD, ge=0, le=100)
    memory_threshold: float = Field(DEFAULT_MEMORY_THRESHOLD, ge=0, le=100)
    disk_threshold: float = Field(DEFAULT_DISK_THRESHOLD, ge=0, le=100)
    down_threshold_seconds: int = Field(DEFAULT_DOWN_THRESHOLD_SECONDS, ge=1)
    notification_channels: List[str] = Field(
        default_factory=lambda: list(DEFAULT_NOTIFICATION_CHANNELS)
    )
    email_recipients: List[str] = Field(default_factory=list)
    slack_webhook_url: Optional[str] = None
    webhook_url: Optional[str] = None
    webhook_headers: Dict[str, str] = Field(default_factory=dict)

    class Config:
        from_attributes = True

    @field_validator("notification_channels", "email_recipients", mode="before")
    @classmethod
    def _none_as_empty_list(cls, value):
        return [] if value is None else value

    @field_validator("webhook_headers", mode="before")
    @classmethod
    def _none_as_empty_dict(cls, value):
        return {} if value is None else value


class NotificationTestRequest(BaseModel):
    """Request to send a test notification through one channel."""
    settings: ThresholdConfig
    channel: ChannelName
