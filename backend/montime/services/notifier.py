"""Notifier service - fans a triggered alert out to email, Slack and webhooks.

Every channel is attempted on its own, under its own timeout. A failing or
slow channel is logged and reported; it never stops the others and never
reaches the caller of ``dispatch``. By the time an alert gets here it is
already committed.
"""
import abc
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import httpx

from ..config import Settings
from ..errors import ChannelDeliveryError
from ..models import Alert
from ..schemas.settings import ThresholdConfig
from ..utils.db_utils import utcnow
from .email_sender import EmailConfig, EmailSenderService

logger = logging.getLogger(__name__)

# Slack attachment colours keyed by severity
SEVERITY_COLORS = {
    "critical": "#dc2626",
    "warning": "#f59e0b",
    "info": "#2563eb",
}
DEFAULT_COLOR = "#6b7280"

PERCENT_TYPES = {"cpu_high", "memory_high", "disk_high"}


@dataclass
class AlertNotice:
    """What channels need to know about an alert."""
    alert_id: str
    entity_id: Optional[str]
    entity_name: str
    type: str
    severity: str
    message: str
    current_value: Optional[float] = None
    threshold_value: Optional[float] = None
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_alert(cls, alert: Alert, entity_name: str) -> "AlertNotice":
        entity_id = alert.entity_id
        return cls(
            alert_id=str(alert.id),
            entity_id=str(entity_id) if entity_id is not None else None,
            entity_name=entity_name,
            type=alert.type,
            severity=alert.severity,
            message=alert.message,
            current_value=alert.current_value,
            threshold_value=alert.threshold_value,
            created_at=alert.created_at or utcnow(),
        )

    @property
    def type_label(self) -> str:
        return self.type.replace("_", " ").upper()

    def format_value(self, value: Optional[float]) -> Optional[str]:
        if value is None:
            return None
        suffix = "%" if self.type in PERCENT_TYPES else ""
        return f"{value:.1f}{suffix}"

    @property
    def timestamp(self) -> str:
        return self.created_at.isoformat() + "Z"


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    name: str = ""

    @abc.abstractmethod
    async def send(self, notice: AlertNotice, config: ThresholdConfig) -> None:
        """Deliver ``notice``. Raises ChannelDeliveryError on failure."""


class HttpChannel(NotificationChannel):
    """A channel that POSTs JSON to a URL."""

    def __init__(self, timeout: float = 10, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._timeout = timeout
        self._transport = transport

    async def _post_json(self, url: str, payload: dict, headers: Optional[Dict[str, str]] = None) -> None:
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=request_headers)
        except httpx.HTTPError as e:
            raise ChannelDeliveryError(self.name, f"request failed: {e}") from e
        if not response.is_success:
            raise ChannelDeliveryError(self.name, f"response {response.status_code}: {response.text[:200]}")


class SlackChannel(HttpChannel):
    """Colour-coded attachment posted to a Slack incoming webhook."""

    name = "slack"

    def build_payload(self, notice: AlertNotice) -> dict:
        fields = [
            {"title": "Entity", "value": notice.entity_name, "short": True},
            {"title": "Type", "value": notice.type_label, "short": True},
        ]
        current = notice.format_value(notice.current_value)
        if current is not None:
            fields.append({"title": "Current Value", "value": current, "short": True})
        threshold = notice.format_value(notice.threshold_value)
        if threshold is not None:
            fields.append({"title": "Threshold", "value": threshold, "short": True})

        return {
            "text": f"[{notice.severity.upper()}] {notice.type_label} - {notice.entity_name}",
            "attachments": [
                {
                    "color": SEVERITY_COLORS.get(notice.severity, DEFAULT_COLOR),
                    "title": f"{notice.type_label} - {notice.entity_name}",
                    "text": notice.message,
                    "fields": fields,
                    "footer": "Montime",
                    "ts": int(notice.created_at.replace(tzinfo=timezone.utc).timestamp()),
                }
            ],
        }

    async def send(self, notice: AlertNotice, config: ThresholdConfig) -> None:
        if not config.slack_webhook_url:
            raise ChannelDeliveryError(self.name, "Slack webhook URL not configured")
        await self._post_json(config.slack_webhook_url, self.build_payload(notice))
        logger.info(f"Slack notification sent: {notice.type} for {notice.entity_name}")


class WebhookChannel(HttpChannel):
    """Flat JSON payload posted to a user-supplied URL."""

    name = "webhook"

    def build_payload(self, notice: AlertNotice) -> dict:
        return {
            "alert_id": notice.alert_id,
            "entity_id": notice.entity_id,
            "entity_name": notice.entity_name,
            "type": notice.type,
            "severity": notice.severity,
            "message": notice.message,
            "current_value": notice.current_value,
            "threshold_value": notice.threshold_value,
            "timestamp": notice.timestamp,
        }

    async def send(self, notice: AlertNotice, config: ThresholdConfig) -> None:
        if not config.webhook_url:
            raise ChannelDeliveryError(self.name, "Webhook URL not configured")
        await self._post_json(config.webhook_url, self.build_payload(notice), config.webhook_headers)
        logger.info(f"Webhook sent: {notice.type} for {notice.entity_name}")


class EmailChannel(NotificationChannel):
    """Resolves recipients and hands the message to the SMTP sender.

    Without an SMTP host the hand-off is a logged no-op.
    """

    name = "email"

    def __init__(self, smtp: EmailConfig, sender: Optional[EmailSenderService] = None, dashboard_url: str = ""):
        self._smtp = smtp
        self.sender = sender or EmailSenderService()
        self._dashboard_url = dashboard_url

    def build_subject(self, notice: AlertNotice) -> str:
        return f"Alert: {notice.type_label} - {notice.entity_name}"

    def build_body(self, notice: AlertNotice) -> str:
        lines = [
            f"Montime {notice.severity.upper()} Alert",
            "=" * 40,
            "",
            f"Entity: {notice.entity_name}",
            f"Alert Type: {notice.type_label}",
            f"Severity: {notice.severity.upper()}",
            f"Time: {notice.created_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            "",
            f"Message: {notice.message}",
        ]
        current = notice.format_value(notice.current_value)
        if current is not None:
            lines.append(f"Current Value: {current}")
        threshold = notice.format_value(notice.threshold_value)
        if threshold is not None:
            lines.append(f"Threshold: {threshold}")
        if self._dashboard_url:
            lines.extend(["", f"View your dashboard: {self._dashboard_url}"])
        lines.extend(["", "--", "Montime Monitoring System"])
        return "\n".join(lines)

    async def send(self, notice: AlertNotice, config: ThresholdConfig) -> None:
        recipients = [addr.strip() for addr in config.email_recipients if addr and addr.strip()]
        if not recipients:
            raise ChannelDeliveryError(self.name, "No email recipients configured")

        if not self._smtp.configured:
            logger.info(
                f"No mail provider configured; {notice.type} email for {notice.entity_name} "
                f"not sent to {len(recipients)} recipient(s)"
            )
            return

        sent = await self.sender.send_email(
            self._smtp, recipients, self.build_subject(notice), self.build_body(notice)
        )
        if not sent:
            raise ChannelDeliveryError(self.name, "SMTP delivery failed")


@dataclass
class DispatchReport:
    """Per-channel outcome of one dispatch."""
    delivered: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class NotificationDispatcher:
    """Delivers alerts through the channels an entity's settings enable."""

    def __init__(self, channels: Dict[str, NotificationChannel], timeout: float = 10):
        self.channels = channels
        self.timeout = timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        email_sender: Optional[EmailSenderService] = None,
    ) -> "NotificationDispatcher":
        timeout = settings.notification_timeout_seconds
        smtp = EmailConfig(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.alert_email_from,
        )
        channels: Dict[str, NotificationChannel] = {
            # The SMTP thread cannot be cancelled; its socket gives up with the channel
            "email": EmailChannel(smtp, email_sender or EmailSenderService(timeout=timeout), settings.dashboard_url),
            "slack": SlackChannel(timeout, transport),
            "webhook": WebhookChannel(timeout, transport),
        }
        return cls(channels, timeout=timeout)

    async def send(self, channel_name: str, notice: AlertNotice, config: ThresholdConfig) -> None:
        """Deliver through one channel. Raises ChannelDeliveryError."""
        channel = self.channels.get(channel_name)
        if channel is None:
            raise ChannelDeliveryError(channel_name, "Unknown notification channel")
        try:
            await asyncio.wait_for(channel.send(notice, config), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ChannelDeliveryError(channel_name, f"timed out after {self.timeout}s") from e

    async def dispatch(self, notice: AlertNotice, config: ThresholdConfig) -> DispatchReport:
        """Deliver through every enabled channel. Never raises."""
        report = DispatchReport()
        for channel_name in config.notification_channels:
            if channel_name not in self.channels:
                logger.warning(f"Unknown notification channel {channel_name!r} skipped for alert {notice.alert_id}")
                report.skipped.append(channel_name)
                continue
            try:
                await self.send(channel_name, notice, config)
                report.delivered.append(channel_name)
            except ChannelDeliveryError as e:
                logger.warning(f"Notification for alert {notice.alert_id} failed: {e}")
                report.failed[channel_name] = str(e)
            except Exception as e:
                logger.exception(f"Unexpected error in {channel_name} channel for alert {notice.alert_id}")
                report.failed[channel_name] = f"{type(e).__name__}: {e}"
        return report
