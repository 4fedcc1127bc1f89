"""Tests for notification channels and the dispatcher."""

from __future__ import annotations

import asyncio
import json
import smtplib
from datetime import datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from montime.config import Settings
from montime.errors import ChannelDeliveryError
from montime.schemas.settings import ThresholdConfig
from montime.services.email_sender import EmailConfig, EmailSenderService
from montime.services.notifier import (
    AlertNotice,
    EmailChannel,
    NotificationChannel,
    NotificationDispatcher,
    SlackChannel,
    WebhookChannel,
)


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing."""

    def __init__(self, name: str, fail: bool = False, delay: float = 0) -> None:
        self.name = name
        self.sent: list[AlertNotice] = []
        self._fail = fail
        self._delay = delay

    async def send(self, notice: AlertNotice, config: ThresholdConfig) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail:
            raise ChannelDeliveryError(self.name, "fake error")
        self.sent.append(notice)


def _notice(**overrides) -> AlertNotice:
    fields = dict(
        alert_id="42",
        entity_id="7",
        entity_name="web-1",
        type="cpu_high",
        severity="critical",
        message="CPU usage is critically high at 95.0%",
        current_value=95.0,
        threshold_value=85.0,
        created_at=datetime(2026, 1, 15, 12, 0, 0),
    )
    fields.update(overrides)
    return AlertNotice(**fields)


def _capture(status: int = 200):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, text="ok" if status < 400 else "nope")

    return httpx.MockTransport(handler), requests


# ── Dispatcher ──────────────────────────────────────────────────


class TestDispatch:
    async def test_failure_does_not_stop_siblings(self) -> None:
        slack = FakeChannel("slack", fail=True)
        webhook = FakeChannel("webhook")
        disp = NotificationDispatcher({"slack": slack, "webhook": webhook})
        config = ThresholdConfig(notification_channels=["slack", "webhook"])

        report = await disp.dispatch(_notice(), config)

        assert len(webhook.sent) == 1
        assert report.delivered == ["webhook"]
        assert "slack" in report.failed
        assert not report.ok

    async def test_only_enabled_channels_used(self) -> None:
        email = FakeChannel("email")
        slack = FakeChannel("slack")
        disp = NotificationDispatcher({"email": email, "slack": slack})

        await disp.dispatch(_notice(), ThresholdConfig(notification_channels=["slack"]))

        assert email.sent == []
        assert len(slack.sent) == 1

    async def test_slow_channel_times_out(self) -> None:
        slow = FakeChannel("webhook", delay=5)
        fast = FakeChannel("email")
        disp = NotificationDispatcher({"webhook": slow, "email": fast}, timeout=0.05)

        report = await disp.dispatch(_notice(), ThresholdConfig(notification_channels=["webhook", "email"]))

        assert "timed out" in report.failed["webhook"]
        assert report.delivered == ["email"]

    async def test_unexpected_exception_is_contained(self) -> None:
        class Exploding(FakeChannel):
            async def send(self, notice, config) -> None:
                raise RuntimeError("kaput")

        disp = NotificationDispatcher({"email": Exploding("email")})
        report = await disp.dispatch(_notice(), ThresholdConfig())
        assert report.failed["email"] == "RuntimeError: kaput"

    async def test_unknown_channel_skipped(self) -> None:
        email = FakeChannel("email")
        disp = NotificationDispatcher({"email": email})

        report = await disp.dispatch(_notice(), ThresholdConfig(notification_channels=["sms", "email"]))

        assert report.skipped == ["sms"]
        assert report.ok
        assert len(email.sent) == 1

    async def test_send_propagates_failure(self) -> None:
        disp = NotificationDispatcher({"slack": FakeChannel("slack", fail=True)})
        with pytest.raises(ChannelDeliveryError):
            await disp.send("slack", _notice(), ThresholdConfig())
        with pytest.raises(ChannelDeliveryError):
            await disp.send("pager", _notice(), ThresholdConfig())

    async def test_from_settings_builds_all_channels(self) -> None:
        disp = NotificationDispatcher.from_settings(Settings(notification_timeout_seconds=3))
        assert set(disp.channels) == {"email", "slack", "webhook"}
        assert disp.timeout == 3

    async def test_smtp_gives_up_with_the_channel(self) -> None:
        disp = NotificationDispatcher.from_settings(
            Settings(notification_timeout_seconds=3, smtp_host="smtp.example.com")
        )
        notice = _notice()
        config = ThresholdConfig(email_recipients=["ops@example.com"])

        with patch("montime.services.email_sender.smtplib.SMTP") as smtp_cls:
            await disp.send("email", notice, config)

        assert disp.channels["email"].sender.timeout == 3
        assert smtp_cls.call_args.kwargs["timeout"] == 3


# ── Webhook ─────────────────────────────────────────────────────


class TestWebhookChannel:
    async def test_payload_and_headers(self) -> None:
        transport, requests = _capture()
        config = ThresholdConfig(
            webhook_url="https://hooks.example.com/alerts",
            webhook_headers={"Authorization": "Bearer abc"},
        )

        await WebhookChannel(transport=transport).send(_notice(), config)

        request = requests[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Authorization"] == "Bearer abc"
        assert json.loads(request.content) == {
            "alert_id": "42",
            "entity_id": "7",
            "entity_name": "web-1",
            "type": "cpu_high",
            "severity": "critical",
            "message": "CPU usage is critically high at 95.0%",
            "current_value": 95.0,
            "threshold_value": 85.0,
            "timestamp": "2026-01-15T12:00:00Z",
        }

    async def test_non_2xx_fails(self) -> None:
        transport, _ = _capture(status=500)
        config = ThresholdConfig(webhook_url="https://hooks.example.com/alerts")
        with pytest.raises(ChannelDeliveryError) as exc:
            await WebhookChannel(transport=transport).send(_notice(), config)
        assert exc.value.channel == "webhook"

    async def test_missing_url_fails(self) -> None:
        with pytest.raises(ChannelDeliveryError):
            await WebhookChannel().send(_notice(), ThresholdConfig())


# ── Slack ───────────────────────────────────────────────────────


class TestSlackChannel:
    async def test_attachment_colour_and_fields(self) -> None:
        transport, requests = _capture()
        config = ThresholdConfig(slack_webhook_url="https://hooks.slack.com/services/T/B/X")

        await SlackChannel(transport=transport).send(_notice(), config)

        body = json.loads(requests[0].content)
        attachment = body["attachments"][0]
        assert attachment["color"] == "#dc2626"
        fields = {f["title"]: f["value"] for f in attachment["fields"]}
        assert fields == {
            "Entity": "web-1",
            "Type": "CPU HIGH",
            "Current Value": "95.0%",
            "Threshold": "85.0%",
        }

    async def test_warning_colour_and_no_values(self) -> None:
        channel = SlackChannel()
        payload = channel.build_payload(_notice(severity="warning", type="down", current_value=None, threshold_value=None))
        attachment = payload["attachments"][0]
        assert attachment["color"] == "#f59e0b"
        assert [f["title"] for f in attachment["fields"]] == ["Entity", "Type"]

    async def test_non_2xx_fails(self) -> None:
        transport, _ = _capture(status=404)
        config = ThresholdConfig(slack_webhook_url="https://hooks.slack.com/services/T/B/X")
        with pytest.raises(ChannelDeliveryError):
            await SlackChannel(transport=transport).send(_notice(), config)


# ── Email ───────────────────────────────────────────────────────


class TestEmailChannel:
    def _sender(self, ok: bool = True) -> AsyncMock:
        sender = AsyncMock()
        sender.send_email.return_value = ok
        return sender

    async def test_no_recipients_fails(self) -> None:
        channel = EmailChannel(EmailConfig(host="smtp.example.com"), self._sender())
        with pytest.raises(ChannelDeliveryError):
            await channel.send(_notice(), ThresholdConfig(email_recipients=[]))

    async def test_unconfigured_smtp_is_noop(self) -> None:
        sender = self._sender()
        channel = EmailChannel(EmailConfig(host=""), sender)
        await channel.send(_notice(), ThresholdConfig(email_recipients=["ops@example.com"]))
        sender.send_email.assert_not_called()

    async def test_hands_off_to_sender(self) -> None:
        sender = self._sender()
        smtp = EmailConfig(host="smtp.example.com")
        channel = EmailChannel(smtp, sender, dashboard_url="https://montime.io/dashboard")

        await channel.send(_notice(), ThresholdConfig(email_recipients=["ops@example.com", " "]))

        config, recipients, subject, body = sender.send_email.call_args.args
        assert config is smtp
        assert recipients == ["ops@example.com"]
        assert subject == "Alert: CPU HIGH - web-1"
        assert "Current Value: 95.0%" in body
        assert "https://montime.io/dashboard" in body

    async def test_sender_failure_raises(self) -> None:
        channel = EmailChannel(EmailConfig(host="smtp.example.com"), self._sender(ok=False))
        with pytest.raises(ChannelDeliveryError):
            await channel.send(_notice(), ThresholdConfig(email_recipients=["ops@example.com"]))


# ── SMTP sender ─────────────────────────────────────────────────


class TestEmailSenderService:
    async def test_sends_over_starttls(self) -> None:
        config = EmailConfig(
            host="smtp.example.com",
            username="bot",
            password="pw",
            from_address="alerts@example.com",
        )
        with patch("montime.services.email_sender.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            sent = await EmailSenderService().send_email(config, ["ops@example.com"], "Alert", "body")

        assert sent is True
        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot", "pw")
        from_addr, recipients, message = server.sendmail.call_args.args
        assert from_addr == "alerts@example.com"
        assert recipients == ["ops@example.com"]
        assert "Subject: Alert" in message

    async def test_smtp_error_returns_false(self) -> None:
        config = EmailConfig(host="smtp.example.com", use_tls=False)
        with patch("montime.services.email_sender.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value.sendmail.side_effect = smtplib.SMTPException("nope")
            sent = await EmailSenderService().send_email(config, ["ops@example.com"], "Alert", "body")
        assert sent is False

    async def test_unconfigured_returns_false(self) -> None:
        assert await EmailSenderService().send_email(EmailConfig(host=""), ["a@b.c"], "s", "b") is False
