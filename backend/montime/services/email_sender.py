"""Email sender service - hands alert emails to an SMTP server."""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    use_tls: bool = True
    from_address: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.host)


class EmailSenderService:
    """Service for sending email alerts via SMTP."""

    def __init__(self, timeout: float = 30):
        self.timeout = timeout

    async def send_email(
        self,
        config: EmailConfig,
        recipients: List[str],
        subject: str,
        body: str,
    ) -> bool:
        """Send an email using SMTP.

        The SMTP conversation is blocking and runs in a worker thread.
        Returns True on success, False on failure.
        """
        if not config.configured:
            logger.warning("Email not configured - missing SMTP host")
            return False
        if not recipients:
            logger.warning("No recipients given")
            return False

        logger.info(f"Sending email '{subject}' to {len(recipients)} recipient(s) via {config.host}:{config.port}")
        try:
            await asyncio.to_thread(self._send_blocking, config, recipients, subject, body)
            logger.info(f"Email sent successfully to {len(recipients)} recipient(s): {subject}")
            return True
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.username}': {e}")
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipients refused by server: {e}")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {type(e).__name__}: {e}")
            return False
        except OSError as e:
            logger.error(f"Could not reach {config.host}:{config.port}: {e}")
            return False

    def _send_blocking(self, config: EmailConfig, recipients: List[str], subject: str, body: str) -> None:
        from_addr = config.from_address or config.username

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(body, "plain"))

        with smtplib.SMTP(config.host, config.port, timeout=self.timeout) as server:
            if config.use_tls:
                server.starttls(context=ssl.create_default_context())
            if config.username and config.password:
                server.login(config.username, config.password)
            server.sendmail(from_addr, recipients, msg.as_string())
