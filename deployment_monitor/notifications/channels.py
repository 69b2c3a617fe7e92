"""
Notification Channels.

============================================================
PURPOSE
============================================================
Concrete NotificationChannel implementations.

- LogChannel: writes the message to the application log
- WebhookChannel: POSTs JSON to an arbitrary URL
- SlackChannel: Slack incoming webhook
- PagerDutyChannel: PagerDuty Events API v2
- TelegramChannel: Telegram Bot API
- EmailChannel: SMTP, sent from a worker thread

HTTP channels share one aiohttp session each and raise
ChannelDeliveryError on non-2xx responses or transport errors.

============================================================
"""

import asyncio
import html
import logging
import os
import smtplib
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from ..config import ChannelConfig
from ..errors import ChannelDeliveryError, ConfigurationError
from .base import NotificationChannel


logger = logging.getLogger(__name__)


# ============================================================
# LOG CHANNEL
# ============================================================

class LogChannel(NotificationChannel):
    """Writes notifications to the log."""

    name = "log"

    def __init__(self, level: int = logging.WARNING):
        self._level = level

    async def send(self, message: str) -> bool:
        logger.log(self._level, message)
        return True


# ============================================================
# HTTP CHANNELS
# ============================================================

class HttpChannel(NotificationChannel):
    """Base class for channels that POST JSON."""

    name = "http"

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 10.0,
    ):
        self.url = url
        self._headers = headers or {}
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def build_payload(self, message: str) -> Dict[str, Any]:
        return {"message": message}

    async def send(self, message: str) -> bool:
        payload = self.build_payload(message)
        try:
            session = await self._get_session()
            async with session.post(self.url, json=payload, headers=self._headers) as response:
                if 200 <= response.status < 300:
                    return True
                body = await response.text()
                raise ChannelDeliveryError(
                    self.name,
                    f"HTTP {response.status} - {body[:200]}",
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ChannelDeliveryError(self.name, str(e) or type(e).__name__) from e


class WebhookChannel(HttpChannel):
    """Generic JSON webhook."""

    name = "webhook"


class SlackChannel(HttpChannel):
    """Slack incoming webhook."""

    name = "slack"

    def build_payload(self, message: str) -> Dict[str, Any]:
        return {"text": message}


class PagerDutyChannel(HttpChannel):
    """PagerDuty Events API v2."""

    name = "pagerduty"

    EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"

    def __init__(
        self,
        routing_key: str,
        severity: str = "error",
        source: str = "deployment-monitor",
        url: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ):
        super().__init__(url or self.EVENTS_URL, timeout_seconds=timeout_seconds)
        self._routing_key = routing_key
        self._severity = severity
        self._source = source

    def build_payload(self, message: str) -> Dict[str, Any]:
        summary = message.splitlines()[0] if message else "deployment alert"
        return {
            "routing_key": self._routing_key,
            "event_action": "trigger",
            "payload": {
                "summary": summary[:1024],
                "source": self._source,
                "severity": self._severity,
                "custom_details": {"message": message},
            },
        }


class TelegramChannel(HttpChannel):
    """Telegram Bot API sendMessage."""

    name = "telegram"

    BASE_URL = "https://api.telegram.org/bot"

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ):
        # Load from environment if not provided
        bot_token = bot_token or os.getenv("TELEGRAM_BOT_TOKEN", "")
        self._chat_id = chat_id or os.getenv("TELEGRAM_CHAT_ID", "")
        if not bot_token or not self._chat_id:
            raise ConfigurationError(
                "TelegramChannel requires bot_token and chat_id "
                "(or TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID)"
            )
        super().__init__(
            f"{self.BASE_URL}{bot_token}/sendMessage",
            timeout_seconds=timeout_seconds,
        )

    def build_payload(self, message: str) -> Dict[str, Any]:
        return {
            "chat_id": self._chat_id,
            "text": f"<pre>{html.escape(message)}</pre>",
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }


# ============================================================
# EMAIL CHANNEL
# ============================================================

class EmailChannel(NotificationChannel):
    """
    SMTP email.

    smtplib is blocking, so each send runs in a worker thread.
    """

    name = "email"

    def __init__(
        self,
        recipients: Optional[Sequence[str]] = None,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        from_address: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout_seconds: float = 10.0,
    ):
        # Load from environment if not provided
        if recipients is None:
            recipients = os.getenv("ALERT_EMAIL_TO", "")
        if isinstance(recipients, str):
            recipients = [r.strip() for r in recipients.split(",")]
        self.recipients: List[str] = [r for r in recipients if r]

        self.smtp_host = smtp_host or os.getenv("SMTP_HOST", "")
        self.smtp_port = int(smtp_port or os.getenv("SMTP_PORT", "587"))
        self.from_address = from_address or os.getenv("ALERT_EMAIL_FROM", "")
        self._username = username or os.getenv("SMTP_USER")
        self._password = password or os.getenv("SMTP_PASSWORD")
        self._use_tls = use_tls
        self._timeout = timeout_seconds

        if not self.recipients or not self.smtp_host or not self.from_address:
            raise ConfigurationError(
                "EmailChannel requires recipients, smtp_host and from_address "
                "(or ALERT_EMAIL_TO / SMTP_HOST / ALERT_EMAIL_FROM)"
            )

    def build_message(self, message: str) -> MIMEText:
        subject = message.splitlines()[0] if message else "Deployment alert"
        mail = MIMEText(message, "plain", "utf-8")
        mail["Subject"] = subject
        mail["From"] = self.from_address
        mail["To"] = ", ".join(self.recipients)
        return mail

    def _send_sync(self, mail: MIMEText) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._username and self._password:
                server.login(self._username, self._password)
            server.sendmail(self.from_address, self.recipients, mail.as_string())

    async def send(self, message: str) -> bool:
        mail = self.build_message(message)
        try:
            await asyncio.to_thread(self._send_sync, mail)
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelDeliveryError(self.name, str(e) or type(e).__name__) from e
        return True


# ============================================================
# FACTORY
# ============================================================

def create_channel(config: ChannelConfig) -> Optional[NotificationChannel]:
    """
    Build a channel from its configuration.

    Returns None for unsupported channel types.
    """
    options = config.options
    timeout = float(options.get("timeout_seconds", 10.0))

    if config.type == "log":
        return LogChannel()
    if config.type == "webhook":
        return WebhookChannel(options["url"], options.get("headers"), timeout)
    if config.type == "slack":
        return SlackChannel(options["url"], timeout_seconds=timeout)
    if config.type == "pagerduty":
        return PagerDutyChannel(
            routing_key=options["routing_key"],
            severity=options.get("severity", "error"),
            url=options.get("url"),
            timeout_seconds=timeout,
        )
    if config.type == "telegram":
        return TelegramChannel(
            bot_token=options.get("bot_token"),
            chat_id=options.get("chat_id"),
            timeout_seconds=timeout,
        )
    if config.type == "email":
        recipients = options.get("recipients", options.get("to"))
        return EmailChannel(
            recipients=recipients,
            smtp_host=options.get("smtp_host"),
            smtp_port=options.get("smtp_port"),
            from_address=options.get("from_address", options.get("from")),
            username=options.get("username"),
            password=options.get("password"),
            use_tls=bool(options.get("use_tls", True)),
            timeout_seconds=timeout,
        )

    logger.warning(f"Unsupported notification channel type: {config.type}")
    return None
