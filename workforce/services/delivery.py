import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage as MimeEmail
from typing import Any, Awaitable, Optional, Protocol

from workforce.config import Settings
from workforce.core.exceptions import DeliveryError

logger = logging.getLogger(__name__)

IN_APP = "in_app"
EMAIL = "email"


@dataclass(frozen=True)
class EmailMessage:
    recipient: str
    subject: str
    body: str


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one send to one recipient over one channel."""

    channel: str
    recipient: Any
    ok: bool
    skipped: bool = False
    error: Optional[str] = None
    value: Any = None

    @classmethod
    def success(cls, channel: str, recipient: Any, value: Any = None) -> "DeliveryResult":
        return cls(channel=channel, recipient=recipient, ok=True, value=value)

    @classmethod
    def failure(cls, channel: str, recipient: Any, error: str) -> "DeliveryResult":
        return cls(channel=channel, recipient=recipient, ok=False, error=error)


class EmailChannel(Protocol):
    configured: bool

    async def send(self, message: EmailMessage) -> None:
        """Deliver or raise DeliveryError."""


class SmtpEmailChannel:
    def __init__(self, settings: Settings):
        self._host = settings.SMTP_HOST
        self._port = settings.SMTP_PORT
        self._user = settings.SMTP_USER
        self._password = settings.SMTP_PASSWORD
        self._sender = settings.SMTP_FROM
        self._use_tls = settings.SMTP_USE_TLS
        self._timeout = settings.DELIVERY_TIMEOUT_SECONDS
        self.configured = bool(self._host)

    async def send(self, message: EmailMessage) -> None:
        if not self.configured:
            raise DeliveryError("SMTP is not configured")
        if not message.recipient:
            raise DeliveryError("Recipient has no email address")
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._send_sync, message)

    def _send_sync(self, message: EmailMessage) -> None:
        mime = MimeEmail()
        mime["From"] = self._sender
        mime["To"] = message.recipient
        mime["Subject"] = message.subject
        mime.set_content(message.body)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
                if self._use_tls:
                    smtp.starttls()
                if self._user:
                    smtp.login(self._user, self._password or "")
                smtp.send_message(mime)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP send to {message.recipient} failed: {e}") from e


async def deliver(channel: str, recipient: Any, send: Awaitable[Any], timeout: float) -> DeliveryResult:
    """Await one send with a timeout and capture the outcome.

    Cancellation is not swallowed.
    """
    try:
        value = await asyncio.wait_for(send, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Delivery over %s to %s timed out after %ss", channel, recipient, timeout)
        return DeliveryResult.failure(channel, recipient, f"timed out after {timeout}s")
    except Exception as e:
        logger.warning("Delivery over %s to %s failed: %s", channel, recipient, e)
        return DeliveryResult.failure(channel, recipient, str(e))
    return DeliveryResult.success(channel, recipient, value)


async def send_email(channel: EmailChannel, recipient: Optional[str], subject: str, body: str,
                     timeout: float) -> DeliveryResult:
    if not channel.configured or not recipient:
        # no transport or no address: nothing to attempt
        return DeliveryResult(channel=EMAIL, recipient=recipient, ok=True, skipped=True)
    return await deliver(EMAIL, recipient, channel.send(EmailMessage(recipient, subject, body)), timeout)
