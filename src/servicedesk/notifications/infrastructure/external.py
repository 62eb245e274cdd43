"""
Notification External Integrations
==================================

Outbound message channels:
- Webhook (httpx) with circuit breaker and retry
- SMTP (smtplib, run in a worker thread)
- Logging channel for development
"""

import asyncio
import smtplib
import time
from email.message import EmailMessage
from typing import Any, Dict, Optional

import httpx

from servicedesk.config import Settings
from servicedesk.core import ConfigurationException, MessageDeliveryException
from servicedesk.notifications.application.services import IMessageChannel
from servicedesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        monotonic=time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._monotonic = monotonic
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._monotonic()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookChannel(IMessageChannel):
    """
    Posts each message as JSON to a webhook.

    Handles delivery with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url:
            raise ConfigurationException("Webhook channel requires webhook_url")
        self._url = url
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http_client

    @staticmethod
    def _build_message(to_address: str, subject: str, body: str) -> Dict[str, Any]:
        return {"to": to_address, "subject": subject, "html": body}

    async def send(self, to_address: str, subject: str, body: str) -> None:
        if not self._circuit_breaker.allow_request():
            raise MessageDeliveryException(self.name, "circuit breaker open")

        message = self._build_message(to_address, subject, body)
        last_error = "no attempt made"

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._url, json=message)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.debug("Webhook message sent", extra={"attempt": attempt + 1})
                    return

                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "Webhook returned non-2xx",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )

            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(
                    "Webhook request failed",
                    extra={"error": str(e), "attempt": attempt + 1}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay * (2 ** attempt))

        self._circuit_breaker.record_failure()
        raise MessageDeliveryException(
            self.name,
            f"delivery failed after {self._max_retries} attempts ({last_error})",
            {"attempts": self._max_retries}
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class SMTPChannel(IMessageChannel):
    """
    Sends HTML e-mail over SMTP.

    smtplib is blocking, so each send runs in a worker thread.
    """

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        mail_from: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        starttls: bool = True,
        timeout_seconds: float = 10.0,
    ):
        self._host = host
        self._port = port
        self._mail_from = mail_from
        self._username = username
        self._password = password
        self._starttls = starttls
        self._timeout = timeout_seconds

    def _build_message(self, to_address: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._mail_from
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(body, subtype="html")
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._starttls:
                smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password or "")
            smtp.send_message(message)

    async def send(self, to_address: str, subject: str, body: str) -> None:
        message = self._build_message(to_address, subject, body)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise MessageDeliveryException(
                self.name,
                f"{type(e).__name__}: {e}",
                {"host": self._host, "port": self._port}
            ) from e

        logger.debug("E-mail sent", extra={"host": self._host})


class LoggingChannel(IMessageChannel):
    """Writes messages to the log instead of delivering them. Development default."""

    name = "log"

    def __init__(self):
        self.sent_count = 0

    async def send(self, to_address: str, subject: str, body: str) -> None:
        self.sent_count += 1
        logger.info("Outbound message", extra={"to_address": to_address, "subject": subject})


def build_channel(settings: Settings) -> IMessageChannel:
    """Channel selected by ``settings.notification_channel``."""
    if settings.notification_channel == "smtp":
        return SMTPChannel(
            host=settings.smtp_host,
            port=settings.smtp_port,
            mail_from=settings.mail_from,
            username=settings.smtp_user,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
        )
    if settings.notification_channel == "webhook":
        return WebhookChannel(
            url=settings.webhook_url or "",
            timeout_seconds=settings.webhook_timeout_seconds,
        )
    return LoggingChannel()
