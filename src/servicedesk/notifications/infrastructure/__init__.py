"""
Notification Infrastructure Layer
=================================

- External: webhook, SMTP and logging channels
"""

from servicedesk.notifications.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    WebhookChannel,
    SMTPChannel,
    LoggingChannel,
    build_channel,
)

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "WebhookChannel",
    "SMTPChannel",
    "LoggingChannel",
    "build_channel",
]
