"""
Notification Application Layer
==============================

Contains:
- IMessageChannel: outbound transport interface
- NotificationDispatcher: recipient resolution and fan-out
- Templates for subjects and HTML bodies
"""

from servicedesk.notifications.application.services import IMessageChannel, NotificationDispatcher
from servicedesk.notifications.application.templates import (
    render_subject,
    render_body,
    render_csat_email,
)

__all__ = [
    "IMessageChannel",
    "NotificationDispatcher",
    "render_subject",
    "render_body",
    "render_csat_email",
]
