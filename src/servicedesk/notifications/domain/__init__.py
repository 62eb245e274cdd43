"""
Notification Domain Layer
=========================

Contains:
- RecipientStrategy and the per-type recipient policy
- DispatchReport
"""

from servicedesk.notifications.domain.entities import (
    RecipientStrategy,
    RECIPIENT_POLICY,
    DispatchReport,
)

__all__ = [
    "RecipientStrategy",
    "RECIPIENT_POLICY",
    "DispatchReport",
]
