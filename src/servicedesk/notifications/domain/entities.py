"""
Notification Domain Entities
============================

Recipient policy and dispatch results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from servicedesk.config import NotificationType
from servicedesk.core import ConfigurationException


class RecipientStrategy(str, Enum):
    """Who receives a notification when no explicit recipients are given."""
    ASSIGNEE = "assignee"
    TEAM_OPERATORS = "team_operators"  # active ADMIN/AGENT members of the ticket's team
    TEAM_APPROVERS = "team_approvers"
    REQUESTER = "requester"


RECIPIENT_POLICY: Dict[NotificationType, RecipientStrategy] = {
    NotificationType.TICKET_CREATED: RecipientStrategy.ASSIGNEE,
    NotificationType.TICKET_ASSIGNED: RecipientStrategy.ASSIGNEE,
    NotificationType.TICKET_UPDATED: RecipientStrategy.ASSIGNEE,
    NotificationType.SLA_BREACH: RecipientStrategy.TEAM_OPERATORS,
    NotificationType.TICKET_ESCALATED: RecipientStrategy.TEAM_OPERATORS,
    NotificationType.APPROVAL_REQUESTED: RecipientStrategy.TEAM_APPROVERS,
    NotificationType.CSAT_REQUEST: RecipientStrategy.REQUESTER,
}

_missing = [t.value for t in NotificationType if t not in RECIPIENT_POLICY]
if _missing:
    raise ConfigurationException(f"Notification types without a recipient policy: {', '.join(_missing)}")


@dataclass
class DispatchReport:
    """
    Result of one ``notify`` call.

    ``recipients`` are the resolved user ids; each ends up in exactly one
    of ``sent``, ``failed`` or ``skipped``.
    """
    notification_type: NotificationType
    ticket_id: str
    recipients: List[str] = field(default_factory=list)
    sent: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def recipients_empty(self) -> bool:
        return not self.recipients

    @property
    def all_failed(self) -> bool:
        return bool(self.failed) and not self.sent
