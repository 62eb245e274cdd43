"""
Ticket Domain Entities
======================

Pure Python domain entities for the ticket workflow.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional
from uuid import uuid4

from servicedesk.config import (
    ApprovalStatus,
    FINISHED_STATUSES,
    Priority,
    Role,
    TicketEventType,
    TicketStatus,
)


def new_id() -> str:
    return str(uuid4())


@dataclass
class Ticket:
    """
    Ticket entity representing a support request.

    ``due_at`` is the active SLA deadline. It is authoritative until
    ``resolved_at`` is set; after that no breach evaluation applies.
    """

    id: str
    org_id: str
    code: str
    subject: str
    priority: Priority
    requester_id: str
    created_at: datetime
    updated_at: datetime

    description: str = ""
    status: TicketStatus = TicketStatus.NEW
    assignee_id: Optional[str] = None
    team_id: Optional[str] = None
    requires_approval: bool = False
    approval_status: Optional[ApprovalStatus] = None

    # SLA tracking
    due_at: Optional[datetime] = None
    first_response_due_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

    @property
    def is_finished(self) -> bool:
        """Resolved, closed or canceled tickets no longer run against their SLA."""
        return self.resolved_at is not None or self.status in FINISHED_STATUSES

    def is_breached(self, now: datetime) -> bool:
        if self.is_finished or self.due_at is None:
            return False
        return now > self.due_at


@dataclass
class TicketEvent:
    """
    Append-only audit record.

    ``actor_id`` is None for system-initiated changes (scheduler, escalation).
    """

    ticket_id: str
    event_type: TicketEventType
    created_at: datetime
    actor_id: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    description: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Team:
    id: str
    org_id: str
    name: str
    is_active: bool = True


@dataclass
class Membership:
    user_id: str
    team_id: str
    roles: FrozenSet[Role] = frozenset()
    is_active: bool = True

    def has_any_role(self, roles: FrozenSet[Role]) -> bool:
        return bool(self.roles & roles)


@dataclass
class User:
    id: str
    org_id: str
    name: str
    email: Optional[str]
    is_active: bool = True
