"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from servicedesk.config import ApprovalStatus, Priority, TicketEventType, TicketStatus
from servicedesk.tickets.domain import Ticket, TicketEvent


# ========== Request DTOs ==========

class TicketCreateDTO(BaseModel):
    """DTO for creating a ticket."""
    org_id: str = Field(..., min_length=1, description="Organization ID")
    subject: str = Field(..., min_length=1, max_length=500, description="Ticket subject")
    description: str = Field(default="", description="Ticket description")
    priority: Priority = Field(default=Priority.P3, description="P1 (most urgent) to P5")
    requester_id: str = Field(..., min_length=1, description="Requesting user")
    team_id: Optional[str] = Field(None, description="Owning team")
    assignee_id: Optional[str] = Field(None, description="Assigned agent")
    requires_approval: bool = Field(default=False, description="Needs an approver's decision")


class StatusChangeDTO(BaseModel):
    """DTO for a status transition."""
    status: TicketStatus = Field(..., description="Destination status")
    actor_id: Optional[str] = Field(None, description="User performing the change")


class AssignDTO(BaseModel):
    """DTO for assigning a ticket."""
    assignee_id: str = Field(..., min_length=1, description="New assignee")
    actor_id: Optional[str] = None


class PriorityChangeDTO(BaseModel):
    """DTO for changing a ticket's priority."""
    priority: Priority
    actor_id: Optional[str] = None


class ApprovalDTO(BaseModel):
    """DTO for an approval decision."""
    decision: ApprovalStatus
    actor_id: Optional[str] = None

    @field_validator("decision")
    @classmethod
    def validate_decision(cls, v: ApprovalStatus) -> ApprovalStatus:
        if v == ApprovalStatus.PENDING:
            raise ValueError("decision must be APPROVED or REJECTED")
        return v


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Ticket as returned by the API."""
    id: str
    org_id: str
    code: str
    subject: str
    description: str
    status: TicketStatus
    priority: Priority
    requester_id: str
    assignee_id: Optional[str] = None
    team_id: Optional[str] = None
    requires_approval: bool
    approval_status: Optional[ApprovalStatus] = None
    due_at: Optional[datetime] = None
    first_response_due_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            org_id=ticket.org_id,
            code=ticket.code,
            subject=ticket.subject,
            description=ticket.description,
            status=ticket.status,
            priority=ticket.priority,
            requester_id=ticket.requester_id,
            assignee_id=ticket.assignee_id,
            team_id=ticket.team_id,
            requires_approval=ticket.requires_approval,
            approval_status=ticket.approval_status,
            due_at=ticket.due_at,
            first_response_due_at=ticket.first_response_due_at,
            resolved_at=ticket.resolved_at,
            closed_at=ticket.closed_at,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )


class TicketEventResponse(BaseModel):
    """Audit log entry."""
    id: str
    ticket_id: str
    event_type: TicketEventType
    actor_id: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_entity(cls, event: TicketEvent) -> "TicketEventResponse":
        return cls(
            id=event.id,
            ticket_id=event.ticket_id,
            event_type=event.event_type,
            actor_id=event.actor_id,
            old_value=event.old_value,
            new_value=event.new_value,
            description=event.description,
            created_at=event.created_at,
        )


class TransitionsResponse(BaseModel):
    """Next states available from a ticket's current status."""
    ticket_id: str
    current_status: TicketStatus
    valid_transitions: List[TicketStatus] = Field(
        default_factory=list,
        description="All destinations in the transition table"
    )
    allowed_transitions: List[TicketStatus] = Field(
        default_factory=list,
        description="Destinations whose guards pass for this ticket"
    )
