"""
Ticket Domain Layer
===================

Contains:
- Entities: Ticket, TicketEvent, Team, Membership, User
- State machine: legal status transitions, guards and side-effects

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from servicedesk.tickets.domain.entities import (
    Ticket,
    TicketEvent,
    Team,
    Membership,
    User,
    new_id,
)
from servicedesk.tickets.domain.state_machine import (
    Guard,
    TransitionAction,
    TransitionContext,
    Transition,
    TransitionResult,
    TicketStateMachine,
    TRANSITIONS,
)

__all__ = [
    # Entities
    "Ticket",
    "TicketEvent",
    "Team",
    "Membership",
    "User",
    "new_id",
    # State machine
    "Guard",
    "TransitionAction",
    "TransitionContext",
    "Transition",
    "TransitionResult",
    "TicketStateMachine",
    "TRANSITIONS",
]
