"""
Ticket Application Layer
========================

Contains:
- Repository interfaces (ITicketRepository, ITicketEventRepository, ...)
- TicketWorkflowService: validated ticket mutations
- DTOs for the API layer
"""

from servicedesk.tickets.application.services import (
    ITicketRepository,
    ITicketEventRepository,
    ITeamRepository,
    IUserRepository,
    TicketLockRegistry,
    TicketWorkflowService,
)
from servicedesk.tickets.application.dto import (
    TicketCreateDTO,
    StatusChangeDTO,
    AssignDTO,
    PriorityChangeDTO,
    ApprovalDTO,
    TicketResponse,
    TicketEventResponse,
    TransitionsResponse,
)

__all__ = [
    # Interfaces
    "ITicketRepository",
    "ITicketEventRepository",
    "ITeamRepository",
    "IUserRepository",
    # Services
    "TicketLockRegistry",
    "TicketWorkflowService",
    # DTOs
    "TicketCreateDTO",
    "StatusChangeDTO",
    "AssignDTO",
    "PriorityChangeDTO",
    "ApprovalDTO",
    "TicketResponse",
    "TicketEventResponse",
    "TransitionsResponse",
]
