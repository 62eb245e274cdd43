"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for ticket workflow endpoints.

Controllers are thin - they delegate to the workflow service. Domain
errors propagate to the application exception handlers.
"""

from typing import List

from fastapi import APIRouter, Depends, Request, status

from servicedesk.tickets.application import (
    ApprovalDTO,
    AssignDTO,
    PriorityChangeDTO,
    StatusChangeDTO,
    TicketCreateDTO,
    TicketEventResponse,
    TicketResponse,
    TicketWorkflowService,
    TransitionsResponse,
)
from servicedesk.shared.infrastructure.logging import get_context_logger

router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "org_id": "org-1",
    "subject": "VPN drops every few minutes",
    "description": "Since this morning the VPN client disconnects every 5 minutes.",
    "priority": "P2",
    "requester_id": "user-42",
    "team_id": "team-n1",
}

INVALID_TRANSITION_EXAMPLE = {
    "detail": "Invalid transition from NEW to RESOLVED. Valid transitions: TRIAGE, WAITING_APPROVAL, CANCELED",
    "error_type": "InvalidTransitionException",
    "details": {
        "from": "NEW",
        "to": "RESOLVED",
        "valid_transitions": ["TRIAGE", "WAITING_APPROVAL", "CANCELED"],
    },
    "correlation_id": "0b7c3c1e-7a47-4f7a-9d0b-3f9a3f1f2f4e",
}


# ========== Dependencies ==========

def get_workflow_service(request: Request) -> TicketWorkflowService:
    """Workflow service from the application's wired core."""
    return request.app.state.core.workflow


# ========== Endpoints ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket",
    description="Creates a ticket, computes its SLA deadline and schedules breach checks.",
    openapi_extra={"requestBody": {"content": {"application/json": {"example": TICKET_CREATE_EXAMPLE}}}},
)
async def create_ticket(
    request: TicketCreateDTO,
    http_request: Request,
    service: TicketWorkflowService = Depends(get_workflow_service)
) -> TicketResponse:
    ticket = await service.create_ticket(request)
    logger = get_context_logger(
        __name__,
        getattr(http_request.state, "correlation_id", None),
        ticket_id=ticket.id,
    )
    logger.info("Ticket created via API", extra={"code": ticket.code, "priority": ticket.priority.value})
    return TicketResponse.from_entity(ticket)


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: str,
    service: TicketWorkflowService = Depends(get_workflow_service)
) -> TicketResponse:
    return TicketResponse.from_entity(await service.get_ticket(ticket_id))


@router.patch(
    "/{ticket_id}/status",
    response_model=TicketResponse,
    summary="Change ticket status",
    responses={
        409: {
            "description": "Transition not allowed",
            "content": {"application/json": {"example": INVALID_TRANSITION_EXAMPLE}},
        }
    },
)
async def change_status(
    ticket_id: str,
    request: StatusChangeDTO,
    service: TicketWorkflowService = Depends(get_workflow_service)
) -> TicketResponse:
    ticket = await service.change_status(ticket_id, request.status, actor_id=request.actor_id)
    return TicketResponse.from_entity(ticket)


@router.patch("/{ticket_id}/assignee", response_model=TicketResponse, summary="Assign a ticket")
async def assign_ticket(
    ticket_id: str,
    request: AssignDTO,
    service: TicketWorkflowService = Depends(get_workflow_service)
) -> TicketResponse:
    ticket = await service.assign(ticket_id, request.assignee_id, actor_id=request.actor_id)
    return TicketResponse.from_entity(ticket)


@router.patch("/{ticket_id}/priority", response_model=TicketResponse, summary="Change priority")
async def change_priority(
    ticket_id: str,
    request: PriorityChangeDTO,
    service: TicketWorkflowService = Depends(get_workflow_service)
) -> TicketResponse:
    ticket = await service.change_priority(ticket_id, request.priority, actor_id=request.actor_id)
    return TicketResponse.from_entity(ticket)


@router.patch("/{ticket_id}/approval", response_model=TicketResponse, summary="Record approval decision")
async def record_approval(
    ticket_id: str,
    request: ApprovalDTO,
    service: TicketWorkflowService = Depends(get_workflow_service)
) -> TicketResponse:
    ticket = await service.record_approval(ticket_id, request.decision, actor_id=request.actor_id)
    return TicketResponse.from_entity(ticket)


@router.get(
    "/{ticket_id}/transitions",
    response_model=TransitionsResponse,
    summary="Valid next states",
)
async def get_transitions(
    ticket_id: str,
    service: TicketWorkflowService = Depends(get_workflow_service)
) -> TransitionsResponse:
    return TransitionsResponse(**await service.available_transitions(ticket_id))


@router.get(
    "/{ticket_id}/events",
    response_model=List[TicketEventResponse],
    summary="Ticket audit log",
)
async def get_events(
    ticket_id: str,
    service: TicketWorkflowService = Depends(get_workflow_service)
) -> List[TicketEventResponse]:
    events = await service.list_events(ticket_id)
    return [TicketEventResponse.from_entity(e) for e in events]
