"""
Ticket Application Services
===========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: the workflow service owns ticket mutations only
- Dependency Inversion: depend on abstractions (repositories, job queue)
"""

import asyncio
import weakref
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from servicedesk.config import (
    ApprovalStatus,
    JobType,
    NotificationType,
    Priority,
    TicketEventType,
    TicketStatus,
)
from servicedesk.core import (
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from servicedesk.scheduler.application.services import IJobQueue
from servicedesk.scheduler.domain import SendNotificationPayload
from servicedesk.shared.infrastructure.clock import Clock, utc_now
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.domain import SLAPolicyResolver
from servicedesk.tickets.domain import (
    Membership,
    Team,
    Ticket,
    TicketEvent,
    TicketStateMachine,
    TransitionAction,
    TransitionContext,
    User,
    new_id,
)

if TYPE_CHECKING:
    from servicedesk.sla.application.services import SLABreachService
    from servicedesk.surveys.application.services import SurveyScheduler
    from servicedesk.tickets.application.dto import TicketCreateDTO

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket."""

    @abstractmethod
    async def update(self, ticket_id: str, changes: Dict[str, Any]) -> Ticket:
        """Apply field changes in one write and return the stored ticket."""

    @abstractmethod
    async def update_with_event(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        event: TicketEvent
    ) -> Ticket:
        """
        Apply field changes and append their audit event as one unit of work.

        Either both are stored or neither is.
        """

    @abstractmethod
    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """
        List tickets with filters.

        Supported filters: ``org_id``, ``status`` (value or list), ``team_id``.
        """

    @abstractmethod
    async def next_code(self, org_id: str, at: datetime) -> str:
        """Next human-readable ticket code, e.g. ``SD-2024-0001``."""


class ITicketEventRepository(ABC):
    """Interface for the append-only ticket audit log."""

    @abstractmethod
    async def append(self, event: TicketEvent) -> TicketEvent:
        """Append an event."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[TicketEvent]:
        """Events of a ticket, oldest first."""


class ITeamRepository(ABC):
    """Interface for team and membership lookups."""

    @abstractmethod
    async def get(self, team_id: str) -> Optional[Team]:
        """Get team by ID."""

    @abstractmethod
    async def teams_by_org(self, org_id: str) -> List[Team]:
        """Teams of an organization, in creation order."""

    @abstractmethod
    async def members_by_team(self, team_id: str) -> List[Membership]:
        """Memberships of a team."""


class IUserRepository(ABC):
    """Interface for user lookups."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""


# ========== Locks ==========

class TicketLockRegistry:
    """
    One ``asyncio.Lock`` per ticket id.

    Serializes read-validate-write sequences on the same ticket across
    the workflow service and the escalation engine. Locks nobody holds
    are dropped automatically.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def for_ticket(self, ticket_id: str) -> asyncio.Lock:
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[ticket_id] = lock
        return lock


# ========== Application Services ==========

class TicketWorkflowService:
    """
    In-process entry point for ticket mutations.

    Every mutation goes through the state machine (for status) and writes
    its audit event; follow-up work (notifications, breach checks, CSAT
    surveys) is deferred to the job queue.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        event_repository: ITicketEventRepository,
        job_queue: IJobQueue,
        resolver: SLAPolicyResolver,
        breach_service: "SLABreachService",
        survey_scheduler: "SurveyScheduler",
        clock: Clock = utc_now,
        locks: Optional[TicketLockRegistry] = None,
        recompute_due_on_priority_change: bool = False,
    ):
        self._ticket_repo = ticket_repository
        self._event_repo = event_repository
        self._job_queue = job_queue
        self._resolver = resolver
        self._breach_service = breach_service
        self._survey_scheduler = survey_scheduler
        self._clock = clock
        self._locks = locks or TicketLockRegistry()
        self._recompute_due = recompute_due_on_priority_change

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._ticket_repo.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def create_ticket(self, request: "TicketCreateDTO", actor_id: Optional[str] = None) -> Ticket:
        """
        Create a ticket with its SLA deadlines.

        Args:
            request: Validated creation request
            actor_id: Creating user; defaults to the requester

        Returns:
            The stored ticket
        """
        now = self._clock()
        priority = Priority(request.priority)

        ticket = Ticket(
            id=new_id(),
            org_id=request.org_id,
            code=await self._ticket_repo.next_code(request.org_id, now),
            subject=request.subject,
            description=request.description,
            priority=priority,
            requester_id=request.requester_id,
            assignee_id=request.assignee_id,
            team_id=request.team_id,
            requires_approval=request.requires_approval,
            approval_status=ApprovalStatus.PENDING if request.requires_approval else None,
            due_at=self._resolver.due_at(priority, now),
            first_response_due_at=self._resolver.first_response_due_at(priority, now),
            created_at=now,
            updated_at=now,
        )
        ticket = await self._ticket_repo.create(ticket)

        await self._record(
            ticket.id,
            TicketEventType.CREATED,
            actor_id or ticket.requester_id,
            new_value=ticket.status.value,
            description=f"Ticket {ticket.code} created",
        )
        self._notify(NotificationType.TICKET_CREATED, ticket, f"New ticket: {ticket.subject}")
        self._breach_service.schedule_breach_checks(ticket, now)

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "code": ticket.code,
                "priority": priority.value,
                "due_at": ticket.due_at.isoformat(),
            }
        )
        return ticket

    async def change_status(
        self,
        ticket_id: str,
        to_status: TicketStatus,
        actor_id: Optional[str] = None,
        context: Optional[TransitionContext] = None
    ) -> Ticket:
        """
        Move a ticket to ``to_status``.

        The transition is validated against the stored status under the
        ticket's lock, so two concurrent requests cannot both pass
        validation from the same starting state.

        Raises:
            ResourceNotFoundException: Unknown ticket
            InvalidTransitionException: Transition not allowed
        """
        to_status = TicketStatus(to_status)

        async with self._locks.for_ticket(ticket_id):
            ticket = await self.get_ticket(ticket_id)
            from_status = ticket.status
            context = context or TransitionContext.from_ticket(ticket)

            result = TicketStateMachine.validate_transition(from_status, to_status, context)
            if not result.valid:
                logger.info(
                    "Transition rejected",
                    extra={
                        "ticket_id": ticket_id,
                        "from_status": from_status.value,
                        "to_status": to_status.value,
                    }
                )
                raise InvalidTransitionException(
                    from_status.value,
                    to_status.value,
                    [s.value for s in result.valid_transitions],
                    message=result.error,
                )

            now = self._clock()
            changes: Dict[str, Any] = {"status": to_status, "updated_at": now}
            for action in TicketStateMachine.get_transition_actions(from_status, to_status):
                if action == TransitionAction.SET_RESOLVED_AT:
                    changes["resolved_at"] = now
                elif action == TransitionAction.SET_CLOSED_AT:
                    changes["closed_at"] = now

            reopened = (
                to_status == TicketStatus.IN_PROGRESS
                and from_status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)
            )
            if reopened:
                changes["resolved_at"] = None
                changes["closed_at"] = None

            updated = await self._ticket_repo.update_with_event(
                ticket_id,
                changes,
                self._event(
                    ticket_id,
                    TicketEventType.STATUS_CHANGED,
                    actor_id,
                    old_value=from_status.value,
                    new_value=to_status.value,
                    description=f"Status changed from {from_status.value} to {to_status.value}",
                ),
            )

        logger.info(
            "Ticket status changed",
            extra={
                "ticket_id": ticket_id,
                "from_status": from_status.value,
                "to_status": to_status.value,
                "actor_id": actor_id,
            }
        )

        if to_status == TicketStatus.RESOLVED:
            self._survey_scheduler.schedule_survey(updated, now)
        elif to_status == TicketStatus.WAITING_APPROVAL:
            self._notify(
                NotificationType.APPROVAL_REQUESTED,
                updated,
                f"Approval requested: {updated.subject}",
            )
        if reopened:
            # Checks that ran while the ticket was resolved were no-ops
            self._breach_service.schedule_breach_checks(updated, now)

        self._notify(
            NotificationType.TICKET_UPDATED,
            updated,
            f"Status changed to {to_status.value}",
        )
        return updated

    async def assign(
        self,
        ticket_id: str,
        assignee_id: str,
        actor_id: Optional[str] = None
    ) -> Ticket:
        """Assign a ticket and notify the new assignee."""
        async with self._locks.for_ticket(ticket_id):
            ticket = await self.get_ticket(ticket_id)
            previous = ticket.assignee_id
            updated = await self._ticket_repo.update_with_event(
                ticket_id,
                {"assignee_id": assignee_id, "updated_at": self._clock()},
                self._event(
                    ticket_id,
                    TicketEventType.ASSIGNED,
                    actor_id,
                    old_value=previous,
                    new_value=assignee_id,
                    description="Ticket assigned",
                ),
            )

        self._notify(
            NotificationType.TICKET_ASSIGNED,
            updated,
            "Ticket assigned to you",
            user_ids=[assignee_id],
        )
        return updated

    async def change_priority(
        self,
        ticket_id: str,
        priority: Priority,
        actor_id: Optional[str] = None
    ) -> Ticket:
        """
        Change a ticket's priority.

        ``due_at`` stays frozen unless recomputation is enabled, in which
        case it is rebuilt from ``created_at`` and new breach checks are
        scheduled. Checks for the old deadline stay queued; they re-read
        the ticket and find nothing to do.
        """
        priority = Priority(priority)

        async with self._locks.for_ticket(ticket_id):
            ticket = await self.get_ticket(ticket_id)
            if ticket.priority == priority:
                return ticket

            now = self._clock()
            changes: Dict[str, Any] = {"priority": priority, "updated_at": now}
            if self._recompute_due:
                changes["due_at"] = self._resolver.due_at(priority, ticket.created_at)
                changes["first_response_due_at"] = self._resolver.first_response_due_at(
                    priority, ticket.created_at
                )

            updated = await self._ticket_repo.update_with_event(
                ticket_id,
                changes,
                self._event(
                    ticket_id,
                    TicketEventType.PRIORITY_CHANGED,
                    actor_id,
                    old_value=ticket.priority.value,
                    new_value=priority.value,
                    description=f"Priority changed from {ticket.priority.value} to {priority.value}",
                ),
            )

        if self._recompute_due and not updated.is_finished:
            self._breach_service.schedule_breach_checks(updated, now)
        return updated

    async def record_approval(
        self,
        ticket_id: str,
        decision: ApprovalStatus,
        actor_id: Optional[str] = None
    ) -> Ticket:
        """
        Record an approver's decision.

        The decision only feeds the transition guards; moving the ticket
        out of WAITING_APPROVAL is a separate status change.
        """
        decision = ApprovalStatus(decision)
        if decision == ApprovalStatus.PENDING:
            raise ValidationException("Approval decision must be APPROVED or REJECTED")

        async with self._locks.for_ticket(ticket_id):
            ticket = await self.get_ticket(ticket_id)
            if not ticket.requires_approval:
                raise ValidationException(
                    f"Ticket {ticket.code} does not require approval",
                    {"ticket_id": ticket_id}
                )

            updated = await self._ticket_repo.update_with_event(
                ticket_id,
                {"approval_status": decision, "updated_at": self._clock()},
                self._event(
                    ticket_id,
                    TicketEventType.APPROVAL_DECIDED,
                    actor_id,
                    old_value=ticket.approval_status.value if ticket.approval_status else None,
                    new_value=decision.value,
                    description=f"Approval {decision.value.lower()}",
                ),
            )
        return updated

    async def available_transitions(self, ticket_id: str) -> Dict[str, Any]:
        """
        Destinations from the ticket's current status.

        ``valid_transitions`` lists the table entries; ``allowed_transitions``
        keeps those whose guards pass for this ticket right now.
        """
        ticket = await self.get_ticket(ticket_id)
        context = TransitionContext.from_ticket(ticket)
        valid = TicketStateMachine.get_valid_transitions(ticket.status)
        return {
            "ticket_id": ticket.id,
            "current_status": ticket.status,
            "valid_transitions": valid,
            "allowed_transitions": [
                s for s in valid
                if TicketStateMachine.can_transition(ticket.status, s, context)
            ],
        }

    async def list_events(self, ticket_id: str) -> List[TicketEvent]:
        await self.get_ticket(ticket_id)
        return await self._event_repo.list_for_ticket(ticket_id)

    # ========== Helpers ==========

    def _event(
        self,
        ticket_id: str,
        event_type: TicketEventType,
        actor_id: Optional[str],
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TicketEvent:
        return TicketEvent(
            ticket_id=ticket_id,
            event_type=event_type,
            created_at=self._clock(),
            actor_id=actor_id,
            old_value=old_value,
            new_value=new_value,
            description=description,
        )

    async def _record(self, ticket_id: str, event_type: TicketEventType, actor_id: Optional[str], **fields) -> TicketEvent:
        return await self._event_repo.append(self._event(ticket_id, event_type, actor_id, **fields))

    def _notify(
        self,
        notification_type: NotificationType,
        ticket: Ticket,
        message: str,
        user_ids: Optional[List[str]] = None
    ) -> None:
        self._job_queue.enqueue(
            JobType.SEND_NOTIFICATION,
            SendNotificationPayload(
                notification_type=notification_type,
                ticket_id=ticket.id,
                message=message,
                user_ids=user_ids,
            ),
        )
