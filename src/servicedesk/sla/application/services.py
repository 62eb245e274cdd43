"""
SLA Application Services
========================

Breach detection for ticket resolution deadlines.

Checks are deferred jobs: scheduled when a ticket is created, executed by
the scheduler tick, and always re-read the current ticket before deciding.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from servicedesk.config import JobType, NotificationType, OPEN_STATUSES, TicketEventType
from servicedesk.core import TerminalJobError
from servicedesk.scheduler.application.services import IJobQueue
from servicedesk.scheduler.domain import (
    AutoEscalatePayload,
    CheckSLABreachPayload,
    SendNotificationPayload,
)
from servicedesk.shared.infrastructure.clock import Clock, utc_now
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.domain import SLADeadline, SLAPolicyResolver
from servicedesk.tickets.application.services import ITicketEventRepository, ITicketRepository
from servicedesk.tickets.domain import Ticket, TicketEvent

logger = get_logger(__name__)

# A check landing exactly on the deadline is not yet a breach; look again just after it
_REARM_DELAY = timedelta(seconds=1)


@dataclass(frozen=True)
class BreachCheckResult:
    """
    Outcome of one breach check.

    ``reason`` is one of: ``breached``, ``finished``, ``no_due_date``,
    ``not_due``, ``already_recorded``.
    """
    ticket_id: str
    breached: bool
    reason: str
    checked_at: datetime
    due_at: Optional[datetime] = None


class SLABreachService:
    """
    Schedules and runs SLA breach checks.

    A breach records an ``SLA_BREACHED`` event for the deadline and
    enqueues a breach notification plus an auto-escalation. The event
    makes the check idempotent: a second check for the same deadline
    does nothing.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        event_repository: ITicketEventRepository,
        job_queue: IJobQueue,
        resolver: SLAPolicyResolver,
        clock: Clock = utc_now,
        lead: timedelta = timedelta(hours=1),
    ):
        self._ticket_repo = ticket_repository
        self._event_repo = event_repository
        self._job_queue = job_queue
        self._resolver = resolver
        self._clock = clock
        self._lead = lead

    def schedule_breach_checks(self, ticket: Ticket, now: Optional[datetime] = None) -> List[str]:
        """
        Enqueue breach checks for the ticket's current deadline.

        One check ``lead`` before ``due_at`` (if that is still ahead) and
        one at ``due_at``.

        Returns:
            The enqueued job ids
        """
        if ticket.due_at is None or ticket.is_finished:
            return []

        now = now or self._clock()
        job_ids = [
            self._job_queue.enqueue(
                JobType.CHECK_SLA_BREACH,
                CheckSLABreachPayload(ticket_id=ticket.id),
                scheduled_for=at,
            )
            for at in self._resolver.breach_check_times(ticket.due_at, now, self._lead)
        ]

        logger.debug(
            "Breach checks scheduled",
            extra={"ticket_id": ticket.id, "due_at": ticket.due_at.isoformat(), "jobs": len(job_ids)}
        )
        return job_ids

    async def check_sla_breach(self, payload: CheckSLABreachPayload) -> BreachCheckResult:
        """
        Job handler for ``CHECK_SLA_BREACH``.

        Raises:
            TerminalJobError: The ticket no longer exists
        """
        now = self._clock()
        ticket = await self._ticket_repo.get(payload.ticket_id)
        if ticket is None:
            raise TerminalJobError(
                f"Ticket {payload.ticket_id} not found",
                {"ticket_id": payload.ticket_id}
            )

        if ticket.is_finished:
            return BreachCheckResult(ticket.id, False, "finished", now, ticket.due_at)

        if ticket.due_at is None:
            return BreachCheckResult(ticket.id, False, "no_due_date", now)

        if not ticket.is_breached(now):
            if now >= ticket.due_at:
                self._job_queue.enqueue(
                    JobType.CHECK_SLA_BREACH,
                    CheckSLABreachPayload(ticket_id=ticket.id),
                    scheduled_for=ticket.due_at + _REARM_DELAY,
                )
            return BreachCheckResult(ticket.id, False, "not_due", now, ticket.due_at)

        due_marker = ticket.due_at.isoformat()
        events = await self._event_repo.list_for_ticket(ticket.id)
        if any(
            e.event_type == TicketEventType.SLA_BREACHED and e.new_value == due_marker
            for e in events
        ):
            return BreachCheckResult(ticket.id, False, "already_recorded", now, ticket.due_at)

        deadline = SLADeadline(
            ticket_id=ticket.id,
            priority=ticket.priority,
            created_at=ticket.created_at,
            deadline=ticket.due_at,
        )
        overdue = deadline.minutes_overdue(now)

        await self._event_repo.append(
            TicketEvent(
                ticket_id=ticket.id,
                event_type=TicketEventType.SLA_BREACHED,
                created_at=now,
                new_value=due_marker,
                description=f"SLA breached, {overdue:.0f} minutes overdue",
            )
        )
        self._job_queue.enqueue(
            JobType.SEND_NOTIFICATION,
            SendNotificationPayload(
                notification_type=NotificationType.SLA_BREACH,
                ticket_id=ticket.id,
                message=f"SLA breached: {ticket.priority.value} ticket was due at {due_marker}",
            ),
        )
        self._job_queue.enqueue(
            JobType.AUTO_ESCALATE,
            AutoEscalatePayload(ticket_id=ticket.id, reason="SLA breach", from_team_id=ticket.team_id),
        )

        logger.warning(
            "SLA breached",
            extra={
                "ticket_id": ticket.id,
                "code": ticket.code,
                "priority": ticket.priority.value,
                "due_at": due_marker,
                "minutes_overdue": round(overdue, 1),
            }
        )
        return BreachCheckResult(ticket.id, True, "breached", now, ticket.due_at)

    async def resync_open_tickets(self, org_id: Optional[str] = None, batch_size: int = 500) -> int:
        """
        Re-create breach checks for open tickets after a restart.

        Jobs live in memory only, so checks scheduled before the restart
        are gone. Tickets already past their deadline get an immediate check.

        Returns:
            Number of tickets that received checks
        """
        now = self._clock()
        filters: dict = {"status": list(OPEN_STATUSES)}
        if org_id:
            filters["org_id"] = org_id

        scheduled = 0
        offset = 0
        while True:
            tickets = await self._ticket_repo.list(filters, limit=batch_size, offset=offset)
            for ticket in tickets:
                if ticket.due_at is None or ticket.is_finished:
                    continue
                if ticket.due_at > now:
                    self.schedule_breach_checks(ticket, now)
                else:
                    self._job_queue.enqueue(
                        JobType.CHECK_SLA_BREACH,
                        CheckSLABreachPayload(ticket_id=ticket.id),
                        scheduled_for=now,
                    )
                scheduled += 1
            if len(tickets) < batch_size:
                break
            offset += batch_size

        logger.info("Breach checks resynced", extra={"org_id": org_id, "tickets": scheduled})
        return scheduled
