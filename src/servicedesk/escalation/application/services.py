"""
Escalation Application Services
===============================

Auto-escalation of breached tickets along the organization's team chain.
"""

from dataclasses import dataclass
from typing import Optional

from servicedesk.config import JobType, NotificationType, TicketEventType
from servicedesk.core import MissingEscalationTargetException, TerminalJobError
from servicedesk.escalation.domain import EscalationPolicy
from servicedesk.scheduler.application.services import IJobQueue
from servicedesk.scheduler.domain import AutoEscalatePayload, SendNotificationPayload
from servicedesk.shared.infrastructure.clock import Clock, utc_now
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.tickets.application.services import (
    ITeamRepository,
    ITicketRepository,
    TicketLockRegistry,
)
from servicedesk.tickets.domain import TicketEvent

logger = get_logger(__name__)


@dataclass(frozen=True)
class EscalationResult:
    ticket_id: str
    escalated: bool
    reason: str
    from_team_id: Optional[str] = None
    to_team_id: Optional[str] = None


class EscalationEngine:
    """
    Moves a ticket to the next team in its organization's escalation chain.

    The chain comes from ``escalation.chains`` in the SLA policy file; an
    organization without an explicit chain falls back to tier tokens in
    team names. Reaching the top of the chain is an operational error,
    never a silent no-op.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        team_repository: ITeamRepository,
        job_queue: IJobQueue,
        policy_provider,
        clock: Clock = utc_now,
        locks: Optional[TicketLockRegistry] = None,
    ):
        self._ticket_repo = ticket_repository
        self._team_repo = team_repository
        self._job_queue = job_queue
        self._policy_provider = policy_provider
        self._clock = clock
        self._locks = locks or TicketLockRegistry()

    async def policy_for_org(self, org_id: str) -> EscalationPolicy:
        chain = self._policy_provider.policy.escalation.chains.get(org_id)
        if chain:
            return EscalationPolicy.from_chain(org_id, chain)
        teams = await self._team_repo.teams_by_org(org_id)
        return EscalationPolicy.derive_from_team_names(org_id, teams)

    async def _first_active(self, team_ids):
        for team_id in team_ids:
            team = await self._team_repo.get(team_id)
            if team is not None and team.is_active:
                return team
        return None

    async def auto_escalate(
        self,
        ticket_id: str,
        reason: str = "SLA breach",
        from_team_id: Optional[str] = None,
    ) -> EscalationResult:
        """
        Escalate a ticket one level.

        Clears the assignee so the receiving team can self-assign;
        requester and priority are untouched. Inactive teams in the chain
        are passed over. When ``from_team_id`` is given and the ticket has
        already left that team, nothing happens, so a retried job never
        escalates twice.

        Raises:
            TerminalJobError: The ticket no longer exists
            MissingEscalationTargetException: No team above the current one
        """
        async with self._locks.for_ticket(ticket_id):
            ticket = await self._ticket_repo.get(ticket_id)
            if ticket is None:
                raise TerminalJobError(f"Ticket {ticket_id} not found", {"ticket_id": ticket_id})

            if ticket.is_finished:
                logger.info(
                    "Escalation skipped, ticket finished",
                    extra={"ticket_id": ticket_id, "status": ticket.status.value}
                )
                return EscalationResult(ticket_id, False, "finished", from_team_id=ticket.team_id)

            if from_team_id is not None and ticket.team_id != from_team_id:
                logger.info(
                    "Escalation skipped, ticket already moved",
                    extra={
                        "ticket_id": ticket_id,
                        "from_team_id": from_team_id,
                        "team_id": ticket.team_id,
                    }
                )
                return EscalationResult(ticket_id, False, "already_escalated", from_team_id=ticket.team_id)

            if ticket.team_id is None:
                raise MissingEscalationTargetException(ticket_id, None)

            policy = await self.policy_for_org(ticket.org_id)
            candidates = policy.teams_above(ticket.team_id)
            target = await self._first_active(candidates)
            if target is None:
                raise MissingEscalationTargetException(
                    ticket_id,
                    ticket.team_id,
                    {
                        "ticket_id": ticket_id,
                        "team_id": ticket.team_id,
                        "org_id": ticket.org_id,
                        "chain_source": policy.source,
                        "candidate_team_ids": list(candidates),
                    }
                )

            now = self._clock()
            await self._ticket_repo.update_with_event(
                ticket_id,
                {"team_id": target.id, "assignee_id": None, "updated_at": now},
                TicketEvent(
                    ticket_id=ticket_id,
                    event_type=TicketEventType.ESCALATED,
                    created_at=now,
                    old_value=ticket.team_id,
                    new_value=target.id,
                    description=f"Auto-escalated to {target.name}: {reason}",
                )
            )

        self._job_queue.enqueue(
            JobType.SEND_NOTIFICATION,
            SendNotificationPayload(
                notification_type=NotificationType.TICKET_ESCALATED,
                ticket_id=ticket_id,
                message=f"Ticket escalated to {target.name} ({reason})",
            ),
        )

        logger.info(
            "Ticket escalated",
            extra={
                "ticket_id": ticket_id,
                "from_team_id": ticket.team_id,
                "to_team_id": target.id,
                "reason": reason,
            }
        )
        return EscalationResult(
            ticket_id, True, reason, from_team_id=ticket.team_id, to_team_id=target.id
        )

    async def handle_auto_escalate(self, payload: AutoEscalatePayload) -> EscalationResult:
        """Job handler for ``AUTO_ESCALATE``."""
        return await self.auto_escalate(payload.ticket_id, payload.reason, payload.from_team_id)
