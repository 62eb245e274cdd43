"""
Notification Application Services
=================================

Recipient resolution and per-recipient delivery.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from servicedesk.config import NotificationType, TEAM_ALERT_ROLES, Role
from servicedesk.core import ResourceNotFoundException, RetryableJobError, TerminalJobError
from servicedesk.notifications.application.templates import render_body, render_subject
from servicedesk.notifications.domain import RECIPIENT_POLICY, DispatchReport, RecipientStrategy
from servicedesk.scheduler.domain import SendNotificationPayload
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.tickets.application.services import (
    ITeamRepository,
    ITicketRepository,
    IUserRepository,
)
from servicedesk.tickets.domain import Ticket

logger = get_logger(__name__)


class IMessageChannel(ABC):
    """Outbound message transport (SMTP, webhook, log)."""

    @abstractmethod
    async def send(self, to_address: str, subject: str, body: str) -> None:
        """
        Deliver one message.

        Raises:
            MessageDeliveryException: The message was not delivered
        """


class NotificationDispatcher:
    """
    Fans a ticket notification out to its recipients.

    One message per recipient; a failure for one recipient is logged and
    the rest still receive theirs.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        team_repository: ITeamRepository,
        user_repository: IUserRepository,
        channel: IMessageChannel,
    ):
        self._ticket_repo = ticket_repository
        self._team_repo = team_repository
        self._user_repo = user_repository
        self._channel = channel

    async def resolve_recipients(
        self,
        notification_type: NotificationType,
        ticket: Ticket,
        explicit_user_ids: Optional[Sequence[str]] = None
    ) -> List[str]:
        """
        User ids that should receive the notification, duplicates removed.

        ``explicit_user_ids`` (even an empty list) overrides the type's policy.
        """
        if explicit_user_ids is not None:
            candidates = list(explicit_user_ids)
        else:
            strategy = RECIPIENT_POLICY[NotificationType(notification_type)]
            if strategy == RecipientStrategy.ASSIGNEE:
                candidates = [ticket.assignee_id] if ticket.assignee_id else []
            elif strategy == RecipientStrategy.REQUESTER:
                candidates = [ticket.requester_id]
            elif strategy == RecipientStrategy.TEAM_APPROVERS:
                candidates = await self._team_members(ticket, frozenset({Role.APPROVER}))
            else:
                candidates = await self._team_members(ticket, TEAM_ALERT_ROLES)

        return list(dict.fromkeys(c for c in candidates if c))

    async def _team_members(self, ticket: Ticket, roles: frozenset) -> List[str]:
        if not ticket.team_id:
            return []
        memberships = await self._team_repo.members_by_team(ticket.team_id)
        return [m.user_id for m in memberships if m.is_active and m.has_any_role(roles)]

    async def notify(
        self,
        notification_type: NotificationType,
        ticket_id: str,
        message: str,
        explicit_user_ids: Optional[Sequence[str]] = None
    ) -> DispatchReport:
        """
        Send a notification about a ticket.

        Args:
            notification_type: Selects the recipient policy and template
            ticket_id: Ticket the notification is about
            message: Short human-readable summary, used in the subject
            explicit_user_ids: Recipients overriding the policy

        Returns:
            DispatchReport with per-recipient outcome

        Raises:
            ResourceNotFoundException: Unknown ticket
        """
        notification_type = NotificationType(notification_type)
        ticket = await self._ticket_repo.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        report = DispatchReport(notification_type=notification_type, ticket_id=ticket_id)
        report.recipients = await self.resolve_recipients(notification_type, ticket, explicit_user_ids)

        if report.recipients_empty:
            logger.warning(
                "Notification has no recipients",
                extra={
                    "notification_type": notification_type.value,
                    "ticket_id": ticket_id,
                    "team_id": ticket.team_id,
                    "assignee_id": ticket.assignee_id,
                }
            )
            return report

        subject = render_subject(ticket, message)
        body = render_body(notification_type, ticket, message)

        for user_id in report.recipients:
            user = await self._user_repo.get(user_id)
            if user is None or not user.is_active or not user.email:
                report.skipped.append(user_id)
                continue

            try:
                await self._channel.send(user.email, subject, body)
            except Exception as e:
                report.failed[user_id] = str(e)
                logger.error(
                    "Notification delivery failed",
                    extra={
                        "notification_type": notification_type.value,
                        "ticket_id": ticket_id,
                        "user_id": user_id,
                        "error": str(e),
                    }
                )
                continue
            report.sent.append(user_id)

        logger.info(
            "Notification dispatched",
            extra={
                "notification_type": notification_type.value,
                "ticket_id": ticket_id,
                "sent": len(report.sent),
                "failed": len(report.failed),
                "skipped": len(report.skipped),
            }
        )
        return report

    async def handle_send_notification(self, payload: SendNotificationPayload) -> DispatchReport:
        """
        Job handler for ``SEND_NOTIFICATION``.

        A missing ticket is terminal. When every delivery failed nobody
        has been notified yet, so the job is retried.
        """
        try:
            report = await self.notify(
                payload.notification_type,
                payload.ticket_id,
                payload.message,
                payload.user_ids,
            )
        except ResourceNotFoundException as e:
            raise TerminalJobError(e.message, {"ticket_id": payload.ticket_id}) from e

        if report.all_failed:
            raise RetryableJobError(
                f"All {len(report.failed)} deliveries failed",
                {"ticket_id": payload.ticket_id, "failed": report.failed}
            )
        return report
