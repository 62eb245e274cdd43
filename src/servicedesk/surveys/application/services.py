"""
Survey Application Services
===========================

- SurveyScheduler: deferred CSAT survey dispatch after resolution
- CSATService: survey responses and metrics
"""

import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional

from servicedesk.config import JobType, TicketStatus
from servicedesk.core import (
    MessageDeliveryException,
    ResourceNotFoundException,
    RetryableJobError,
    TerminalJobError,
)
from servicedesk.notifications.application import IMessageChannel, render_csat_email
from servicedesk.scheduler.application.services import IJobQueue
from servicedesk.scheduler.domain import SendCSATSurveyPayload
from servicedesk.shared.infrastructure.clock import Clock, utc_now
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.surveys.domain import CSATMetrics, CSATSurvey
from servicedesk.tickets.application.services import ITicketRepository, IUserRepository
from servicedesk.tickets.domain import Ticket

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class ISurveyRepository(ABC):
    """Interface for CSAT survey data access."""

    @abstractmethod
    async def create(self, survey: CSATSurvey) -> CSATSurvey:
        """Persist a new survey."""

    @abstractmethod
    async def update(self, survey: CSATSurvey) -> CSATSurvey:
        """Persist a survey's response fields."""

    @abstractmethod
    async def delete(self, survey_id: str) -> None:
        """Remove a survey whose e-mail never went out. Unknown ids are ignored."""

    @abstractmethod
    async def get_by_token(self, token: str) -> Optional[CSATSurvey]:
        """Get survey by its access token."""

    @abstractmethod
    async def latest_for_ticket(self, ticket_id: str) -> Optional[CSATSurvey]:
        """Most recently sent survey of a ticket."""

    @abstractmethod
    async def list_for_org(
        self,
        org_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[CSATSurvey]:
        """Surveys of an organization created within ``[start, end]``."""


# ========== Application Services ==========

class SurveyScheduler:
    """
    Sends the CSAT survey a fixed delay after a ticket is resolved.

    The handler re-reads the ticket when the job fires: a ticket reopened
    in the meantime gets no survey.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        user_repository: IUserRepository,
        survey_repository: ISurveyRepository,
        channel: IMessageChannel,
        job_queue: IJobQueue,
        clock: Clock = utc_now,
        delay: timedelta = timedelta(minutes=30),
        frontend_url: str = "http://localhost:5000",
    ):
        self._ticket_repo = ticket_repository
        self._user_repo = user_repository
        self._survey_repo = survey_repository
        self._channel = channel
        self._job_queue = job_queue
        self._clock = clock
        self._delay = delay
        self._frontend_url = frontend_url.rstrip("/")

    def schedule_survey(self, ticket: Ticket, resolved_at: datetime) -> str:
        """Enqueue the survey for ``resolved_at + delay``."""
        job_id = self._job_queue.enqueue(
            JobType.SEND_CSAT_SURVEY,
            SendCSATSurveyPayload(ticket_id=ticket.id),
            scheduled_for=resolved_at + self._delay,
        )
        logger.debug(
            "CSAT survey scheduled",
            extra={"ticket_id": ticket.id, "job_id": job_id}
        )
        return job_id

    def survey_url(self, token: str) -> str:
        return f"{self._frontend_url}/csat/{token}"

    async def send_csat_survey(self, payload: SendCSATSurveyPayload) -> Optional[CSATSurvey]:
        """
        Job handler for ``SEND_CSAT_SURVEY``.

        Returns:
            The sent survey, or None when sending was declined

        Raises:
            TerminalJobError: Ticket or requester missing or inactive
            RetryableJobError: The e-mail could not be delivered
        """
        ticket = await self._ticket_repo.get(payload.ticket_id)
        if ticket is None:
            raise TerminalJobError(
                f"Ticket {payload.ticket_id} not found",
                {"ticket_id": payload.ticket_id}
            )

        if ticket.status != TicketStatus.RESOLVED:
            logger.info(
                "CSAT survey declined, ticket no longer resolved",
                extra={"ticket_id": ticket.id, "status": ticket.status.value}
            )
            return None

        previous = await self._survey_repo.latest_for_ticket(ticket.id)
        if previous is not None and ticket.resolved_at and previous.sent_at >= ticket.resolved_at:
            logger.info(
                "CSAT survey already sent for this resolution",
                extra={"ticket_id": ticket.id, "survey_id": previous.id}
            )
            return None

        requester = await self._user_repo.get(ticket.requester_id)
        if requester is None or not requester.is_active or not requester.email:
            raise TerminalJobError(
                f"Requester {ticket.requester_id} cannot receive surveys",
                {"ticket_id": ticket.id, "requester_id": ticket.requester_id}
            )

        now = self._clock()
        survey = CSATSurvey(
            ticket_id=ticket.id,
            org_id=ticket.org_id,
            requester_id=requester.id,
            token=secrets.token_urlsafe(24),
            sent_at=now,
            created_at=now,
        )
        subject, body = render_csat_email(ticket, self.survey_url(survey.token))

        # Stored before sending: a link that reached the requester always resolves
        survey = await self._survey_repo.create(survey)
        try:
            await self._channel.send(requester.email, subject, body)
        except MessageDeliveryException as e:
            await self._survey_repo.delete(survey.id)
            raise RetryableJobError(e.message, {"ticket_id": ticket.id}) from e

        logger.info("CSAT survey sent", extra={"ticket_id": ticket.id, "survey_id": survey.id})
        return survey


class CSATService:
    """Survey responses and CSAT metrics."""

    def __init__(self, survey_repository: ISurveyRepository, clock: Clock = utc_now):
        self._survey_repo = survey_repository
        self._clock = clock

    async def get_by_token(self, token: str) -> CSATSurvey:
        survey = await self._survey_repo.get_by_token(token)
        if survey is None:
            raise ResourceNotFoundException("Survey")
        return survey

    async def submit_response(
        self,
        token: str,
        score: int,
        comment: Optional[str] = None
    ) -> CSATSurvey:
        """
        Record the single response of a survey.

        Raises:
            ResourceNotFoundException: Unknown token
            SurveyAlreadyRespondedException: Survey already answered
            ValidationException: Score outside 1..5
        """
        survey = await self.get_by_token(token)
        survey.respond(score, comment, self._clock())
        survey = await self._survey_repo.update(survey)

        logger.info("CSAT response recorded", extra={"survey_id": survey.id, "score": score})
        return survey

    async def get_metrics(
        self,
        org_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> CSATMetrics:
        surveys = await self._survey_repo.list_for_org(org_id, start, end)
        return CSATMetrics.from_surveys(surveys)
