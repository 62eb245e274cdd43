"""
Application Wiring
==================

Builds the service graph once and registers the job handlers.

Everything the API and the tick loop need hangs off one
``ServiceDeskCore`` instance stored on ``app.state.core``.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from servicedesk.config import JobType, Settings
from servicedesk.escalation.application import EscalationEngine
from servicedesk.notifications.application import IMessageChannel, NotificationDispatcher
from servicedesk.notifications.infrastructure import build_channel
from servicedesk.scheduler.application import DelayedJobScheduler
from servicedesk.scheduler.infrastructure import TickLoop
from servicedesk.shared.infrastructure.clock import Clock, utc_now
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.application import SLABreachService
from servicedesk.sla.domain import SLAPolicyResolver
from servicedesk.sla.infrastructure import SLAPolicyManager
from servicedesk.surveys.application import CSATService, ISurveyRepository, SurveyScheduler
from servicedesk.surveys.infrastructure import InMemorySurveyRepository, SQLAlchemySurveyRepository
from servicedesk.tickets.application import (
    ITeamRepository,
    ITicketEventRepository,
    ITicketRepository,
    IUserRepository,
    TicketLockRegistry,
    TicketWorkflowService,
)
from servicedesk.tickets.infrastructure import (
    InMemoryTeamRepository,
    InMemoryTicketEventRepository,
    InMemoryTicketRepository,
    InMemoryUserRepository,
    SQLAlchemyTeamRepository,
    SQLAlchemyTicketEventRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
)

logger = get_logger(__name__)


@dataclass
class ServiceDeskCore:
    """The wired ticket lifecycle automation core."""
    settings: Settings
    clock: Clock
    scheduler: DelayedJobScheduler
    tick_loop: TickLoop
    policy_provider: object
    resolver: SLAPolicyResolver
    locks: TicketLockRegistry
    tickets: ITicketRepository
    events: ITicketEventRepository
    teams: ITeamRepository
    users: IUserRepository
    surveys: ISurveyRepository
    channel: IMessageChannel
    breach_service: SLABreachService
    escalation: EscalationEngine
    dispatcher: NotificationDispatcher
    survey_scheduler: SurveyScheduler
    csat: CSATService
    workflow: TicketWorkflowService


def register_job_handlers(core: ServiceDeskCore) -> None:
    """Bind every job type to its handler."""
    core.scheduler.register_handler(JobType.CHECK_SLA_BREACH, core.breach_service.check_sla_breach)
    core.scheduler.register_handler(JobType.SEND_NOTIFICATION, core.dispatcher.handle_send_notification)
    core.scheduler.register_handler(JobType.AUTO_ESCALATE, core.escalation.handle_auto_escalate)
    core.scheduler.register_handler(JobType.SEND_CSAT_SURVEY, core.survey_scheduler.send_csat_survey)


def build_core(
    settings: Settings,
    clock: Clock = utc_now,
    channel: Optional[IMessageChannel] = None,
    policy_provider=None,
    ticket_repository: Optional[ITicketRepository] = None,
    event_repository: Optional[ITicketEventRepository] = None,
    team_repository: Optional[ITeamRepository] = None,
    user_repository: Optional[IUserRepository] = None,
    survey_repository: Optional[ISurveyRepository] = None,
) -> ServiceDeskCore:
    """
    Build the core from settings.

    Repositories default to SQLAlchemy when ``settings.use_database`` is
    set, in-memory otherwise. The SLA policy defaults to the YAML file at
    ``settings.sla_policy_path``.
    """
    if policy_provider is None:
        policy_provider = SLAPolicyManager()
        policy_provider.load(settings.sla_policy_path)

    if settings.use_database:
        tickets = ticket_repository or SQLAlchemyTicketRepository()
        events = event_repository or SQLAlchemyTicketEventRepository()
        teams = team_repository or SQLAlchemyTeamRepository()
        users = user_repository or SQLAlchemyUserRepository()
        surveys = survey_repository or SQLAlchemySurveyRepository()
    else:
        events = event_repository or InMemoryTicketEventRepository()
        tickets = ticket_repository or InMemoryTicketRepository(events)
        teams = team_repository or InMemoryTeamRepository()
        users = user_repository or InMemoryUserRepository()
        surveys = survey_repository or InMemorySurveyRepository()

    channel = channel or build_channel(settings)
    scheduler = DelayedJobScheduler.from_settings(settings, clock=clock)
    resolver = SLAPolicyResolver(policy_provider)
    locks = TicketLockRegistry()

    breach_service = SLABreachService(
        tickets,
        events,
        scheduler,
        resolver,
        clock=clock,
        lead=timedelta(minutes=settings.breach_check_lead_minutes),
    )
    escalation = EscalationEngine(
        tickets,
        teams,
        scheduler,
        policy_provider,
        clock=clock,
        locks=locks,
    )
    dispatcher = NotificationDispatcher(tickets, teams, users, channel)
    survey_scheduler = SurveyScheduler(
        tickets,
        users,
        surveys,
        channel,
        scheduler,
        clock=clock,
        delay=timedelta(minutes=settings.csat_delay_minutes),
        frontend_url=settings.frontend_url,
    )
    workflow = TicketWorkflowService(
        tickets,
        events,
        scheduler,
        resolver,
        breach_service,
        survey_scheduler,
        clock=clock,
        locks=locks,
        recompute_due_on_priority_change=settings.recompute_due_on_priority_change,
    )

    core = ServiceDeskCore(
        settings=settings,
        clock=clock,
        scheduler=scheduler,
        tick_loop=TickLoop(scheduler, interval_seconds=settings.scheduler_tick_seconds),
        policy_provider=policy_provider,
        resolver=resolver,
        locks=locks,
        tickets=tickets,
        events=events,
        teams=teams,
        users=users,
        surveys=surveys,
        channel=channel,
        breach_service=breach_service,
        escalation=escalation,
        dispatcher=dispatcher,
        survey_scheduler=survey_scheduler,
        csat=CSATService(surveys, clock=clock),
        workflow=workflow,
    )
    register_job_handlers(core)

    logger.info(
        "Service core built",
        extra={
            "persistence": "database" if settings.use_database else "memory",
            "notification_channel": settings.notification_channel,
        }
    )
    return core
