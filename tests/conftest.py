"""
Shared fixtures: a controllable clock, a recording outbound channel and
a fully wired in-memory core seeded with one organization.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Set

import pytest

from servicedesk.bootstrap import ServiceDeskCore, build_core
from servicedesk.config import Priority, Role, Settings
from servicedesk.core import MessageDeliveryException
from servicedesk.notifications.application import IMessageChannel
from servicedesk.sla.domain import StaticPolicyProvider
from servicedesk.tickets.application import TicketCreateDTO
from servicedesk.tickets.domain import Membership, Team, User

ORG_ID = "org-1"
T0 = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return value

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class SentMessage:
    to: str
    subject: str
    body: str


class RecordingChannel(IMessageChannel):
    """Captures outbound messages; addresses in ``fail_for`` are rejected."""

    def __init__(self):
        self.messages: List[SentMessage] = []
        self.fail_for: Set[str] = set()

    async def send(self, to_address: str, subject: str, body: str) -> None:
        if to_address in self.fail_for:
            raise MessageDeliveryException("test", f"rejected {to_address}")
        self.messages.append(SentMessage(to_address, subject, body))

    def recipients(self) -> List[str]:
        return [m.to for m in self.messages]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        scheduler_enabled=False,
        use_database=False,
        sla_policy_path=Path("does-not-exist.yaml"),
        notification_channel="log",
    )


@pytest.fixture
def core(settings, clock, channel) -> ServiceDeskCore:
    service_core = build_core(
        settings,
        clock=clock,
        channel=channel,
        policy_provider=StaticPolicyProvider(),
    )
    seed_org(service_core)
    return service_core


def seed_org(core: ServiceDeskCore) -> None:
    """
    org-1 with two tiers:
    - Service Desk N1: agent-1 (AGENT), admin-1 (ADMIN), auditor-1 (AUDITOR)
    - Network N2: agent-2 (AGENT), approver-2 (APPROVER)
    """
    teams = core.teams
    users = core.users

    teams.add_team(Team(id="team-n1", org_id=ORG_ID, name="Service Desk N1"))
    teams.add_team(Team(id="team-n2", org_id=ORG_ID, name="Network N2"))

    for user_id in ("requester-1", "agent-1", "admin-1", "auditor-1", "agent-2", "approver-2"):
        users.add(User(id=user_id, org_id=ORG_ID, name=user_id, email=f"{user_id}@acme.test"))

    teams.add_membership(Membership("agent-1", "team-n1", frozenset({Role.AGENT})))
    teams.add_membership(Membership("admin-1", "team-n1", frozenset({Role.ADMIN})))
    teams.add_membership(Membership("auditor-1", "team-n1", frozenset({Role.AUDITOR})))
    teams.add_membership(Membership("agent-2", "team-n2", frozenset({Role.AGENT})))
    teams.add_membership(Membership("approver-2", "team-n2", frozenset({Role.APPROVER})))


def ticket_request(**overrides) -> TicketCreateDTO:
    data = {
        "org_id": ORG_ID,
        "subject": "VPN drops every few minutes",
        "description": "Disconnects every 5 minutes since this morning.",
        "priority": Priority.P3,
        "requester_id": "requester-1",
        "team_id": "team-n1",
    }
    data.update(overrides)
    return TicketCreateDTO(**data)


async def run_jobs_at(core: ServiceDeskCore, clock: FakeClock, when: datetime):
    """Move the clock to ``when`` and run one scheduler tick."""
    clock.set(when)
    return await core.scheduler.tick()
