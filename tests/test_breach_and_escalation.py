"""
Tests for SLA breach detection and auto-escalation.

Scenarios run through the real scheduler tick with a fixed clock.
"""

from datetime import datetime, timedelta, timezone

import pytest

from servicedesk.bootstrap import build_core
from servicedesk.config import JobType, NotificationType, TicketEventType, TicketStatus
from servicedesk.core import MissingEscalationTargetException, TerminalJobError
from servicedesk.escalation.domain import EscalationPolicy, tier_of
from servicedesk.scheduler.domain import AutoEscalatePayload, CheckSLABreachPayload
from servicedesk.sla.domain import SLAPolicy, StaticPolicyProvider
from servicedesk.tickets.domain import Team

from conftest import ORG_ID, T0, run_jobs_at, seed_org, ticket_request

DUE = datetime(2024, 1, 3, tzinfo=timezone.utc)


async def resolve(core, ticket_id):
    await core.workflow.change_status(ticket_id, TicketStatus.TRIAGE)
    await core.workflow.change_status(ticket_id, TicketStatus.IN_PROGRESS)
    return await core.workflow.change_status(ticket_id, TicketStatus.RESOLVED)


def events_of_type(events, event_type):
    return [e for e in events if e.event_type == event_type]


class TestBreachScheduling:
    async def test_p3_ticket_gets_two_breach_checks(self, core):
        ticket = await core.workflow.create_ticket(ticket_request(assignee_id="agent-1"))

        checks = core.scheduler.pending_jobs(JobType.CHECK_SLA_BREACH)

        assert ticket.due_at == DUE
        assert sorted(job.scheduled_for for job in checks) == [
            datetime(2024, 1, 2, 23, 0, tzinfo=timezone.utc),
            DUE,
        ]
        assert all(job.payload.ticket_id == ticket.id for job in checks)

    async def test_early_check_before_deadline_finds_nothing(self, core, clock):
        ticket = await core.workflow.create_ticket(ticket_request())
        clock.set(DUE - timedelta(hours=1))

        result = await core.breach_service.check_sla_breach(CheckSLABreachPayload(ticket_id=ticket.id))

        assert result.breached is False
        assert result.reason == "not_due"

    async def test_check_exactly_at_deadline_rearms(self, core, clock):
        ticket = await core.workflow.create_ticket(ticket_request())
        clock.set(DUE)
        before = len(core.scheduler.pending_jobs(JobType.CHECK_SLA_BREACH))

        result = await core.breach_service.check_sla_breach(CheckSLABreachPayload(ticket_id=ticket.id))

        rearmed = [
            job for job in core.scheduler.pending_jobs(JobType.CHECK_SLA_BREACH)
            if job.scheduled_for == DUE + timedelta(seconds=1)
        ]
        assert result.breached is False
        assert len(core.scheduler.pending_jobs(JobType.CHECK_SLA_BREACH)) == before + 1
        assert len(rearmed) == 1

    async def test_missing_ticket_is_terminal(self, core):
        with pytest.raises(TerminalJobError):
            await core.breach_service.check_sla_breach(CheckSLABreachPayload(ticket_id="nope"))


class TestBreachDetection:
    async def test_overdue_ticket_records_breach_and_enqueues_follow_ups(self, core, clock):
        ticket = await core.workflow.create_ticket(ticket_request(assignee_id="agent-1"))
        clock.set(DUE + timedelta(minutes=5))

        result = await core.breach_service.check_sla_breach(CheckSLABreachPayload(ticket_id=ticket.id))

        assert result.breached is True
        breaches = events_of_type(await core.events.list_for_ticket(ticket.id), TicketEventType.SLA_BREACHED)
        assert len(breaches) == 1
        assert breaches[0].actor_id is None
        assert breaches[0].new_value == DUE.isoformat()

        escalations = core.scheduler.pending_jobs(JobType.AUTO_ESCALATE)
        assert [job.payload.ticket_id for job in escalations] == [ticket.id]
        assert escalations[0].payload.from_team_id == "team-n1"
        breach_notices = [
            job for job in core.scheduler.pending_jobs(JobType.SEND_NOTIFICATION)
            if job.payload.notification_type == NotificationType.SLA_BREACH
        ]
        assert len(breach_notices) == 1

    async def test_breach_is_recorded_once_per_deadline(self, core, clock):
        ticket = await core.workflow.create_ticket(ticket_request())
        payload = CheckSLABreachPayload(ticket_id=ticket.id)
        clock.set(DUE + timedelta(minutes=5))

        first = await core.breach_service.check_sla_breach(payload)
        second = await core.breach_service.check_sla_breach(payload)

        assert first.breached is True
        assert second.reason == "already_recorded"
        assert len(core.scheduler.pending_jobs(JobType.AUTO_ESCALATE)) == 1

    async def test_resolved_ticket_never_breaches(self, core, clock):
        ticket = await core.workflow.create_ticket(ticket_request(assignee_id="agent-1"))
        clock.set(T0 + timedelta(hours=1))
        await resolve(core, ticket.id)

        clock.set(DUE + timedelta(days=1))
        result = await core.breach_service.check_sla_breach(CheckSLABreachPayload(ticket_id=ticket.id))

        assert result.breached is False
        assert result.reason == "finished"
        assert core.scheduler.pending_jobs(JobType.AUTO_ESCALATE) == []

    async def test_canceled_ticket_never_breaches(self, core, clock):
        ticket = await core.workflow.create_ticket(ticket_request())
        await core.workflow.change_status(ticket.id, TicketStatus.CANCELED)

        clock.set(DUE + timedelta(hours=2))
        result = await core.breach_service.check_sla_breach(CheckSLABreachPayload(ticket_id=ticket.id))

        assert result.reason == "finished"


class TestEndToEnd:
    async def test_breach_notifies_operators_and_escalates_to_next_tier(self, core, clock, channel):
        ticket = await core.workflow.create_ticket(ticket_request(assignee_id="agent-1"))
        await run_jobs_at(core, clock, T0)
        channel.messages.clear()

        await run_jobs_at(core, clock, DUE - timedelta(hours=1))
        await run_jobs_at(core, clock, DUE)
        assert core.scheduler.pending_jobs(JobType.AUTO_ESCALATE) == []

        # Re-armed check fires just after the deadline
        await run_jobs_at(core, clock, DUE + timedelta(seconds=1))
        assert len(core.scheduler.pending_jobs(JobType.AUTO_ESCALATE)) == 1

        # Breach notification goes to team N1, then the ticket moves to N2
        await run_jobs_at(core, clock, DUE + timedelta(seconds=1))
        assert channel.recipients() == ["agent-1@acme.test", "admin-1@acme.test"]

        escalated = await core.tickets.get(ticket.id)
        assert escalated.team_id == "team-n2"
        assert escalated.assignee_id is None
        assert escalated.requester_id == ticket.requester_id
        assert escalated.priority == ticket.priority
        assert escalated.status == ticket.status

        # Escalation notice reaches the receiving team
        channel.messages.clear()
        await run_jobs_at(core, clock, DUE + timedelta(seconds=1))
        assert channel.recipients() == ["agent-2@acme.test"]

        events = await core.events.list_for_ticket(ticket.id)
        escalations = events_of_type(events, TicketEventType.ESCALATED)
        assert len(escalations) == 1
        assert escalations[0].old_value == "team-n1"
        assert escalations[0].new_value == "team-n2"
        assert escalations[0].actor_id is None
        assert core.scheduler.dead_letters == []


class TestEscalationEngine:
    async def test_top_tier_raises_missing_target(self, core):
        ticket = await core.workflow.create_ticket(ticket_request(team_id="team-n2"))

        with pytest.raises(MissingEscalationTargetException) as exc_info:
            await core.escalation.auto_escalate(ticket.id)

        assert exc_info.value.team_id == "team-n2"
        unchanged = await core.tickets.get(ticket.id)
        assert unchanged.team_id == "team-n2"

    async def test_missing_target_is_dead_lettered(self, core, clock):
        ticket = await core.workflow.create_ticket(ticket_request(team_id="team-n2"))
        core.scheduler.enqueue(JobType.AUTO_ESCALATE, {"ticket_id": ticket.id})

        await run_jobs_at(core, clock, T0)

        dead = [j for j in core.scheduler.dead_letters if j.type == JobType.AUTO_ESCALATE]
        assert len(dead) == 1
        assert dead[0].attempts == 1
        assert "No escalation target" in dead[0].last_error

    async def test_ticket_without_team_has_no_target(self, core):
        ticket = await core.workflow.create_ticket(ticket_request(team_id=None))

        with pytest.raises(MissingEscalationTargetException):
            await core.escalation.auto_escalate(ticket.id)

    async def test_inactive_next_tier_is_skipped_in_derived_chain(self, core):
        core.teams.add_team(Team(id="team-n2", org_id=ORG_ID, name="Network N2", is_active=False))
        ticket = await core.workflow.create_ticket(ticket_request())

        with pytest.raises(MissingEscalationTargetException):
            await core.escalation.auto_escalate(ticket.id)

    async def test_finished_ticket_is_not_escalated(self, core):
        ticket = await core.workflow.create_ticket(ticket_request())
        await core.workflow.change_status(ticket.id, TicketStatus.CANCELED)

        result = await core.escalation.auto_escalate(ticket.id)

        assert result.escalated is False
        assert (await core.tickets.get(ticket.id)).team_id == "team-n1"

    async def test_explicit_chain_overrides_team_names(self, settings, clock, channel):
        policy = SLAPolicy(escalation={"chains": {ORG_ID: ["team-n1", "team-major"]}})
        core = build_core(
            settings,
            clock=clock,
            channel=channel,
            policy_provider=StaticPolicyProvider(policy),
        )
        seed_org(core)
        core.teams.add_team(Team(id="team-major", org_id=ORG_ID, name="Major Incidents"))
        ticket = await core.workflow.create_ticket(ticket_request(assignee_id="agent-1"))

        result = await core.escalation.auto_escalate(ticket.id, reason="manual")

        assert result.escalated is True
        assert result.to_team_id == "team-major"
        assert (await core.tickets.get(ticket.id)).team_id == "team-major"

    async def test_inactive_team_in_explicit_chain_is_skipped(self, settings, clock, channel):
        policy = SLAPolicy(escalation={"chains": {ORG_ID: ["team-n1", "team-n2", "team-major"]}})
        core = build_core(
            settings,
            clock=clock,
            channel=channel,
            policy_provider=StaticPolicyProvider(policy),
        )
        seed_org(core)
        core.teams.add_team(Team(id="team-n2", org_id=ORG_ID, name="Network N2", is_active=False))
        core.teams.add_team(Team(id="team-major", org_id=ORG_ID, name="Major Incidents"))
        ticket = await core.workflow.create_ticket(ticket_request())

        result = await core.escalation.auto_escalate(ticket.id)

        assert result.to_team_id == "team-major"
        escalations = events_of_type(await core.events.list_for_ticket(ticket.id), TicketEventType.ESCALATED)
        assert [e.new_value for e in escalations] == ["team-major"]

    async def test_explicit_chain_with_only_inactive_teams_above_raises(self, settings, clock, channel):
        policy = SLAPolicy(escalation={"chains": {ORG_ID: ["team-n1", "team-n2"]}})
        core = build_core(
            settings,
            clock=clock,
            channel=channel,
            policy_provider=StaticPolicyProvider(policy),
        )
        seed_org(core)
        core.teams.add_team(Team(id="team-n2", org_id=ORG_ID, name="Network N2", is_active=False))
        ticket = await core.workflow.create_ticket(ticket_request())

        with pytest.raises(MissingEscalationTargetException):
            await core.escalation.auto_escalate(ticket.id)

    async def test_repeated_job_for_one_breach_escalates_once(self, core):
        core.teams.add_team(Team(id="team-n3", org_id=ORG_ID, name="Ops N3"))
        ticket = await core.workflow.create_ticket(ticket_request())
        payload = AutoEscalatePayload(ticket_id=ticket.id, from_team_id="team-n1")

        first = await core.escalation.handle_auto_escalate(payload)
        second = await core.escalation.handle_auto_escalate(payload)

        assert first.to_team_id == "team-n2"
        assert second.escalated is False
        assert second.reason == "already_escalated"
        assert (await core.tickets.get(ticket.id)).team_id == "team-n2"

    async def test_failed_event_write_is_retried_without_double_escalation(self, core, clock, monkeypatch):
        core.teams.add_team(Team(id="team-n3", org_id=ORG_ID, name="Ops N3"))
        ticket = await core.workflow.create_ticket(ticket_request())
        real_append = core.events.append
        failures = []

        async def flaky_append(event):
            if event.event_type == TicketEventType.ESCALATED and not failures:
                failures.append(event)
                raise ConnectionError("event store unavailable")
            return await real_append(event)

        monkeypatch.setattr(core.events, "append", flaky_append)
        core.scheduler.enqueue(
            JobType.AUTO_ESCALATE,
            AutoEscalatePayload(ticket_id=ticket.id, from_team_id="team-n1"),
        )

        await run_jobs_at(core, clock, T0)
        assert (await core.tickets.get(ticket.id)).team_id == "team-n1"

        await run_jobs_at(core, clock, T0 + timedelta(minutes=5))

        assert len(failures) == 1
        assert (await core.tickets.get(ticket.id)).team_id == "team-n2"
        escalations = events_of_type(await core.events.list_for_ticket(ticket.id), TicketEventType.ESCALATED)
        assert len(escalations) == 1
        assert escalations[0].new_value == "team-n2"
        assert core.scheduler.dead_letters == []


class TestEscalationPolicy:
    @pytest.mark.parametrize("name,tier", [
        ("Service Desk N1", 1),
        ("N2-Network", 2),
        ("Tier N10 experts", 10),
        ("CN1 Facilities", None),
        ("Network", None),
    ])
    def test_tier_token(self, name, tier):
        assert tier_of(name) == tier

    def test_derived_levels_sorted_by_tier(self):
        teams = [
            Team(id="c", org_id=ORG_ID, name="Ops N3"),
            Team(id="a", org_id=ORG_ID, name="Desk N1"),
            Team(id="b", org_id=ORG_ID, name="Network N2"),
            Team(id="x", org_id=ORG_ID, name="Facilities"),
        ]

        policy = EscalationPolicy.derive_from_team_names(ORG_ID, teams)

        assert policy.levels == (("a",), ("b",), ("c",))
        assert policy.next_team("a") == "b"
        assert policy.next_team("c") is None
        assert policy.next_team("x") is None

    def test_explicit_chain(self):
        policy = EscalationPolicy.from_chain(ORG_ID, ["l1", "l2"])
        assert policy.next_team("l1") == "l2"
        assert policy.source == "explicit"

    def test_teams_above_lists_every_higher_level(self):
        policy = EscalationPolicy.from_chain(ORG_ID, ["l1", "l2", "l3"])
        assert policy.teams_above("l1") == ("l2", "l3")
        assert policy.teams_above("l3") == ()
        assert policy.teams_above("x") == ()


class TestResync:
    async def test_restart_recreates_breach_checks(self, settings, core, clock, channel):
        future = await core.workflow.create_ticket(ticket_request())
        overdue = await core.workflow.create_ticket(ticket_request(priority="P1"))
        done = await core.workflow.create_ticket(ticket_request())
        await core.workflow.change_status(done.id, TicketStatus.CANCELED)

        clock.set(T0 + timedelta(hours=5))
        restarted = build_core(
            settings,
            clock=clock,
            channel=channel,
            policy_provider=StaticPolicyProvider(),
            ticket_repository=core.tickets,
            event_repository=core.events,
            team_repository=core.teams,
            user_repository=core.users,
            survey_repository=core.surveys,
        )

        count = await restarted.breach_service.resync_open_tickets()

        assert count == 2
        checks = restarted.scheduler.pending_jobs(JobType.CHECK_SLA_BREACH)
        by_ticket = {}
        for job in checks:
            by_ticket.setdefault(job.payload.ticket_id, []).append(job.scheduled_for)
        assert by_ticket[overdue.id] == [clock()]
        assert sorted(by_ticket[future.id]) == [DUE - timedelta(hours=1), DUE]
        assert done.id not in by_ticket
