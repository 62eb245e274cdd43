"""Tests for recipient resolution and notification fan-out."""

import logging

import pytest

from servicedesk.config import NotificationType, Role
from servicedesk.core import ResourceNotFoundException, RetryableJobError, TerminalJobError
from servicedesk.notifications.application import render_body, render_subject
from servicedesk.notifications.domain import RECIPIENT_POLICY
from servicedesk.scheduler.domain import SendNotificationPayload
from servicedesk.tickets.domain import Membership, User

from conftest import ORG_ID, ticket_request


@pytest.fixture
async def ticket(core):
    return await core.workflow.create_ticket(ticket_request(assignee_id="agent-1"))


def test_every_notification_type_has_a_policy():
    assert set(RECIPIENT_POLICY) == set(NotificationType)


class TestRecipientPolicy:
    @pytest.mark.parametrize("notification_type", [
        NotificationType.TICKET_CREATED,
        NotificationType.TICKET_ASSIGNED,
        NotificationType.TICKET_UPDATED,
    ])
    async def test_assignee_only_types(self, core, ticket, notification_type):
        recipients = await core.dispatcher.resolve_recipients(notification_type, ticket)
        assert recipients == ["agent-1"]

    async def test_sla_breach_goes_to_team_admins_and_agents(self, core, ticket):
        recipients = await core.dispatcher.resolve_recipients(NotificationType.SLA_BREACH, ticket)
        assert recipients == ["agent-1", "admin-1"]

    async def test_inactive_membership_is_ignored(self, core, ticket):
        core.teams.add_membership(
            Membership("agent-9", "team-n1", frozenset({Role.AGENT}), is_active=False)
        )

        recipients = await core.dispatcher.resolve_recipients(NotificationType.SLA_BREACH, ticket)

        assert "agent-9" not in recipients

    async def test_approval_request_goes_to_approvers(self, core):
        ticket = await core.workflow.create_ticket(ticket_request(team_id="team-n2"))

        recipients = await core.dispatcher.resolve_recipients(NotificationType.APPROVAL_REQUESTED, ticket)

        assert recipients == ["approver-2"]

    async def test_csat_request_goes_to_requester(self, core, ticket):
        recipients = await core.dispatcher.resolve_recipients(NotificationType.CSAT_REQUEST, ticket)
        assert recipients == ["requester-1"]

    async def test_explicit_recipients_override_policy(self, core, ticket):
        recipients = await core.dispatcher.resolve_recipients(
            NotificationType.SLA_BREACH, ticket, ["agent-2", "agent-2", "requester-1"]
        )
        assert recipients == ["agent-2", "requester-1"]

    async def test_empty_explicit_list_means_nobody(self, core, ticket):
        recipients = await core.dispatcher.resolve_recipients(NotificationType.SLA_BREACH, ticket, [])
        assert recipients == []


class TestDispatch:
    async def test_one_message_per_recipient(self, core, ticket, channel):
        report = await core.dispatcher.notify(NotificationType.SLA_BREACH, ticket.id, "SLA breached")

        assert report.sent == ["agent-1", "admin-1"]
        assert channel.recipients() == ["agent-1@acme.test", "admin-1@acme.test"]
        assert channel.messages[0].subject == f"[ServiceDesk] {ticket.code} - SLA breached"

    async def test_failure_for_one_recipient_does_not_block_others(self, core, ticket, channel):
        channel.fail_for.add("agent-1@acme.test")

        report = await core.dispatcher.notify(NotificationType.SLA_BREACH, ticket.id, "SLA breached")

        assert report.sent == ["admin-1"]
        assert list(report.failed) == ["agent-1"]
        assert channel.recipients() == ["admin-1@acme.test"]

    async def test_users_without_email_or_inactive_are_skipped(self, core, ticket, channel):
        core.users.add(User(id="admin-1", org_id=ORG_ID, name="Admin", email=None))
        core.users.add(User(id="agent-1", org_id=ORG_ID, name="Agent", email="a@acme.test", is_active=False))

        report = await core.dispatcher.notify(NotificationType.SLA_BREACH, ticket.id, "SLA breached")

        assert report.skipped == ["agent-1", "admin-1"]
        assert channel.messages == []

    async def test_no_recipients_logs_configuration_gap(self, core, channel, caplog):
        ticket = await core.workflow.create_ticket(ticket_request())

        with caplog.at_level(logging.WARNING):
            report = await core.dispatcher.notify(NotificationType.TICKET_CREATED, ticket.id, "New ticket")

        assert report.recipients_empty
        assert channel.messages == []
        assert any(r.getMessage() == "Notification has no recipients" for r in caplog.records)

    async def test_unknown_ticket(self, core):
        with pytest.raises(ResourceNotFoundException):
            await core.dispatcher.notify(NotificationType.SLA_BREACH, "missing", "x")


class TestJobHandler:
    async def test_all_deliveries_failed_is_retryable(self, core, ticket, channel):
        channel.fail_for.update({"agent-1@acme.test", "admin-1@acme.test"})
        payload = SendNotificationPayload(
            notification_type=NotificationType.SLA_BREACH,
            ticket_id=ticket.id,
            message="SLA breached",
        )

        with pytest.raises(RetryableJobError):
            await core.dispatcher.handle_send_notification(payload)

    async def test_partial_failure_completes(self, core, ticket, channel):
        channel.fail_for.add("agent-1@acme.test")
        payload = SendNotificationPayload(
            notification_type=NotificationType.SLA_BREACH,
            ticket_id=ticket.id,
            message="SLA breached",
        )

        report = await core.dispatcher.handle_send_notification(payload)

        assert report.sent == ["admin-1"]

    async def test_missing_ticket_is_terminal(self, core):
        payload = SendNotificationPayload(
            notification_type=NotificationType.SLA_BREACH,
            ticket_id="missing",
            message="x",
        )

        with pytest.raises(TerminalJobError):
            await core.dispatcher.handle_send_notification(payload)


class TestTemplates:
    async def test_body_escapes_ticket_subject(self, core):
        ticket = await core.workflow.create_ticket(ticket_request(subject="<script>alert(1)</script>"))

        body = render_body(NotificationType.TICKET_CREATED, ticket, "New ticket")

        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert ticket.code in body

    async def test_subject_carries_ticket_code(self, core, ticket):
        assert render_subject(ticket, "Hello") == f"[ServiceDesk] {ticket.code} - Hello"
