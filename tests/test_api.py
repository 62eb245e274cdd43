"""HTTP tests for the ticket, job and CSAT endpoints."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from servicedesk.main import create_app

from conftest import T0


@pytest.fixture
def client(settings, core):
    app = create_app(settings, core)
    with TestClient(app) as test_client:
        yield test_client


def create_ticket(client, **overrides):
    body = {
        "org_id": "org-1",
        "subject": "Printer on floor 3 is offline",
        "priority": "P3",
        "requester_id": "requester-1",
        "team_id": "team-n1",
    }
    body.update(overrides)
    response = client.post("/tickets", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestTicketEndpoints:
    def test_create_ticket(self, client):
        ticket = create_ticket(client)

        assert ticket["code"] == "SD-2024-0001"
        assert ticket["status"] == "NEW"
        assert ticket["due_at"].startswith("2024-01-03T00:00:00")

    def test_create_validates_body(self, client):
        response = client.post("/tickets", json={"org_id": "org-1", "subject": ""})
        assert response.status_code == 422

    def test_get_ticket(self, client):
        ticket = create_ticket(client)

        response = client.get(f"/tickets/{ticket['id']}")

        assert response.status_code == 200
        assert response.json()["id"] == ticket["id"]

    def test_unknown_ticket_is_404(self, client):
        response = client.get("/tickets/missing")

        assert response.status_code == 404
        assert response.json()["error_type"] == "ResourceNotFoundException"

    def test_invalid_transition_is_409_with_valid_list(self, client):
        ticket = create_ticket(client)

        response = client.patch(f"/tickets/{ticket['id']}/status", json={"status": "RESOLVED"})

        assert response.status_code == 409
        body = response.json()
        assert body["error_type"] == "InvalidTransitionException"
        assert body["details"]["valid_transitions"] == ["TRIAGE", "WAITING_APPROVAL", "CANCELED"]

    def test_status_assign_and_priority(self, client):
        ticket = create_ticket(client)
        ticket_id = ticket["id"]

        assert client.patch(f"/tickets/{ticket_id}/status", json={"status": "TRIAGE"}).status_code == 200
        assigned = client.patch(f"/tickets/{ticket_id}/assignee", json={"assignee_id": "agent-1"})
        moved = client.patch(f"/tickets/{ticket_id}/status", json={"status": "IN_PROGRESS"})
        bumped = client.patch(f"/tickets/{ticket_id}/priority", json={"priority": "P1"})

        assert assigned.json()["assignee_id"] == "agent-1"
        assert moved.json()["status"] == "IN_PROGRESS"
        assert bumped.json()["priority"] == "P1"
        assert bumped.json()["due_at"] == ticket["due_at"]

    def test_approval_endpoint(self, client):
        ticket = create_ticket(client, requires_approval=True)
        ticket_id = ticket["id"]
        client.patch(f"/tickets/{ticket_id}/status", json={"status": "WAITING_APPROVAL"})

        pending = client.patch(f"/tickets/{ticket_id}/approval", json={"decision": "PENDING"})
        approved = client.patch(
            f"/tickets/{ticket_id}/approval",
            json={"decision": "APPROVED", "actor_id": "approver-2"},
        )

        assert pending.status_code == 422
        assert approved.json()["approval_status"] == "APPROVED"

    def test_transitions_endpoint(self, client):
        ticket = create_ticket(client)

        body = client.get(f"/tickets/{ticket['id']}/transitions").json()

        assert body["current_status"] == "NEW"
        assert body["valid_transitions"] == ["TRIAGE", "WAITING_APPROVAL", "CANCELED"]
        assert body["allowed_transitions"] == ["TRIAGE", "CANCELED"]

    def test_events_endpoint(self, client):
        ticket = create_ticket(client)
        client.patch(f"/tickets/{ticket['id']}/status", json={"status": "TRIAGE", "actor_id": "agent-1"})

        events = client.get(f"/tickets/{ticket['id']}/events").json()

        assert [e["event_type"] for e in events] == ["CREATED", "STATUS_CHANGED"]
        assert events[1]["actor_id"] == "agent-1"

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"


class TestJobEndpoints:
    def test_pending_breach_checks_listed(self, client):
        ticket = create_ticket(client)

        jobs = client.get("/jobs", params={"pending": True, "type": "CHECK_SLA_BREACH"}).json()

        assert len(jobs) == 2
        assert {job["payload"]["ticket_id"] for job in jobs} == {ticket["id"]}

    def test_dead_letters_reported_by_health(self, client, core):
        ticket = create_ticket(client, team_id="team-n2")
        core.scheduler.enqueue("AUTO_ESCALATE", {"ticket_id": ticket["id"]})

        client.portal.call(core.scheduler.tick)

        dead = client.get("/jobs/dead-letters").json()
        health = client.get("/health").json()
        assert [job["type"] for job in dead] == ["AUTO_ESCALATE"]
        assert health["status"] == "degraded"
        assert health["checks"]["dead_letters"] == 1

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["checks"]["scheduler"] == "stopped"
        assert body["checks"]["database"] == "disabled"


class TestCSATEndpoints:
    def resolved_survey_token(self, client, core, clock):
        ticket = create_ticket(client, assignee_id="agent-1")
        for status in ("TRIAGE", "IN_PROGRESS", "RESOLVED"):
            client.patch(f"/tickets/{ticket['id']}/status", json={"status": status})

        clock.set(T0 + timedelta(minutes=30))
        client.portal.call(core.scheduler.tick)
        survey = client.portal.call(core.surveys.latest_for_ticket, ticket["id"])
        return survey.token

    def test_survey_response_flow(self, client, core, clock):
        token = self.resolved_survey_token(client, core, clock)

        fetched = client.get(f"/csat/{token}")
        answered = client.post(f"/csat/{token}", json={"score": 5, "comment": "Great"})
        again = client.post(f"/csat/{token}", json={"score": 1})

        assert fetched.status_code == 200
        assert fetched.json()["score"] is None
        assert answered.status_code == 200
        assert answered.json()["score"] == 5
        assert again.status_code == 409

    def test_score_out_of_range_is_422(self, client, core, clock):
        token = self.resolved_survey_token(client, core, clock)

        assert client.post(f"/csat/{token}", json={"score": 6}).status_code == 422

    def test_unknown_token_is_404(self, client):
        assert client.get("/csat/does-not-exist").status_code == 404

    def test_metrics(self, client, core, clock):
        token = self.resolved_survey_token(client, core, clock)
        client.post(f"/csat/{token}", json={"score": 4})

        body = client.get("/csat/metrics", params={"org_id": "org-1"}).json()

        assert body["total_surveys"] == 1
        assert body["response_rate"] == 100.0
        assert body["average_score"] == 4.0
        assert body["score_distribution"]["4"] == 1
