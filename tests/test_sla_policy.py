"""Tests for SLA rules, deadline computation and the YAML policy file."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from servicedesk.config import Priority
from servicedesk.core import ConfigurationException
from servicedesk.sla.domain import SLADeadline, SLAPolicy, SLAPolicyResolver, StaticPolicyProvider
from servicedesk.sla.infrastructure import SLAPolicyManager

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

POLICY_YAML = """
sla_rules:
  P1: {first_response_minutes: 15, resolution_minutes: 240}
  P2: {first_response_minutes: 60, resolution_minutes: 480}
  P3: {first_response_minutes: 240, resolution_minutes: 2880}
  P4: {first_response_minutes: 480, resolution_minutes: 7200}
  P5: {first_response_minutes: 1440, resolution_minutes: 14400}
escalation:
  chains:
    org-1: [team-n1, team-n2, team-n3]
"""


@pytest.fixture
def resolver():
    return SLAPolicyResolver(StaticPolicyProvider())


class TestResolver:
    @pytest.mark.parametrize("priority,minutes", [
        (Priority.P1, 240),
        (Priority.P2, 480),
        (Priority.P3, 2880),
        (Priority.P4, 7200),
        (Priority.P5, 14400),
    ])
    def test_default_resolution_minutes(self, resolver, priority, minutes):
        assert resolver.resolution_minutes(priority) == minutes

    def test_p3_due_two_days_after_creation(self, resolver):
        assert resolver.due_at(Priority.P3, T0) == datetime(2024, 1, 3, tzinfo=timezone.utc)

    def test_first_response_deadline(self, resolver):
        assert resolver.first_response_due_at(Priority.P1, T0) == T0 + timedelta(minutes=15)

    def test_breach_checks_one_hour_before_and_at_deadline(self, resolver):
        due = resolver.due_at(Priority.P3, T0)

        times = resolver.breach_check_times(due, T0, timedelta(hours=1))

        assert times == [
            datetime(2024, 1, 2, 23, 0, tzinfo=timezone.utc),
            datetime(2024, 1, 3, 0, 0, tzinfo=timezone.utc),
        ]

    def test_early_check_dropped_when_already_past(self, resolver):
        due = T0 + timedelta(minutes=30)
        assert resolver.breach_check_times(due, T0, timedelta(hours=1)) == [due]

    def test_zero_lead_gives_single_check(self, resolver):
        due = T0 + timedelta(hours=4)
        assert resolver.breach_check_times(due, T0, timedelta(0)) == [due]


class TestPolicyModel:
    def test_missing_priority_is_rejected(self):
        with pytest.raises(ValidationError, match="P5"):
            SLAPolicy(sla_rules={
                "P1": {"first_response_minutes": 15, "resolution_minutes": 240},
                "P2": {"first_response_minutes": 60, "resolution_minutes": 480},
                "P3": {"first_response_minutes": 240, "resolution_minutes": 2880},
                "P4": {"first_response_minutes": 480, "resolution_minutes": 7200},
            })

    def test_non_positive_duration_is_rejected(self):
        rules = {p.value: {"first_response_minutes": 10, "resolution_minutes": 60} for p in Priority}
        rules["P2"]["resolution_minutes"] = 0
        with pytest.raises(ValidationError):
            SLAPolicy(sla_rules=rules)

    def test_chain_with_repeated_team_is_rejected(self):
        with pytest.raises(ValidationError):
            SLAPolicy(escalation={"chains": {"org-1": ["a", "b", "a"]}})

    def test_unknown_priority_lookup_raises_configuration_error(self):
        with pytest.raises(ConfigurationException):
            SLAPolicy().rule_for("P9")


class TestSLADeadline:
    def test_minutes_overdue(self):
        deadline = SLADeadline("t-1", Priority.P1, T0, T0 + timedelta(hours=4))
        now = T0 + timedelta(hours=4, minutes=30)

        assert deadline.is_past(now)
        assert deadline.minutes_overdue(now) == 30

    def test_exactly_at_deadline_is_not_past(self):
        deadline = SLADeadline("t-1", Priority.P1, T0, T0 + timedelta(hours=4))
        assert not deadline.is_past(T0 + timedelta(hours=4))


class TestPolicyManager:
    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text(POLICY_YAML)

        manager = SLAPolicyManager()
        policy = manager.load(path)

        assert policy.rule_for(Priority.P3).resolution_minutes == 2880
        assert policy.escalation.chains["org-1"] == ["team-n1", "team-n2", "team-n3"]

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        manager = SLAPolicyManager()
        policy = manager.load(tmp_path / "absent.yaml")

        assert policy.rule_for(Priority.P1).resolution_minutes == 240
        assert policy.escalation.chains == {}

    def test_invalid_file_fails_initial_load(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text("sla_rules:\n  P1: {first_response_minutes: 15, resolution_minutes: 240}\n")

        with pytest.raises(ConfigurationException):
            SLAPolicyManager().load(path)

    def test_reload_picks_up_changes(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text(POLICY_YAML)
        manager = SLAPolicyManager()
        manager.load(path)

        path.write_text(POLICY_YAML.replace("resolution_minutes: 240}", "resolution_minutes: 120}"))

        assert manager.reload() is True
        assert manager.policy.rule_for(Priority.P1).resolution_minutes == 120

    def test_failed_reload_keeps_previous_policy(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text(POLICY_YAML)
        manager = SLAPolicyManager()
        manager.load(path)

        path.write_text("sla_rules: {}\n")

        assert manager.reload() is False
        assert manager.policy.rule_for(Priority.P3).resolution_minutes == 2880

    def test_resolver_sees_reloaded_policy(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text(POLICY_YAML)
        manager = SLAPolicyManager()
        manager.load(path)
        resolver = SLAPolicyResolver(manager)

        path.write_text(POLICY_YAML.replace("resolution_minutes: 2880}", "resolution_minutes: 60}"))
        manager.reload()

        assert resolver.due_at(Priority.P3, T0) == T0 + timedelta(minutes=60)

    def test_policy_before_load_raises(self):
        with pytest.raises(RuntimeError):
            SLAPolicyManager().policy
