"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from servicedesk.config import ALL_PRIORITIES, Priority
from servicedesk.core import ConfigurationException


class SLARule(BaseModel):
    """Durations promised for one priority."""
    model_config = ConfigDict(frozen=True)

    first_response_minutes: int = Field(gt=0, description="Minutes to first response")
    resolution_minutes: int = Field(gt=0, description="Minutes to resolution")


DEFAULT_SLA_RULES: Dict[Priority, SLARule] = {
    Priority.P1: SLARule(first_response_minutes=15, resolution_minutes=240),
    Priority.P2: SLARule(first_response_minutes=60, resolution_minutes=480),
    Priority.P3: SLARule(first_response_minutes=240, resolution_minutes=2880),
    Priority.P4: SLARule(first_response_minutes=480, resolution_minutes=7200),
    Priority.P5: SLARule(first_response_minutes=1440, resolution_minutes=14400),
}


class EscalationConfig(BaseModel):
    """Explicit escalation chains: org id -> ordered team ids (lowest tier first)."""
    chains: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("chains")
    @classmethod
    def validate_chains(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for org_id, chain in v.items():
            if len(set(chain)) != len(chain):
                raise ValueError(f"escalation chain for org {org_id} repeats a team")
        return v


class SLAPolicy(BaseModel):
    """
    SLA policy loaded from YAML.

    Every priority P1..P5 must have a rule. A missing priority is a
    configuration error rather than a silent default.
    """
    sla_rules: Dict[Priority, SLARule] = Field(
        default_factory=lambda: dict(DEFAULT_SLA_RULES),
        description="SLA durations by priority"
    )
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)

    @field_validator("sla_rules")
    @classmethod
    def validate_sla_rules(cls, v: Dict[Priority, SLARule]) -> Dict[Priority, SLARule]:
        missing = [p.value for p in ALL_PRIORITIES if p not in v]
        if missing:
            raise ValueError(f"sla_rules missing priorities: {', '.join(missing)}")
        return v

    def rule_for(self, priority: Priority) -> SLARule:
        try:
            return self.sla_rules[Priority(priority)]
        except (KeyError, ValueError):
            raise ConfigurationException(
                f"No SLA rule for priority {priority}",
                {"priority": str(priority)}
            )


class SLAPolicyResolver:
    """
    Maps a priority to concrete SLA timestamps.

    Wall-clock arithmetic; business calendars are not applied.
    """

    def __init__(self, policy_provider):
        # Anything with ``.policy`` works: SLAPolicyManager or a StaticPolicyProvider
        self._policy_provider = policy_provider

    @property
    def policy(self) -> SLAPolicy:
        return self._policy_provider.policy

    def resolution_minutes(self, priority: Priority) -> int:
        return self.policy.rule_for(priority).resolution_minutes

    def due_at(self, priority: Priority, created_at: datetime) -> datetime:
        """Resolution deadline: ``created_at + resolution_minutes(priority)``."""
        return created_at + timedelta(minutes=self.resolution_minutes(priority))

    def first_response_due_at(self, priority: Priority, created_at: datetime) -> datetime:
        rule = self.policy.rule_for(priority)
        return created_at + timedelta(minutes=rule.first_response_minutes)

    def breach_check_times(
        self,
        due_at: datetime,
        now: datetime,
        lead: timedelta
    ) -> List[datetime]:
        """
        Moments at which a breach check should run for a deadline.

        One check ``lead`` before the deadline when that is still ahead of
        ``now``, and one exactly at the deadline.
        """
        times = []
        early = due_at - lead
        if lead > timedelta(0) and early > now:
            times.append(early)
        times.append(due_at)
        return times


class StaticPolicyProvider:
    """Policy provider for a fixed, in-memory policy."""

    def __init__(self, policy: SLAPolicy | None = None):
        self._policy = policy or SLAPolicy()

    @property
    def policy(self) -> SLAPolicy:
        return self._policy


@dataclass(frozen=True)
class SLADeadline:
    """
    Immutable value object representing a ticket's SLA deadline.

    Passed along with breach notifications.
    """
    ticket_id: str
    priority: Priority
    created_at: datetime
    deadline: datetime

    def is_past(self, now: datetime) -> bool:
        return now > self.deadline

    def minutes_overdue(self, now: datetime) -> float:
        """Minutes past the deadline (negative if still ahead)."""
        return (now - self.deadline).total_seconds() / 60
