"""
Scheduler Domain Entities
=========================

Jobs, their typed payloads and execution outcomes.

Each job type carries its own payload model, so handlers receive a
validated object instead of an untyped dict.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from servicedesk.config import JobType, NotificationType
from servicedesk.core import ConfigurationException


# ========== Payloads ==========

class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class CheckSLABreachPayload(_Payload):
    ticket_id: str


class SendNotificationPayload(_Payload):
    notification_type: NotificationType
    ticket_id: str
    message: str
    user_ids: Optional[List[str]] = Field(
        default=None,
        description="Explicit recipients; overrides the type's recipient policy"
    )


class AutoEscalatePayload(_Payload):
    ticket_id: str
    reason: str = "SLA breach"
    from_team_id: Optional[str] = None


class SendCSATSurveyPayload(_Payload):
    ticket_id: str


JobPayload = Union[
    CheckSLABreachPayload,
    SendNotificationPayload,
    AutoEscalatePayload,
    SendCSATSurveyPayload,
]

PAYLOAD_TYPES: Dict[JobType, Type[_Payload]] = {
    JobType.CHECK_SLA_BREACH: CheckSLABreachPayload,
    JobType.SEND_NOTIFICATION: SendNotificationPayload,
    JobType.AUTO_ESCALATE: AutoEscalatePayload,
    JobType.SEND_CSAT_SURVEY: SendCSATSurveyPayload,
}

_missing = [job_type.value for job_type in JobType if job_type not in PAYLOAD_TYPES]
if _missing:
    raise ConfigurationException(f"Job types without a payload model: {', '.join(_missing)}")

# Dead letters of these types log at ERROR: losing one silently drops an SLA action
CRITICAL_JOB_TYPES = frozenset({JobType.CHECK_SLA_BREACH, JobType.AUTO_ESCALATE})


def build_payload(job_type: JobType, payload: Union[JobPayload, dict]) -> JobPayload:
    """Coerce a dict into the job type's payload model, or check the model's type."""
    job_type = JobType(job_type)
    model = PAYLOAD_TYPES[job_type]
    if isinstance(payload, dict):
        return model.model_validate(payload)
    if not isinstance(payload, model):
        raise TypeError(
            f"{job_type.value} expects {model.__name__}, got {type(payload).__name__}"
        )
    return payload


# ========== Jobs ==========

class JobOutcome(str, Enum):
    """Result of a single execution attempt."""
    COMPLETED = "completed"
    RETRY = "retry"
    DEAD = "dead"


@dataclass(frozen=True)
class ExecutionResult:
    """Tagged execution result: Completed | Retry(backoff) | Dead."""
    outcome: JobOutcome
    backoff: Optional[timedelta] = None
    error: Optional[str] = None

    @classmethod
    def completed(cls) -> "ExecutionResult":
        return cls(JobOutcome.COMPLETED)

    @classmethod
    def retry(cls, backoff: timedelta, error: str) -> "ExecutionResult":
        return cls(JobOutcome.RETRY, backoff=backoff, error=error)

    @classmethod
    def dead(cls, error: str) -> "ExecutionResult":
        return cls(JobOutcome.DEAD, error=error)


@dataclass
class Job:
    """
    A deferred action owned by the scheduler.

    ``completed`` flips to True exactly once, after success or after the
    job is dead-lettered. Only the scheduler mutates it.
    """
    id: str
    type: JobType
    payload: JobPayload
    scheduled_for: datetime
    created_at: datetime
    completed: bool = False
    attempts: int = 0
    outcome: Optional[JobOutcome] = None
    last_error: Optional[str] = None
    finished_at: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        return not self.completed and self.scheduled_for <= now

    def log_fields(self, **extra) -> dict:
        """Structured logging extras identifying this job and its ticket."""
        return {
            "job_id": self.id,
            "job_type": self.type.value,
            "ticket_id": getattr(self.payload, "ticket_id", None),
            "attempt": self.attempts,
            **extra,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "type": self.type.value,
            "payload": self.payload.model_dump(mode="json"),
            "scheduled_for": self.scheduled_for.isoformat(),
            "created_at": self.created_at.isoformat(),
            "completed": self.completed,
            "attempts": self.attempts,
            "outcome": self.outcome.value if self.outcome else None,
            "last_error": self.last_error,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class TickReport:
    """Summary of one scheduler tick."""
    started_at: datetime
    executed: int = 0
    completed: int = 0
    retried: int = 0
    dead: int = 0
    purged: int = 0
    skipped: bool = False
    job_ids: List[str] = field(default_factory=list)
