"""
Scheduler Domain Layer
======================

Jobs, typed payloads and the tagged execution result.
"""

from servicedesk.scheduler.domain.entities import (
    Job,
    JobOutcome,
    JobPayload,
    ExecutionResult,
    TickReport,
    CheckSLABreachPayload,
    SendNotificationPayload,
    AutoEscalatePayload,
    SendCSATSurveyPayload,
    PAYLOAD_TYPES,
    CRITICAL_JOB_TYPES,
    build_payload,
)

__all__ = [
    "Job",
    "JobOutcome",
    "JobPayload",
    "ExecutionResult",
    "TickReport",
    "CheckSLABreachPayload",
    "SendNotificationPayload",
    "AutoEscalatePayload",
    "SendCSATSurveyPayload",
    "PAYLOAD_TYPES",
    "CRITICAL_JOB_TYPES",
    "build_payload",
]
