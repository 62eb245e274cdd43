"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional, Sequence


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class MessageDeliveryException(ExternalServiceException):
    """Exception for outbound mail/webhook failures."""

    def __init__(self, channel: str, message: str, details: Optional[dict] = None):
        super().__init__(channel, message, details)


class InvalidTransitionException(DomainException):
    """Raised when a ticket status change is not allowed by the workflow."""

    def __init__(
        self,
        from_status: str,
        to_status: str,
        valid_transitions: Sequence[str],
        message: Optional[str] = None
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.valid_transitions = list(valid_transitions)
        super().__init__(
            message or f"Invalid transition from {from_status} to {to_status}",
            {
                "from": from_status,
                "to": to_status,
                "valid_transitions": self.valid_transitions,
            }
        )


class SurveyAlreadyRespondedException(DomainException):
    """Raised when a CSAT survey receives a second response."""

    def __init__(self, survey_id: str):
        self.survey_id = survey_id
        super().__init__("Survey already responded", {"survey_id": survey_id})


# ========== Job execution ==========

class JobExecutionException(ApplicationException):
    """Base exception raised by job handlers."""


class RetryableJobError(JobExecutionException):
    """Transient failure; the scheduler reschedules the job with backoff."""


class TerminalJobError(JobExecutionException):
    """Permanent failure; the job is dead-lettered without retry."""


class MissingEscalationTargetException(TerminalJobError, DomainException):
    """No next-level team exists for an escalating ticket."""

    def __init__(
        self,
        ticket_id: str,
        team_id: Optional[str],
        details: Optional[dict] = None
    ):
        self.ticket_id = ticket_id
        self.team_id = team_id
        super().__init__(
            f"No escalation target for ticket {ticket_id} (team {team_id or 'unassigned'})",
            details or {"ticket_id": ticket_id, "team_id": team_id}
        )
