"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="servicedesk-core", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    use_database: bool = Field(
        default=False,
        description="Persist tickets through SQLAlchemy instead of in-memory repositories"
    )
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/servicedesk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Policy ==========
    sla_policy_path: Path = Field(
        default=Path("sla_policy.yaml"),
        description="Path to SLA rule / escalation chain YAML file"
    )
    breach_check_lead_minutes: int = Field(
        default=60,
        description="Minutes before due_at at which the early breach check runs",
        ge=0
    )
    recompute_due_on_priority_change: bool = Field(
        default=False,
        description="Recompute due_at when a ticket's priority changes (False freezes it)"
    )

    # ========== Job Scheduler ==========
    scheduler_enabled: bool = Field(default=True, description="Run the background tick loop")
    scheduler_tick_seconds: int = Field(
        default=30,
        description="Seconds between scheduler ticks",
        ge=1
    )
    job_retention_minutes: int = Field(
        default=60,
        description="Completed jobs older than this are purged",
        ge=0
    )
    job_max_attempts: int = Field(
        default=3,
        description="Execution attempts before a job is dead-lettered (1 = at most once)",
        ge=1
    )
    job_retry_base_seconds: int = Field(
        default=60,
        description="Base delay for exponential retry backoff",
        ge=0
    )
    job_handler_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound on a single handler execution",
        gt=0
    )

    # ========== CSAT ==========
    csat_delay_minutes: int = Field(
        default=30,
        description="Minutes after resolution before the CSAT survey is sent",
        ge=0
    )
    frontend_url: str = Field(
        default="http://localhost:5000",
        description="Base URL used to build survey links"
    )

    # ========== Outbound Messaging ==========
    notification_channel: str = Field(
        default="log",
        description="Outbound channel: log, smtp or webhook"
    )
    mail_from: str = Field(default="servicedesk@acme.com", description="Sender address")
    smtp_host: str = Field(default="localhost", description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port", ge=1, le=65535)
    smtp_user: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_starttls: bool = Field(default=True, description="Upgrade SMTP connection with STARTTLS")
    webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook URL that receives outbound messages as JSON"
    )
    webhook_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for webhook calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("notification_channel")
    @classmethod
    def validate_notification_channel(cls, v: str) -> str:
        allowed = {"log", "smtp", "webhook"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"notification_channel must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    NEW = "NEW"
    TRIAGE = "TRIAGE"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_CUSTOMER = "WAITING_CUSTOMER"
    WAITING_APPROVAL = "WAITING_APPROVAL"
    ON_HOLD = "ON_HOLD"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    CANCELED = "CANCELED"


class Priority(str, Enum):
    """Ticket priority, P1 is the most urgent."""
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"
    P5 = "P5"

    @property
    def rank(self) -> int:
        return int(self.value[1:])


class ApprovalStatus(str, Enum):
    """Approval decision states."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Role(str, Enum):
    """Team membership roles."""
    ADMIN = "ADMIN"
    AGENT = "AGENT"
    APPROVER = "APPROVER"
    REQUESTER = "REQUESTER"
    AUDITOR = "AUDITOR"


class TicketEventType(str, Enum):
    """Audit event types written to the ticket timeline."""
    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ASSIGNED = "ASSIGNED"
    PRIORITY_CHANGED = "PRIORITY_CHANGED"
    APPROVAL_DECIDED = "APPROVAL_DECIDED"
    ESCALATED = "ESCALATED"
    SLA_BREACHED = "SLA_BREACHED"


class JobType(str, Enum):
    """Deferred job types understood by the scheduler."""
    CHECK_SLA_BREACH = "CHECK_SLA_BREACH"
    SEND_NOTIFICATION = "SEND_NOTIFICATION"
    AUTO_ESCALATE = "AUTO_ESCALATE"
    SEND_CSAT_SURVEY = "SEND_CSAT_SURVEY"


class NotificationType(str, Enum):
    """Notification kinds, each with its own recipient policy."""
    TICKET_CREATED = "TICKET_CREATED"
    TICKET_UPDATED = "TICKET_UPDATED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_ESCALATED = "TICKET_ESCALATED"
    SLA_BREACH = "SLA_BREACH"
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"
    CSAT_REQUEST = "CSAT_REQUEST"


# ========== Lists for validation ==========

ALL_PRIORITIES = list(Priority)

# Statuses after which SLA breach evaluation is meaningless
FINISHED_STATUSES = frozenset({
    TicketStatus.RESOLVED,
    TicketStatus.CLOSED,
    TicketStatus.CANCELED,
})

OPEN_STATUSES = [status for status in TicketStatus if status not in FINISHED_STATUSES]

# Roles that receive team-wide operational notifications
TEAM_ALERT_ROLES = frozenset({Role.ADMIN, Role.AGENT})
