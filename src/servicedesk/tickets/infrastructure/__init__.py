"""
Ticket Infrastructure Layer
===========================

- Repositories: in-memory and SQLAlchemy implementations
- Models: SQLAlchemy ORM models
"""

from servicedesk.tickets.infrastructure.repositories import (
    InMemoryTicketRepository,
    InMemoryTicketEventRepository,
    InMemoryTeamRepository,
    InMemoryUserRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyTicketEventRepository,
    SQLAlchemyTeamRepository,
    SQLAlchemyUserRepository,
    format_ticket_code,
)

__all__ = [
    "InMemoryTicketRepository",
    "InMemoryTicketEventRepository",
    "InMemoryTeamRepository",
    "InMemoryUserRepository",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyTicketEventRepository",
    "SQLAlchemyTeamRepository",
    "SQLAlchemyUserRepository",
    "format_ticket_code",
]
