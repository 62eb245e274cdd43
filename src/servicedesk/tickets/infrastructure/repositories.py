"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of the ticket repository interfaces.

- In-memory repositories: default wiring and test fixtures
- SQLAlchemy repositories: async persistence, one session per operation
"""

import dataclasses
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicedesk.config import ApprovalStatus, Priority, Role, TicketEventType, TicketStatus
from servicedesk.core import RepositoryException
from servicedesk.infrastructure.database import get_session_context
from servicedesk.shared.infrastructure.clock import ensure_utc
from servicedesk.tickets.application.services import (
    ITeamRepository,
    ITicketEventRepository,
    ITicketRepository,
    IUserRepository,
)
from servicedesk.tickets.domain import Membership, Team, Ticket, TicketEvent, User
from servicedesk.tickets.infrastructure.models import (
    MembershipModel,
    TeamModel,
    TicketEventModel,
    TicketModel,
    UserModel,
)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]

_TICKET_FIELDS = {f.name for f in dataclasses.fields(Ticket)}
_IMMUTABLE_TICKET_FIELDS = {"id", "org_id", "code", "created_at"}


def format_ticket_code(year: int, sequence: int) -> str:
    return f"SD-{year}-{sequence:04d}"


def _check_changes(changes: Dict[str, Any]) -> None:
    unknown = set(changes) - _TICKET_FIELDS
    if unknown:
        raise RepositoryException(f"Unknown ticket fields: {', '.join(sorted(unknown))}")
    frozen = set(changes) & _IMMUTABLE_TICKET_FIELDS
    if frozen:
        raise RepositoryException(f"Ticket fields cannot be changed: {', '.join(sorted(frozen))}")


def _matches(ticket: Ticket, filters: dict) -> bool:
    if "org_id" in filters and ticket.org_id != filters["org_id"]:
        return False
    if "team_id" in filters and ticket.team_id != filters["team_id"]:
        return False
    if "status" in filters:
        statuses = filters["status"]
        if not isinstance(statuses, (list, tuple, set, frozenset)):
            statuses = [statuses]
        if ticket.status not in {TicketStatus(s) for s in statuses}:
            return False
    return True


# ========== In-memory ==========

class InMemoryTicketRepository(ITicketRepository):
    """
    Dict-backed ticket repository.

    Returns copies so callers cannot mutate stored state without
    going through ``update``.
    """

    def __init__(self, event_repository: Optional["InMemoryTicketEventRepository"] = None):
        self._tickets: Dict[str, Ticket] = {}
        self._sequences: Dict[tuple, int] = defaultdict(int)
        self._event_repo = event_repository

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self._tickets.get(ticket_id)
        return dataclasses.replace(ticket) if ticket else None

    async def create(self, ticket: Ticket) -> Ticket:
        if ticket.id in self._tickets:
            raise RepositoryException(f"Ticket {ticket.id} already exists")
        self._tickets[ticket.id] = dataclasses.replace(ticket)
        return dataclasses.replace(ticket)

    async def update(self, ticket_id: str, changes: Dict[str, Any]) -> Ticket:
        if ticket_id not in self._tickets:
            raise RepositoryException(f"Ticket {ticket_id} not found")
        _check_changes(changes)
        updated = dataclasses.replace(self._tickets[ticket_id], **changes)
        self._tickets[ticket_id] = updated
        return dataclasses.replace(updated)

    async def update_with_event(self, ticket_id: str, changes: Dict[str, Any], event: TicketEvent) -> Ticket:
        if self._event_repo is None:
            raise RepositoryException("No event log attached to this ticket repository")
        if ticket_id not in self._tickets:
            raise RepositoryException(f"Ticket {ticket_id} not found")
        _check_changes(changes)
        # Event first: a failed append leaves the ticket untouched
        await self._event_repo.append(event)
        return await self.update(ticket_id, changes)

    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        matching = [t for t in self._tickets.values() if _matches(t, filters)]
        matching.sort(key=lambda t: t.created_at)
        return [dataclasses.replace(t) for t in matching[offset:offset + limit]]

    async def next_code(self, org_id: str, at: datetime) -> str:
        key = (org_id, at.year)
        self._sequences[key] += 1
        return format_ticket_code(at.year, self._sequences[key])


class InMemoryTicketEventRepository(ITicketEventRepository):
    """Append-only list of ticket events."""

    def __init__(self):
        self._events: List[TicketEvent] = []

    async def append(self, event: TicketEvent) -> TicketEvent:
        self._events.append(dataclasses.replace(event))
        return event

    async def list_for_ticket(self, ticket_id: str) -> List[TicketEvent]:
        return [dataclasses.replace(e) for e in self._events if e.ticket_id == ticket_id]


class InMemoryTeamRepository(ITeamRepository):
    """Teams and memberships seeded through ``add_team`` / ``add_membership``."""

    def __init__(self):
        self._teams: Dict[str, Team] = {}
        self._memberships: List[Membership] = []

    def add_team(self, team: Team) -> Team:
        self._teams[team.id] = team
        return team

    def add_membership(self, membership: Membership) -> Membership:
        self._memberships.append(membership)
        return membership

    async def get(self, team_id: str) -> Optional[Team]:
        return self._teams.get(team_id)

    async def teams_by_org(self, org_id: str) -> List[Team]:
        return [t for t in self._teams.values() if t.org_id == org_id]

    async def members_by_team(self, team_id: str) -> List[Membership]:
        return [m for m in self._memberships if m.team_id == team_id]


class InMemoryUserRepository(IUserRepository):
    def __init__(self):
        self._users: Dict[str, User] = {}

    def add(self, user: User) -> User:
        self._users[user.id] = user
        return user

    async def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)


# ========== SQLAlchemy ==========

def _column_value(value: Any) -> Any:
    """Enums are stored by value; datetimes normalized to UTC."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


def _ticket_to_entity(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        org_id=model.org_id,
        code=model.code,
        subject=model.subject,
        description=model.description or "",
        status=TicketStatus(model.status),
        priority=Priority(model.priority),
        requester_id=model.requester_id,
        assignee_id=model.assignee_id,
        team_id=model.team_id,
        requires_approval=model.requires_approval,
        approval_status=ApprovalStatus(model.approval_status) if model.approval_status else None,
        due_at=ensure_utc(model.due_at),
        first_response_due_at=ensure_utc(model.first_response_due_at),
        resolved_at=ensure_utc(model.resolved_at),
        closed_at=ensure_utc(model.closed_at),
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
    )


def _event_to_model(event: TicketEvent) -> TicketEventModel:
    return TicketEventModel(
        id=event.id,
        ticket_id=event.ticket_id,
        event_type=event.event_type.value,
        actor_id=event.actor_id,
        old_value=event.old_value,
        new_value=event.new_value,
        description=event.description,
        created_at=ensure_utc(event.created_at),
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        async with self._session_factory() as session:
            model = await session.get(TicketModel, ticket_id)
            return _ticket_to_entity(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            **{
                f.name: _column_value(getattr(ticket, f.name))
                for f in dataclasses.fields(Ticket)
            }
        )
        async with self._session_factory() as session:
            session.add(model)
            await session.flush()
            return _ticket_to_entity(model)

    async def update(self, ticket_id: str, changes: Dict[str, Any]) -> Ticket:
        _check_changes(changes)
        async with self._session_factory() as session:
            model = await session.get(TicketModel, ticket_id)
            if model is None:
                raise RepositoryException(f"Ticket {ticket_id} not found")

            for key, value in changes.items():
                setattr(model, key, _column_value(value))

            await session.flush()
            return _ticket_to_entity(model)

    async def update_with_event(self, ticket_id: str, changes: Dict[str, Any], event: TicketEvent) -> Ticket:
        _check_changes(changes)
        try:
            async with self._session_factory() as session:
                model = await session.get(TicketModel, ticket_id)
                if model is None:
                    raise RepositoryException(f"Ticket {ticket_id} not found")

                for key, value in changes.items():
                    setattr(model, key, _column_value(value))
                session.add(_event_to_model(event))

                await session.flush()
                return _ticket_to_entity(model)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Ticket {ticket_id} update failed: {type(e).__name__}") from e

    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        stmt = select(TicketModel)

        # Apply filters
        conditions = []
        if "org_id" in filters:
            conditions.append(TicketModel.org_id == filters["org_id"])
        if "team_id" in filters:
            conditions.append(TicketModel.team_id == filters["team_id"])
        if "status" in filters:
            statuses = filters["status"]
            if isinstance(statuses, (list, tuple, set, frozenset)):
                conditions.append(TicketModel.status.in_([TicketStatus(s).value for s in statuses]))
            else:
                conditions.append(TicketModel.status == TicketStatus(statuses).value)

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(TicketModel.created_at.asc()).limit(limit).offset(offset)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_ticket_to_entity(m) for m in result.scalars().all()]

    async def next_code(self, org_id: str, at: datetime) -> str:
        prefix = f"SD-{at.year}-"
        stmt = select(func.count(TicketModel.id)).where(
            and_(TicketModel.org_id == org_id, TicketModel.code.like(f"{prefix}%"))
        )
        async with self._session_factory() as session:
            count = (await session.execute(stmt)).scalar_one()
        return format_ticket_code(at.year, count + 1)


class SQLAlchemyTicketEventRepository(ITicketEventRepository):
    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def append(self, event: TicketEvent) -> TicketEvent:
        async with self._session_factory() as session:
            session.add(_event_to_model(event))
        return event

    async def list_for_ticket(self, ticket_id: str) -> List[TicketEvent]:
        stmt = (
            select(TicketEventModel)
            .where(TicketEventModel.ticket_id == ticket_id)
            .order_by(TicketEventModel.seq.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                TicketEvent(
                    id=m.id,
                    ticket_id=m.ticket_id,
                    event_type=TicketEventType(m.event_type),
                    actor_id=m.actor_id,
                    old_value=m.old_value,
                    new_value=m.new_value,
                    description=m.description,
                    created_at=ensure_utc(m.created_at),
                )
                for m in result.scalars().all()
            ]


class SQLAlchemyTeamRepository(ITeamRepository):
    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    @staticmethod
    def _to_entity(model: TeamModel) -> Team:
        return Team(id=model.id, org_id=model.org_id, name=model.name, is_active=model.is_active)

    async def get(self, team_id: str) -> Optional[Team]:
        async with self._session_factory() as session:
            model = await session.get(TeamModel, team_id)
            return self._to_entity(model) if model else None

    async def teams_by_org(self, org_id: str) -> List[Team]:
        stmt = (
            select(TeamModel)
            .where(TeamModel.org_id == org_id)
            .order_by(TeamModel.created_at.asc(), TeamModel.name.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def members_by_team(self, team_id: str) -> List[Membership]:
        stmt = select(MembershipModel).where(MembershipModel.team_id == team_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                Membership(
                    user_id=m.user_id,
                    team_id=m.team_id,
                    roles=frozenset(Role(r) for r in m.roles.split(",") if r),
                    is_active=m.is_active,
                )
                for m in result.scalars().all()
            ]


class SQLAlchemyUserRepository(IUserRepository):
    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def get(self, user_id: str) -> Optional[User]:
        async with self._session_factory() as session:
            model = await session.get(UserModel, user_id)
            if model is None:
                return None
            return User(
                id=model.id,
                org_id=model.org_id,
                name=model.name,
                email=model.email,
                is_active=model.is_active,
            )
