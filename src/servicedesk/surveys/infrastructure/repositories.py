"""
Survey Infrastructure Repositories
==================================

In-memory and SQLAlchemy implementations of ISurveyRepository.

Both enforce single response at write time: ``update`` refuses to
overwrite a survey that already has a response.
"""

import dataclasses
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, delete, select, update

from servicedesk.core import RepositoryException, SurveyAlreadyRespondedException
from servicedesk.infrastructure.database import get_session_context
from servicedesk.shared.infrastructure.clock import ensure_utc
from servicedesk.surveys.application.services import ISurveyRepository
from servicedesk.surveys.domain import CSATSurvey
from servicedesk.surveys.infrastructure.models import CSATSurveyModel
from servicedesk.tickets.infrastructure.repositories import SessionFactory


def _in_period(survey: CSATSurvey, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and survey.created_at < start:
        return False
    if end is not None and survey.created_at > end:
        return False
    return True


class InMemorySurveyRepository(ISurveyRepository):
    def __init__(self):
        self._surveys: Dict[str, CSATSurvey] = {}

    async def create(self, survey: CSATSurvey) -> CSATSurvey:
        self._surveys[survey.id] = dataclasses.replace(survey)
        return dataclasses.replace(survey)

    async def update(self, survey: CSATSurvey) -> CSATSurvey:
        stored = self._surveys.get(survey.id)
        if stored is None:
            raise RepositoryException(f"Survey {survey.id} not found")
        if stored.is_responded:
            raise SurveyAlreadyRespondedException(survey.id)
        self._surveys[survey.id] = dataclasses.replace(survey)
        return dataclasses.replace(survey)

    async def delete(self, survey_id: str) -> None:
        self._surveys.pop(survey_id, None)

    async def get_by_token(self, token: str) -> Optional[CSATSurvey]:
        for survey in self._surveys.values():
            if survey.token == token:
                return dataclasses.replace(survey)
        return None

    async def latest_for_ticket(self, ticket_id: str) -> Optional[CSATSurvey]:
        surveys = [s for s in self._surveys.values() if s.ticket_id == ticket_id]
        if not surveys:
            return None
        return dataclasses.replace(max(surveys, key=lambda s: s.sent_at))

    async def list_for_org(
        self,
        org_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[CSATSurvey]:
        return [
            dataclasses.replace(s) for s in self._surveys.values()
            if s.org_id == org_id and _in_period(s, start, end)
        ]


def _to_entity(model: CSATSurveyModel) -> CSATSurvey:
    return CSATSurvey(
        id=model.id,
        ticket_id=model.ticket_id,
        org_id=model.org_id,
        requester_id=model.requester_id,
        token=model.token,
        score=model.score,
        comment=model.comment,
        responded_at=ensure_utc(model.responded_at),
        sent_at=ensure_utc(model.sent_at),
        created_at=ensure_utc(model.created_at),
    )


class SQLAlchemySurveyRepository(ISurveyRepository):
    """SQLAlchemy implementation of survey repository."""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def create(self, survey: CSATSurvey) -> CSATSurvey:
        model = CSATSurveyModel(
            id=survey.id,
            ticket_id=survey.ticket_id,
            org_id=survey.org_id,
            requester_id=survey.requester_id,
            token=survey.token,
            score=survey.score,
            comment=survey.comment,
            responded_at=ensure_utc(survey.responded_at),
            sent_at=ensure_utc(survey.sent_at),
            created_at=ensure_utc(survey.created_at),
        )
        async with self._session_factory() as session:
            session.add(model)
        return survey

    async def update(self, survey: CSATSurvey) -> CSATSurvey:
        # Conditional write: only the first response wins
        stmt = (
            update(CSATSurveyModel)
            .where(and_(CSATSurveyModel.id == survey.id, CSATSurveyModel.responded_at.is_(None)))
            .values(
                score=survey.score,
                comment=survey.comment,
                responded_at=ensure_utc(survey.responded_at),
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                exists = await session.get(CSATSurveyModel, survey.id)
                if exists is None:
                    raise RepositoryException(f"Survey {survey.id} not found")
                raise SurveyAlreadyRespondedException(survey.id)
        return survey

    async def delete(self, survey_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(CSATSurveyModel).where(CSATSurveyModel.id == survey_id))

    async def get_by_token(self, token: str) -> Optional[CSATSurvey]:
        stmt = select(CSATSurveyModel).where(CSATSurveyModel.token == token)
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _to_entity(model) if model else None

    async def latest_for_ticket(self, ticket_id: str) -> Optional[CSATSurvey]:
        stmt = (
            select(CSATSurveyModel)
            .where(CSATSurveyModel.ticket_id == ticket_id)
            .order_by(CSATSurveyModel.sent_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _to_entity(model) if model else None

    async def list_for_org(
        self,
        org_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[CSATSurvey]:
        conditions = [CSATSurveyModel.org_id == org_id]
        if start is not None:
            conditions.append(CSATSurveyModel.created_at >= ensure_utc(start))
        if end is not None:
            conditions.append(CSATSurveyModel.created_at <= ensure_utc(end))

        stmt = select(CSATSurveyModel).where(and_(*conditions)).order_by(CSATSurveyModel.created_at.asc())
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_entity(m) for m in result.scalars().all()]
