"""
Survey Infrastructure Layer
===========================

- Repositories: in-memory and SQLAlchemy implementations
- Models: SQLAlchemy ORM model
"""

from servicedesk.surveys.infrastructure.repositories import (
    InMemorySurveyRepository,
    SQLAlchemySurveyRepository,
)

__all__ = [
    "InMemorySurveyRepository",
    "SQLAlchemySurveyRepository",
]
