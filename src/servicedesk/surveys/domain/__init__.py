"""
Survey Domain Layer
===================

Contains:
- Entities: CSATSurvey, CSATMetrics
"""

from servicedesk.surveys.domain.entities import CSATSurvey, CSATMetrics, MIN_SCORE, MAX_SCORE

__all__ = [
    "CSATSurvey",
    "CSATMetrics",
    "MIN_SCORE",
    "MAX_SCORE",
]
