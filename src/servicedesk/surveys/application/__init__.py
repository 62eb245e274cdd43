"""
Survey Application Layer
========================

Contains:
- ISurveyRepository
- SurveyScheduler: delayed survey dispatch
- CSATService: responses and metrics
- DTOs for the API layer
"""

from servicedesk.surveys.application.services import (
    ISurveyRepository,
    SurveyScheduler,
    CSATService,
)
from servicedesk.surveys.application.dto import (
    CSATResponseDTO,
    CSATSurveyResponse,
    CSATMetricsResponse,
)

__all__ = [
    "ISurveyRepository",
    "SurveyScheduler",
    "CSATService",
    "CSATResponseDTO",
    "CSATSurveyResponse",
    "CSATMetricsResponse",
]
