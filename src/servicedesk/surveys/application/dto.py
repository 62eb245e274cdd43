"""
Survey Application DTOs
=======================

Request/response models for the CSAT endpoints.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from servicedesk.surveys.domain import CSATMetrics, CSATSurvey, MAX_SCORE, MIN_SCORE


class CSATResponseDTO(BaseModel):
    """Requester's answer to a survey."""
    score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE, description="Satisfaction score 1-5")
    comment: Optional[str] = Field(None, max_length=2000, description="Free-text comment")


class CSATSurveyResponse(BaseModel):
    id: str
    ticket_id: str
    score: Optional[int] = None
    comment: Optional[str] = None
    sent_at: datetime
    responded_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, survey: CSATSurvey) -> "CSATSurveyResponse":
        return cls(
            id=survey.id,
            ticket_id=survey.ticket_id,
            score=survey.score,
            comment=survey.comment,
            sent_at=survey.sent_at,
            responded_at=survey.responded_at,
        )


class CSATMetricsResponse(BaseModel):
    org_id: str
    total_surveys: int
    total_responses: int
    response_rate: float = Field(..., description="Percent of surveys answered")
    average_score: float
    score_distribution: Dict[str, int]

    @classmethod
    def from_metrics(cls, org_id: str, metrics: CSATMetrics) -> "CSATMetricsResponse":
        return cls(
            org_id=org_id,
            total_surveys=metrics.total_surveys,
            total_responses=metrics.total_responses,
            response_rate=round(metrics.response_rate, 2),
            average_score=round(metrics.average_score, 2),
            score_distribution=metrics.score_distribution,
        )
