"""
Survey Domain Entities
======================

CSAT survey and aggregated metrics.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional

from servicedesk.core import SurveyAlreadyRespondedException, ValidationException
from servicedesk.tickets.domain import new_id

MIN_SCORE = 1
MAX_SCORE = 5


@dataclass
class CSATSurvey:
    """
    Satisfaction survey sent to a ticket's requester.

    Addressed by an unguessable ``token``; accepts exactly one response.
    """
    ticket_id: str
    org_id: str
    requester_id: str
    token: str
    sent_at: datetime
    created_at: datetime
    score: Optional[int] = None
    comment: Optional[str] = None
    responded_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    @property
    def is_responded(self) -> bool:
        return self.responded_at is not None

    def respond(self, score: int, comment: Optional[str], at: datetime) -> None:
        """
        Record the requester's answer.

        Raises:
            SurveyAlreadyRespondedException: A response was already recorded
            ValidationException: Score outside 1..5
        """
        if self.is_responded:
            raise SurveyAlreadyRespondedException(self.id)
        if not MIN_SCORE <= score <= MAX_SCORE:
            raise ValidationException(
                f"Score must be between {MIN_SCORE} and {MAX_SCORE}",
                {"score": score}
            )
        self.score = score
        self.comment = comment
        self.responded_at = at


@dataclass(frozen=True)
class CSATMetrics:
    total_surveys: int
    total_responses: int
    response_rate: float  # percent
    average_score: float
    score_distribution: Dict[str, int]

    @classmethod
    def from_surveys(cls, surveys: Iterable[CSATSurvey]) -> "CSATMetrics":
        surveys = list(surveys)
        scores = [s.score for s in surveys if s.score is not None]
        total = len(surveys)
        return cls(
            total_surveys=total,
            total_responses=len(scores),
            response_rate=(len(scores) / total) * 100 if total else 0.0,
            average_score=sum(scores) / len(scores) if scores else 0.0,
            score_distribution={
                str(value): scores.count(value) for value in range(MIN_SCORE, MAX_SCORE + 1)
            },
        )
