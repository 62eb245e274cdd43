"""
Survey Controllers (API Routes)
===============================

Token-addressed CSAT endpoints and organization metrics.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from servicedesk.surveys.application import (
    CSATMetricsResponse,
    CSATResponseDTO,
    CSATService,
    CSATSurveyResponse,
)

router = APIRouter(prefix="/csat", tags=["CSAT"])


def get_csat_service(request: Request) -> CSATService:
    return request.app.state.core.csat


@router.get("/metrics", response_model=CSATMetricsResponse, summary="CSAT metrics for an organization")
async def get_metrics(
    org_id: str = Query(..., min_length=1),
    start: Optional[datetime] = Query(None, description="Surveys created at or after"),
    end: Optional[datetime] = Query(None, description="Surveys created at or before"),
    service: CSATService = Depends(get_csat_service)
) -> CSATMetricsResponse:
    metrics = await service.get_metrics(org_id, start, end)
    return CSATMetricsResponse.from_metrics(org_id, metrics)


@router.get("/{token}", response_model=CSATSurveyResponse, summary="Get a survey by token")
async def get_survey(
    token: str,
    service: CSATService = Depends(get_csat_service)
) -> CSATSurveyResponse:
    return CSATSurveyResponse.from_entity(await service.get_by_token(token))


@router.post("/{token}", response_model=CSATSurveyResponse, summary="Submit a survey response")
async def submit_response(
    token: str,
    request: CSATResponseDTO,
    service: CSATService = Depends(get_csat_service)
) -> CSATSurveyResponse:
    survey = await service.submit_response(token, request.score, request.comment)
    return CSATSurveyResponse.from_entity(survey)
