# analysis_service/api/v1/endpoints/analysis_endpoint.py
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, status

from analysis_service.api.v1 import schemas
from analysis_service.application.use_cases.generate_analysis_use_case import GenerateAnalysisUseCase
from analysis_service.core.metrics import ANALYSIS_REQUESTS_TOTAL
from analysis_service.dependencies import get_generate_analysis_use_case
from analysis_service.domain.exceptions import AnalysisServiceError

router = APIRouter()
log = structlog.get_logger(__name__)


@router.post(
    "/generate-analysis",
    status_code=status.HTTP_200_OK,
    summary="Generate Skin Analysis and Routine",
    description="Analyzes the questionnaire and face images, searches the catalog and returns a validated analysis plus a 4-product routine.",
    responses={400: {"model": schemas.ErrorResponse}, 404: {"model": schemas.ErrorResponse}, 500: {"model": schemas.ErrorResponse}},
)
async def generate_analysis_endpoint(
    request_body: schemas.AnalysisRequest,
    use_case: GenerateAnalysisUseCase = Depends(get_generate_analysis_use_case),
) -> Dict[str, Any]:
    try:
        result = await use_case.execute(request_body)
    except AnalysisServiceError as e:
        ANALYSIS_REQUESTS_TOTAL.labels(status=str(e.status_code)).inc()
        raise
    except Exception:
        ANALYSIS_REQUESTS_TOTAL.labels(status="500").inc()
        raise
    ANALYSIS_REQUESTS_TOTAL.labels(status="200").inc()
    return result
