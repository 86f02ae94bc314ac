# analysis_service/api/v1/endpoints/search_endpoint.py
import structlog
from fastapi import APIRouter, Depends, status

from analysis_service.api.v1 import schemas
from analysis_service.application.use_cases.search_products_use_case import ProductSearchUseCase
from analysis_service.core.config import settings
from analysis_service.dependencies import get_product_search_use_case
from analysis_service.domain.validation import validate_search_query

router = APIRouter()
log = structlog.get_logger(__name__)


@router.post(
    "/search-products",
    response_model=schemas.ProductSearchResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Search Skincare Products",
    description="Runs the semantic search with text fallback used by the analysis tool calls.",
)
async def search_products_endpoint(
    request_body: schemas.SearchProductsRequest,
    use_case: ProductSearchUseCase = Depends(get_product_search_use_case),
):
    query = validate_search_query(request_body.query, settings.MAX_QUERY_LENGTH)
    log.info("Received product search request", query=query[:100])
    return await use_case.search_products(
        query, threshold=request_body.match_threshold, count=request_body.match_count
    )
