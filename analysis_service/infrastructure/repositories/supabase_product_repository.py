# analysis_service/infrastructure/repositories/supabase_product_repository.py
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import SecretStr, ValidationError

from analysis_service.application.ports.product_repository_port import ProductRepositoryPort
from analysis_service.core.config import settings
from analysis_service.domain.exceptions import UpstreamServiceError
from analysis_service.domain.models import ProductSearchResult
from analysis_service.infrastructure.supabase_client import SupabaseClient
from analysis_service.services.retry import SleepFn, component_retrying

log = structlog.get_logger(__name__)

TEXT_SEARCH_FIELDS = ("title", "brand", "product_type", "summary")

TEXT_BASE_SCORE = 0.5
TEXT_TITLE_BOOST = 0.3
TEXT_BRAND_BOOST = 0.2
TEXT_TYPE_BOOST = 0.2
TEXT_POSITION_PENALTY = 0.05
TEXT_MIN_SCORE = 0.3
TEXT_MAX_SCORE = 0.85


def score_text_match(row: Dict[str, Any], query: str, index: int) -> float:
    """Synthetic similarity for a text-search hit, always within [0.3, 0.85]."""
    lower_query = query.lower()
    score = TEXT_BASE_SCORE
    if lower_query in (row.get("title") or "").lower():
        score += TEXT_TITLE_BOOST
    if lower_query in (row.get("brand") or "").lower():
        score += TEXT_BRAND_BOOST
    if lower_query in (row.get("product_type") or "").lower():
        score += TEXT_TYPE_BOOST
    score = max(score - index * TEXT_POSITION_PENALTY, TEXT_MIN_SCORE)
    return min(score, TEXT_MAX_SCORE)


def _quote_filter_value(value: str) -> str:
    # PostgREST reserved characters (commas, parentheses) are safe inside double quotes.
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_text_search_filter(query: str) -> str:
    pattern = _quote_filter_value(f"*{query}*")
    return "(" + ",".join(f"{field}.ilike.{pattern}" for field in TEXT_SEARCH_FIELDS) + ")"


def _to_results(rows: List[Any], source: str) -> List[ProductSearchResult]:
    results = []
    for row in rows:
        try:
            results.append(ProductSearchResult.model_validate(row))
        except ValidationError as e:
            product_id = row.get("id") if isinstance(row, dict) else None
            log.warning("Dropping malformed product row", source=source, product_id=product_id, error=str(e))
    return results


class SupabaseProductRepository(SupabaseClient, ProductRepositoryPort):
    """
    Product catalog backed by Supabase: the ``match_products`` RPC for vector
    search and a PostgREST ``ilike`` query for the text fallback.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_role_key: Optional[SecretStr] = None,
        products_table: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Optional[SleepFn] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("SupabaseProducts", base_url=base_url, service_role_key=service_role_key, transport=transport)
        self.products_table = products_table or settings.PRODUCTS_TABLE
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    def _retrying(self, operation: str):
        return component_retrying(
            operation, max_attempts=self._max_attempts, backoff_seconds=self._backoff_seconds, sleep=self._sleep
        )

    async def match_products(self, embedding: List[float], threshold: float, count: int) -> List[ProductSearchResult]:
        return await self._retrying("database search")(self._match_products_once, embedding, threshold, count)

    async def _match_products_once(self, embedding: List[float], threshold: float, count: int) -> List[ProductSearchResult]:
        response = await self._request(
            "POST",
            "/rest/v1/rpc/match_products",
            json={"query_embedding": embedding, "match_threshold": threshold, "match_count": count},
        )
        rows = response.json()
        if not isinstance(rows, list):
            raise UpstreamServiceError("Invalid database response format", service=self.service_name)
        products = _to_results(rows, source="vector")
        log.info("Database search successful", product_count=len(products))
        return products

    async def text_search(self, query: str, count: int) -> List[ProductSearchResult]:
        return await self._retrying("text search")(self._text_search_once, query, count)

    async def _text_search_once(self, query: str, count: int) -> List[ProductSearchResult]:
        params = {"select": "*", "or": build_text_search_filter(query), "limit": str(count)}
        response = await self._request("GET", f"/rest/v1/{self.products_table}", params=params)
        rows = response.json()
        if not isinstance(rows, list):
            raise UpstreamServiceError("Invalid text search response", service=self.service_name)
        scored = [
            {**row, "similarity": score_text_match(row, query, index)}
            for index, row in enumerate(rows)
            if isinstance(row, dict)
        ]
        products = _to_results(scored, source="text")
        log.info("Text search successful", product_count=len(products))
        return products
