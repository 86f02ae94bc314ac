# analysis_service/application/use_cases/search_products_use_case.py
import time
from typing import Optional

import structlog

from analysis_service.application.ports.embedding_model_port import EmbeddingModelPort
from analysis_service.application.ports.product_repository_port import ProductRepositoryPort
from analysis_service.core.config import settings
from analysis_service.core.metrics import PRODUCT_SEARCH_DURATION_SECONDS, PRODUCT_SEARCH_TOTAL
from analysis_service.domain.exceptions import ConfigurationError
from analysis_service.domain.models import ProductSearchResponse

log = structlog.get_logger(__name__)


class ProductSearchUseCase:
    """
    Product search with a two-tier fallback: semantic (embedding + vector RPC),
    then keyword text search. Never raises for search failures; when both tiers
    come back empty the caller gets an empty response with ``fallback_used``.
    """
    def __init__(self, embedding_model: EmbeddingModelPort, product_repository: ProductRepositoryPort):
        self.embedding_model = embedding_model
        self.product_repository = product_repository
        log.info(
            "ProductSearchUseCase initialized",
            embedding_adapter=type(embedding_model).__name__,
            repository=type(product_repository).__name__,
        )

    async def search_products(
        self,
        query: str,
        threshold: Optional[float] = None,
        count: Optional[int] = None,
    ) -> ProductSearchResponse:
        threshold = settings.DEFAULT_SEARCH_THRESHOLD if threshold is None else threshold
        count = settings.DEFAULT_SEARCH_COUNT if count is None else count
        search_log = log.bind(query=query[:100], threshold=threshold, count=count)
        start_time = time.perf_counter()

        try:
            search_log.info("Attempting semantic search...")
            embedding = await self.embedding_model.embed(query)
            products = await self.product_repository.match_products(embedding, threshold, count)
            if products:
                duration_ms = (time.perf_counter() - start_time) * 1000
                search_log.info("Semantic search success", product_count=len(products), duration_ms=round(duration_ms, 2))
                PRODUCT_SEARCH_TOTAL.labels(tier="semantic", outcome="hit").inc()
                PRODUCT_SEARCH_DURATION_SECONDS.observe(duration_ms / 1000)
                return ProductSearchResponse(query=query, product_count=len(products), products=products)
            search_log.warning("Semantic search returned no products, trying text search")
        except ConfigurationError:
            search_log.exception("Semantic search failed due to configuration, trying text search")
        except Exception as e:
            search_log.warning("Semantic search failed, trying text search", error=str(e), error_type=type(e).__name__)

        try:
            products = await self.product_repository.text_search(query, count)
            if products:
                duration_ms = (time.perf_counter() - start_time) * 1000
                search_log.info("Text search success", product_count=len(products), duration_ms=round(duration_ms, 2))
                PRODUCT_SEARCH_TOTAL.labels(tier="text", outcome="hit").inc()
                PRODUCT_SEARCH_DURATION_SECONDS.observe(duration_ms / 1000)
                return ProductSearchResponse(
                    query=query, product_count=len(products), products=products, fallback_used=True
                )
            search_log.warning("Text search returned no products")
        except Exception as e:
            search_log.error("Text search failed", error=str(e), error_type=type(e).__name__)

        duration_ms = (time.perf_counter() - start_time) * 1000
        # Both tiers empty points at the catalog or a broad outage, not at this query.
        search_log.error("All search methods returned no products", duration_ms=round(duration_ms, 2))
        PRODUCT_SEARCH_TOTAL.labels(tier="none", outcome="empty").inc()
        PRODUCT_SEARCH_DURATION_SECONDS.observe(duration_ms / 1000)
        return ProductSearchResponse(query=query, product_count=0, products=[], fallback_used=True)
