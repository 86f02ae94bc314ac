# File: analysis_service/infrastructure/embedding_models/vertex_embedding_adapter.py
import asyncio
from typing import Any, Callable, List, Optional

import httpx
import structlog

from analysis_service.application.ports.embedding_model_port import EmbeddingModelPort
from analysis_service.core.config import settings
from analysis_service.core.metrics import UPSTREAM_ERRORS_TOTAL
from analysis_service.domain.exceptions import TokenRejectedError, UpstreamServiceError
from analysis_service.infrastructure.auth.gcp_token_cache import GcpTokenCache
from analysis_service.services.base_client import BaseServiceClient
from analysis_service.services.retry import SleepFn, component_retrying

log = structlog.get_logger(__name__)

Extractor = Callable[[Any], Optional[Any]]


def _from_prediction_embedding_values(body: Any) -> Optional[Any]:
    return body["predictions"][0]["embeddings"]["values"]


def _from_prediction_embeddings(body: Any) -> Optional[Any]:
    return body["predictions"][0]["embeddings"]


def _from_embeddings_values(body: Any) -> Optional[Any]:
    return body["embeddings"][0]["values"]


# Order matters: the first extractor that yields a non-empty list wins.
EMBEDDING_EXTRACTORS: List[Extractor] = [
    _from_prediction_embedding_values,
    _from_prediction_embeddings,
    _from_embeddings_values,
]


def extract_embedding(body: Any) -> List[float]:
    """Resolves the vector from any of the known Vertex AI response shapes."""
    for extractor in EMBEDDING_EXTRACTORS:
        try:
            candidate = extractor(body)
        except (KeyError, IndexError, TypeError):
            continue
        if isinstance(candidate, list) and len(candidate) > 0:
            return candidate
    raise UpstreamServiceError(
        "Invalid embedding response format from Vertex AI",
        service="VertexAIEmbedding",
        detail=str(body)[:500],
    )


class VertexEmbeddingAdapter(BaseServiceClient, EmbeddingModelPort):
    """
    Adapter for the Vertex AI text embedding endpoint (``:predict``).
    """

    def __init__(
        self,
        token_cache: GcpTokenCache,
        endpoint: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Optional[SleepFn] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint or settings.embedding_endpoint
        super().__init__(base_url=self.endpoint, service_name="VertexAIEmbedding", transport=transport)
        self._token_cache = token_cache
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        self._timeout_seconds = timeout_seconds or settings.EMBEDDING_TIMEOUT_SECONDS
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        log.info("VertexEmbeddingAdapter initialized", endpoint=self.endpoint, dimension=self._dimension)

    async def embed(self, query: str) -> List[float]:
        log.debug("Generating embedding", adapter="VertexEmbeddingAdapter", query_length=len(query))
        retrying = component_retrying(
            "embedding generation",
            max_attempts=self._max_attempts,
            backoff_seconds=self._backoff_seconds,
            sleep=self._sleep,
        )
        return await retrying(self._embed_once, query)

    async def _embed_once(self, query: str) -> List[float]:
        token = await self._token_cache.get_valid_token()
        payload = {
            "instances": [{"content": query}],
            "parameters": {"outputDimensionality": self._dimension},
        }
        try:
            # wait_for cancels the in-flight request when the deadline passes.
            response = await asyncio.wait_for(
                self._request(
                    "POST",
                    self.endpoint,
                    json=payload,
                    headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                ),
                timeout=self._timeout_seconds,
            )
        except TokenRejectedError:
            self._token_cache.invalidate()
            raise
        except asyncio.TimeoutError as e:
            UPSTREAM_ERRORS_TOTAL.labels(service=self.service_name, error_type="timeout").inc()
            raise UpstreamServiceError(
                f"Embedding request timed out after {self._timeout_seconds}s",
                service=self.service_name,
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamServiceError(
                "Embedding response is not valid JSON", service=self.service_name, detail=response.text[:500]
            ) from e
        return extract_embedding(body)
