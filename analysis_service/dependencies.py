# analysis_service/dependencies.py
"""
Builds the adapters and use cases once per process and resolves them for
request handlers. Everything lives on ``app.state``.
"""
import structlog
from fastapi import FastAPI, HTTPException, Request, status

from analysis_service.application.use_cases.generate_analysis_use_case import GenerateAnalysisUseCase
from analysis_service.application.use_cases.search_products_use_case import ProductSearchUseCase
from analysis_service.infrastructure.auth.gcp_token_cache import GcpTokenCache, ServiceAccountTokenSource
from analysis_service.infrastructure.embedding_models.vertex_embedding_adapter import VertexEmbeddingAdapter
from analysis_service.infrastructure.llm.gemini_adapter import GeminiAdapter
from analysis_service.infrastructure.repositories.supabase_product_repository import SupabaseProductRepository
from analysis_service.infrastructure.repositories.supabase_questionnaire_repository import SupabaseQuestionnaireRepository
from analysis_service.infrastructure.storage.supabase_storage_adapter import SupabaseStorageAdapter
from analysis_service.infrastructure.weather.weatherkit_adapter import WeatherKitAdapter

log = structlog.get_logger(__name__)


def init_dependencies(app: FastAPI) -> None:
    """Called from the lifespan. One token cache is shared by every component."""
    token_cache = GcpTokenCache(ServiceAccountTokenSource())
    embedding_adapter = VertexEmbeddingAdapter(token_cache=token_cache)
    product_repository = SupabaseProductRepository()
    questionnaire_repository = SupabaseQuestionnaireRepository()
    image_storage = SupabaseStorageAdapter()
    llm = GeminiAdapter()

    product_search = ProductSearchUseCase(embedding_model=embedding_adapter, product_repository=product_repository)

    app.state.token_cache = token_cache
    app.state.clients = [embedding_adapter, product_repository, questionnaire_repository, image_storage, llm]
    app.state.product_search_use_case = product_search
    app.state.generate_analysis_use_case = GenerateAnalysisUseCase(
        questionnaire_repository=questionnaire_repository,
        image_storage=image_storage,
        token_cache=token_cache,
        llm=llm,
        product_search=product_search,
    )
    app.state.weather_adapter = WeatherKitAdapter()
    app.state.clients.append(app.state.weather_adapter)
    app.state.service_ready = True
    log.info("Analysis service dependencies set", service_ready=True)


async def close_dependencies(app: FastAPI) -> None:
    app.state.service_ready = False
    token_cache = getattr(app.state, "token_cache", None)
    if token_cache is not None:
        await token_cache.close()
    for client in getattr(app.state, "clients", []):
        await client.close()


def _require(request: Request, name: str):
    instance = getattr(request.app.state, name, None)
    if not getattr(request.app.state, "service_ready", False) or instance is None:
        log.error("Dependency requested but service is not ready", dependency=name)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analysis service is not ready. Please try again later.",
        )
    return instance


def get_generate_analysis_use_case(request: Request) -> GenerateAnalysisUseCase:
    return _require(request, "generate_analysis_use_case")


def get_product_search_use_case(request: Request) -> ProductSearchUseCase:
    return _require(request, "product_search_use_case")


def get_weather_adapter(request: Request) -> WeatherKitAdapter:
    return _require(request, "weather_adapter")
