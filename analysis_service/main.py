# File: analysis_service/main.py
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

# --- Setup Logging First ---
from analysis_service.core.logging_config import setup_logging
setup_logging()

from analysis_service.core.config import settings
from analysis_service.core.metrics import REQUEST_PROCESSING_DURATION_SECONDS
from analysis_service.api.v1.endpoints import analysis_endpoint, search_endpoint, weather_endpoint
from analysis_service.dependencies import close_dependencies, init_dependencies
from analysis_service.domain.exceptions import AnalysisServiceError

log = structlog.get_logger(__name__)

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


# --- Lifespan Manager (Startup/Shutdown) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(f"{settings.PROJECT_NAME}: initializing clients and use cases...")
    try:
        init_dependencies(app)
    except Exception:
        log.exception("CRITICAL: Failed to initialize service dependencies!")
        app.state.service_ready = False

    yield

    log.info(f"{settings.PROJECT_NAME}: shutting down...")
    await close_dependencies(app)
    log.info("Shutdown complete.")


# --- FastAPI App Instance ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Skin analysis orchestration: questionnaire and images in, validated analysis and product routine out.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Middlewares ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=CORS_ALLOWED_HEADERS,
    expose_headers=["X-Request-ID", "X-Process-Time"],
)


@app.middleware("http")
async def request_context_timing_logging(request: Request, call_next):
    start_time = time.perf_counter()
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    request_log = log.bind(
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else "unknown",
    )
    request_log.info("Request received")

    response = await call_next(request)
    process_time = time.perf_counter() - start_time
    route = request.scope.get("route")
    REQUEST_PROCESSING_DURATION_SECONDS.labels(
        method=request.method, path=getattr(route, "path", request.url.path)
    ).observe(process_time)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{process_time * 1000:.2f}ms"
    request_log.info("Request completed", status_code=response.status_code, duration_ms=round(process_time * 1000, 2))
    return response


# --- Exception Handlers ---
def error_response(message: str, status_code: int, details: Optional[Any] = None) -> JSONResponse:
    body = {"message": message, "status": status_code}
    if details:
        body["details"] = str(details)
    return JSONResponse(status_code=status_code, content={"error": body})


@app.exception_handler(AnalysisServiceError)
async def analysis_service_exception_handler(request: Request, exc: AnalysisServiceError):
    if exc.status_code >= 500:
        log.error("Request failed", error=exc.message, error_type=type(exc).__name__, exc_info=exc)
    else:
        log.warning("Request rejected", error=exc.message, error_type=type(exc).__name__, status_code=exc.status_code)
    return error_response(exc.message, exc.status_code, exc.details)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "Invalid JSON in request body"
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if first.get("type") == "missing":
        return f"Missing required field: {field}"
    message = str(first.get("msg", "Invalid request body"))
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    return f"{field}: {message}" if field else message


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = _validation_message(exc)
    log.warning("Request validation failed", error=message, errors=exc.errors())
    return error_response(message, status.HTTP_400_BAD_REQUEST)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(str(exc.detail), exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled exception during request", error=str(exc))
    return error_response("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)


# --- Router Inclusion ---
app.include_router(analysis_endpoint.router, tags=["Analysis"])
app.include_router(search_endpoint.router, tags=["Products"])
app.include_router(weather_endpoint.router, tags=["Weather"])
app.mount("/metrics", make_asgi_app())


# --- Health Endpoint ---
@app.get("/health", tags=["Health"], summary="Health check endpoint")
async def health_check(request: Request):
    if getattr(request.app.state, "service_ready", False):
        return JSONResponse({"status": "healthy", "service": settings.PROJECT_NAME})
    log.error("Health check failed: service dependencies not initialized.")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "unhealthy", "service": settings.PROJECT_NAME},
    )


# --- Main Execution ---
if __name__ == "__main__":
    uvicorn.run(
        "analysis_service.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
