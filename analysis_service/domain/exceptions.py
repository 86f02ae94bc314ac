# analysis_service/domain/exceptions.py
from typing import Any, Optional


class AnalysisServiceError(Exception):
    """Base exception for the service. Carries the HTTP status it maps to."""
    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class RequestValidationFailed(AnalysisServiceError):
    """Malformed or out-of-range input. Never retried."""
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class QuestionnaireNotFoundError(AnalysisServiceError):
    status_code = 404


class ImageDownloadError(AnalysisServiceError):
    status_code = 400


class ConfigurationError(AnalysisServiceError):
    """Invalid or missing configuration. Fatal, never retried."""
    status_code = 500


class UpstreamServiceError(AnalysisServiceError):
    """Error talking to an external dependency (Vertex AI, Supabase, WeatherKit)."""
    status_code = 500

    def __init__(self, message: str, service: str, upstream_status: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.service = service
        self.upstream_status = upstream_status
        self.detail = detail

    def __str__(self):
        if self.upstream_status is not None:
            return f"{self.message} (service={self.service}, status={self.upstream_status})"
        return f"{self.message} (service={self.service})"


class TokenRejectedError(UpstreamServiceError):
    """The upstream answered 401/403: the cached bearer token must be dropped."""


class AIResponseError(AnalysisServiceError):
    """The model output could not be read as JSON."""
    status_code = 500


class OutputValidationError(AnalysisServiceError):
    """The model output does not match the strict analysis schema."""
    status_code = 500

    def __init__(self, message: str, code: str, field: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.field = field


class WeatherServiceError(UpstreamServiceError):
    """WeatherKit answered with an error; its status is passed through to the client."""

    def __init__(self, message: str, upstream_status: int, detail: Any = None):
        super().__init__(message, service="WeatherKit", upstream_status=upstream_status, detail=detail)
        self.status_code = upstream_status
