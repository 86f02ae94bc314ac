import httpx
import structlog
from typing import Any, Dict, Optional

from analysis_service.core.config import settings
from analysis_service.core.metrics import UPSTREAM_CALL_DURATION_SECONDS, UPSTREAM_ERRORS_TOTAL
from analysis_service.domain.exceptions import TokenRejectedError, UpstreamServiceError

log = structlog.get_logger(__name__)

class BaseServiceClient:
    """Async HTTP client base. Maps transport and status failures to UpstreamServiceError."""

    def __init__(
        self,
        base_url: str,
        service_name: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url
        self.service_name = service_name
        self.limits = httpx.Limits(
            max_keepalive_connections=settings.HTTP_CLIENT_MAX_KEEPALIVE_CONNECTIONS,
            max_connections=settings.HTTP_CLIENT_MAX_CONNECTIONS,
        )
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.HTTP_CLIENT_TIMEOUT,
            transport=transport,
            limits=self.limits,
            headers=default_headers,
        )
        self.log = log.bind(service=service_name)

    async def close(self):
        await self.client.aclose()
        self.log.info(f"{self.service_name} client closed.")

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Performs one HTTP request. Retries belong to the calling component."""
        self.log.debug(f"Requesting {self.service_name}", method=method, endpoint=endpoint)
        try:
            with UPSTREAM_CALL_DURATION_SECONDS.labels(service=self.service_name).time():
                response = await self.client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                    json=json,
                    data=data,
                    headers=headers,
                )
            response.raise_for_status()
            self.log.debug(f"Received response from {self.service_name}", status_code=response.status_code)
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            self.log.error(f"HTTP error from {self.service_name}", status_code=status_code, detail=e.response.text[:500])
            UPSTREAM_ERRORS_TOTAL.labels(service=self.service_name, error_type=f"http_{status_code}").inc()
            error_cls = TokenRejectedError if status_code in (401, 403) else UpstreamServiceError
            raise error_cls(
                f"{self.service_name} returned error: {status_code}",
                service=self.service_name,
                upstream_status=status_code,
                detail=e.response.text,
            ) from e
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            self.log.error(f"Network error when calling {self.service_name}", error=str(e))
            UPSTREAM_ERRORS_TOTAL.labels(service=self.service_name, error_type=type(e).__name__).inc()
            raise UpstreamServiceError(
                f"Request to {self.service_name} failed: {type(e).__name__}",
                service=self.service_name,
                detail=str(e),
            ) from e
        except httpx.RequestError as e:
            self.log.error(f"Request error when calling {self.service_name}", error=str(e))
            UPSTREAM_ERRORS_TOTAL.labels(service=self.service_name, error_type=type(e).__name__).inc()
            raise UpstreamServiceError(
                f"Request to {self.service_name} failed: {type(e).__name__}",
                service=self.service_name,
                detail=str(e),
            ) from e
