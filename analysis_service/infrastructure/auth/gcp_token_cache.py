# analysis_service/infrastructure/auth/gcp_token_cache.py
import json
import time
from typing import Any, Callable, Dict, Optional

import httpx
import structlog
from jose import jwt, JOSEError
from pydantic import SecretStr

from analysis_service.core.config import settings
from analysis_service.core.metrics import AUTH_TOKEN_REFRESH_TOTAL
from analysis_service.domain.exceptions import ConfigurationError, UpstreamServiceError
from analysis_service.domain.models import CachedToken
from analysis_service.services.base_client import BaseServiceClient

log = structlog.get_logger(__name__)

JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


def load_service_account(raw: Optional[SecretStr]) -> Dict[str, Any]:
    """Parses the service account JSON. Anything missing or malformed is a fatal configuration error."""
    if raw is None or not raw.get_secret_value():
        raise ConfigurationError(
            "Missing required GCP service account configuration. "
            "Please ensure ANALYSIS_GCP_SERVICE_ACCOUNT_KEY is set."
        )
    try:
        service_account = json.loads(raw.get_secret_value())
    except json.JSONDecodeError as e:
        raise ConfigurationError("Invalid service account JSON format") from e

    if not isinstance(service_account, dict):
        raise ConfigurationError("Invalid service account JSON format")
    if not service_account.get("client_email") or not service_account.get("private_key"):
        raise ConfigurationError("Invalid service account: missing client_email or private_key")

    # Keys pasted into env files often carry literal "\n" sequences.
    service_account["private_key"] = service_account["private_key"].replace("\\n", "\n")
    return service_account


class ServiceAccountTokenSource(BaseServiceClient):
    """Exchanges a signed service-account assertion for an OAuth2 access token."""

    def __init__(
        self,
        service_account_key: Optional[SecretStr] = None,
        token_uri: Optional[str] = None,
        scope: Optional[str] = None,
        lifetime_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_uri = token_uri or settings.GCP_TOKEN_URI
        super().__init__(base_url=self.token_uri, service_name="GoogleOAuth", transport=transport)
        self._service_account_key = service_account_key if service_account_key is not None else settings.GCP_SERVICE_ACCOUNT_KEY
        self.scope = scope or settings.GCP_TOKEN_SCOPE
        self.lifetime_seconds = lifetime_seconds or settings.TOKEN_LIFETIME_SECONDS
        self._clock = clock

    def build_assertion(self, service_account: Dict[str, Any]) -> str:
        now = int(self._clock())
        claims = {
            "iss": service_account["client_email"],
            "scope": self.scope,
            "aud": self.token_uri,
            "iat": now,
            "exp": now + self.lifetime_seconds,
        }
        try:
            return jwt.encode(claims, service_account["private_key"], algorithm="RS256")
        except (JOSEError, ValueError, TypeError) as e:
            raise ConfigurationError(f"Unable to sign service account assertion: {e}") from e

    async def fetch_token(self) -> str:
        service_account = load_service_account(self._service_account_key)
        assertion = self.build_assertion(service_account)

        response = await self._request(
            "POST",
            self.token_uri,
            data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        access_token = response.json().get("access_token")
        if not access_token:
            raise UpstreamServiceError("No access token received from Google OAuth", service=self.service_name)
        return access_token


class GcpTokenCache:
    """
    Single-slot, process-wide cache for the Vertex AI bearer token.

    A token issued at T is reused while ``now < T + lifetime - refresh_margin``
    (55 minutes with the defaults). Callers that get a 401/403 call
    :meth:`invalidate` so the next :meth:`get_valid_token` refreshes.
    Concurrent refreshes are harmless: each one stores a complete token and the
    last writer wins.
    """

    def __init__(
        self,
        token_source: ServiceAccountTokenSource,
        lifetime_seconds: Optional[int] = None,
        refresh_margin_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._source = token_source
        self._lifetime = lifetime_seconds if lifetime_seconds is not None else settings.TOKEN_LIFETIME_SECONDS
        self._margin = refresh_margin_seconds if refresh_margin_seconds is not None else settings.TOKEN_REFRESH_MARGIN_SECONDS
        self._clock = clock
        self._cached: Optional[CachedToken] = None

    @property
    def cached(self) -> Optional[CachedToken]:
        return self._cached

    async def get_valid_token(self) -> str:
        now = self._clock()
        cached = self._cached
        if cached is not None and cached.is_usable(now, self._margin):
            log.debug("Using cached auth token", expires_in_s=round(cached.expires_at - now))
            return cached.token

        reason = "empty" if cached is None else "expired"
        log.info("Generating new auth token...", reason=reason)
        try:
            token = await self._source.fetch_token()
        except ConfigurationError:
            log.critical("GCP service account configuration is invalid", exc_info=True)
            raise
        except UpstreamServiceError as e:
            log.error("Failed to get auth token", error=str(e))
            raise UpstreamServiceError(
                f"Authentication failed: {e.message}", service="GoogleOAuth", upstream_status=e.upstream_status, detail=e.detail
            ) from e

        self._cached = CachedToken(token=token, expires_at=now + self._lifetime)
        AUTH_TOKEN_REFRESH_TOTAL.labels(reason=reason).inc()
        log.info("New auth token generated and cached", valid_for_s=self._lifetime - self._margin)
        return token

    def invalidate(self) -> None:
        if self._cached is not None:
            log.warning("Invalidating cached auth token")
        self._cached = None

    async def close(self):
        await self._source.close()
