# analysis_service/infrastructure/supabase_client.py
from typing import Optional

import httpx
from pydantic import SecretStr

from analysis_service.core.config import settings
from analysis_service.services.base_client import BaseServiceClient


class SupabaseClient(BaseServiceClient):
    """HTTP client for the Supabase REST (PostgREST) and Storage APIs, authenticated with the service role key."""

    def __init__(
        self,
        service_name: str,
        base_url: Optional[str] = None,
        service_role_key: Optional[SecretStr] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        key = (service_role_key or settings.SUPABASE_SERVICE_ROLE_KEY).get_secret_value()
        super().__init__(
            base_url=base_url or settings.SUPABASE_URL,
            service_name=service_name,
            transport=transport,
            default_headers={"apikey": key, "Authorization": f"Bearer {key}"},
        )
