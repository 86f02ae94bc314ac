# analysis_service/infrastructure/storage/supabase_storage_adapter.py
import base64
import mimetypes
from typing import Optional

import httpx
import structlog
from pydantic import SecretStr

from analysis_service.application.ports.image_storage_port import ImageStoragePort
from analysis_service.core.config import settings
from analysis_service.domain.exceptions import ImageDownloadError, UpstreamServiceError
from analysis_service.domain.models import InlineImage
from analysis_service.infrastructure.supabase_client import SupabaseClient

log = structlog.get_logger(__name__)

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"


def resolve_mime_type(path: str, content_type: Optional[str]) -> str:
    if content_type:
        mime_type = content_type.split(";")[0].strip()
        if mime_type.startswith("image/"):
            return mime_type
    guessed, _ = mimetypes.guess_type(path)
    return guessed or DEFAULT_IMAGE_MIME_TYPE


class SupabaseStorageAdapter(SupabaseClient, ImageStoragePort):
    """Downloads face images from a private Supabase Storage bucket."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_role_key: Optional[SecretStr] = None,
        bucket: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("SupabaseStorage", base_url=base_url, service_role_key=service_role_key, transport=transport)
        self.bucket = bucket or settings.SKIN_IMAGES_BUCKET

    async def download_image(self, path: str) -> InlineImage:
        try:
            response = await self._request("GET", f"/storage/v1/object/{self.bucket}/{path}")
        except UpstreamServiceError as e:
            log.error("Error downloading image", path=path, error=str(e))
            raise ImageDownloadError(f"Image processing failed for {path}: {e.message}", details=str(e)) from e

        if not response.content:
            raise ImageDownloadError(f"Image processing failed for {path}: empty object")

        mime_type = resolve_mime_type(path, response.headers.get("content-type"))
        log.debug("Image downloaded", path=path, size_bytes=len(response.content), mime_type=mime_type)
        return InlineImage(mime_type=mime_type, data=base64.b64encode(response.content).decode("ascii"))
