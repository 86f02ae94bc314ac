# analysis_service/application/ports/image_storage_port.py
import abc

from analysis_service.domain.models import InlineImage

class ImageStoragePort(abc.ABC):

    @abc.abstractmethod
    async def download_image(self, path: str) -> InlineImage:
        """
        Downloads one image and returns it base64 encoded with its MIME type.

        Raises:
            ImageDownloadError: If the object cannot be downloaded.
        """
        raise NotImplementedError
