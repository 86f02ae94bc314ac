# analysis_service/application/ports/product_repository_port.py
import abc
from typing import List

from analysis_service.domain.models import ProductSearchResult

class ProductRepositoryPort(abc.ABC):
    """
    Abstract port for the product catalog.
    """

    @abc.abstractmethod
    async def match_products(self, embedding: List[float], threshold: float, count: int) -> List[ProductSearchResult]:
        """
        Vector similarity search with a minimum threshold and a result cap.

        Raises:
            UpstreamServiceError: If the lookup keeps failing after all retries.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def text_search(self, query: str, count: int) -> List[ProductSearchResult]:
        """
        Case-insensitive substring search over title, brand, product type and summary.
        Results carry a synthetic similarity score.

        Raises:
            UpstreamServiceError: If the lookup keeps failing after all retries.
        """
        raise NotImplementedError
