# analysis_service/application/ports/embedding_model_port.py
import abc
from typing import List

class EmbeddingModelPort(abc.ABC):
    """
    Abstract port defining the interface for a query embedding model.
    """

    @abc.abstractmethod
    async def embed(self, query: str) -> List[float]:
        """
        Generates the embedding for a single search query.

        Args:
            query: The free-text query to embed.

        Returns:
            A non-empty list of floats.

        Raises:
            UpstreamServiceError: If embedding generation fails after all retries.
            ConfigurationError: If credentials cannot be loaded.
        """
        raise NotImplementedError
