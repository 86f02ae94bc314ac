# analysis_service/application/ports/llm_port.py
import abc
from typing import Any, Dict

class LLMPort(abc.ABC):
    """
    Abstract port for the generative model used by the analysis pipeline.
    Requests and responses use the Vertex AI ``generateContent`` wire shape.
    """

    @abc.abstractmethod
    async def generate_content(self, request_body: Dict[str, Any], token: str) -> Dict[str, Any]:
        """Non-streaming call to the planning model. Returns the raw response body."""
        raise NotImplementedError

    @abc.abstractmethod
    async def stream_generate_content(self, request_body: Dict[str, Any], token: str) -> str:
        """
        Streaming call to the synthesis model. The stream is drained completely
        and the text parts of every chunk are returned concatenated in order.
        """
        raise NotImplementedError
