# File: analysis_service/infrastructure/llm/gemini_adapter.py
import json
from typing import Any, Dict, List, Optional

import httpx
import structlog

from analysis_service.application.ports.llm_port import LLMPort
from analysis_service.core.config import settings
from analysis_service.core.metrics import UPSTREAM_CALL_DURATION_SECONDS, UPSTREAM_ERRORS_TOTAL
from analysis_service.domain.exceptions import AIResponseError, TokenRejectedError, UpstreamServiceError
from analysis_service.services.base_client import BaseServiceClient

log = structlog.get_logger(__name__)


class StreamAccumulator:
    """Collects a streamed body in full, refusing to grow past ``max_bytes``."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self._chunks: List[bytes] = []
        self.size = 0

    def feed(self, chunk: bytes) -> None:
        self.size += len(chunk)
        if self.size > self.max_bytes:
            raise AIResponseError(
                f"Streamed response exceeded the maximum size of {self.max_bytes} bytes"
            )
        self._chunks.append(chunk)

    def text(self) -> str:
        raw = b"".join(self._chunks)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            log.error("Streamed response is not valid UTF-8", error=str(e), head=raw[:2000].decode("utf-8", "replace"))
            raise AIResponseError("The AI model returned an undecodable streamed response.", details=str(e)) from e


def candidate_parts(response: Any) -> List[Any]:
    """``candidates[0].content.parts`` of one response object, or [] when any level is malformed."""
    if not isinstance(response, dict):
        return []
    candidates = response.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return []
    content = candidates[0].get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    return parts if isinstance(parts, list) else []


def collect_text(parts: List[Any]) -> str:
    return "".join(
        part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
    )


def join_stream_chunks(accumulated: str) -> str:
    """
    Parses the drained ``streamGenerateContent`` body (a JSON array of partial
    responses) and concatenates every ``candidates[0].content.parts[].text`` in order.
    Malformed chunks, candidates and parts are skipped.
    """
    try:
        chunks = json.loads(accumulated.strip())
    except json.JSONDecodeError as e:
        log.error("Error parsing streamed response", error=str(e), accumulated=accumulated[:2000])
        raise AIResponseError("Failed to parse the streamed response from the AI model.", details=str(e)) from e
    if isinstance(chunks, dict):
        chunks = [chunks]
    if not isinstance(chunks, list):
        log.error("Streamed response is not a JSON array", accumulated=accumulated[:2000])
        raise AIResponseError("Failed to parse the streamed response from the AI model.")

    return "".join(collect_text(candidate_parts(chunk)) for chunk in chunks)


class GeminiAdapter(BaseServiceClient, LLMPort):
    """
    Vertex AI Gemini client. Planning uses ``:generateContent`` on the fast
    model, synthesis uses ``:streamGenerateContent`` on the full model.
    """

    def __init__(
        self,
        planning_endpoint: Optional[str] = None,
        synthesis_endpoint: Optional[str] = None,
        max_stream_bytes: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.planning_endpoint = planning_endpoint or settings.gemini_planning_endpoint
        self.synthesis_endpoint = synthesis_endpoint or settings.gemini_synthesis_endpoint
        super().__init__(base_url=self.synthesis_endpoint, service_name="VertexAIGemini", transport=transport)
        self.max_stream_bytes = max_stream_bytes or settings.MAX_STREAM_RESPONSE_BYTES
        log.info(
            "GeminiAdapter initialized",
            planning_endpoint=self.planning_endpoint,
            synthesis_endpoint=self.synthesis_endpoint,
        )

    @staticmethod
    def _auth_headers(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    async def generate_content(self, request_body: Dict[str, Any], token: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"{self.planning_endpoint}:generateContent",
            json=request_body,
            headers=self._auth_headers(token),
        )
        try:
            return response.json()
        except ValueError as e:
            raise AIResponseError("Vertex AI returned a non-JSON planning response", details=response.text[:500]) from e

    async def stream_generate_content(self, request_body: Dict[str, Any], token: str) -> str:
        url = f"{self.synthesis_endpoint}:streamGenerateContent"
        accumulator = StreamAccumulator(self.max_stream_bytes)
        self.log.debug("Opening synthesis stream", url=url)
        try:
            with UPSTREAM_CALL_DURATION_SECONDS.labels(service=self.service_name).time():
                async with self.client.stream("POST", url, json=request_body, headers=self._auth_headers(token)) as response:
                    if response.is_error:
                        await response.aread()
                        self._raise_for_stream_status(response)
                    async for chunk in response.aiter_bytes():
                        accumulator.feed(chunk)
        except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
            self.log.error("Network error during synthesis stream", error=str(e))
            UPSTREAM_ERRORS_TOTAL.labels(service=self.service_name, error_type=type(e).__name__).inc()
            raise UpstreamServiceError(
                f"Vertex AI API stream request failed: {type(e).__name__}", service=self.service_name, detail=str(e)
            ) from e

        self.log.info("Synthesis stream drained", size_bytes=accumulator.size)
        return join_stream_chunks(accumulator.text())

    def _raise_for_stream_status(self, response: httpx.Response) -> None:
        status_code = response.status_code
        self.log.error("HTTP error from synthesis stream", status_code=status_code, detail=response.text[:500])
        UPSTREAM_ERRORS_TOTAL.labels(service=self.service_name, error_type=f"http_{status_code}").inc()
        error_cls = TokenRejectedError if status_code in (401, 403) else UpstreamServiceError
        raise error_cls(
            f"Vertex AI API stream request failed: {status_code}",
            service=self.service_name,
            upstream_status=status_code,
            detail=response.text,
        )
