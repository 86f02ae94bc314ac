import asyncio
import json

import httpx
import pytest

from analysis_service.domain.exceptions import ConfigurationError, UpstreamServiceError
from analysis_service.infrastructure.embedding_models.vertex_embedding_adapter import (
    VertexEmbeddingAdapter,
    extract_embedding,
)

from conftest import RecordingSleep

ENDPOINT = "https://us-central1-aiplatform.googleapis.com/v1/projects/p/locations/us-central1/publishers/google/models/m:predict"


class StubTokenCache:
    def __init__(self):
        self.issued = 0
        self.invalidations = 0
        self._token = None

    async def get_valid_token(self):
        if self._token is None:
            self.issued += 1
            self._token = f"token-{self.issued}"
        return self._token

    def invalidate(self):
        self.invalidations += 1
        self._token = None


class BrokenTokenCache(StubTokenCache):
    async def get_valid_token(self):
        raise ConfigurationError("Invalid service account JSON format")


def make_adapter(handler, token_cache=None, sleep=None, timeout_seconds=None):
    return VertexEmbeddingAdapter(
        token_cache=token_cache or StubTokenCache(),
        endpoint=ENDPOINT,
        dimension=3072,
        timeout_seconds=timeout_seconds,
        sleep=sleep or RecordingSleep(),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    "body",
    [
        {"predictions": [{"embeddings": {"values": [0.1, 0.2]}}]},
        {"predictions": [{"embeddings": [0.1, 0.2]}]},
        {"embeddings": [{"values": [0.1, 0.2]}]},
    ],
)
def test_extracts_every_known_shape(body):
    assert extract_embedding(body) == [0.1, 0.2]


def test_first_matching_shape_wins():
    body = {"predictions": [{"embeddings": {"values": [1.0]}}], "embeddings": [{"values": [2.0]}]}
    assert extract_embedding(body) == [1.0]


@pytest.mark.parametrize("body", [{}, {"predictions": []}, {"predictions": [{"embeddings": {"values": []}}]}, [1, 2]])
def test_unknown_or_empty_shapes_fail(body):
    with pytest.raises(UpstreamServiceError):
        extract_embedding(body)


def test_sends_expected_payload_and_auth():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"predictions": [{"embeddings": {"values": [0.5] * 4}}]})

    adapter = make_adapter(handler)
    assert asyncio.run(adapter.embed("hydrating serum")) == [0.5] * 4
    assert seen["auth"] == "Bearer token-1"
    assert seen["body"] == {
        "instances": [{"content": "hydrating serum"}],
        "parameters": {"outputDimensionality": 3072},
    }


def test_persistent_failure_retries_three_times_with_exponential_backoff():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    sleep = RecordingSleep()
    adapter = make_adapter(handler, sleep=sleep)
    with pytest.raises(UpstreamServiceError) as exc_info:
        asyncio.run(adapter.embed("query"))

    assert len(calls) == 3
    assert sleep.delays == [1, 2]
    assert exc_info.value.upstream_status == 503


def test_auth_rejection_invalidates_token_and_retries_without_delay():
    tokens = []

    def handler(request):
        tokens.append(request.headers["authorization"])
        if len(tokens) == 1:
            return httpx.Response(401, text="expired")
        return httpx.Response(200, json={"embeddings": [{"values": [0.3]}]})

    token_cache = StubTokenCache()
    sleep = RecordingSleep()
    adapter = make_adapter(handler, token_cache=token_cache, sleep=sleep)

    assert asyncio.run(adapter.embed("query")) == [0.3]
    assert tokens == ["Bearer token-1", "Bearer token-2"]
    assert token_cache.invalidations == 1
    assert sleep.delays == [0]


def test_timeout_cancels_request_and_counts_as_attempt():
    attempts = []

    async def slow_handler(request):
        attempts.append(request)
        await asyncio.sleep(5)
        return httpx.Response(200, json={"embeddings": [{"values": [0.3]}]})

    adapter = make_adapter(slow_handler, timeout_seconds=0.01)
    with pytest.raises(UpstreamServiceError) as exc_info:
        asyncio.run(adapter.embed("query"))
    assert "timed out" in exc_info.value.message
    assert len(attempts) == 3


def test_configuration_error_is_not_retried():
    calls = []
    sleep = RecordingSleep()
    adapter = make_adapter(lambda request: calls.append(request), token_cache=BrokenTokenCache(), sleep=sleep)
    with pytest.raises(ConfigurationError):
        asyncio.run(adapter.embed("query"))
    assert calls == []
    assert sleep.delays == []
