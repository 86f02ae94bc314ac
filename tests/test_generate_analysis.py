import asyncio
import base64
import json

import httpx
import pytest

from analysis_service.application.ports.llm_port import LLMPort
from analysis_service.application.ports.questionnaire_port import QuestionnairePort
from analysis_service.application.use_cases.generate_analysis_use_case import (
    GenerateAnalysisUseCase,
    extract_json_from_text,
)
from analysis_service.application.use_cases.search_products_use_case import ProductSearchUseCase
from analysis_service.domain.exceptions import (
    AIResponseError,
    ImageDownloadError,
    OutputValidationError,
    QuestionnaireNotFoundError,
    TokenRejectedError,
)
from analysis_service.domain.models import AnalysisRequest, ProductSearchResponse, ProductSearchResult
from analysis_service.infrastructure.storage.supabase_storage_adapter import SupabaseStorageAdapter

from conftest import VALID_UUID, VALID_ANALYSIS_PAYLOAD, product_row

QUERIES = [
    "gentle cream cleanser for dry sensitive skin without fragrance, with ceramides",
    "calming niacinamide serum for redness and uneven tone on sensitive skin",
    "lightweight gel cream moisturizer for dry skin with non-greasy finish",
    "chemical sunscreen SPF 50 PA++++ with no white cast for dry skin",
]


def function_call(query, name="skincare_product_search"):
    return {"functionCall": {"name": name, "args": {"query": query}}}


class FakeQuestionnaires(QuestionnairePort):
    async def get_questionnaire(self, questionnaire_id):
        if questionnaire_id != VALID_UUID:
            raise QuestionnaireNotFoundError("Failed to fetch questionnaire data")
        return {"id": questionnaire_id, "skin_type": "Dry"}


class FakeTokenCache:
    def __init__(self):
        self.invalidations = 0

    async def get_valid_token(self):
        return "tok"

    def invalidate(self):
        self.invalidations += 1


class FakeLLM(LLMPort):
    def __init__(self, planning_parts, synthesis_text="", finish_reason="STOP", stream_error=None):
        self.planning_parts = planning_parts
        self.synthesis_text = synthesis_text
        self.finish_reason = finish_reason
        self.stream_error = stream_error
        self.planning_requests = []
        self.synthesis_requests = []

    async def generate_content(self, request_body, token):
        self.planning_requests.append(json.loads(json.dumps(request_body)))
        return {"candidates": [{"finishReason": self.finish_reason, "content": {"role": "model", "parts": self.planning_parts}}]}

    async def stream_generate_content(self, request_body, token):
        self.synthesis_requests.append(request_body)
        if self.stream_error:
            raise self.stream_error
        return self.synthesis_text


class FakeProductSearch(ProductSearchUseCase):
    def __init__(self):
        self.queries = []

    async def search_products(self, query, threshold=None, count=None):
        self.queries.append(query)
        index = QUERIES.index(query) + 1 if query in QUERIES else 99
        product = ProductSearchResult.model_validate(product_row(index))
        return ProductSearchResponse(query=query, product_count=1, products=[product])


def storage_handler(request):
    return httpx.Response(200, content=b"\xff\xd8jpeg-bytes", headers={"content-type": "image/jpeg"})


def make_use_case(llm, storage_transport=None, token_cache=None, product_search=None):
    storage = SupabaseStorageAdapter(
        base_url="https://supabase.test",
        transport=storage_transport or httpx.MockTransport(storage_handler),
    )
    return GenerateAnalysisUseCase(
        questionnaire_repository=FakeQuestionnaires(),
        image_storage=storage,
        token_cache=token_cache or FakeTokenCache(),
        llm=llm,
        product_search=product_search or FakeProductSearch(),
    )


def request(paths=("user/front.jpg", "user/side.png")):
    return AnalysisRequest(anonymous_questionnaire_id=VALID_UUID, image_paths=list(paths))


def test_full_pipeline_with_four_tool_calls():
    llm = FakeLLM([function_call(q) for q in QUERIES], synthesis_text=json.dumps(VALID_ANALYSIS_PAYLOAD))
    search = FakeProductSearch()
    result = asyncio.run(make_use_case(llm, product_search=search).execute(request()))

    assert result == VALID_ANALYSIS_PAYLOAD
    assert sorted(search.queries) == sorted(QUERIES)
    assert len(llm.planning_requests) == 1
    assert len(llm.synthesis_requests) == 1

    planning = llm.planning_requests[0]
    user_parts = planning["contents"][0]["parts"]
    assert user_parts[0] == {"inlineData": {"mimeType": "image/jpeg", "data": base64.b64encode(b"\xff\xd8jpeg-bytes").decode()}}
    assert "text" in user_parts[2]
    assert planning["tools"][0]["functionDeclarations"][0]["name"] == "skincare_product_search"
    assert {s["threshold"] for s in planning["safetySettings"]} == {"BLOCK_NONE"}
    assert "responseMimeType" not in planning["generationConfig"]

    synthesis = llm.synthesis_requests[0]
    roles = [turn["role"] for turn in synthesis["contents"]]
    assert roles == ["user", "model", "tool"]
    assert synthesis["generationConfig"]["responseMimeType"] == "application/json"
    responses = synthesis["contents"][2]["parts"]
    assert len(responses) == 4
    assert responses[0]["functionResponse"]["name"] == "skincare_product_search"
    assert responses[0]["functionResponse"]["response"]["products"][0]["id"] == 1


def test_invalid_and_unknown_tool_calls_become_inline_errors():
    parts = [function_call(QUERIES[0]), function_call(""), function_call(QUERIES[1], name="weather_lookup")]
    llm = FakeLLM(parts, synthesis_text=json.dumps(VALID_ANALYSIS_PAYLOAD))
    search = FakeProductSearch()
    asyncio.run(make_use_case(llm, product_search=search).execute(request()))

    assert search.queries == [QUERIES[0]]
    responses = [p["functionResponse"]["response"] for p in llm.synthesis_requests[0]["contents"][2]["parts"]]
    assert len(responses[0]["products"]) == 1
    assert responses[1]["products"] == []
    assert responses[1]["error"].startswith("Invalid search query")
    assert responses[2] == {"products": [], "error": "Unknown function call: weather_lookup"}


def test_malformed_function_calls_fill_their_own_slots():
    parts = [function_call(QUERIES[0]), {"functionCall": "search please"}, {"functionCall": {"name": "skincare_product_search", "args": ["x"]}}]
    llm = FakeLLM(parts, synthesis_text=json.dumps(VALID_ANALYSIS_PAYLOAD))
    search = FakeProductSearch()
    asyncio.run(make_use_case(llm, product_search=search).execute(request()))

    assert search.queries == [QUERIES[0]]
    tool_parts = llm.synthesis_requests[0]["contents"][2]["parts"]
    assert tool_parts[1]["functionResponse"] == {"name": None, "response": {"products": [], "error": "Malformed function call"}}
    assert tool_parts[2]["functionResponse"]["response"]["products"] == []
    assert tool_parts[2]["functionResponse"]["response"]["error"].startswith("Invalid search query")


def test_planning_text_skips_null_and_non_string_parts():
    parts = [{"text": None}, "stray", {"text": 42}, {"text": json.dumps(VALID_ANALYSIS_PAYLOAD)}]
    llm = FakeLLM(parts)
    result = asyncio.run(make_use_case(llm).execute(request()))
    assert result == VALID_ANALYSIS_PAYLOAD


def test_planning_response_without_candidates_is_ai_response_error():
    class ListLLM(FakeLLM):
        async def generate_content(self, request_body, token):
            return [{"candidates": ["oops"]}]

    with pytest.raises(AIResponseError):
        asyncio.run(make_use_case(ListLLM([])).execute(request()))


def test_no_tool_calls_uses_planning_text():
    fenced = "```json\n" + json.dumps(VALID_ANALYSIS_PAYLOAD) + "\n```"
    llm = FakeLLM([{"text": fenced}], finish_reason="MAX_TOKENS")
    result = asyncio.run(make_use_case(llm).execute(request()))
    assert result == VALID_ANALYSIS_PAYLOAD
    assert llm.synthesis_requests == []


def test_empty_model_output_is_ai_response_error():
    llm = FakeLLM([function_call(QUERIES[0])], synthesis_text="```json\n```")
    with pytest.raises(AIResponseError):
        asyncio.run(make_use_case(llm).execute(request()))


def test_invalid_json_is_ai_response_error():
    llm = FakeLLM([function_call(QUERIES[0])], synthesis_text='{"analysis": ')
    with pytest.raises(AIResponseError):
        asyncio.run(make_use_case(llm).execute(request()))


def test_schema_violation_is_output_validation_error():
    bad = json.loads(json.dumps(VALID_ANALYSIS_PAYLOAD))
    bad["analysis"]["overallScore"] = 150
    llm = FakeLLM([function_call(QUERIES[0])], synthesis_text=json.dumps(bad))
    with pytest.raises(OutputValidationError) as exc_info:
        asyncio.run(make_use_case(llm).execute(request()))
    assert exc_info.value.code == "range"


def test_missing_questionnaire_is_not_found():
    llm = FakeLLM([])
    other = AnalysisRequest(anonymous_questionnaire_id="6ba7b810-9dad-11d1-80b4-00c04fd430c8", image_paths=["a.jpg"])
    with pytest.raises(QuestionnaireNotFoundError):
        asyncio.run(make_use_case(llm).execute(other))
    assert llm.planning_requests == []


def test_one_failed_image_download_fails_the_request():
    def handler(request):
        if request.url.path.endswith("side.png"):
            return httpx.Response(404, json={"error": "not_found"})
        return storage_handler(request)

    llm = FakeLLM([])
    with pytest.raises(ImageDownloadError) as exc_info:
        asyncio.run(make_use_case(llm, storage_transport=httpx.MockTransport(handler)).execute(request()))
    assert "user/side.png" in exc_info.value.message
    assert llm.planning_requests == []


def test_rejected_token_on_synthesis_invalidates_cache():
    token_cache = FakeTokenCache()
    error = TokenRejectedError("rejected", service="VertexAIGemini", upstream_status=401)
    llm = FakeLLM([function_call(QUERIES[0])], stream_error=error)
    with pytest.raises(TokenRejectedError):
        asyncio.run(make_use_case(llm, token_cache=token_cache).execute(request()))
    assert token_cache.invalidations == 1


@pytest.mark.parametrize(
    "text,expected",
    [
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('Here you go:\n```json {"a": 1} ```', '{"a": 1}'),
        ('```\n{"a": 1}\n```', '{"a": 1}'),
        ('  {"a": 1}  ', '{"a": 1}'),
        ("", ""),
    ],
)
def test_extract_json_from_text(text, expected):
    assert extract_json_from_text(text) == expected
