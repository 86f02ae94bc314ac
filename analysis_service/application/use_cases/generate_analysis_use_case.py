# analysis_service/application/use_cases/generate_analysis_use_case.py
import asyncio
import json
import re
import time
from typing import Any, Dict, List, Optional

import structlog

from analysis_service.application.ports.image_storage_port import ImageStoragePort
from analysis_service.application.ports.llm_port import LLMPort
from analysis_service.application.ports.questionnaire_port import QuestionnairePort
from analysis_service.application.use_cases.search_products_use_case import ProductSearchUseCase
from analysis_service.core.config import settings
from analysis_service.core.metrics import ANALYSIS_DURATION_SECONDS
from analysis_service.domain.exceptions import (
    AIResponseError,
    AnalysisServiceError,
    ImageDownloadError,
    OutputValidationError,
    TokenRejectedError,
)
from analysis_service.domain.models import AnalysisRequest, InlineImage, validate_analysis_output
from analysis_service.domain.validation import validate_search_query
from analysis_service.infrastructure.auth.gcp_token_cache import GcpTokenCache
from analysis_service.infrastructure.llm.gemini_adapter import candidate_parts, collect_text
from analysis_service.prompts.analysis_prompt import SEARCH_TOOL_NAME, build_analysis_prompt, get_skincare_search_tool

log = structlog.get_logger(__name__)

EXPECTED_FINISH_REASONS = ("STOP", "TOOL_USE")
SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
JSON_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def extract_json_from_text(text: Optional[str]) -> str:
    """Returns the body of a ```json fenced block if present (possibly empty), otherwise the trimmed text."""
    if not text:
        return ""
    match = JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def build_generation_config(json_output: bool = False) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "temperature": settings.GEMINI_TEMPERATURE,
        "topP": settings.GEMINI_TOP_P,
        "topK": settings.GEMINI_TOP_K,
        "maxOutputTokens": settings.GEMINI_MAX_TOKENS,
    }
    if json_output:
        config["responseMimeType"] = "application/json"
    return config


def build_safety_settings() -> List[Dict[str, str]]:
    return [{"category": category, "threshold": "BLOCK_NONE"} for category in SAFETY_CATEGORIES]


def _function_name(function_call: Any) -> Optional[str]:
    return function_call.get("name") if isinstance(function_call, dict) else None


class GenerateAnalysisUseCase:
    """
    Orchestrates one skin analysis: questionnaire + images -> planning model ->
    parallel product searches -> streamed synthesis -> validated JSON.
    """
    def __init__(
        self,
        questionnaire_repository: QuestionnairePort,
        image_storage: ImageStoragePort,
        token_cache: GcpTokenCache,
        llm: LLMPort,
        product_search: ProductSearchUseCase,
    ):
        self.questionnaire_repository = questionnaire_repository
        self.image_storage = image_storage
        self.token_cache = token_cache
        self.llm = llm
        self.product_search = product_search
        log.info("GenerateAnalysisUseCase initialized", llm_adapter=type(llm).__name__)

    async def execute(self, request: AnalysisRequest) -> Dict[str, Any]:
        """
        Runs the pipeline for one request. The planning and synthesis calls share
        the cached token; a 401/403 from either invalidates the cache and fails
        this request, so the next one starts from a fresh token.
        """
        case_log = log.bind(questionnaire_id=request.anonymous_questionnaire_id, image_count=len(request.image_paths))
        case_log.info("New analysis request")
        start_time = time.perf_counter()

        questionnaire = await self.questionnaire_repository.get_questionnaire(request.anonymous_questionnaire_id)
        image_parts = await self._download_images(request.image_paths)
        token = await self.token_cache.get_valid_token()

        prompt = build_analysis_prompt(questionnaire)
        contents: List[Dict[str, Any]] = [
            {"role": "user", "parts": [*[image.to_part() for image in image_parts], {"text": prompt}]}
        ]

        planning_result = await self._call_llm(
            self.llm.generate_content,
            {
                "contents": contents,
                "tools": [get_skincare_search_tool()],
                "generationConfig": build_generation_config(),
                "safetySettings": build_safety_settings(),
            },
            token,
        )

        candidates = planning_result.get("candidates") if isinstance(planning_result, dict) else None
        candidate = candidates[0] if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict) else {}
        finish_reason = candidate.get("finishReason")
        if finish_reason and finish_reason not in EXPECTED_FINISH_REASONS:
            case_log.warning("Planning call finished with unexpected reason", finish_reason=finish_reason)

        parts = candidate_parts(planning_result)
        function_call_parts = [part for part in parts if isinstance(part, dict) and part.get("functionCall")]

        if function_call_parts:
            case_log.info("Planning call requested tool calls", tool_call_count=len(function_call_parts))
            tool_results = await asyncio.gather(*(self._run_tool_call(part["functionCall"]) for part in function_call_parts))

            contents.append({"role": "model", "parts": function_call_parts})
            contents.append({
                "role": "tool",
                "parts": [
                    {"functionResponse": {"name": _function_name(part["functionCall"]), "response": result}}
                    for part, result in zip(function_call_parts, tool_results)
                ],
            })

            final_text = await self._call_llm(
                self.llm.stream_generate_content,
                {
                    "contents": contents,
                    "generationConfig": build_generation_config(json_output=True),
                    "safetySettings": build_safety_settings(),
                },
                token,
            )
        else:
            # The prompt requires 4 tool calls; falling through means the weaker model's text is final.
            case_log.warning("AI did not request any tool calls. The prompt may be failing.")
            final_text = collect_text(parts)

        result = self._parse_final_output(final_text)
        duration = time.perf_counter() - start_time
        ANALYSIS_DURATION_SECONDS.observe(duration)
        case_log.info("Analysis generation completed successfully", duration_ms=round(duration * 1000, 2))
        return result

    async def _download_images(self, image_paths: List[str]) -> List[InlineImage]:
        try:
            return list(await asyncio.gather(*(self.image_storage.download_image(path) for path in image_paths)))
        except ImageDownloadError:
            raise
        except AnalysisServiceError as e:
            raise ImageDownloadError(f"Image processing failed: {e.message}") from e

    async def _call_llm(self, method, request_body: Dict[str, Any], token: str):
        try:
            return await method(request_body, token)
        except TokenRejectedError:
            # Next request refreshes; this one fails.
            self.token_cache.invalidate()
            raise

    async def _run_tool_call(self, function_call: Any) -> Dict[str, Any]:
        if not isinstance(function_call, dict):
            log.warning("Malformed function call requested", function_call=str(function_call)[:200])
            return {"products": [], "error": "Malformed function call"}

        name = function_call.get("name")
        if name != SEARCH_TOOL_NAME:
            log.warning("Unknown function call requested", name=name)
            return {"products": [], "error": f"Unknown function call: {name}"}

        args = function_call.get("args")
        query = args.get("query") if isinstance(args, dict) else None
        try:
            validate_search_query(query, settings.MAX_QUERY_LENGTH)
        except AnalysisServiceError as e:
            log.error("Invalid search query", error=e.message)
            return {"products": [], "error": f"Invalid search query: {e.message}"}

        try:
            response = await self.product_search.search_products(query)
        except Exception as e:
            log.exception("Product search tool call failed", query=query[:100])
            return {"products": [], "error": f"Product search failed: {e}"}

        result: Dict[str, Any] = {"products": [product.model_dump() for product in response.products]}
        if response.error:
            result["error"] = response.error
        return result

    def _parse_final_output(self, raw_text: str) -> Dict[str, Any]:
        if not raw_text:
            raise AIResponseError("No final content received from the AI model")
        sanitized = extract_json_from_text(raw_text)
        if not sanitized:
            raise AIResponseError("Sanitized response text is empty")

        try:
            parsed = json.loads(sanitized)
        except json.JSONDecodeError as e:
            log.error("Failed to parse AI response as JSON", error=str(e), raw_response=raw_text[:5000])
            raise AIResponseError(f"The AI service returned invalid JSON. Details: {e}") from e

        try:
            return validate_analysis_output(parsed)
        except OutputValidationError as e:
            log.error(
                "AI response validation failed",
                error=e.message,
                code=e.code,
                field=e.field,
                raw_response=sanitized[:5000],
            )
            raise
