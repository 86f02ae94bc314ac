# analysis_service/prompts/analysis_prompt.py
import json
from string import Template
from typing import Any, Dict, Optional

import structlog

from analysis_service.core.config import settings
from analysis_service.domain.exceptions import ConfigurationError
from analysis_service.domain.reference_data import HABITS, INGREDIENTS

log = structlog.get_logger(__name__)

SEARCH_TOOL_NAME = "skincare_product_search"

ANALYSIS_PROMPT_TEMPLATE = Template("""
**SYSTEM INSTRUCTION: You are a data analysis and recommendation engine. Follow the steps below in order: analyze the user's data first, then use the tool to find real products and build a routine. Your final output MUST be a single, valid JSON object.**

You are a world-class esthetician. Produce a complete skin analysis AND a product routine.

**STEP 1: SKIN ANALYSIS (no tools)**
Analyze the user's skin from the attached images and the questionnaire below. Determine:
- Overall skin score (integer 1-99)
- Primary state ('Excellent', 'Good', 'Fair' or 'Needs Work')
- Hydration level (1-99) with a short summary
- Barrier function level (1-99) with a short summary
- A two-sentence overall summary. **Write it in the second person ("Your skin is...").**

**STEP 2: BLUEPRINT (no tools)**
- **Approach:** a skincare philosophy with a `title` (e.g. 'Barrier-First Brightening') and a `summary`.
- **Habit:** choose ONE habit from this list. Return its `title`, `summary` and `study` verbatim.

$habits

- **Ingredient:** choose ONE ingredient from this list. Use the exact `ingredient` value as `title` and the exact `study_title` as `study`, then write a short benefit-focused `summary` (70-85 characters).

$ingredients

**STEP 3: PRODUCT SEARCH (tool use is MANDATORY)**
Call the `$tool_name` tool exactly 4 times in parallel, one query per category:
1. **Cleanser**: skin type, key concerns, preferred formulation and ingredients to avoid.
2. **Treatment**: ONE serum, toner or treatment product, with the desired outcome and key ingredients.
3. **Moisturizer**: texture preference, skin needs and finish, with a Korean skincare bias.
4. **Sunscreen**: high SPF and PA rating, desired finish (no white cast), suitability for the skin type, with a Korean skincare bias and a preference for chemical filters.
Each query MUST be 15-30 words long and specific to this user.

**STEP 4: FINAL RESPONSE**
Rules for product selection:
- **DO NOT INVENT PRODUCTS.** Only use products returned by the tool.
- Every `product_id` MUST match an id from the search results; copy brand, title and other details exactly.
- Prefer brand diversity: no more than two products from the same brand when possible.
- Never select a product whose `price_usd` is greater than 40.
- If a search fails or returns nothing relevant, still include that category and explain it in the reasoning. Never fill a gap with an invented product.

Output requirements:
- A single JSON object with the top-level keys `analysis` and `routine`.
- `routine.products` holds exactly 4 products: Cleanser, one Treatment (Serum, Toner or Treatment), Moisturizer, Sunscreen.
- Keep every `reasoning` between 30 and 100 characters.

**User Data:**
*   **Questionnaire:** $questionnaire
*   **Images are attached.**

**Final JSON Output Structure (strictly adhere):**
{
  "analysis": {
    "overallScore": "integer 1-99",
    "primaryState": "'Excellent' | 'Good' | 'Fair' | 'Needs Work'",
    "overallSummary": "string, two sentences, 200-300 characters",
    "metrics": {
      "hydration": "integer 1-99",
      "barrier": "integer 1-99",
      "hydrationSummary": "string, 95-100 characters",
      "barrierSummary": "string, 95-100 characters"
    },
    "blueprint": {
      "approach": {"title": "string, 20-40 characters", "summary": "string, 70-85 characters"},
      "habit": {"title": "one of the habit titles above", "summary": "verbatim", "study": "verbatim"},
      "ingredient": {"title": "one of the ingredient names above", "summary": "string, 70-85 characters", "study": "verbatim study_title"}
    }
  },
  "routine": {
    "routine_title": "string",
    "routine_summary": "string, one sentence, 80-100 characters",
    "products": [
      {
        "product_id": "integer, exact id from the search results",
        "brand": "string",
        "title": "string",
        "product_url": "string",
        "price_usd": "number",
        "star_rating": "number",
        "product_type": "Cleanser | Serum | Toner | Treatment | Moisturizer | Sunscreen",
        "reasoning": "string, 30-100 characters"
      }
    ]
  }
}
""")


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def validate_prompt(prompt: str, max_length: int) -> None:
    if not prompt or not isinstance(prompt, str):
        raise ConfigurationError("Prompt must be a non-empty string")
    if len(prompt) > max_length:
        raise ConfigurationError(f"Prompt exceeds maximum length of {max_length} characters")
    if "{{" in prompt and "}}" in prompt:
        raise ConfigurationError("Prompt contains unresolved template variables")


def build_analysis_prompt(questionnaire_data: Dict[str, Any], max_length: Optional[int] = None) -> str:
    """
    Renders the analysis prompt for one questionnaire.

    Deterministic for a given input. Raises ConfigurationError if the rendered
    prompt is too long or still holds template markers.
    """
    max_length = max_length or settings.MAX_PROMPT_LENGTH
    prompt = ANALYSIS_PROMPT_TEMPLATE.substitute(
        habits=_to_json(HABITS),
        ingredients=_to_json(INGREDIENTS),
        tool_name=SEARCH_TOOL_NAME,
        questionnaire=_to_json(questionnaire_data),
    ).strip()
    validate_prompt(prompt, max_length)
    log.debug("Analysis prompt rendered", prompt_length=len(prompt))
    return prompt


def get_skincare_search_tool() -> Dict[str, Any]:
    return {
        "functionDeclarations": [
            {
                "name": SEARCH_TOOL_NAME,
                "description": "Searches for skincare products based on a detailed semantic query.",
                "parameters": {
                    "type": "OBJECT",
                    "properties": {
                        "query": {
                            "type": "STRING",
                            "description": (
                                "The detailed semantic search query for a specific product type "
                                '(e.g., "hydrating mineral sunscreen for sensitive acne-prone skin").'
                            ),
                        },
                    },
                    "required": ["query"],
                },
            }
        ]
    }
