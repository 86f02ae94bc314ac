# analysis_service/domain/models.py
from typing import Annotated, Any, Dict, List, Literal, Optional
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from analysis_service.core.config import settings
from analysis_service.domain import validation
from analysis_service.domain.exceptions import OutputValidationError
from analysis_service.domain.reference_data import HABIT_TITLES, INGREDIENT_NAMES


class ProductSearchResult(BaseModel):
    """A catalog product as returned by vector search or the text fallback."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., gt=0)
    brand: Optional[str] = None
    title: Optional[str] = None
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    price_usd: Optional[float] = Field(None, ge=0)
    star_rating: Optional[float] = Field(None, ge=0, le=5)
    product_type: Optional[str] = None
    full_ingredients_list: List[str] = Field(default_factory=list)
    key_ingredients: List[str] = Field(default_factory=list)
    target_audience: Optional[str] = None
    potential_concerns: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    similarity: float = Field(..., ge=0, le=1)

    @field_validator("full_ingredients_list", "key_ingredients", "potential_concerns", mode="before")
    @classmethod
    def null_list_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class ProductSearchResponse(BaseModel):
    """Envelope returned by one product search call. Never persisted."""
    query: str
    product_count: int
    products: List[ProductSearchResult] = Field(default_factory=list)
    error: Optional[str] = None
    fallback_used: Optional[bool] = None


class CachedToken(BaseModel):
    """A bearer token plus the absolute time (epoch seconds) it expires at."""
    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: float

    def is_usable(self, now: float, refresh_margin_seconds: float) -> bool:
        return now < self.expires_at - refresh_margin_seconds


class AnalysisRequest(BaseModel):
    """Body of POST /generate-analysis."""
    anonymous_questionnaire_id: str = Field(..., description="UUID of the anonymous questionnaire.")
    image_paths: List[str] = Field(..., description="Storage paths of the face images (1-10).")

    @field_validator("anonymous_questionnaire_id", mode="before")
    @classmethod
    def check_questionnaire_id(cls, v: Any) -> str:
        if not v:
            raise ValueError("Missing required field: anonymous_questionnaire_id")
        if not isinstance(v, str):
            raise ValueError("anonymous_questionnaire_id must be a string")
        if not validation.is_valid_uuid(v):
            raise ValueError("anonymous_questionnaire_id must be a valid UUID")
        return v

    @field_validator("image_paths", mode="before")
    @classmethod
    def check_image_paths(cls, v: Any) -> List[str]:
        validation.validate_image_paths(v, settings.MAX_IMAGE_PATHS)
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "anonymous_questionnaire_id": "550e8400-e29b-41d4-a716-446655440000",
                "image_paths": ["test/image1.jpg", "test/image2.jpg"],
            }
        }


class InlineImage(BaseModel):
    mime_type: str
    data: str  # base64

    def to_part(self) -> Dict[str, Any]:
        return {"inlineData": {"mimeType": self.mime_type, "data": self.data}}


class WeatherSnapshot(BaseModel):
    uvIndex: Optional[float] = None
    humidity: Optional[float] = None
    aqi: Optional[float] = None


# --- Model output ---

PrimaryState = Literal["Excellent", "Good", "Fair", "Needs Work"]
HabitTitle = Literal[tuple(sorted(HABIT_TITLES))]
IngredientName = Literal[tuple(sorted(INGREDIENT_NAMES))]

REQUIRED_CATEGORIES = ("cleanser", "moisturizer", "sunscreen")
TREATMENT_CATEGORIES = ("serum", "toner", "treatment")
ROUTINE_SIZE = 4

OUTPUT_ERROR_CODES = {
    "missing": "missing_field",
    "greater_than": "range",
    "greater_than_equal": "range",
    "less_than": "range",
    "less_than_equal": "range",
    "literal_error": "enum",
    "string_too_short": "length",
    "string_too_long": "length",
    "too_short": "count",
    "too_long": "count",
    "missing_category": "missing_category",
    "treatment_count": "treatment_count",
}

Score = Annotated[StrictInt, Field(ge=1, le=99)]
NonEmptyText = Annotated[StrictStr, Field(min_length=1)]


class Metrics(BaseModel):
    hydration: Score
    barrier: Score


class BlueprintEntry(BaseModel):
    title: NonEmptyText


class HabitEntry(BlueprintEntry):
    title: HabitTitle


class IngredientEntry(BlueprintEntry):
    title: IngredientName


class Blueprint(BaseModel):
    approach: BlueprintEntry
    habit: HabitEntry
    ingredient: IngredientEntry


class SkinAnalysis(BaseModel):
    overallScore: Score
    primaryState: PrimaryState
    overallSummary: Annotated[StrictStr, Field(min_length=200, max_length=300)]
    metrics: Metrics
    blueprint: Blueprint


class RoutineProduct(BaseModel):
    product_id: Annotated[StrictInt, Field(gt=0)]
    product_type: NonEmptyText
    brand: NonEmptyText
    title: NonEmptyText
    product_url: NonEmptyText
    price_usd: Annotated[StrictFloat, Field(ge=0)]
    star_rating: Annotated[StrictFloat, Field(ge=0, le=5)]
    reasoning: Annotated[StrictStr, Field(min_length=30, max_length=100)]


class SkincareRoutine(BaseModel):
    routine_title: NonEmptyText
    routine_summary: NonEmptyText
    products: Annotated[List[RoutineProduct], Field(min_length=ROUTINE_SIZE, max_length=ROUTINE_SIZE)]

    @model_validator(mode="after")
    def check_categories(self) -> "SkincareRoutine":
        product_types = [product.product_type.lower() for product in self.products]
        for required in REQUIRED_CATEGORIES:
            if not any(required in product_type for product_type in product_types):
                raise PydanticCustomError(
                    "missing_category", "Missing required product category: {category}", {"category": required}
                )
        treatment_count = sum(
            1 for product_type in product_types
            if any(treatment in product_type for treatment in TREATMENT_CATEGORIES)
        )
        if treatment_count != 1:
            raise PydanticCustomError(
                "treatment_count", "Must have exactly one treatment product (serum, toner, or treatment)"
            )
        return self


class AnalysisResult(BaseModel):
    """The object the synthesis call must produce: one analysis plus a 4-product routine."""
    analysis: SkinAnalysis
    routine: SkincareRoutine


def validate_analysis_output(payload: Any) -> Dict[str, Any]:
    """
    Checks the parsed model output against AnalysisResult and returns it unchanged.
    The first schema error is raised as OutputValidationError with a short ``code``
    (range, type, enum, length, count, missing_field, missing_category, treatment_count).
    """
    try:
        AnalysisResult.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        loc = [str(part) for part in first.get("loc", ())]
        path = ".".join(loc)
        named = [part for part in first.get("loc", ()) if isinstance(part, str)]
        message = f"{path}: {first['msg']}" if path else first["msg"]
        raise OutputValidationError(
            message,
            code=OUTPUT_ERROR_CODES.get(first["type"], "type"),
            field=named[-1] if named else None,
        ) from e
    return payload
