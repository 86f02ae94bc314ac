from typing import Optional
from pydantic import BaseModel, Field

from analysis_service.domain.models import AnalysisRequest, ProductSearchResponse, WeatherSnapshot  # noqa: F401


class ErrorBody(BaseModel):
    message: str
    status: int
    details: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every endpoint."""
    error: ErrorBody


class SearchProductsRequest(BaseModel):
    query: str = Field(..., description="Free-text semantic query.")
    match_threshold: Optional[float] = Field(None, ge=0, le=1)
    match_count: Optional[int] = Field(None, ge=1, le=50)

    class Config:
        json_schema_extra = {
            "example": {
                "query": "gentle non-foaming cream cleanser for dry sensitive skin with ceramides",
                "match_threshold": 0.7,
                "match_count": 5,
            }
        }


class WeatherRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
