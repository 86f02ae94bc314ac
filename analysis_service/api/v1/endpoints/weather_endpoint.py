# analysis_service/api/v1/endpoints/weather_endpoint.py
import structlog
from fastapi import APIRouter, Depends, status

from analysis_service.api.v1 import schemas
from analysis_service.dependencies import get_weather_adapter
from analysis_service.infrastructure.weather.weatherkit_adapter import WeatherKitAdapter

router = APIRouter()
log = structlog.get_logger(__name__)


@router.post(
    "/get-weather-data",
    response_model=schemas.WeatherSnapshot,
    status_code=status.HTTP_200_OK,
    summary="Current UV, Humidity and Air Quality",
)
async def get_weather_data_endpoint(
    request_body: schemas.WeatherRequest,
    weather: WeatherKitAdapter = Depends(get_weather_adapter),
):
    log.info("Received weather request", latitude=request_body.latitude, longitude=request_body.longitude)
    return await weather.get_weather(request_body.latitude, request_body.longitude)
