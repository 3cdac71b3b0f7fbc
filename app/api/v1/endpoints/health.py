from datetime import datetime, timezone as dt_timezone

from fastapi import APIRouter

from app.schemas.weather import HealthResponse


router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(message="Weather API is running", timestamp=datetime.now(dt_timezone.utc))
