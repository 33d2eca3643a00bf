"""
Health check endpoints.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from email_otp.models import HealthResponse

VERSION = "0.1.0"

router = APIRouter(tags=["health"])


@router.get("/", include_in_schema=False)
async def root() -> dict:
    return {"status": "ok", "message": "OTP Server Running!"}


@router.get(
    "/api/health",
    response_model=HealthResponse,
    operation_id="getHealth",
    summary="Health check",
)
async def get_health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=VERSION,
        timestamp=datetime.now(timezone.utc),
    )
