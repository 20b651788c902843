"""Health check endpoints.

Provides:
- Basic health check (GET /health)
- Detailed health check with provider configuration (GET /health/detailed)
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from duplex import __version__
from duplex.config import Settings, get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response."""

    status: str
    checks: dict[str, str]
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint.

    Returns:
        Simple status indicating the API is running.
    """
    return HealthResponse(status="healthy")


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    settings: Settings = Depends(get_settings),
) -> DetailedHealthResponse:
    """Report which providers are configured, without calling them.

    The service is "degraded" while any provider key is missing, since
    every turn needs all three.
    """
    checks = {
        "deepgram": "configured" if settings.deepgram_api_key else "missing",
        "groq": "configured" if settings.groq_api_key else "missing",
        "elevenlabs": "configured" if settings.elevenlabs_api_key else "missing",
    }

    status = "healthy" if all(v == "configured" for v in checks.values()) else "degraded"

    return DetailedHealthResponse(
        status=status,
        checks=checks,
        version=__version__,
    )
