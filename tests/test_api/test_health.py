"""Tests for health check endpoints."""

from __future__ import annotations

import pytest

from duplex import __version__
from duplex.api.routes.health import detailed_health_check


class TestHealthEndpoints:
    """Tests for /health and /health/detailed endpoints."""

    def test_health_basic(self, test_client) -> None:
        """Test GET /health returns 200 with status=healthy."""
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_health_detailed_structure(self, test_client) -> None:
        """Test GET /health/detailed returns expected structure."""
        response = test_client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert data["checks"] == {
            "deepgram": "configured",
            "groq": "configured",
            "elevenlabs": "configured",
        }


class TestHealthDegraded:
    """Tests for degraded health scenarios."""

    @pytest.mark.asyncio
    async def test_missing_key_degrades(self, settings_factory) -> None:
        """Test a missing provider key reports degraded."""
        result = await detailed_health_check(settings_factory(elevenlabs_api_key=None))

        assert result.status == "degraded"
        assert result.checks["elevenlabs"] == "missing"
        assert result.checks["groq"] == "configured"
