"""Tests for health check endpoints."""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


class TestHealthEndpoints:
    """Test suite for health check functionality."""

    async def test_health_check_returns_status(self, async_client: AsyncClient):
        """Healthy database and store give 200."""
        response = await async_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["store"] == "connected"

    async def test_store_outage_reported(self, async_client: AsyncClient):
        """Without the blacklist store no request can be authenticated, so 503."""
        from gatekeeper.core.kv_store import StorePurpose, set_store
        from tests.helpers import FailingStore

        set_store(StorePurpose.BLACKLIST, FailingStore())

        response = await async_client.get("/health")

        assert response.status_code == 503
        assert response.json()["store"] == "disconnected"

    async def test_root(self, async_client: AsyncClient):
        response = await async_client.get("/")

        assert response.json()["name"] == "gatekeeper"
