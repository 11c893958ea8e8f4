"""Integration tests for health endpoints and error flows.

Tests:
- Health check with initialized and missing dependencies
- Liveness probe
- Error response format and request id propagation
"""

import pytest

from vms_bridge.deps import get_credential_store
from vms_bridge.services import CredentialStoreUnavailableError


class TestHealthEndpoint:
    """Tests for GET /api/v1/health."""

    @pytest.mark.asyncio
    async def test_healthy(self, client):
        """All components healthy with the in-memory store."""
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "vms-bridge"
        assert data["components"]["credential_store"]["details"] == {"backend": "memory"}
        assert data["components"]["vms_client"]["details"] == {"insecure_transport": True}

    @pytest.mark.asyncio
    async def test_uninitialized_dependencies(self, bare_client):
        """Missing dependencies are reported, not raised."""
        response = await bare_client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["components"]["vms_client"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_liveness(self, bare_client):
        """Liveness does not depend on anything."""
        response = await bare_client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestErrorFlows:
    """Tests for the error response format."""

    @pytest.mark.asyncio
    async def test_unknown_connector_error_format(self, client):
        """Errors carry code, description, status and the request id."""
        response = await client.get(
            "/api/v1/vms/devices",
            params={"connectorId": "missing"},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.status_code == 404
        assert response.headers["X-Request-ID"] == "req-123"
        data = response.json()
        assert data["error"] == "RESOURCE_NOT_FOUND"
        assert data["status_code"] == 404
        assert data["error_description"] == "Connector not found: missing"
        assert data["request_id"] == "req-123"
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_missing_query_parameter(self, client):
        """Missing required parameters are reported per field."""
        response = await client.get("/api/v1/vms/devices")

        assert response.status_code == 400
        errors = response.json()["details"]["errors"]
        assert any("connectorId" in error["loc"] for error in errors)

    @pytest.mark.asyncio
    async def test_client_not_initialized(self, bare_client):
        """VMS routes are unavailable until the client exists."""
        response = await bare_client.get("/api/v1/vms/devices", params={"connectorId": "c1"})

        assert response.status_code == 503
        assert response.json()["error"] == "SERVICE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_wrong_connector_category(self, client, add_connector):
        """Records of another category are invalid configuration."""
        await add_connector("c1", {"smtpHost": "mail"}, category="email")

        response = await client.get("/api/v1/vms/devices", params={"connectorId": "c1"})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_store_dependency_requires_initialization(self, bare_client):
        """The strict store dependency raises until a store is set."""
        with pytest.raises(CredentialStoreUnavailableError):
            get_credential_store()
