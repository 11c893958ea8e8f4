"""Unit tests for HealthService.

Tests health check functionality for all components:
- Credential store (memory or Redis)
- VMS client
"""

import asyncio

import pytest

from tests.fakes import CLOUD_URL, RELAY_DOMAIN
from vms_bridge.integrations.vms import StandardTransport, TokenManager, TransportPool, VMSClient
from vms_bridge.schemas.health import ComponentHealth
from vms_bridge.services import CredentialStore, InMemoryCredentialStore
from vms_bridge.services.health_service import HealthService


class MockStore(CredentialStore):
    """Mock credential store with a controllable ping."""

    def __init__(self, *, reachable: bool = True, latency: float = 0.0):
        self._reachable = reachable
        self._latency = latency

    async def load_config(self, connector_id):
        return None

    async def update_config(self, connector_id, config):
        return None

    async def save_record(self, record):
        return None

    async def ping(self) -> bool:
        if self._latency > 0:
            await asyncio.sleep(self._latency)
        return self._reachable


class TestCredentialStoreHealth:
    """Tests for check_credential_store."""

    @pytest.mark.asyncio
    async def test_memory_store_is_healthy(self):
        """The in-memory store is always reachable."""
        service = HealthService(InMemoryCredentialStore(), None)

        result = await service.check_credential_store()

        assert result.status == "healthy"
        assert result.details == {"backend": "memory"}
        assert result.latency_ms is not None

    @pytest.mark.asyncio
    async def test_unreachable_store(self):
        """Failed ping is unhealthy."""
        service = HealthService(MockStore(reachable=False), None)

        result = await service.check_credential_store()

        assert result.status == "unhealthy"
        assert result.details == {"backend": "redis"}
        assert "unreachable" in result.error

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self):
        """A ping slower than the timeout is unhealthy."""
        service = HealthService(MockStore(latency=1.0), None)

        result = await service.check_credential_store(timeout_seconds=0.05)

        assert result.status == "unhealthy"
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_missing_store(self):
        """An uninitialized store is unhealthy."""
        result = await HealthService(None, None).check_credential_store()

        assert result.status == "unhealthy"
        assert result.error == "Credential store not initialized"


class TestVMSClientHealth:
    """Tests for check_vms_client."""

    def test_missing_client(self):
        """An uninitialized client is unhealthy."""
        result = HealthService(None, None).check_vms_client()

        assert result.status == "unhealthy"

    @pytest.mark.asyncio
    async def test_client_without_insecure_transport(self):
        """The client is healthy and reports its transports."""
        store = InMemoryCredentialStore()
        pool = TransportPool(StandardTransport())
        manager = TokenManager(store, pool, cloud_url=CLOUD_URL, relay_domain=RELAY_DOMAIN)
        client = VMSClient(manager, pool, relay_domain=RELAY_DOMAIN, cloud_url=CLOUD_URL)

        result = HealthService(store, client).check_vms_client()

        assert result.status == "healthy"
        assert result.details == {"insecure_transport": False}
        await client.close()


class TestOverallStatus:
    """Tests for determine_overall_status."""

    def test_all_healthy(self):
        """All healthy components give healthy."""
        service = HealthService(None, None)
        components = {
            "credential_store": ComponentHealth(status="healthy"),
            "vms_client": ComponentHealth(status="healthy"),
        }

        assert service.determine_overall_status(components) == "healthy"

    def test_unhealthy_wins(self):
        """Any unhealthy component makes the service unhealthy."""
        service = HealthService(None, None)
        components = {
            "credential_store": ComponentHealth(status="degraded"),
            "vms_client": ComponentHealth(status="unhealthy"),
        }

        assert service.determine_overall_status(components) == "unhealthy"

    @pytest.mark.asyncio
    async def test_check_all_components(self):
        """check_all reports every component."""
        service = HealthService(InMemoryCredentialStore(), None)

        components = await service.check_all()

        assert set(components) == {"credential_store", "vms_client"}
