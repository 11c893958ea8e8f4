"""Health check service.

Checks the components the bridge depends on:
- credential store: backend ping within a timeout
- vms_client: initialized at startup, with or without the insecure transport
"""

import asyncio
import time

from vms_bridge.core.logging import get_logger
from vms_bridge.integrations.vms import VMSClient
from vms_bridge.schemas.health import ComponentHealth, HealthStatus

from .credential_store import CredentialStore, InMemoryCredentialStore

logger = get_logger(__name__)


class HealthService:
    """Runs component health checks."""

    def __init__(
        self,
        store: CredentialStore | None,
        vms_client: VMSClient | None,
    ) -> None:
        self._store = store
        self._vms_client = vms_client

    async def check_credential_store(
        self,
        timeout_seconds: float = 3.0,
    ) -> ComponentHealth:
        """Ping the credential store backend."""
        if self._store is None:
            return ComponentHealth(
                status="unhealthy",
                error="Credential store not initialized",
            )

        backend = "memory" if isinstance(self._store, InMemoryCredentialStore) else "redis"
        start_time = time.perf_counter()

        try:
            async with asyncio.timeout(timeout_seconds):
                reachable = await self._store.ping()
        except TimeoutError:
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            logger.error(
                "Credential store health check timed out",
                timeout_seconds=timeout_seconds,
            )
            return ComponentHealth(
                status="unhealthy",
                latency_ms=latency_ms,
                error=f"Credential store health check timed out after {timeout_seconds}s",
                details={"backend": backend},
            )

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        if not reachable:
            return ComponentHealth(
                status="unhealthy",
                latency_ms=latency_ms,
                error="Credential store unreachable",
                details={"backend": backend},
            )
        return ComponentHealth(
            status="healthy",
            latency_ms=latency_ms,
            details={"backend": backend},
        )

    def check_vms_client(self) -> ComponentHealth:
        """Report whether the VMS client and its transports exist."""
        if self._vms_client is None:
            return ComponentHealth(
                status="unhealthy",
                error="VMS client not initialized",
            )
        insecure = self._vms_client.transports.insecure is not None
        return ComponentHealth(
            status="healthy",
            details={"insecure_transport": insecure},
        )

    async def check_all(
        self,
        store_timeout: float = 3.0,
    ) -> dict[str, ComponentHealth]:
        return {
            "credential_store": await self.check_credential_store(store_timeout),
            "vms_client": self.check_vms_client(),
        }

    def determine_overall_status(
        self,
        components: dict[str, ComponentHealth],
    ) -> HealthStatus:
        """Priority: unhealthy > degraded > healthy."""
        statuses = [c.status for c in components.values()]

        if "unhealthy" in statuses:
            return "unhealthy"
        if "degraded" in statuses:
            return "degraded"
        return "healthy"
