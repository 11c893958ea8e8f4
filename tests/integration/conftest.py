"""Shared pytest fixtures for integration tests.

Provides:
- Test application with the VMS client and credential store injected
- A fake vendor API behind httpx.MockTransport
- HTTP client for API testing
- Connector record factory
"""

import os
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

# Set test environment before importing app
os.environ["VMS_BRIDGE_ENV"] = "test"
os.environ["VMS_BRIDGE_LOG_LEVEL"] = "warning"
os.environ["VMS_BRIDGE_LOG_FORMAT"] = "text"
os.environ["CREDENTIAL_STORE_BACKEND"] = "memory"

from tests.fakes import CLOUD_URL, RELAY_DOMAIN, FakeVendor
from vms_bridge.core.config import get_settings
from vms_bridge.deps.services import set_credential_store, set_vms_client
from vms_bridge.integrations.vms import (
    InsecureTransport,
    StandardTransport,
    TokenManager,
    TransportPool,
    VMSClient,
)
from vms_bridge.main import create_application
from vms_bridge.services import ConnectorRecord, InMemoryCredentialStore


# -----------------------------------------------------------------------------
# Vendor & Store
# -----------------------------------------------------------------------------


@pytest.fixture
def vendor() -> FakeVendor:
    """Fake vendor API shared by cloud, relay and local hosts."""
    return FakeVendor()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def add_connector(store: InMemoryCredentialStore):
    """Save a connector record: await add_connector("c1", cloud_config())."""

    async def _add(
        connector_id: str,
        config: dict[str, Any],
        category: str = "piko",
    ) -> None:
        await store.save_record(
            ConnectorRecord(connector_id=connector_id, category=category, config=config)
        )

    return _add


@pytest_asyncio.fixture
async def vms_client(
    vendor: FakeVendor,
    store: InMemoryCredentialStore,
) -> AsyncGenerator[VMSClient, None]:
    """VMS client wired to the fake vendor."""
    transports = TransportPool(
        StandardTransport(timeout=5.0, transport=vendor.mock_transport()),
        InsecureTransport(timeout=5.0, transport=vendor.mock_transport()),
    )
    token_manager = TokenManager(
        store,
        transports,
        cloud_url=CLOUD_URL,
        relay_domain=RELAY_DOMAIN,
    )
    client = VMSClient(
        token_manager,
        transports,
        relay_domain=RELAY_DOMAIN,
        cloud_url=CLOUD_URL,
    )
    yield client
    await client.close()


# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------


@pytest_asyncio.fixture
async def app(
    store: InMemoryCredentialStore,
    vms_client: VMSClient,
) -> AsyncGenerator[FastAPI, None]:
    """Create test application with injected dependencies.

    ASGITransport does not run the lifespan, so the globals it would set
    are set here.
    """
    get_settings.cache_clear()
    set_credential_store(store)
    set_vms_client(vms_client)

    application = create_application()
    yield application

    set_vms_client(None)
    set_credential_store(None)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for API testing."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest_asyncio.fixture
async def bare_client() -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for an application whose dependencies were never initialized."""
    get_settings.cache_clear()
    set_credential_store(None)
    set_vms_client(None)
    async with AsyncClient(
        transport=ASGITransport(app=create_application()),
        base_url="http://test",
    ) as client:
        yield client
