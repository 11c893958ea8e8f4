"""Shared pytest fixtures for unit tests.

Provides:
- A fake vendor behind httpx.MockTransport
- Transport pool, credential store, token manager and client fixtures
- Connector record factory
"""

from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio

from tests.fakes import CLOUD_URL, RELAY_DOMAIN, FakeVendor
from vms_bridge.integrations.vms import (
    InsecureTransport,
    MediaNegotiator,
    StandardTransport,
    TokenManager,
    TransportPool,
    VMSClient,
)
from vms_bridge.services import ConnectorRecord, InMemoryCredentialStore


@pytest.fixture
def vendor() -> FakeVendor:
    return FakeVendor()


@pytest_asyncio.fixture
async def transports(vendor: FakeVendor) -> AsyncGenerator[TransportPool, None]:
    pool = TransportPool(
        StandardTransport(timeout=5.0, transport=vendor.mock_transport()),
        InsecureTransport(timeout=5.0, transport=vendor.mock_transport()),
    )
    yield pool
    await pool.aclose()


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


@pytest.fixture
def token_manager(
    store: InMemoryCredentialStore,
    transports: TransportPool,
) -> TokenManager:
    return TokenManager(
        store,
        transports,
        cloud_url=CLOUD_URL,
        relay_domain=RELAY_DOMAIN,
    )


@pytest.fixture
def vms_client(token_manager: TokenManager, transports: TransportPool) -> VMSClient:
    return VMSClient(
        token_manager,
        transports,
        relay_domain=RELAY_DOMAIN,
        cloud_url=CLOUD_URL,
    )


@pytest.fixture
def negotiator(vms_client: VMSClient) -> MediaNegotiator:
    return MediaNegotiator(vms_client)
