"""Application startup and shutdown lifecycle management.

Provides:
- Lifespan context manager for FastAPI
- Startup hooks (credential store, transports, VMS client)
- Shutdown hooks (cleanup for all clients)
- Startup time tracking for uptime calculation
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vms_bridge.core.config import Settings, get_settings
from vms_bridge.core.logging import configure_logging, get_logger
from vms_bridge.core.redis import close_redis, init_redis
from vms_bridge.deps.services import set_credential_store, set_vms_client
from vms_bridge.integrations.vms import (
    InsecureTransport,
    StandardTransport,
    TokenManager,
    TransportPool,
    VMSClient,
)
from vms_bridge.services import (
    CredentialStore,
    InMemoryCredentialStore,
    RedisCredentialStore,
)

logger = get_logger(__name__)

# Global client for cleanup
_vms_client: VMSClient | None = None

# Startup timestamp for uptime calculation
_startup_time: float | None = None


def get_uptime_seconds() -> int | None:
    """Get the application uptime in seconds, or None if not started."""
    if _startup_time is None:
        return None
    return int(time.time() - _startup_time)


async def build_credential_store(settings: Settings) -> CredentialStore:
    """Create the configured credential store backend."""
    if settings.credential_store_backend == "memory":
        logger.warning("Using in-memory credential store; records are not persisted")
        return InMemoryCredentialStore()

    redis_client = await init_redis(settings)
    return RedisCredentialStore(redis_client, key_prefix=settings.connector_key_prefix)


def build_transport_pool(settings: Settings) -> TransportPool:
    """Create the standard transport and, when enabled, the insecure one."""
    standard = StandardTransport(timeout=settings.vms_request_timeout_sec)
    insecure = None
    if settings.vms_insecure_tls_enabled:
        insecure = InsecureTransport(timeout=settings.vms_request_timeout_sec)
    return TransportPool(standard, insecure)


def build_vms_client(
    settings: Settings,
    store: CredentialStore,
    transports: TransportPool,
) -> VMSClient:
    """Wire the token manager and the client from settings."""
    token_manager = TokenManager(
        store,
        transports,
        cloud_url=settings.vms_cloud_url,
        relay_domain=settings.vms_relay_domain,
        cloud_client_id=settings.vms_cloud_client_id,
        connector_category=settings.vms_connector_category,
        refresh_margin_sec=settings.vms_token_refresh_margin_sec,
    )
    return VMSClient(
        token_manager,
        transports,
        relay_domain=settings.vms_relay_domain,
        cloud_url=settings.vms_cloud_url,
        max_redirects=settings.vms_max_redirects,
        user_agent=settings.vms_user_agent,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager.

    Startup:
        1. Record startup time
        2. Configure logging
        3. Initialize the credential store
        4. Create transports and the VMS client

    Shutdown:
        1. Close the VMS client (and its transports)
        2. Close Redis connections

    Args:
        app: FastAPI application instance
    """
    global _vms_client, _startup_time

    _startup_time = time.time()

    # ===== STARTUP =====
    settings = get_settings()

    configure_logging()

    logger.info(
        "Starting VMS Bridge",
        environment=settings.vms_bridge_env,
        host=settings.host,
        port=settings.port,
    )

    try:
        store = await build_credential_store(settings)
        set_credential_store(store)
        logger.info(
            "Credential store initialized",
            backend=settings.credential_store_backend,
        )
    except Exception as e:
        logger.error("Failed to initialize credential store", error=str(e))
        raise

    try:
        transports = build_transport_pool(settings)
        _vms_client = build_vms_client(settings, store, transports)
        set_vms_client(_vms_client)
        logger.info(
            "VMS client initialized",
            relay_domain=settings.vms_relay_domain,
            insecure_transport=transports.insecure is not None,
        )
    except Exception as e:
        logger.error("Failed to initialize VMS client", error=str(e))
        raise

    logger.info("VMS Bridge startup complete")

    yield  # Application runs here

    # ===== SHUTDOWN =====
    logger.info("Shutting down VMS Bridge")

    set_vms_client(None)
    set_credential_store(None)

    if _vms_client:
        try:
            await _vms_client.close()
        except Exception as e:
            logger.error("Error closing VMS client", error=str(e))
        finally:
            _vms_client = None

    try:
        await close_redis()
    except Exception as e:
        logger.error("Error during Redis shutdown", error=str(e))

    logger.info("VMS Bridge shutdown complete")
