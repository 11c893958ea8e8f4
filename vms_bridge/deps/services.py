"""Service dependency injection for FastAPI routes.

Provides factory functions for injecting the VMS client, the credential
store and the media service into API endpoints. Instances are created
once during startup and registered here.
"""

from typing import Annotated

from fastapi import Depends

from vms_bridge.core.errors import ServiceUnavailableAPIError
from vms_bridge.integrations.vms import MediaNegotiator, VMSClient
from vms_bridge.services import CredentialStore, CredentialStoreUnavailableError
from vms_bridge.services.media_service import MediaService


# -----------------------------------------------------------------------------
# VMS Client Dependency
# -----------------------------------------------------------------------------

# Global VMS client instance (initialized on startup)
_vms_client: VMSClient | None = None


def set_vms_client(client: VMSClient | None) -> None:
    """Set the global VMS client instance (called during app startup)."""
    global _vms_client
    _vms_client = client


def get_vms_client() -> VMSClient:
    """Get the VMS client instance.

    Raises:
        ServiceUnavailableAPIError: If the VMS client is not initialized
    """
    if _vms_client is None:
        raise ServiceUnavailableAPIError("VMS client not initialized")
    return _vms_client


def get_vms_client_optional() -> VMSClient | None:
    """Get the VMS client, or None (health checks)."""
    return _vms_client


# -----------------------------------------------------------------------------
# Credential Store Dependency
# -----------------------------------------------------------------------------

_credential_store: CredentialStore | None = None


def set_credential_store(store: CredentialStore | None) -> None:
    """Set the global credential store (called during app startup)."""
    global _credential_store
    _credential_store = store


def get_credential_store() -> CredentialStore:
    """Get the credential store.

    Raises:
        CredentialStoreUnavailableError: If the store is not initialized
    """
    if _credential_store is None:
        raise CredentialStoreUnavailableError()
    return _credential_store


def get_credential_store_optional() -> CredentialStore | None:
    """Get the credential store, or None (health checks)."""
    return _credential_store


# -----------------------------------------------------------------------------
# Service Dependencies
# -----------------------------------------------------------------------------


def get_media_service(
    client: VMSClient = Depends(get_vms_client),
) -> MediaService:
    """FastAPI dependency for MediaService."""
    return MediaService(MediaNegotiator(client))


# Type aliases for dependency injection
VMSClientDep = Annotated[VMSClient, Depends(get_vms_client)]
OptionalVMSClientDep = Annotated[VMSClient | None, Depends(get_vms_client_optional)]
CredentialStoreDep = Annotated[CredentialStore, Depends(get_credential_store)]
OptionalCredentialStoreDep = Annotated[
    CredentialStore | None, Depends(get_credential_store_optional)
]
MediaServiceDep = Annotated[MediaService, Depends(get_media_service)]
