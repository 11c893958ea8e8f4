"""Dependency injection modules for VMS Bridge."""

from vms_bridge.deps.services import (
    CredentialStoreDep,
    MediaServiceDep,
    OptionalCredentialStoreDep,
    OptionalVMSClientDep,
    VMSClientDep,
    get_credential_store,
    get_credential_store_optional,
    get_media_service,
    get_vms_client,
    get_vms_client_optional,
    set_credential_store,
    set_vms_client,
)

__all__ = [
    # VMS Client
    "get_vms_client",
    "get_vms_client_optional",
    "set_vms_client",
    "VMSClientDep",
    "OptionalVMSClientDep",
    # Credential store
    "get_credential_store",
    "get_credential_store_optional",
    "set_credential_store",
    "CredentialStoreDep",
    "OptionalCredentialStoreDep",
    # Service dependencies
    "get_media_service",
    "MediaServiceDep",
]
