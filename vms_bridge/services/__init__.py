"""VMS Bridge domain services.

Services in this package:
- CredentialStore: Connector record storage (Redis or in-memory)
- stream_proxy: Relay of vendor media responses
- MediaService: Camera media info and playback (vms_bridge.services.media_service)

MediaService is imported from its module directly; the VMS integration
depends on the credential store defined here.

Exception Hierarchy:
    ServiceError (base)
    ├── CredentialStoreError
    │   └── CredentialStoreUnavailableError
    └── StreamRelayError
"""

from .credential_store import (
    ConnectorRecord,
    CredentialStore,
    InMemoryCredentialStore,
    RedisCredentialStore,
)
from .exceptions import (
    CredentialStoreError,
    CredentialStoreUnavailableError,
    ServiceError,
    StreamRelayError,
)
from .stream_proxy import relay

__all__ = [
    # Credential store
    "ConnectorRecord",
    "CredentialStore",
    "InMemoryCredentialStore",
    "RedisCredentialStore",
    # Stream proxy
    "relay",
    # Exceptions
    "ServiceError",
    "CredentialStoreError",
    "CredentialStoreUnavailableError",
    "StreamRelayError",
]
