"""VMS connector integration layer.

Provides an async client for cloud-relay and local VMS deployments.

Usage:
    from vms_bridge.integrations.vms import MediaNegotiator, VMSClient

    client = VMSClient(token_manager, transports, relay_domain=..., cloud_url=...)

    # Inventory
    devices = await client.get_system_devices(connector_id)

    # Recorded playback
    negotiator = MediaNegotiator(client)
    plan = await negotiator.plan_media_request(connector_id, camera_id, 1700000000000)
    response = await negotiator.fetch(plan)

Exception Hierarchy:
    VMSApiError (base)
    ├── VMSConfigError - Missing/invalid connector configuration
    │   ├── ConnectorNotFoundError - No record for the connector id
    │   └── InvalidConnectorConfigError - Wrong category or fields
    ├── VMSAuthError - Every token strategy failed
    ├── VMSTransportError - Network/connection failure
    │   ├── VMSTimeoutError - Request timeout
    │   └── VMSRedirectLimitError - Redirect chain too long (508)
    ├── VMSVendorError - Vendor signalled an error
    ├── VMSResponseShapeError - Body does not match the requested shape
    ├── VMSPersistenceError - Token obtained but not persisted
    ├── VMSStoreUnavailableError - Connector record unreadable
    └── CameraNotFoundError - Unknown camera
"""

from .auth import TokenManager, calculate_expires_at, is_token_expiring
from .client import DirectTarget, VMSClient
from .exceptions import (
    CameraNotFoundError,
    ConnectorNotFoundError,
    InvalidConnectorConfigError,
    VMSApiError,
    VMSAuthError,
    VMSConfigError,
    VMSPersistenceError,
    VMSRedirectLimitError,
    VMSResponseShapeError,
    VMSStoreUnavailableError,
    VMSTimeoutError,
    VMSTransportError,
    VMSVendorError,
)
from .media import MediaNegotiator, select_media_transport
from .models import (
    AuthMode,
    BinaryPayload,
    CloudConnectorConfig,
    CloudCredentials,
    CloudSystem,
    ConnectionTestResult,
    CreateBookmarkRequest,
    CreateEventRequest,
    DeploymentType,
    DeviceDetails,
    LocalConnectorConfig,
    MediaPlan,
    MediaStreamDescriptor,
    MediaTransport,
    ResponseShape,
    VendorResult,
    VMSErrorCode,
    VMSServer,
    VMSToken,
)
from .transport import InsecureTransport, StandardTransport, Transport, TransportPool

__all__ = [
    # Client
    "VMSClient",
    "DirectTarget",
    "TokenManager",
    "MediaNegotiator",
    "calculate_expires_at",
    "is_token_expiring",
    "select_media_transport",
    # Transports
    "Transport",
    "StandardTransport",
    "InsecureTransport",
    "TransportPool",
    # Exceptions
    "VMSApiError",
    "VMSConfigError",
    "ConnectorNotFoundError",
    "InvalidConnectorConfigError",
    "VMSAuthError",
    "VMSTransportError",
    "VMSTimeoutError",
    "VMSRedirectLimitError",
    "VMSVendorError",
    "VMSResponseShapeError",
    "VMSPersistenceError",
    "VMSStoreUnavailableError",
    "CameraNotFoundError",
    # Enums
    "VMSErrorCode",
    "DeploymentType",
    "ResponseShape",
    "MediaTransport",
    "AuthMode",
    # Models
    "VMSToken",
    "CloudConnectorConfig",
    "CloudCredentials",
    "LocalConnectorConfig",
    "CloudSystem",
    "VMSServer",
    "DeviceDetails",
    "MediaStreamDescriptor",
    "CreateEventRequest",
    "CreateBookmarkRequest",
    "VendorResult",
    "BinaryPayload",
    "ConnectionTestResult",
    "MediaPlan",
]
