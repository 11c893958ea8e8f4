"""API request and response schemas."""

from vms_bridge.schemas.error import ErrorResponse
from vms_bridge.schemas.health import (
    ComponentHealth,
    HealthResponse,
    HealthStatus,
    LivenessResponse,
)
from vms_bridge.schemas.vms import (
    AccessTokenInput,
    CreateBookmarkBody,
    CreateEventBody,
    DeviceListResponse,
    HlsUrlResponse,
    MediaInfoResponse,
    OperationResponse,
    ServerListResponse,
    SystemInfoRequest,
    SystemInfoResponse,
    SystemsRequest,
    SystemsResponse,
    SystemSummary,
)

__all__ = [
    # Errors
    "ErrorResponse",
    # Health
    "HealthStatus",
    "ComponentHealth",
    "HealthResponse",
    "LivenessResponse",
    # VMS
    "SystemsRequest",
    "SystemsResponse",
    "SystemSummary",
    "AccessTokenInput",
    "SystemInfoRequest",
    "SystemInfoResponse",
    "MediaInfoResponse",
    "HlsUrlResponse",
    "DeviceListResponse",
    "ServerListResponse",
    "CreateEventBody",
    "CreateBookmarkBody",
    "OperationResponse",
]
