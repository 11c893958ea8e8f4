"""Pydantic schemas for VMS API endpoints.

Request and response bodies use camelCase keys, matching the connector
configuration format.
"""

from typing import Literal

from pydantic import ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from vms_bridge.integrations.vms.models import (
    CloudCredentials,
    CloudSystem,
    CreateBookmarkRequest,
    CreateEventRequest,
    DeviceDetails,
    LocalConnectorConfig,
    MediaTransport,
    VMSModel,
    VMSServer,
    VMSToken,
)


# -----------------------------------------------------------------------------
# Systems / Connection Test
# -----------------------------------------------------------------------------


class SystemsRequest(VMSModel):
    """Credentials to authenticate with, before a connector exists."""

    type: Literal["cloud", "local"] = Field(default="cloud")
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    host: str | None = Field(None, description="Local host (local only)")
    port: int | None = Field(None, ge=1, le=65535, description="Local port (local only)")
    ignore_tls_errors: bool = Field(
        default=False, description="Skip certificate validation (local only)"
    )

    @model_validator(mode="after")
    def require_local_address(self) -> "SystemsRequest":
        if self.type == "local" and (not self.host or self.port is None):
            raise ValueError("Host and port are required for local connection type")
        return self

    def to_config(self) -> CloudCredentials | LocalConnectorConfig:
        if self.type == "local":
            return LocalConnectorConfig(
                username=self.username,
                password=self.password,
                host=self.host,
                port=self.port,
                ignore_tls_errors=self.ignore_tls_errors,
            )
        return CloudCredentials(username=self.username, password=self.password)


class SystemSummary(VMSModel):
    """A cloud system as listed to callers."""

    id: str
    name: str
    version: str | None = None
    health: str | None = None
    role: str | None = None

    @classmethod
    def from_system(cls, system: CloudSystem) -> "SystemSummary":
        return cls(
            id=system.id,
            name=system.name,
            version=system.version,
            health=system.state_of_health,
            role=system.access_role,
        )


class SystemsResponse(VMSModel):
    """Outcome of authenticating with a cloud account or local system."""

    success: bool = True
    type: Literal["cloud", "local"]
    message: str | None = None
    systems: list[SystemSummary] | None = None
    token: VMSToken | None = None


class AccessTokenInput(VMSModel):
    """A token obtained earlier; only the access token is used."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    access_token: str = Field(..., min_length=1)


class SystemInfoRequest(VMSModel):
    """Local configuration plus a token obtained out of band."""

    config: LocalConnectorConfig
    token: AccessTokenInput


class SystemInfoResponse(VMSModel):
    """Identity of a local system."""

    success: bool = True
    name: str | None = None
    version: str | None = None
    id: str | None = None


# -----------------------------------------------------------------------------
# Media
# -----------------------------------------------------------------------------


class MediaInfoResponse(VMSModel):
    """Transport decision for a media request."""

    media_type: MediaTransport = Field(..., description="hls or webm")
    stream_url: str = Field(..., description="Relative URL that streams the media")


class HlsUrlResponse(VMSModel):
    """Final playlist URL after relay redirects."""

    success: bool = True
    hls_url: str


# -----------------------------------------------------------------------------
# Inventory
# -----------------------------------------------------------------------------


class DeviceListResponse(VMSModel):
    """Devices of a connector's system."""

    devices: list[DeviceDetails]
    total: int


class ServerListResponse(VMSModel):
    """Servers of a connector's system."""

    servers: list[VMSServer]
    total: int


# -----------------------------------------------------------------------------
# Events & Bookmarks
# -----------------------------------------------------------------------------


class CreateEventBody(VMSModel):
    """Event to create on a connector's system."""

    connector_id: str = Field(..., min_length=1)
    event: CreateEventRequest


class CreateBookmarkBody(VMSModel):
    """Bookmark to create on a camera."""

    connector_id: str = Field(..., min_length=1)
    camera_id: str = Field(..., min_length=1)
    bookmark: CreateBookmarkRequest


class OperationResponse(VMSModel):
    """Acknowledgement of a write operation."""

    success: bool = True
    message: str | None = None
