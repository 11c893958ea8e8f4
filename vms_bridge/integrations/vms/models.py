"""VMS connector models.

Pydantic models for connector configuration, tokens and vendor payloads.
Connector records are persisted with camelCase keys, so the configuration
and token models serialize by alias.
"""

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)
from pydantic.alias_generators import to_camel


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class VMSErrorCode(str, Enum):
    """Symbolic error ids returned by the vendor API."""

    MISSING_PARAMETER = "missingParameter"
    INVALID_PARAMETER = "invalidParameter"
    CANT_PROCESS_REQUEST = "cantProcessRequest"
    FORBIDDEN = "forbidden"
    BAD_REQUEST = "badRequest"
    INTERNAL_SERVER_ERROR = "internalServerError"
    CONFLICT = "conflict"
    NOT_IMPLEMENTED = "notImplemented"
    NOT_FOUND = "notFound"
    UNSUPPORTED_MEDIA_TYPE = "unsupportedMediaType"
    SERVICE_UNAVAILABLE = "serviceUnavailable"
    UNAUTHORIZED = "unauthorized"
    SESSION_EXPIRED = "sessionExpired"
    SESSION_REQUIRED = "sessionRequired"
    NOT_ALLOWED = "notAllowed"


# Error ids that signal a stale or rejected credential
AUTH_FAILURE_CODES = frozenset(
    {VMSErrorCode.SESSION_EXPIRED.value, VMSErrorCode.UNAUTHORIZED.value}
)


class DeploymentType(str, Enum):
    """Where the VMS system is reached."""

    CLOUD = "cloud"
    LOCAL = "local"


class ResponseShape(str, Enum):
    """How a successful vendor response body is interpreted."""

    JSON = "json"
    BINARY = "binary"
    STREAM = "stream"


class MediaTransport(str, Enum):
    """Media delivery transports.

    HLS is the segmented playlist transport, WEBM the single-file clip
    container.
    """

    HLS = "hls"
    WEBM = "webm"

    @classmethod
    def _missing_(cls, value: object) -> "MediaTransport | None":
        if isinstance(value, str):
            lower = value.lower()
            for member in cls:
                if member.value == lower:
                    return member
        return None


class AuthMode(str, Enum):
    """How a media request is authenticated."""

    BEARER = "bearer"
    TICKET = "ticket"


# -----------------------------------------------------------------------------
# Base Models
# -----------------------------------------------------------------------------


class VMSModel(BaseModel):
    """Base for models exchanged in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# -----------------------------------------------------------------------------
# Token & Connector Configuration
# -----------------------------------------------------------------------------


class VMSToken(VMSModel):
    """A capability to call the vendor API.

    Tokens are immutable; a refresh produces a new instance.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    access_token: str = Field(min_length=1, description="Opaque bearer string")
    refresh_token: str | None = Field(
        default=None, description="Cloud refresh grant credential"
    )
    expires_at: int = Field(description="Absolute expiry, epoch milliseconds")
    session_id: str | None = Field(
        default=None, description="Local session id"
    )
    scope: str | None = Field(default=None, description="Cloud token scope")


class _ConnectorConfigBase(VMSModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    token: VMSToken | None = None


class CloudCredentials(VMSModel):
    """Cloud account credentials, before a system is selected."""

    type: Literal["cloud"] = "cloud"
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class CloudConnectorConfig(_ConnectorConfigBase):
    """Connector reached through the cloud relay."""

    type: Literal["cloud"] = "cloud"
    selected_system_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices(
            "selectedSystemId", "selectedSystem", "selected_system_id"
        ),
        description="Cloud system the relay forwards to",
    )

    @property
    def deployment_type(self) -> DeploymentType:
        return DeploymentType.CLOUD


class LocalConnectorConfig(_ConnectorConfigBase):
    """Connector reached directly at host:port."""

    type: Literal["local"] = "local"
    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    ignore_tls_errors: bool = Field(
        default=False,
        description="Skip certificate validation (self-signed appliances)",
    )

    @property
    def deployment_type(self) -> DeploymentType:
        return DeploymentType.LOCAL


ConnectorConfig = Annotated[
    Union[CloudConnectorConfig, LocalConnectorConfig],
    Field(discriminator="type"),
]

connector_config_adapter: TypeAdapter[
    CloudConnectorConfig | LocalConnectorConfig
] = TypeAdapter(ConnectorConfig)


def dump_connector_config(
    config: CloudConnectorConfig | LocalConnectorConfig,
) -> dict[str, Any]:
    """Serialize a configuration in its persisted (camelCase) form."""
    return config.model_dump(mode="json", by_alias=True, exclude_none=True)


# -----------------------------------------------------------------------------
# Vendor Authentication Payloads
# -----------------------------------------------------------------------------


class CloudTokenResponse(BaseModel):
    """Response from the cloud OAuth token endpoint.

    Expiry fields arrive as numbers or strings of uncertain validity and
    are interpreted by the token manager.
    """

    access_token: str = Field(min_length=1)
    refresh_token: str | None = None
    expires_at: Any = None
    expires_in: Any = None
    scope: str | None = None
    token_type: str | None = None


class LocalSessionResponse(VMSModel):
    """Response from the local session login endpoint."""

    token: str = Field(min_length=1)
    expires_in_s: Any = None
    id: str | None = None
    username: str | None = None
    age_s: Any = None


class LoginTicketResponse(VMSModel):
    """Response from the login ticket endpoint."""

    token: str = Field(min_length=1)
    id: str | None = None
    username: str | None = None
    expires_in_s: Any = None


# -----------------------------------------------------------------------------
# System / Server / Device Models
# -----------------------------------------------------------------------------


class CloudSystem(VMSModel):
    """A system registered with the cloud account."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    name: str
    version: str | None = None
    state_of_health: str | None = None
    access_role: str | None = None


class VMSServer(VMSModel):
    """A media server within a system."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str
    name: str | None = None
    status: str | None = None
    url: str | None = None
    version: str | None = None


_TRANSPORT_SPLIT = re.compile(r"[|,\s]+")


class MediaStreamDescriptor(VMSModel):
    """Capability descriptor of one encoded stream of a device."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    encoder_index: int | None = None
    resolution: str | None = None
    codec: int | None = None
    transcoding_required: bool | None = None
    transports: list[str] = Field(default_factory=list)

    @field_validator("transports", mode="before")
    @classmethod
    def split_transports(cls, value: Any) -> list[str]:
        # The vendor sends either a delimited string or a list
        if value is None:
            return []
        if isinstance(value, str):
            return [item for item in _TRANSPORT_SPLIT.split(value) if item]
        return [str(item) for item in value]

    def supports(self, transport: MediaTransport) -> bool:
        return transport.value in {item.lower() for item in self.transports}


class DeviceDetails(VMSModel):
    """Device (camera) metadata."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str
    name: str | None = None
    server_id: str | None = None
    device_type: str | None = None
    status: str | None = None
    model: str | None = None
    vendor: str | None = None
    mac: str | None = None
    url: str | None = None
    media_streams: list[MediaStreamDescriptor] = Field(default_factory=list)

    @field_validator("media_streams", mode="before")
    @classmethod
    def default_media_streams(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return value

    def advertises(self, transport: MediaTransport) -> bool:
        """Whether the first media stream descriptor offers a transport."""
        if not self.media_streams:
            return False
        return self.media_streams[0].supports(transport)


# -----------------------------------------------------------------------------
# Event / Bookmark Models
# -----------------------------------------------------------------------------


class CreateEventRequest(VMSModel):
    """Payload for generic event creation."""

    source: str
    caption: str
    description: str
    timestamp: str = Field(description="ISO 8601 event time")
    metadata: dict[str, Any] | None = Field(
        default=None,
        description="Free-form metadata, e.g. cameraRefs",
    )


class CreateBookmarkRequest(VMSModel):
    """Payload for bookmark creation on a camera."""

    name: str
    description: str | None = None
    start_time_ms: int = Field(ge=0)
    duration_ms: int = Field(ge=0)
    tags: list[str] | None = None


class VendorResult(VMSModel):
    """Embedded result code carried by some successful responses."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    error: str | int | None = None
    error_id: str | None = None
    error_string: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None and str(self.error) not in ("", "0")


# -----------------------------------------------------------------------------
# Response Payloads
# -----------------------------------------------------------------------------


class BinaryPayload(BaseModel):
    """Raw bytes of a binary response with their content type."""

    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


class ConnectionTestResult(BaseModel):
    """Outcome of a connection test."""

    connected: bool
    message: str
    systems: list[CloudSystem] = Field(default_factory=list)
    token: VMSToken | None = None


class MediaPlan(BaseModel):
    """Decision for one media request.

    Describes which transport to request and how the request is
    authenticated. Query and header values are ready to hand to the
    request dispatcher.
    """

    model_config = ConfigDict(frozen=True)

    connector_id: str
    camera_id: str
    deployment_type: DeploymentType
    transport: MediaTransport
    auth_mode: AuthMode
    position_ms: int | None = None
    server_id: str | None = None
    path: str
    query: dict[str, str] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def is_live(self) -> bool:
        return self.position_ms is None

    @property
    def default_content_type(self) -> str:
        if self.transport is MediaTransport.HLS:
            return "application/vnd.apple.mpegurl"
        return "video/webm"
