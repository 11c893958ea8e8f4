"""VMS API endpoints.

- POST   /vms/systems          authenticate and list cloud systems, or test a local system
- POST   /vms/system-info      identity of a local system (token supplied by caller)
- GET    /vms/media            media transport info (getInfo) or proxied media (getStream)
- GET    /vms/hls-url          final playlist URL after relay redirects
- GET    /vms/best-shot        best-shot image of an analytics object track
- GET    /vms/thumbnail        camera thumbnail
- GET    /vms/devices          devices of a connector's system
- GET    /vms/devices/{id}     one device
- GET    /vms/servers          servers of a connector's system
- POST   /vms/events           create a generic event
- POST   /vms/bookmarks        create a bookmark on a camera

These endpoints delegate to VMSClient and MediaService. VMS errors
propagate to the centralized exception handlers.
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import JSONResponse

from vms_bridge.core.errors import NotFoundAPIError
from vms_bridge.core.logging import get_logger
from vms_bridge.deps import MediaServiceDep, VMSClientDep
from vms_bridge.integrations.vms import BinaryPayload, DeviceDetails, LocalConnectorConfig
from vms_bridge.schemas import (
    CreateBookmarkBody,
    CreateEventBody,
    DeviceListResponse,
    ErrorResponse,
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

router = APIRouter(prefix="/vms", tags=["VMS"])
logger = get_logger(__name__)

_VMS_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid request or connector configuration"},
    401: {"model": ErrorResponse, "description": "VMS authentication failed"},
    404: {"model": ErrorResponse, "description": "Connector or camera not found"},
    502: {"model": ErrorResponse, "description": "VMS error or unexpected response"},
    503: {"model": ErrorResponse, "description": "VMS or credential store unavailable"},
    504: {"model": ErrorResponse, "description": "VMS request timed out"},
}

ConnectorId = Annotated[str, Query(alias="connectorId", min_length=1)]
CameraId = Annotated[str, Query(alias="cameraId", min_length=1)]


def _image_response(payload: BinaryPayload) -> Response:
    return Response(
        content=payload.content,
        media_type=payload.content_type,
        headers={"Cache-Control": "no-cache"},
    )


# -----------------------------------------------------------------------------
# Systems
# -----------------------------------------------------------------------------


@router.post(
    "/systems",
    response_model=SystemsResponse,
    response_model_exclude_none=True,
    summary="Authenticate with a VMS",
    description=(
        "Cloud: obtains an account token and lists the account's systems. "
        "Local: logs in to the system to verify the connection."
    ),
    responses=_VMS_ERRORS,
)
async def authenticate_systems(
    body: SystemsRequest,
    client: VMSClientDep,
) -> SystemsResponse:
    """Authenticate with credentials that are not stored yet."""
    config = body.to_config()

    if isinstance(config, LocalConnectorConfig):
        logger.info("Testing local VMS connection", host=config.host, port=config.port)
        token = await client.token_manager.fetch_local_token(config)
        return SystemsResponse(
            type="local",
            message="Local connection successful!",
            token=token,
        )

    logger.info("Listing cloud VMS systems")
    token = await client.get_access_token(config.username, config.password)
    systems = await client.get_systems(token.access_token)
    return SystemsResponse(
        type="cloud",
        systems=[SystemSummary.from_system(system) for system in systems],
        token=token,
    )


@router.post(
    "/system-info",
    response_model=SystemInfoResponse,
    summary="Get local system identity",
    description="Fetches name, version and id of a local system with a caller-supplied token.",
    responses=_VMS_ERRORS,
)
async def get_system_info(
    body: SystemInfoRequest,
    client: VMSClientDep,
) -> SystemInfoResponse:
    """Fetch system information for a local system."""
    info = await client.get_system_info(body.config, body.token.access_token)

    logger.info(
        "Fetched VMS system info",
        host=body.config.host,
        name=info.get("name"),
    )

    return SystemInfoResponse(
        name=info.get("name"),
        version=info.get("version"),
        id=info.get("localId"),
    )


# -----------------------------------------------------------------------------
# Media
# -----------------------------------------------------------------------------


@router.get(
    "/media",
    response_model=None,
    summary="Camera media",
    description=(
        "action=getInfo returns the transport that would be used and the URL "
        "that streams it; action=getStream proxies the media body. Omit "
        "positionMs for live video."
    ),
    responses={
        200: {
            "description": "Media info (JSON) or media body",
            "content": {
                "application/json": {"example": {"mediaType": "webm", "streamUrl": "/api/v1/vms/media?..."}},
                "video/webm": {},
                "application/vnd.apple.mpegurl": {},
            },
        },
        **_VMS_ERRORS,
    },
)
async def get_media(
    request: Request,
    media_service: MediaServiceDep,
    connector_id: ConnectorId,
    camera_id: CameraId,
    position_ms: Annotated[int | None, Query(alias="positionMs", ge=0)] = None,
    action: Annotated[Literal["getInfo", "getStream"], Query()] = "getInfo",
) -> Response:
    """Describe or stream camera media."""
    if action == "getInfo":
        media_type = await media_service.get_media_info(connector_id, camera_id, position_ms)
        stream_url = request.url.include_query_params(action="getStream")
        info = MediaInfoResponse(
            media_type=media_type,
            stream_url=f"{stream_url.path}?{stream_url.query}",
        )
        return JSONResponse(content=info.model_dump(mode="json", by_alias=True))

    return await media_service.stream_media(connector_id, camera_id, position_ms)


@router.get(
    "/hls-url",
    response_model=HlsUrlResponse,
    summary="Resolve playlist URL",
    description="Returns the final playlist URL after relay redirects (cloud connectors only).",
    responses=_VMS_ERRORS,
)
async def get_hls_url(
    client: VMSClientDep,
    connector_id: ConnectorId,
    camera_id: CameraId,
    system_id: Annotated[str | None, Query(alias="systemId")] = None,
) -> HlsUrlResponse:
    """Resolve the direct playlist URL for a camera."""
    hls_url = await client.get_hls_url(connector_id, camera_id, system_id)

    logger.info(
        "Resolved playlist URL",
        connector_id=connector_id,
        camera_id=camera_id,
    )

    return HlsUrlResponse(hls_url=hls_url)


# -----------------------------------------------------------------------------
# Images
# -----------------------------------------------------------------------------


@router.get(
    "/best-shot",
    response_model=None,
    summary="Best-shot image",
    description="Returns the best-shot image of an analytics object track.",
    responses={
        200: {"description": "Image", "content": {"image/jpeg": {}}},
        **_VMS_ERRORS,
    },
)
async def get_best_shot(
    client: VMSClientDep,
    connector_id: ConnectorId,
    camera_id: CameraId,
    object_track_id: Annotated[str, Query(alias="objectTrackId", min_length=1)],
) -> Response:
    """Proxy a best-shot image."""
    payload = await client.get_best_shot_image(connector_id, object_track_id, camera_id)
    return _image_response(payload)


@router.get(
    "/thumbnail",
    response_model=None,
    summary="Camera thumbnail",
    description="Returns the current camera image, or the image at timestampMs.",
    responses={
        200: {"description": "Image", "content": {"image/jpeg": {}}},
        **_VMS_ERRORS,
    },
)
async def get_thumbnail(
    client: VMSClientDep,
    connector_id: ConnectorId,
    device_id: Annotated[str, Query(alias="deviceId", min_length=1)],
    timestamp_ms: Annotated[int | None, Query(alias="timestampMs", ge=0)] = None,
    size: Annotated[str | None, Query(pattern=r"^\d+x\d+$")] = None,
) -> Response:
    """Proxy a camera thumbnail."""
    payload = await client.get_device_thumbnail(connector_id, device_id, timestamp_ms, size)
    return _image_response(payload)


# -----------------------------------------------------------------------------
# Inventory
# -----------------------------------------------------------------------------


@router.get(
    "/devices",
    response_model=DeviceListResponse,
    summary="List devices",
    description="Returns the devices of the connector's system.",
    responses=_VMS_ERRORS,
)
async def list_devices(
    client: VMSClientDep,
    connector_id: ConnectorId,
) -> DeviceListResponse:
    """List devices of a connector's system."""
    devices = await client.get_system_devices(connector_id)
    return DeviceListResponse(devices=devices, total=len(devices))


@router.get(
    "/devices/{device_id}",
    response_model=DeviceDetails,
    summary="Get device",
    description="Returns one device of the connector's system.",
    responses=_VMS_ERRORS,
)
async def get_device(
    device_id: str,
    client: VMSClientDep,
    connector_id: ConnectorId,
) -> DeviceDetails:
    """Get one device of a connector's system.

    Raises:
        NotFoundAPIError: The system does not know the device
    """
    device = await client.get_system_device_by_id(connector_id, device_id)
    if device is None:
        raise NotFoundAPIError(
            f"Device not found: {device_id}",
            details={"connector_id": connector_id, "device_id": device_id},
        )
    return device


@router.get(
    "/servers",
    response_model=ServerListResponse,
    summary="List servers",
    description="Returns the servers of the connector's system.",
    responses=_VMS_ERRORS,
)
async def list_servers(
    client: VMSClientDep,
    connector_id: ConnectorId,
) -> ServerListResponse:
    """List servers of a connector's system."""
    servers = await client.get_system_servers(connector_id)
    return ServerListResponse(servers=servers, total=len(servers))


# -----------------------------------------------------------------------------
# Events & Bookmarks
# -----------------------------------------------------------------------------


@router.post(
    "/events",
    response_model=OperationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create event",
    description="Creates a generic event on the connector's system.",
    responses=_VMS_ERRORS,
)
async def create_event(
    body: CreateEventBody,
    client: VMSClientDep,
) -> OperationResponse:
    """Create a generic event."""
    await client.create_event(body.connector_id, body.event)
    return OperationResponse(message="Event created")


@router.post(
    "/bookmarks",
    response_model=OperationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create bookmark",
    description="Creates a bookmark on a camera of the connector's system.",
    responses=_VMS_ERRORS,
)
async def create_bookmark(
    body: CreateBookmarkBody,
    client: VMSClientDep,
) -> OperationResponse:
    """Create a bookmark on a camera."""
    await client.create_bookmark(body.connector_id, body.camera_id, body.bookmark)
    return OperationResponse(message="Bookmark created")
