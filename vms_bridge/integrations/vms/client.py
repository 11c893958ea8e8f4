"""VMS API async client.

One request interface over both deployment types:
- Token management through the TokenManager
- Transport selection (certificate-validating or bypass)
- Manual redirect following for the cloud relay
- One forced-refresh retry on authentication failures
- Typed results via Pydantic models
"""

from typing import Annotated, Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vms_bridge.core.logging import get_logger

from .auth import TokenManager, cloud_system_scope
from .exceptions import (
    InvalidConnectorConfigError,
    VMSApiError,
    VMSRedirectLimitError,
    VMSResponseShapeError,
    VMSVendorError,
)
from .models import (
    BinaryPayload,
    CloudConnectorConfig,
    CloudCredentials,
    CloudSystem,
    ConnectionTestResult,
    CreateBookmarkRequest,
    CreateEventRequest,
    DeviceDetails,
    LocalConnectorConfig,
    LoginTicketResponse,
    ResponseShape,
    VendorResult,
    VMSServer,
    VMSToken,
)
from .transport import TransportPool, build_base_url, interpret_response

logger = get_logger(__name__)

DEFAULT_MAX_REDIRECTS = 5
DEFAULT_USER_AGENT = "VMSBridge/1.0"

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

DEVICE_FIELDS = "id,deviceType,mac,model,name,serverId,status,url,vendor,mediaStreams"
SERVER_FIELDS = (
    "id,name,osInfo,parameters.systemRuntime,parameters.physicalMemory,"
    "parameters.timeZoneInformation,status,storages,url,version"
)


class DirectTarget(BaseModel):
    """A configuration plus a token obtained out of band.

    Calls made with a direct target are never retried on auth failure.
    """

    model_config = ConfigDict(frozen=True)

    config: Annotated[
        CloudConnectorConfig | LocalConnectorConfig,
        Field(discriminator="type"),
    ]
    access_token: str = Field(min_length=1)


Target = str | DirectTarget

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: type[ModelT], data: Any, label: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise VMSResponseShapeError(
            f"Invalid {label} payload ({e.error_count()} errors)",
            raw_payload=data,
        ) from e


def media_clip_request(
    camera_id: str,
    position_ms: int | None = None,
    *,
    container: str = "webm",
    ticket: str | None = None,
    server_id: str | None = None,
) -> tuple[str, dict[str, str], dict[str, str]]:
    """Path, query and headers of a clip container request."""
    path = f"/rest/v3/devices/{camera_id}/media.{container.strip().lower()}"
    query: dict[str, str] = {}
    headers: dict[str, str] = {}
    if position_ms is not None:
        query["positionMs"] = str(position_ms)
    if ticket and server_id:
        query["_ticket"] = ticket
        headers["X-Server-Guid"] = server_id
    return path, query, headers


def hls_request(
    camera_id: str,
    position_ms: int | None = None,
    *,
    user_agent: str = DEFAULT_USER_AGENT,
) -> tuple[str, dict[str, str], dict[str, str]]:
    """Path, query and headers of a playlist request."""
    query: dict[str, str] = {}
    if position_ms is not None:
        query["pos"] = str(position_ms)
    return (
        f"/hls/{camera_id}.m3u8",
        query,
        {"Accept": "*/*", "User-Agent": user_agent},
    )


class VMSClient:
    """Async client for cloud-relay and local VMS deployments.

    Usage:
        async with VMSClient(token_manager, transports) as client:
            devices = await client.get_system_devices(connector_id)
            await client.create_bookmark(connector_id, camera_id, payload)

    All failures surface as VMSApiError subclasses.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        transports: TransportPool,
        *,
        relay_domain: str,
        cloud_url: str,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.token_manager = token_manager
        self.transports = transports
        self.relay_domain = relay_domain
        self.cloud_url = cloud_url.rstrip("/")
        self.max_redirects = max_redirects
        self.user_agent = user_agent

    async def close(self) -> None:
        """Close transports and release connections."""
        await self.transports.aclose()
        logger.info("VMS client closed")

    async def __aenter__(self) -> "VMSClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Request Dispatch
    # -------------------------------------------------------------------------

    async def execute(
        self,
        target: Target,
        path: str,
        *,
        method: str = "GET",
        query: dict[str, str] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
        shape: ResponseShape = ResponseShape.JSON,
    ) -> Any:
        """Execute one vendor API call.

        Args:
            target: Connector id, or a DirectTarget carrying its own token
            path: API path starting with '/'
            method: HTTP method
            query: Query parameters
            body: JSON body for POST/PUT/PATCH
            headers: Headers overriding the defaults
            shape: How to interpret a successful response

        Returns:
            Parsed JSON (None for 204), BinaryPayload, or the unconsumed
            httpx.Response for STREAM

        Raises:
            VMSApiError: Every failure, normalized
        """
        method = method.upper()
        is_retry = False

        while True:
            config, access_token = await self._resolve_target(target, is_retry)
            request_headers = self._build_headers(access_token, method, body, shape, headers)
            try:
                response = await self._send(config, method, path, query, body, request_headers)
                return await interpret_response(response, shape)
            except VMSVendorError as e:
                if e.is_auth_failure and not is_retry and isinstance(target, str):
                    logger.warning(
                        "VMS auth failure, refreshing token and retrying",
                        connector_id=target,
                        path=path,
                        status_code=e.status_code,
                        error_id=e.error_id,
                    )
                    is_retry = True
                    continue
                logger.warning(
                    "VMS request failed",
                    connector_id=target if isinstance(target, str) else None,
                    method=method,
                    path=path,
                    status_code=e.status_code,
                    error_id=e.error_id,
                    retried=is_retry,
                )
                raise

    async def _resolve_target(
        self,
        target: Target,
        force_refresh: bool,
    ) -> tuple[CloudConnectorConfig | LocalConnectorConfig, str]:
        if isinstance(target, DirectTarget):
            return target.config, target.access_token
        config, token = await self.token_manager.ensure_valid_token(
            target, force_refresh=force_refresh
        )
        return config, token.access_token

    def _build_headers(
        self,
        access_token: str,
        method: str,
        body: Any,
        shape: ResponseShape,
        extra: dict[str, str] | None,
    ) -> dict[str, str]:
        headers = {
            "Accept": "application/json" if shape is ResponseShape.JSON else "*/*",
            "Authorization": f"Bearer {access_token}",
        }
        if body is not None and method in BODY_METHODS:
            headers["Content-Type"] = "application/json"
        if extra:
            headers.update(extra)
        return headers

    async def _send(
        self,
        config: CloudConnectorConfig | LocalConnectorConfig,
        method: str,
        path: str,
        query: dict[str, str] | None,
        body: Any,
        headers: dict[str, str],
    ) -> httpx.Response:
        """Send a request, following redirects per deployment type."""
        transport = self.transports.for_config(config)
        url = f"{build_base_url(config, self.relay_domain)}{path}"
        json_body = body if method in BODY_METHODS else None

        if isinstance(config, LocalConnectorConfig):
            return await transport.send(
                method,
                url,
                params=query,
                headers=headers,
                json_body=json_body,
                follow_redirects=True,
            )

        params = query
        for hop in range(self.max_redirects + 1):
            response = await transport.send(
                method,
                url,
                params=params,
                headers=headers,
                json_body=json_body,
            )
            if response.status_code not in REDIRECT_STATUSES:
                return response

            await response.aclose()
            location = response.headers.get("Location")
            if not location:
                raise VMSVendorError(
                    f"Redirect status {response.status_code} received but no Location header found",
                    status_code=response.status_code,
                )
            url = str(response.url.join(location))
            # Location already carries the query string
            params = None
            if response.status_code == 303:
                method, json_body = "GET", None
            logger.debug(
                "Following VMS redirect",
                status_code=response.status_code,
                hop=hop + 1,
                host=response.url.host,
            )

        raise VMSRedirectLimitError(self.max_redirects, url)

    # -------------------------------------------------------------------------
    # Cloud Account
    # -------------------------------------------------------------------------

    async def get_access_token(self, username: str, password: str) -> VMSToken:
        """Unscoped cloud password grant."""
        return await self.token_manager.fetch_cloud_token(username, password)

    async def get_system_scoped_access_token(
        self,
        username: str,
        password: str,
        system_id: str,
    ) -> VMSToken:
        """Cloud password grant scoped to one system."""
        return await self.token_manager.fetch_cloud_token(
            username, password, cloud_system_scope(system_id)
        )

    async def get_systems(self, access_token: str) -> list[CloudSystem]:
        """List systems visible to a cloud account."""
        response = await self.transports.standard.send(
            "GET",
            f"{self.cloud_url}/cdb/systems",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )
        data = await interpret_response(response, ResponseShape.JSON)
        systems = data.get("systems") if isinstance(data, dict) else None
        if not isinstance(systems, list):
            raise VMSResponseShapeError(
                "Systems response did not contain a valid systems array",
                raw_payload=data,
            )
        logger.info("Fetched cloud systems", count=len(systems))
        return [_parse(CloudSystem, item, "system") for item in systems]

    async def test_connection(
        self,
        config: CloudCredentials | CloudConnectorConfig | LocalConnectorConfig,
    ) -> ConnectionTestResult:
        """Authenticate with a configuration without persisting anything.

        Cloud connections also list the account's systems. Never raises
        for vendor failures; the result carries the message instead.
        """
        try:
            if not isinstance(config, LocalConnectorConfig):
                token = await self.get_access_token(config.username, config.password)
                systems = await self.get_systems(token.access_token)
                return ConnectionTestResult(
                    connected=True,
                    message=f"Successfully connected to cloud. Found {len(systems)} systems.",
                    systems=systems,
                    token=token,
                )
            token = await self.token_manager.fetch_local_token(config)
            return ConnectionTestResult(
                connected=True,
                message=f"Successfully authenticated at {config.host}:{config.port}.",
                token=token,
            )
        except VMSApiError as e:
            logger.warning(
                "VMS connection test failed",
                deployment_type=config.type,
                error=str(e),
            )
            return ConnectionTestResult(
                connected=False,
                message=e.error_string or e.message,
            )

    async def test_local_connection(
        self,
        config: LocalConnectorConfig,
    ) -> ConnectionTestResult:
        """Session login against a local system."""
        if not isinstance(config, LocalConnectorConfig):
            raise InvalidConnectorConfigError(None, "local connection test requires a local configuration")
        return await self.test_connection(config)

    # -------------------------------------------------------------------------
    # System Inventory
    # -------------------------------------------------------------------------

    async def get_system_info(
        self,
        config: CloudConnectorConfig | LocalConnectorConfig,
        access_token: str,
    ) -> dict[str, Any]:
        """Fetch system information with an out-of-band token."""
        data = await self.execute(
            DirectTarget(config=config, access_token=access_token),
            "/rest/v3/system/info",
        )
        if not isinstance(data, dict):
            raise VMSResponseShapeError("Expected object for system info", raw_payload=data)
        return data

    async def get_system_servers(self, connector_id: str) -> list[VMSServer]:
        """List the servers of a connector's system."""
        data = await self.execute(
            connector_id,
            "/rest/v3/servers",
            query={"_with": SERVER_FIELDS},
        )
        servers = data.get("servers") if isinstance(data, dict) else data
        if not isinstance(servers, list):
            raise VMSResponseShapeError(
                "Servers response did not contain a valid servers array",
                raw_payload=data,
            )
        return [_parse(VMSServer, item, "server") for item in servers]

    async def get_system_devices(self, connector_id: str) -> list[DeviceDetails]:
        """List the devices of a connector's system."""
        data = await self.execute(
            connector_id,
            "/rest/v3/devices/",
            query={"_with": DEVICE_FIELDS},
        )
        if not isinstance(data, list):
            raise VMSResponseShapeError(
                "Devices response was not a valid array",
                raw_payload=data,
            )
        logger.info("Fetched VMS devices", connector_id=connector_id, count=len(data))
        return [_parse(DeviceDetails, item, "device") for item in data]

    async def get_system_device_by_id(
        self,
        target: Target,
        device_id: str,
    ) -> DeviceDetails | None:
        """Fetch one device; None when the system does not know it."""
        try:
            data = await self.execute(
                target,
                f"/rest/v3/devices/{device_id}",
                query={"_with": DEVICE_FIELDS},
            )
        except VMSVendorError as e:
            if e.status_code == 404:
                logger.info("VMS device not found", device_id=device_id)
                return None
            raise

        if data is None:
            return None
        if not isinstance(data, dict):
            raise VMSResponseShapeError(
                "Unexpected response format for device by id",
                raw_payload=data,
            )
        return _parse(DeviceDetails, data, "device")

    # -------------------------------------------------------------------------
    # Tickets & Images
    # -------------------------------------------------------------------------

    async def create_login_ticket(self, target: Target, server_id: str) -> str:
        """Issue a short-lived ticket scoped to one server."""
        data = await self.execute(
            target,
            "/rest/v3/login/tickets",
            method="POST",
            headers={"X-Server-Guid": server_id},
        )
        if not isinstance(data, dict) or not data.get("token"):
            raise VMSResponseShapeError(
                "Login ticket response did not contain a token",
                raw_payload=data,
            )
        return _parse(LoginTicketResponse, data, "login ticket").token

    async def _get_image(
        self,
        connector_id: str,
        path: str,
        query: dict[str, str] | None,
        label: str,
    ) -> BinaryPayload:
        payload = await self.execute(
            connector_id,
            path,
            query=query,
            headers={"Accept": "image/*"},
            shape=ResponseShape.BINARY,
        )
        content_type = (payload.content_type or "").lower()
        if not content_type.startswith("image/"):
            raise VMSResponseShapeError(
                f"Expected image from {label}, got {payload.content_type or 'no content type'}",
            )
        logger.debug(
            "Fetched VMS image",
            connector_id=connector_id,
            kind=label,
            content_type=payload.content_type,
            size=payload.size,
        )
        return payload

    async def get_best_shot_image(
        self,
        connector_id: str,
        object_track_id: str,
        camera_id: str,
    ) -> BinaryPayload:
        """Best-shot image of an analytics object track."""
        return await self._get_image(
            connector_id,
            "/ec2/analyticsTrackBestShot",
            {"objectTrackId": object_track_id, "cameraId": camera_id},
            "best shot",
        )

    async def get_device_thumbnail(
        self,
        connector_id: str,
        device_id: str,
        timestamp_ms: int | None = None,
        size: str | None = None,
    ) -> BinaryPayload:
        """Camera thumbnail, current or at a timestamp."""
        query: dict[str, str] = {}
        if timestamp_ms is not None:
            query["timestampMs"] = str(timestamp_ms)
        if size:
            query["size"] = size
        return await self._get_image(
            connector_id,
            f"/rest/v3/devices/{device_id}/image",
            query or None,
            "thumbnail",
        )

    # -------------------------------------------------------------------------
    # Events & Bookmarks
    # -------------------------------------------------------------------------

    async def create_event(
        self,
        connector_id: str,
        payload: CreateEventRequest,
    ) -> VendorResult:
        """Create a generic event.

        Success requires a 2xx status and an embedded error code of 0.
        """
        data = await self.execute(
            connector_id,
            "/api/createEvent",
            method="POST",
            body=payload.model_dump(by_alias=True, exclude_none=True),
        )
        result = _parse(VendorResult, data if isinstance(data, dict) else {}, "event result")
        if result.is_error:
            raise VMSVendorError(
                f"createEvent error: {result.error_string or 'Unknown'} (Code: {result.error})",
                error_id=result.error_id,
                error_string=result.error_string,
                raw_payload=data,
            )
        logger.info("Created VMS event", connector_id=connector_id, source=payload.source)
        return result

    async def create_bookmark(
        self,
        connector_id: str,
        camera_id: str,
        payload: CreateBookmarkRequest,
    ) -> None:
        """Create a bookmark on a camera.

        Success requires a 2xx status and, when present, an embedded error
        code of 0.
        """
        data = await self.execute(
            connector_id,
            f"/rest/v3/devices/{camera_id}/bookmarks",
            method="POST",
            body=payload.model_dump(by_alias=True, exclude_none=True),
        )
        if isinstance(data, dict):
            result = _parse(VendorResult, data, "bookmark result")
            if result.is_error:
                raise VMSVendorError(
                    f"createBookmark error: {result.error_string or 'Unknown'} (Code: {result.error})",
                    error_id=result.error_id,
                    error_string=result.error_string,
                    raw_payload=data,
                )
        logger.info("Created VMS bookmark", connector_id=connector_id, camera_id=camera_id)

    # -------------------------------------------------------------------------
    # Media
    # -------------------------------------------------------------------------

    async def get_media_stream(
        self,
        target: Target,
        camera_id: str,
        position_ms: int | None = None,
        *,
        container: str = "webm",
        ticket: str | None = None,
        server_id: str | None = None,
    ) -> httpx.Response:
        """Open a clip container stream.

        The caller owns the returned response and must close it.
        """
        path, query, headers = media_clip_request(
            camera_id,
            position_ms,
            container=container,
            ticket=ticket,
            server_id=server_id,
        )
        return await self.execute(
            target,
            path,
            query=query or None,
            headers=headers or None,
            shape=ResponseShape.STREAM,
        )

    async def get_hls_stream(
        self,
        target: Target,
        camera_id: str,
        position_ms: int | None = None,
    ) -> httpx.Response:
        """Open a playlist stream. The caller must close the response."""
        path, query, headers = hls_request(
            camera_id, position_ms, user_agent=self.user_agent
        )
        return await self.execute(
            target,
            path,
            query=query or None,
            headers=headers,
            shape=ResponseShape.STREAM,
        )

    async def get_hls_url(
        self,
        connector_id: str,
        camera_id: str,
        system_id: str | None = None,
    ) -> str:
        """Resolve the final playlist URL after relay redirects.

        Uses a token scoped to ``system_id`` (defaults to the connector's
        selected system). Only cloud connectors are supported.
        """
        config = await self.token_manager.load_config(connector_id)
        if not isinstance(config, CloudConnectorConfig):
            raise InvalidConnectorConfigError(
                connector_id, "playlist URL resolution requires a cloud connector"
            )
        if system_id and system_id != config.selected_system_id:
            config = config.model_copy(update={"selected_system_id": system_id})

        token = await self.get_system_scoped_access_token(
            config.username, config.password, config.selected_system_id
        )
        response = await self.get_hls_stream(
            DirectTarget(config=config, access_token=token.access_token),
            camera_id,
        )
        try:
            return str(response.url)
        finally:
            await response.aclose()

