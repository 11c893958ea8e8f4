"""Media transport negotiation.

Decides per camera and request which transport to use and how to
authenticate it:

| deployment | request  | transport                                   |
|------------|----------|---------------------------------------------|
| local      | any      | webm                                        |
| cloud      | live     | hls                                         |
| cloud      | recorded | hls if the first media stream advertises it |
|            |          | else webm                                   |

Webm requests use a server-scoped login ticket when the camera's server
is known, falling back to the bearer token when issuance fails. HLS
always uses the bearer token.
"""

import httpx

from vms_bridge.core.logging import get_logger

from .client import VMSClient, hls_request, media_clip_request
from .exceptions import CameraNotFoundError, VMSApiError
from .models import (
    AuthMode,
    DeploymentType,
    DeviceDetails,
    MediaPlan,
    MediaTransport,
    ResponseShape,
)

logger = get_logger(__name__)


def select_media_transport(
    deployment_type: DeploymentType,
    position_ms: int | None,
    device: DeviceDetails,
) -> MediaTransport:
    """Apply the transport decision table."""
    if deployment_type is DeploymentType.LOCAL:
        return MediaTransport.WEBM
    if position_ms is None:
        return MediaTransport.HLS
    if device.advertises(MediaTransport.HLS):
        return MediaTransport.HLS
    return MediaTransport.WEBM


class MediaNegotiator:
    """Plans and opens media requests for cameras.

    Usage:
        negotiator = MediaNegotiator(client)
        plan = await negotiator.plan_media_request(connector_id, camera_id, position_ms)
        response = await negotiator.fetch(plan)
    """

    def __init__(self, client: VMSClient) -> None:
        self.client = client

    async def plan_media_request(
        self,
        connector_id: str,
        camera_id: str,
        position_ms: int | None = None,
        *,
        issue_ticket: bool = True,
    ) -> MediaPlan:
        """Decide transport and auth mode for one camera request.

        Args:
            connector_id: Connector identifier
            camera_id: Camera device id
            position_ms: Playback position; None requests live video
            issue_ticket: Request a login ticket for webm playback

        Raises:
            CameraNotFoundError: The system does not know the camera
            VMSApiError: Configuration, auth or vendor failures
        """
        config = await self.client.token_manager.load_config(connector_id)
        device = await self.client.get_system_device_by_id(connector_id, camera_id)
        if device is None:
            raise CameraNotFoundError(camera_id)

        transport = select_media_transport(config.deployment_type, position_ms, device)

        if transport is MediaTransport.HLS:
            path, query, headers = hls_request(
                camera_id, position_ms, user_agent=self.client.user_agent
            )
            auth_mode = AuthMode.BEARER
        else:
            ticket = None
            if issue_ticket and device.server_id:
                ticket = await self._issue_ticket(connector_id, device.server_id)
            path, query, headers = media_clip_request(
                camera_id,
                position_ms,
                ticket=ticket,
                server_id=device.server_id,
            )
            auth_mode = AuthMode.TICKET if ticket else AuthMode.BEARER

        plan = MediaPlan(
            connector_id=connector_id,
            camera_id=camera_id,
            deployment_type=config.deployment_type,
            transport=transport,
            auth_mode=auth_mode,
            position_ms=position_ms,
            server_id=device.server_id,
            path=path,
            query=query,
            headers=headers,
        )
        logger.info(
            "Planned media request",
            connector_id=connector_id,
            camera_id=camera_id,
            deployment_type=config.deployment_type.value,
            transport=transport.value,
            auth_mode=auth_mode.value,
            live=plan.is_live,
        )
        return plan

    async def _issue_ticket(self, connector_id: str, server_id: str) -> str | None:
        try:
            return await self.client.create_login_ticket(connector_id, server_id)
        except VMSApiError as e:
            logger.warning(
                "Login ticket issuance failed, falling back to bearer token",
                connector_id=connector_id,
                server_id=server_id,
                error=str(e),
            )
            return None

    async def fetch(self, plan: MediaPlan) -> httpx.Response:
        """Open the planned media request.

        Returns the unconsumed vendor response; the caller must close it.
        """
        return await self.client.execute(
            plan.connector_id,
            plan.path,
            query=plan.query or None,
            headers=plan.headers or None,
            shape=ResponseShape.STREAM,
        )
