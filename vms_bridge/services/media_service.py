"""Camera media service.

Combines media negotiation with the stream proxy for the media route.

Usage:
    media_service = MediaService(negotiator)

    # Describe which transport a request would use
    info = await media_service.get_media_info(connector_id, camera_id, position_ms)

    # Open and relay the media itself
    response = await media_service.stream_media(connector_id, camera_id, position_ms)
"""

from starlette.responses import StreamingResponse

from vms_bridge.core.logging import get_logger
from vms_bridge.integrations.vms import MediaNegotiator, MediaTransport

from .stream_proxy import relay

logger = get_logger(__name__)


class MediaService:
    """Service for camera media playback through the VMS."""

    def __init__(self, negotiator: MediaNegotiator) -> None:
        self._negotiator = negotiator

    async def get_media_info(
        self,
        connector_id: str,
        camera_id: str,
        position_ms: int | None = None,
    ) -> MediaTransport:
        """Return the transport a stream request would use.

        No login ticket is issued; only the transport decision is made.
        """
        plan = await self._negotiator.plan_media_request(
            connector_id, camera_id, position_ms, issue_ticket=False
        )
        return plan.transport

    async def stream_media(
        self,
        connector_id: str,
        camera_id: str,
        position_ms: int | None = None,
    ) -> StreamingResponse:
        """Plan, open and relay a media request.

        Raises:
            VMSApiError: Planning or the vendor request failed
            StreamRelayError: The vendor response carries no media
        """
        plan = await self._negotiator.plan_media_request(
            connector_id, camera_id, position_ms
        )
        upstream = await self._negotiator.fetch(plan)
        response = await relay(upstream, plan.default_content_type)

        logger.info(
            "Streaming camera media",
            connector_id=connector_id,
            camera_id=camera_id,
            transport=plan.transport.value,
            auth_mode=plan.auth_mode.value,
            position_ms=position_ms,
        )
        return response
