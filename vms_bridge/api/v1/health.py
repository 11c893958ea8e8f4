"""Health check endpoints for VMS Bridge.

Provides:
- GET /api/v1/health - Health check with component statuses
- GET /api/v1/health/live - Liveness probe

Components:
- credential_store: healthy | unhealthy
- vms_client: healthy | unhealthy
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from vms_bridge import __version__
from vms_bridge.core.config import get_settings
from vms_bridge.core.lifespan import get_uptime_seconds
from vms_bridge.core.logging import get_logger
from vms_bridge.deps import OptionalCredentialStoreDep, OptionalVMSClientDep
from vms_bridge.schemas import HealthResponse, LivenessResponse
from vms_bridge.services.health_service import HealthService

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the VMS Bridge and its dependencies.",
    responses={
        200: {
            "description": "Health check completed (status may be healthy or unhealthy)",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "service": "vms-bridge",
                        "version": "0.1.0",
                        "timestamp": "2025-01-16T10:30:00Z",
                        "components": {
                            "credential_store": {
                                "status": "healthy",
                                "latency_ms": 2,
                                "details": {"backend": "redis"},
                            },
                            "vms_client": {
                                "status": "healthy",
                                "details": {"insecure_transport": True},
                            },
                        },
                        "uptime_seconds": 3600,
                    }
                }
            },
        }
    },
)
async def health_check(
    store: OptionalCredentialStoreDep,
    vms_client: OptionalVMSClientDep,
) -> HealthResponse:
    """Health check endpoint.

    Returns health status of the bridge and its dependencies.
    """
    settings = get_settings()
    health_service = HealthService(store, vms_client)

    components = await health_service.check_all(
        store_timeout=settings.health_check_store_timeout,
    )
    overall_status = health_service.determine_overall_status(components)

    logger.debug(
        "Health check completed",
        status=overall_status,
        environment=settings.vms_bridge_env,
        components={name: comp.status for name, comp in components.items()},
    )

    return HealthResponse(
        status=overall_status,
        service="vms-bridge",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        components=components,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/health/live",
    response_model=LivenessResponse,
    status_code=200,
    summary="Liveness probe",
    description="Returns 200 if the process is alive.",
)
async def liveness() -> LivenessResponse:
    """Liveness probe endpoint. Does not check dependencies."""
    return LivenessResponse(status="ok")
