"""VMS Bridge - FastAPI Application Entrypoint.

Usage:
    uvicorn vms_bridge.main:app --host 0.0.0.0 --port 8080

Or via the CLI:
    python -m vms_bridge.main
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vms_bridge import __version__
from vms_bridge.api.v1 import health, vms
from vms_bridge.core.config import get_settings
from vms_bridge.core.errors import register_exception_handlers
from vms_bridge.core.lifespan import lifespan
from vms_bridge.core.middleware import RequestIDMiddleware, RequestLoggingMiddleware


def create_application() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="VMS Bridge",
        description="Uniform API over cloud-relay and local VMS deployments",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Last added is outermost; request id must wrap request logging
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    if settings.is_development:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(vms.router, prefix="/api/v1")

    register_exception_handlers(app)

    return app


# Create application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "vms_bridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.vms_bridge_log_level,
    )
