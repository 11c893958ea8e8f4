"""Centralized error handling and exception-to-HTTP mapping.

This module provides:
1. API-facing error taxonomy (BridgeAPIError hierarchy)
2. Exception-to-HTTP mapping for service and VMS integration errors
3. FastAPI exception handlers for consistent error responses

Error Response Format:
{
    "error": "ERROR_CODE",
    "error_description": "Human readable message",
    "status_code": 404,
    "details": { ... },
    "request_id": "<uuid>",
    "timestamp": "<iso8601>"
}

VMS errors are mapped by vendor error id first, then by the vendor
status code, then to 502. Raw vendor payloads never reach the response.

Usage:
    from vms_bridge.core.errors import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from vms_bridge.core.logging import get_logger
from vms_bridge.integrations.vms.exceptions import (
    CameraNotFoundError,
    ConnectorNotFoundError,
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
from vms_bridge.integrations.vms.models import VMSErrorCode
from vms_bridge.services.exceptions import (
    CredentialStoreError,
    ServiceError,
    StreamRelayError,
)

logger = get_logger(__name__)


# =============================================================================
# API Error Taxonomy
# =============================================================================


class BridgeAPIError(Exception):
    """Base class for API-facing errors.

    All API errors must define:
    - error_code: SCREAMING_SNAKE_CASE identifier
    - http_status: HTTP status code
    - message: Human-readable description
    - details: Optional additional context (dict)
    """

    error_code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_response(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert to API error response format."""
        return {
            "error": self.error_code,
            "error_description": self.message,
            "status_code": self.http_status,
            "details": self.details if self.details else None,
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class ValidationAPIError(BridgeAPIError):
    """Request validation failed (400)."""

    error_code = "VALIDATION_ERROR"
    http_status = 400


class UnauthorizedAPIError(BridgeAPIError):
    """Authentication required or rejected (401)."""

    error_code = "UNAUTHORIZED"
    http_status = 401


class ForbiddenAPIError(BridgeAPIError):
    """Access forbidden (403)."""

    error_code = "FORBIDDEN"
    http_status = 403


class NotFoundAPIError(BridgeAPIError):
    """Resource not found (404)."""

    error_code = "RESOURCE_NOT_FOUND"
    http_status = 404


class MethodNotAllowedAPIError(BridgeAPIError):
    """Operation not allowed by the VMS (405)."""

    error_code = "NOT_ALLOWED"
    http_status = 405


class ConflictAPIError(BridgeAPIError):
    """State conflict or duplicate resource (409)."""

    error_code = "CONFLICT"
    http_status = 409


class InternalServerAPIError(BridgeAPIError):
    """Internal server error (500)."""

    error_code = "INTERNAL_ERROR"
    http_status = 500


class BadGatewayAPIError(BridgeAPIError):
    """Upstream service error (502)."""

    error_code = "BAD_GATEWAY"
    http_status = 502


class ServiceUnavailableAPIError(BridgeAPIError):
    """Downstream service unavailable (503)."""

    error_code = "SERVICE_UNAVAILABLE"
    http_status = 503


class TimeoutAPIError(BridgeAPIError):
    """Request or downstream timeout (504)."""

    error_code = "TIMEOUT"
    http_status = 504


class RedirectLoopAPIError(BridgeAPIError):
    """Upstream redirect chain exceeded the limit (508)."""

    error_code = "REDIRECT_LIMIT_EXCEEDED"
    http_status = 508


# =============================================================================
# Exception → API Error Mapping
# =============================================================================


_ERROR_ID_STATUS: dict[str, int] = {
    VMSErrorCode.MISSING_PARAMETER.value: 400,
    VMSErrorCode.INVALID_PARAMETER.value: 400,
    VMSErrorCode.BAD_REQUEST.value: 400,
    VMSErrorCode.UNSUPPORTED_MEDIA_TYPE.value: 400,
    VMSErrorCode.UNAUTHORIZED.value: 401,
    VMSErrorCode.SESSION_EXPIRED.value: 401,
    VMSErrorCode.SESSION_REQUIRED.value: 401,
    VMSErrorCode.FORBIDDEN.value: 403,
    VMSErrorCode.NOT_FOUND.value: 404,
    VMSErrorCode.NOT_ALLOWED.value: 405,
    VMSErrorCode.CONFLICT.value: 409,
    VMSErrorCode.CANT_PROCESS_REQUEST.value: 500,
    VMSErrorCode.INTERNAL_SERVER_ERROR.value: 500,
    VMSErrorCode.NOT_IMPLEMENTED.value: 500,
    VMSErrorCode.SERVICE_UNAVAILABLE.value: 503,
}

_STATUS_ERRORS: dict[int, type[BridgeAPIError]] = {
    400: ValidationAPIError,
    401: UnauthorizedAPIError,
    403: ForbiddenAPIError,
    404: NotFoundAPIError,
    405: MethodNotAllowedAPIError,
    409: ConflictAPIError,
    500: InternalServerAPIError,
    502: BadGatewayAPIError,
    503: ServiceUnavailableAPIError,
    504: TimeoutAPIError,
    508: RedirectLoopAPIError,
}


def vms_error_status(exc: VMSApiError) -> int:
    """HTTP status for a VMS error: error id first, then status code, then 502."""
    if exc.error_id and exc.error_id in _ERROR_ID_STATUS:
        return _ERROR_ID_STATUS[exc.error_id]
    if exc.status_code and exc.status_code in _STATUS_ERRORS:
        return exc.status_code
    return 502


def _vms_details(exc: VMSApiError) -> dict[str, Any]:
    details: dict[str, Any] = {"vms_error": type(exc).__name__}
    if exc.error_id:
        details["vms_error_id"] = exc.error_id
    if exc.status_code:
        details["vms_status_code"] = exc.status_code
    return details


def _map_auth_exception(exc: VMSAuthError, details: dict[str, Any]) -> BridgeAPIError:
    """Map a failed token acquisition by what made the last strategy fail.

    Only vendor rejections take the vendor's status; an unreachable or
    misbehaving token endpoint is an upstream failure, not a bad request.
    """
    cause = exc.cause
    if cause is None:
        return UnauthorizedAPIError(message="Authentication failed", details=details)

    message = f"Authentication failed: {cause.error_string or cause.message}"
    if isinstance(cause, VMSVendorError):
        error_class = _STATUS_ERRORS.get(vms_error_status(cause), UnauthorizedAPIError)
    else:
        error_class = type(map_vms_exception(cause))
    return error_class(message=message, details=details)


def map_vms_exception(exc: VMSApiError) -> BridgeAPIError:
    """Map VMS integration exceptions to API errors.

    Args:
        exc: VMS client exception

    Returns:
        Appropriate BridgeAPIError subclass
    """
    message = exc.error_string or exc.message
    details = _vms_details(exc)

    if isinstance(exc, (ConnectorNotFoundError, CameraNotFoundError)):
        return NotFoundAPIError(message=message, details=details)

    if isinstance(exc, VMSConfigError):
        return ValidationAPIError(message=message, details=details)

    if isinstance(exc, VMSResponseShapeError):
        return BadGatewayAPIError(
            message="VMS returned an unexpected response",
            details=details,
        )

    if isinstance(exc, VMSStoreUnavailableError):
        return ServiceUnavailableAPIError(
            message="Credential store unavailable",
            details=details,
        )

    if isinstance(exc, VMSPersistenceError):
        return InternalServerAPIError(
            message="Failed to persist connector token",
            details=details,
        )

    if isinstance(exc, VMSTimeoutError):
        return TimeoutAPIError(message="VMS request timed out", details=details)

    if isinstance(exc, VMSRedirectLimitError):
        return RedirectLoopAPIError(message=message, details=details)

    if isinstance(exc, VMSTransportError):
        return ServiceUnavailableAPIError(
            message="VMS unreachable",
            details=details,
        )

    if isinstance(exc, VMSAuthError):
        return _map_auth_exception(exc, details)

    # Vendor-signalled and generic VMS errors
    error_class = _STATUS_ERRORS.get(vms_error_status(exc), BadGatewayAPIError)
    return error_class(message=message, details=details)


def map_service_exception(exc: ServiceError) -> BridgeAPIError:
    """Map service-layer exceptions to API errors.

    Args:
        exc: Service exception

    Returns:
        Appropriate BridgeAPIError subclass
    """
    if isinstance(exc, StreamRelayError):
        # A successful status without a body is still an upstream failure
        error_class = BadGatewayAPIError
        if exc.upstream_status >= 400:
            error_class = _STATUS_ERRORS.get(exc.upstream_status, BadGatewayAPIError)
        return error_class(message=exc.message, details=exc.details)

    if isinstance(exc, CredentialStoreError):
        return ServiceUnavailableAPIError(
            message="Credential store unavailable",
            details={"connector_id": exc.connector_id} if exc.connector_id else None,
        )

    return InternalServerAPIError(message="Service error", details=exc.details)


def map_exception_to_api_error(exc: Exception) -> BridgeAPIError:
    """Map any exception to an API error.

    This is the main entry point for exception mapping.
    """
    if isinstance(exc, BridgeAPIError):
        return exc

    if isinstance(exc, ServiceError):
        return map_service_exception(exc)

    if isinstance(exc, VMSApiError):
        return map_vms_exception(exc)

    return InternalServerAPIError(
        message="An unexpected error occurred",
        details={"exception_type": type(exc).__name__},
    )


# =============================================================================
# Helper Functions
# =============================================================================


def get_request_id(request: Request) -> str | None:
    """Extract request ID from request state."""
    return getattr(request.state, "request_id", None)


def create_error_response(
    api_error: BridgeAPIError,
    request_id: str | None = None,
) -> JSONResponse:
    """Create a JSONResponse from an API error."""
    return JSONResponse(
        status_code=api_error.http_status,
        content=api_error.to_response(request_id),
    )


def _format_validation_errors(errors: list[Any]) -> list[dict[str, Any]]:
    return [
        {
            "loc": list(error.get("loc", [])),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in errors
    ]


# =============================================================================
# FastAPI Exception Handlers
# =============================================================================


async def mapped_error_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle API, service and VMS exceptions through one mapping."""
    api_error = map_exception_to_api_error(exc)
    vendor_context: dict[str, Any] = {}
    if isinstance(exc, VMSApiError):
        vendor_context = {"vms_status_code": exc.status_code, "vms_error_id": exc.error_id}

    log = logger.error if api_error.http_status >= 500 else logger.warning
    log(
        "Request failed",
        exception_type=type(exc).__name__,
        **vendor_context,
        error_code=api_error.error_code,
        status_code=api_error.http_status,
        message=api_error.message,
        path=request.url.path,
    )

    return create_error_response(api_error, get_request_id(request))


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle FastAPI request validation errors."""
    error_details = _format_validation_errors(exc.errors())

    api_error = ValidationAPIError(
        message="Request validation failed",
        details={"errors": error_details},
    )

    logger.warning(
        "Validation error",
        error_count=len(error_details),
        path=request.url.path,
    )

    return create_error_response(api_error, get_request_id(request))


async def pydantic_validation_error_handler(
    request: Request,
    exc: PydanticValidationError,
) -> JSONResponse:
    """Handle Pydantic validation errors (from response serialization)."""
    error_details = _format_validation_errors(exc.errors())

    api_error = InternalServerAPIError(
        message="Response serialization failed",
        details={"validation_errors": error_details},
    )

    logger.error(
        "Response serialization error",
        error_count=len(error_details),
        path=request.url.path,
    )

    return create_error_response(api_error, get_request_id(request))


async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Fallback handler for uncaught exceptions.

    Never leaks internal exception details to clients.
    """
    logger.exception(
        "Unhandled exception",
        exception_type=type(exc).__name__,
        path=request.url.path,
    )

    api_error = InternalServerAPIError(
        message="An unexpected error occurred",
    )

    return create_error_response(api_error, get_request_id(request))


# =============================================================================
# Registration Function
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    for exc_class in (BridgeAPIError, ServiceError, VMSApiError):
        app.add_exception_handler(exc_class, mapped_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")
