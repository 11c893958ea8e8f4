"""VMS connector exceptions.

Every failure inside the connector is normalized into a VMSApiError
before it leaves the client, so callers never see raw transport
exceptions.
"""

from typing import Any

from .models import AUTH_FAILURE_CODES, VMSErrorCode


class VMSApiError(Exception):
    """Base exception for all VMS connector errors.

    Attributes:
        status_code: HTTP status, absent for transport-level failures
        error_id: Vendor symbolic error code
        error_string: Vendor human-readable message
        raw_payload: Opaque vendor payload kept for diagnostics only
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_id: str | None = None,
        error_string: str | None = None,
        raw_payload: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_id = error_id
        self.error_string = error_string
        self.raw_payload = raw_payload
        self.details = details or {}

    def __str__(self) -> str:
        parts = [self.message]
        if self.error_id:
            parts.append(f"[{self.error_id}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        return " ".join(parts)


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


class VMSConfigError(VMSApiError):
    """Connector configuration is missing or unusable.

    Not retryable.
    """

    def __init__(
        self,
        message: str = "Invalid connector configuration",
        status_code: int | None = 400,
        error_id: str | None = VMSErrorCode.INVALID_PARAMETER.value,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            status_code=status_code,
            error_id=error_id,
            details=details,
        )


class ConnectorNotFoundError(VMSConfigError):
    """No connector record exists for the id."""

    def __init__(self, connector_id: str) -> None:
        super().__init__(
            f"Connector not found: {connector_id}",
            status_code=404,
            error_id=VMSErrorCode.NOT_FOUND.value,
            details={"connector_id": connector_id},
        )
        self.connector_id = connector_id


class InvalidConnectorConfigError(VMSConfigError):
    """Record is not a VMS connector or lacks required fields."""

    def __init__(self, connector_id: str | None, reason: str) -> None:
        target = f" for connector {connector_id}" if connector_id else ""
        super().__init__(
            f"Invalid configuration{target}: {reason}",
            details={"connector_id": connector_id, "reason": reason},
        )
        self.connector_id = connector_id
        self.reason = reason


# -----------------------------------------------------------------------------
# Authentication
# -----------------------------------------------------------------------------


class VMSAuthError(VMSApiError):
    """Every token acquisition strategy failed for a connector.

    Not retryable without new credentials. Wraps the last strategy error.
    """

    def __init__(
        self,
        connector_id: str | None,
        cause: VMSApiError | None = None,
    ) -> None:
        reason = cause.message if cause else "no token acquired"
        target = f" for connector {connector_id}" if connector_id else ""
        super().__init__(
            f"Authentication failed{target}: {reason}",
            status_code=cause.status_code if cause else 401,
            error_id=cause.error_id if cause else VMSErrorCode.UNAUTHORIZED.value,
            error_string=cause.error_string if cause else None,
            raw_payload=cause.raw_payload if cause else None,
            details={"connector_id": connector_id},
        )
        self.connector_id = connector_id
        self.cause = cause


# -----------------------------------------------------------------------------
# Transport
# -----------------------------------------------------------------------------


class VMSTransportError(VMSApiError):
    """Network or connection failure. Caller may retry later."""

    def __init__(
        self,
        message: str = "Failed to reach VMS",
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, details=details)


class VMSTimeoutError(VMSTransportError):
    """Vendor request timed out."""

    def __init__(self, message: str = "VMS request timed out") -> None:
        super().__init__(message)


class VMSRedirectLimitError(VMSTransportError):
    """Redirect chain exceeded the configured maximum. Terminal."""

    def __init__(self, max_redirects: int, last_url: str | None = None) -> None:
        super().__init__(
            f"Exceeded maximum redirect limit ({max_redirects})",
            status_code=508,
            details={"max_redirects": max_redirects, "last_url": last_url},
        )
        self.max_redirects = max_redirects


# -----------------------------------------------------------------------------
# Vendor / Response
# -----------------------------------------------------------------------------


class VMSVendorError(VMSApiError):
    """Vendor signalled an error (non-2xx or embedded error code)."""

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code == 401 or self.error_id in AUTH_FAILURE_CODES


class VMSResponseShapeError(VMSApiError):
    """Successful response whose body does not match the requested shape."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        raw_payload: Any = None,
    ) -> None:
        super().__init__(message, status_code=status_code, raw_payload=raw_payload)


class VMSPersistenceError(VMSApiError):
    """A token was obtained but could not be written to the store."""

    def __init__(self, connector_id: str, message: str) -> None:
        super().__init__(
            message,
            error_id=VMSErrorCode.CANT_PROCESS_REQUEST.value,
            details={"connector_id": connector_id},
        )
        self.connector_id = connector_id


class VMSStoreUnavailableError(VMSApiError):
    """Connector record could not be read from the store."""

    def __init__(self, connector_id: str, message: str) -> None:
        super().__init__(
            message,
            error_id=VMSErrorCode.SERVICE_UNAVAILABLE.value,
            details={"connector_id": connector_id},
        )
        self.connector_id = connector_id


class CameraNotFoundError(VMSApiError):
    """Camera device is unknown to the system."""

    def __init__(self, camera_id: str) -> None:
        super().__init__(
            f"Camera device not found: {camera_id}",
            status_code=404,
            error_id=VMSErrorCode.NOT_FOUND.value,
            details={"camera_id": camera_id},
        )
        self.camera_id = camera_id
