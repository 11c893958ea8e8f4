"""Service-layer exceptions.

These are service-level exceptions, not HTTP or vendor errors.
"""

from typing import Any


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# -----------------------------------------------------------------------------
# Credential Store Exceptions
# -----------------------------------------------------------------------------


class CredentialStoreError(ServiceError):
    """Connector record could not be read or written."""

    def __init__(
        self,
        message: str = "Credential store operation failed",
        *,
        connector_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if connector_id:
            details["connector_id"] = connector_id
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details=details)
        self.connector_id = connector_id
        self.cause = cause


class CredentialStoreUnavailableError(CredentialStoreError):
    """Store backend was not initialized."""

    def __init__(self, message: str = "Credential store not initialized") -> None:
        super().__init__(message)


# -----------------------------------------------------------------------------
# Stream Proxy Exceptions
# -----------------------------------------------------------------------------


class StreamRelayError(ServiceError):
    """Vendor media response cannot be relayed.

    Carries the upstream status and a short diagnostic text taken from the
    vendor body.
    """

    def __init__(
        self,
        upstream_status: int,
        diagnostic: str | None = None,
        *,
        message: str = "Failed to get media stream from VMS",
    ) -> None:
        super().__init__(
            message,
            details={
                "upstream_status": upstream_status,
                "diagnostic": diagnostic,
            },
        )
        self.upstream_status = upstream_status
        self.diagnostic = diagnostic
