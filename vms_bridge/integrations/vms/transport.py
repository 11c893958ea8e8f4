"""HTTP transports for vendor calls.

Two implementations share one request path and one response
interpretation routine:

- StandardTransport: always validates TLS certificates
- InsecureTransport: certificate validation disabled, for self-signed
  local appliances

The insecure transport is created once at startup (or not at all) and
injected into the client; nothing probes for it at call time.
"""

import json
import ssl
from typing import Any

import httpx

from vms_bridge.core.logging import get_logger

from .exceptions import (
    VMSConfigError,
    VMSResponseShapeError,
    VMSTimeoutError,
    VMSTransportError,
    VMSVendorError,
)
from .models import (
    BinaryPayload,
    CloudConnectorConfig,
    LocalConnectorConfig,
    ResponseShape,
)

logger = get_logger(__name__)

# Default timeout (in seconds)
DEFAULT_TIMEOUT = 30.0

# Diagnostic text kept from unparseable bodies
MAX_DIAGNOSTIC_CHARS = 300


def create_insecure_ssl_context() -> ssl.SSLContext:
    """Create an SSL context that accepts any server certificate."""
    ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    ctx.options |= ssl.OP_NO_SSLv2
    ctx.options |= ssl.OP_NO_SSLv3
    return ctx


class Transport:
    """Executes single HTTP exchanges against the vendor.

    Responses are returned un-consumed (streamed) so that media bodies
    can be piped onward; callers own closing them.
    """

    name = "standard"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        verify: ssl.SSLContext | bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize transport.

        Args:
            timeout: Timeout applied to connect, read and write
            verify: TLS verification setting handed to httpx
            transport: Optional low-level httpx transport (tests)
        """
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            verify=verify,
            transport=transport,
        )

    async def send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        follow_redirects: bool = False,
    ) -> httpx.Response:
        """Send one request and return the streamed response.

        Raises:
            VMSTimeoutError: On any httpx timeout
            VMSTransportError: On connection or protocol failures
        """
        request = self._client.build_request(
            method,
            url,
            params=params,
            headers=headers,
            json=json_body,
        )
        try:
            return await self._client.send(
                request,
                stream=True,
                follow_redirects=follow_redirects,
            )
        except httpx.TimeoutException as e:
            raise VMSTimeoutError(
                f"VMS request timed out: {method} {request.url.host}"
            ) from e
        except httpx.TooManyRedirects as e:
            raise VMSTransportError(
                f"Too many redirects: {method} {request.url.host}",
                status_code=508,
            ) from e
        except httpx.HTTPError as e:
            raise VMSTransportError(
                f"Network error contacting VMS: {e}",
                details={"transport": self.name},
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()


class StandardTransport(Transport):
    """Transport that always validates certificates."""

    name = "standard"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, verify=True, transport=transport)


class InsecureTransport(Transport):
    """Transport with certificate validation disabled."""

    name = "insecure"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            timeout=timeout,
            verify=create_insecure_ssl_context(),
            transport=transport,
        )
        logger.warning("Created transport with TLS certificate validation DISABLED")


# -----------------------------------------------------------------------------
# Response Interpretation
# -----------------------------------------------------------------------------


def _first_str(payload: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def parse_error_body(text: str) -> tuple[str | None, str | None, Any]:
    """Extract (error_id, error_string, raw_payload) from an error body.

    Understands both the REST error shape (errorId/errorString) and the
    OAuth shape (error/error_description).
    """
    if not text:
        return None, None, None
    try:
        payload = json.loads(text)
    except ValueError:
        return None, None, text[:MAX_DIAGNOSTIC_CHARS]
    if not isinstance(payload, dict):
        return None, None, payload
    error_id = _first_str(payload, "errorId", "error")
    error_string = _first_str(
        payload, "errorString", "error_description", "message"
    )
    return error_id, error_string, payload


async def read_vendor_error(response: httpx.Response) -> VMSVendorError:
    """Consume an unsuccessful response into a VMSVendorError."""
    try:
        await response.aread()
        text = response.text
    except httpx.HTTPError as e:
        logger.debug("Could not read error body", error=str(e))
        text = ""
    finally:
        await response.aclose()

    error_id, error_string, raw_payload = parse_error_body(text)
    return VMSVendorError(
        error_string or f"Failed request ({response.status_code})",
        status_code=response.status_code,
        error_id=error_id,
        error_string=error_string,
        raw_payload=raw_payload,
    )


async def interpret_response(
    response: httpx.Response,
    shape: ResponseShape,
) -> Any:
    """Turn a vendor response into the requested shape.

    Args:
        response: Streamed, unconsumed response
        shape: Requested shape

    Returns:
        JSON: parsed body, or None for 204
        BINARY: BinaryPayload
        STREAM: the response itself, still unconsumed

    Raises:
        VMSVendorError: On non-2xx responses
        VMSResponseShapeError: When the body cannot be interpreted
    """
    if not response.is_success:
        raise await read_vendor_error(response)

    if shape is ResponseShape.STREAM:
        return response

    try:
        await response.aread()
    except httpx.TimeoutException as e:
        raise VMSTimeoutError("Timed out reading VMS response body") from e
    except httpx.HTTPError as e:
        raise VMSTransportError(f"Failed to read VMS response body: {e}") from e
    finally:
        await response.aclose()

    if shape is ResponseShape.BINARY:
        return BinaryPayload(
            content=response.content,
            content_type=response.headers.get("Content-Type"),
        )

    if response.status_code == 204:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise VMSResponseShapeError(
            f"Failed to parse JSON response: {e}",
            status_code=response.status_code,
            raw_payload=response.text[:MAX_DIAGNOSTIC_CHARS],
        ) from e


# -----------------------------------------------------------------------------
# Routing
# -----------------------------------------------------------------------------


def build_base_url(
    config: CloudConnectorConfig | LocalConnectorConfig,
    relay_domain: str,
) -> str:
    """Base URL of the vendor API for a connector."""
    if isinstance(config, CloudConnectorConfig):
        return f"https://{config.selected_system_id}.{relay_domain}"
    return f"https://{config.host}:{config.port}"


class TransportPool:
    """The transports available to the connector.

    Args:
        standard: Certificate-validating transport
        insecure: Validation-bypass transport, None when not provisioned
    """

    def __init__(
        self,
        standard: Transport,
        insecure: InsecureTransport | None = None,
    ) -> None:
        self.standard = standard
        self.insecure = insecure

    def for_config(
        self,
        config: CloudConnectorConfig | LocalConnectorConfig,
    ) -> Transport:
        """Pick the transport for a connector.

        Raises:
            VMSConfigError: TLS errors must be ignored but no insecure
                transport was provisioned
        """
        if isinstance(config, LocalConnectorConfig) and config.ignore_tls_errors:
            if self.insecure is None:
                raise VMSConfigError(
                    "ignoreTlsErrors is set but no insecure transport is available",
                    details={"host": config.host, "port": config.port},
                )
            return self.insecure
        return self.standard

    async def aclose(self) -> None:
        await self.standard.aclose()
        if self.insecure is not None:
            await self.insecure.aclose()
