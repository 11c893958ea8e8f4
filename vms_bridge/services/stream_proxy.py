"""Relay of vendor media responses to API callers.

The vendor body is piped chunk by chunk; nothing is buffered beyond one
chunk. The upstream response is closed when the body is exhausted, when
the caller disconnects, or when relaying is refused.
"""

import json

import httpx
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from vms_bridge.core.logging import get_logger
from vms_bridge.services.exceptions import StreamRelayError

logger = get_logger(__name__)

CHUNK_SIZE = 8192

# Diagnostic text kept from an upstream error body
MAX_DIAGNOSTIC_CHARS = 300


async def read_diagnostic(response: httpx.Response) -> str:
    """Read a failed upstream response into a short diagnostic string.

    Prefers the vendor's errorString/message fields when the body is JSON.
    """
    default = f"VMS API returned status {response.status_code}"
    try:
        await response.aread()
        text = response.text
    except httpx.HTTPError as e:
        logger.debug("Could not read upstream error body", error=str(e))
        return default
    finally:
        await response.aclose()

    if not text:
        return default
    diagnostic = text[:MAX_DIAGNOSTIC_CHARS]
    try:
        payload = json.loads(text)
    except ValueError:
        return diagnostic
    if isinstance(payload, dict):
        for key in ("errorString", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return diagnostic


def _has_body(response: httpx.Response) -> bool:
    if response.status_code == 204:
        return False
    return response.headers.get("Content-Length") != "0"


async def relay(
    response: httpx.Response,
    default_content_type: str,
) -> StreamingResponse:
    """Build an outbound streaming response from a vendor response.

    Copies the status code, Content-Type (or ``default_content_type``) and
    Content-Length, and sets ``Cache-Control: no-cache``.

    Raises:
        StreamRelayError: Upstream is unsuccessful or has no body
    """
    if not response.is_success or not _has_body(response):
        diagnostic = await read_diagnostic(response)
        logger.error(
            "Upstream media response not relayable",
            upstream_status=response.status_code,
            diagnostic=diagnostic,
        )
        raise StreamRelayError(response.status_code or 502, diagnostic)

    headers = {"Cache-Control": "no-cache"}
    content_length = response.headers.get("Content-Length")
    # Decoded bytes are forwarded, so the length only holds for identity encoding
    if content_length and not response.headers.get("Content-Encoding"):
        headers["Content-Length"] = content_length

    async def body():
        try:
            async for chunk in response.aiter_bytes(chunk_size=CHUNK_SIZE):
                yield chunk
        finally:
            await response.aclose()

    logger.info(
        "Relaying upstream media",
        upstream_status=response.status_code,
        content_type=response.headers.get("Content-Type") or default_content_type,
        content_length=content_length,
    )
    return StreamingResponse(
        body(),
        status_code=response.status_code,
        media_type=response.headers.get("Content-Type") or default_content_type,
        headers=headers,
        background=BackgroundTask(response.aclose),
    )
