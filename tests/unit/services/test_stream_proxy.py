"""Unit tests for the stream proxy.

Tests:
- Status, header and body relay
- Content type defaulting
- Refusal of unsuccessful or empty upstream responses
- Diagnostic extraction from error bodies
"""

import json

import pytest

from tests.fakes import open_response
from vms_bridge.services import StreamRelayError, relay
from vms_bridge.services.stream_proxy import CHUNK_SIZE, read_diagnostic


async def collect(response) -> list[bytes]:
    return [chunk async for chunk in response.body_iterator]


class TestRelay:
    """Tests for relaying successful responses."""

    @pytest.mark.asyncio
    async def test_headers_are_copied(self):
        """Status, Content-Type and Content-Length pass through; caching is off."""
        upstream = await open_response(
            200, content=b"webm-bytes", headers={"Content-Type": "video/webm"}
        )

        response = await relay(upstream, "application/octet-stream")

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/webm"
        assert response.headers["content-length"] == "10"
        assert response.headers["cache-control"] == "no-cache"
        assert b"".join(await collect(response)) == b"webm-bytes"

    @pytest.mark.asyncio
    async def test_default_content_type(self):
        """Missing upstream Content-Type falls back to the transport default."""
        upstream = await open_response(200, content=b"#EXTM3U\n")

        response = await relay(upstream, "application/vnd.apple.mpegurl")

        assert response.headers["content-type"] == "application/vnd.apple.mpegurl"

    @pytest.mark.asyncio
    async def test_partial_content_status_is_kept(self):
        """Non-200 success statuses are relayed unchanged."""
        upstream = await open_response(
            206, content=b"part", headers={"Content-Type": "video/webm"}
        )

        response = await relay(upstream, "video/webm")

        assert response.status_code == 206

    @pytest.mark.asyncio
    async def test_body_is_chunked_and_upstream_closed(self):
        """The body is piped in bounded chunks and the upstream is closed after."""
        body = b"x" * (CHUNK_SIZE * 2 + 100)
        upstream = await open_response(200, content=body, headers={"Content-Type": "video/webm"})

        response = await relay(upstream, "video/webm")
        chunks = await collect(response)

        assert b"".join(chunks) == body
        assert max(len(chunk) for chunk in chunks) <= CHUNK_SIZE
        assert upstream.is_closed

    @pytest.mark.asyncio
    async def test_encoded_body_drops_content_length(self):
        """Content-Length is not forwarded for encoded upstream bodies."""
        upstream = await open_response(
            200,
            content=b"compressed",
            headers={"Content-Type": "video/webm", "Content-Encoding": "gzip"},
        )

        response = await relay(upstream, "video/webm")

        assert "content-length" not in response.headers
        await upstream.aclose()


class TestRelayRefusal:
    """Tests for upstream responses that cannot be relayed."""

    @pytest.mark.asyncio
    async def test_error_status_uses_vendor_message(self):
        """errorString from a JSON error body becomes the diagnostic."""
        upstream = await open_response(
            404,
            content=json.dumps({"errorId": "notFound", "errorString": "No archive"}).encode(),
            headers={"Content-Type": "application/json"},
        )

        with pytest.raises(StreamRelayError) as exc_info:
            await relay(upstream, "video/webm")

        assert exc_info.value.upstream_status == 404
        assert exc_info.value.diagnostic == "No archive"
        assert upstream.is_closed

    @pytest.mark.asyncio
    async def test_no_content_is_refused(self):
        """204 has no media to relay."""
        upstream = await open_response(204)

        with pytest.raises(StreamRelayError) as exc_info:
            await relay(upstream, "video/webm")

        assert exc_info.value.upstream_status == 204
        assert exc_info.value.diagnostic == "VMS API returned status 204"

    @pytest.mark.asyncio
    async def test_zero_content_length_is_refused(self):
        """A declared empty body is refused."""
        upstream = await open_response(200, headers={"Content-Length": "0"})

        with pytest.raises(StreamRelayError):
            await relay(upstream, "video/webm")


class TestReadDiagnostic:
    """Tests for read_diagnostic."""

    @pytest.mark.asyncio
    async def test_plain_text_is_truncated(self):
        """Non-JSON bodies are cut to 300 characters."""
        upstream = await open_response(502, content=b"e" * 1000)

        assert await read_diagnostic(upstream) == "e" * 300

    @pytest.mark.asyncio
    async def test_message_field(self):
        """A message field is used when errorString is absent."""
        upstream = await open_response(500, content=b'{"message": "Archive unavailable"}')

        assert await read_diagnostic(upstream) == "Archive unavailable"

    @pytest.mark.asyncio
    async def test_empty_body_gives_status_text(self):
        """Empty bodies produce a status-based diagnostic."""
        upstream = await open_response(503)

        assert await read_diagnostic(upstream) == "VMS API returned status 503"
