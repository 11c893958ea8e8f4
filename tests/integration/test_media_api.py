"""Integration tests for the media endpoints.

Tests:
- Local recorded playback end to end (login, ticket, relay)
- Cloud media info and playlist relay
- Playlist URL resolution
- Refused and failed upstream media
- Upstream release on client disconnect
"""

import asyncio
import contextlib
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from starlette.requests import ClientDisconnect

from tests.fakes import (
    CLOUD_HOST,
    LOCAL_HOST,
    cloud_config,
    cloud_token_body,
    device_body,
    json_response,
    local_config,
    make_token,
)

POSITION_MS = 1_700_000_000_000
MEDIA_URL = "/api/v1/vms/media"


class TestLocalPlayback:
    """Tests for recorded playback from a local system."""

    @pytest.mark.asyncio
    async def test_webm_stream_end_to_end(self, client, vendor, store, add_connector):
        """A tokenless local connector logs in, gets a ticket and streams webm."""
        await add_connector("c1", local_config())
        vendor.local_session(
            json_response(200, {"token": "sess-token", "expiresInS": "3600", "id": "s1"})
        )
        vendor.route(
            "GET", LOCAL_HOST, "/rest/v3/devices/cam-1", json_response(200, device_body())
        )
        vendor.route(
            "POST", LOCAL_HOST, "/rest/v3/login/tickets", json_response(200, {"token": "tkt"})
        )
        vendor.route(
            "GET",
            LOCAL_HOST,
            "/rest/v3/devices/cam-1/media.webm",
            httpx.Response(200, content=b"\x1aE\xdf\xa3webm", headers={"Content-Type": "video/webm"}),
        )

        response = await client.get(
            MEDIA_URL,
            params={
                "connectorId": "c1",
                "cameraId": "cam-1",
                "positionMs": POSITION_MS,
                "action": "getStream",
            },
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/webm"
        assert response.headers["cache-control"] == "no-cache"
        assert response.content == b"\x1aE\xdf\xa3webm"

        # One login; later calls reuse the persisted session token
        assert len(vendor.calls("POST", "/rest/v3/login/sessions")) == 1
        media_request = vendor.requests[-1]
        assert media_request.url.params["_ticket"] == "tkt"
        assert media_request.url.params["positionMs"] == str(POSITION_MS)
        assert media_request.headers["Authorization"] == "Bearer sess-token"

        record = await store.load_config("c1")
        assert record.config["token"]["accessToken"] == "sess-token"
        assert record.config["token"]["sessionId"] == "s1"

    @pytest.mark.asyncio
    async def test_media_info_for_local(self, client, vendor, add_connector):
        """getInfo reports webm and a stream URL without issuing a ticket."""
        await add_connector("c1", local_config(make_token()))
        vendor.route(
            "GET", LOCAL_HOST, "/rest/v3/devices/cam-1", json_response(200, device_body())
        )

        response = await client.get(
            MEDIA_URL,
            params={"connectorId": "c1", "cameraId": "cam-1", "positionMs": POSITION_MS},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["mediaType"] == "webm"
        stream_url = urlsplit(data["streamUrl"])
        assert stream_url.path == MEDIA_URL
        assert parse_qs(stream_url.query) == {
            "connectorId": ["c1"],
            "cameraId": ["cam-1"],
            "positionMs": [str(POSITION_MS)],
            "action": ["getStream"],
        }
        assert vendor.calls("POST", "/rest/v3/login/tickets") == []


class TestCloudPlayback:
    """Tests for cloud media."""

    @pytest.mark.asyncio
    async def test_live_media_info_is_hls(self, client, vendor, add_connector):
        """Cloud live video uses the playlist transport."""
        await add_connector("c1", cloud_config(make_token()))
        vendor.route(
            "GET", CLOUD_HOST, "/rest/v3/devices/cam-1", json_response(200, device_body())
        )

        response = await client.get(
            MEDIA_URL,
            params={"connectorId": "c1", "cameraId": "cam-1", "action": "getInfo"},
        )

        assert response.status_code == 200
        assert response.json()["mediaType"] == "hls"

    @pytest.mark.asyncio
    async def test_playlist_is_relayed_through_redirect(self, client, vendor, add_connector):
        """Relay redirects are followed and the playlist relayed."""
        await add_connector("c1", cloud_config(make_token()))
        vendor.route(
            "GET", CLOUD_HOST, "/rest/v3/devices/cam-1", json_response(200, device_body())
        )
        vendor.route(
            "GET",
            CLOUD_HOST,
            "/hls/cam-1.m3u8",
            httpx.Response(307, headers={"Location": "https://edge.relay.test/hls/cam-1.m3u8"}),
        )
        vendor.route(
            "GET",
            "edge.relay.test",
            "/hls/cam-1.m3u8",
            httpx.Response(200, content=b"#EXTM3U\n#EXT-X-VERSION:3\n"),
        )

        response = await client.get(
            MEDIA_URL,
            params={"connectorId": "c1", "cameraId": "cam-1", "action": "getStream"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/vnd.apple.mpegurl"
        assert response.text.startswith("#EXTM3U")

    @pytest.mark.asyncio
    async def test_hls_url(self, client, vendor, add_connector):
        """The final playlist URL is returned after redirects."""
        await add_connector("c1", cloud_config(make_token()))
        vendor.cloud_token(json_response(200, cloud_token_body("scoped")))
        vendor.route(
            "GET",
            CLOUD_HOST,
            "/hls/cam-1.m3u8",
            httpx.Response(302, headers={"Location": "https://edge.relay.test/hls/cam-1.m3u8?s=1"}),
        )
        vendor.route(
            "GET", "edge.relay.test", "/hls/cam-1.m3u8", httpx.Response(200, content=b"#EXTM3U\n")
        )

        response = await client.get(
            "/api/v1/vms/hls-url", params={"connectorId": "c1", "cameraId": "cam-1"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "hlsUrl": "https://edge.relay.test/hls/cam-1.m3u8?s=1",
        }


class TestMediaFailures:
    """Tests for media error responses."""

    @pytest.mark.asyncio
    async def test_empty_media_is_bad_gateway(self, client, vendor, add_connector):
        """A 204 from the vendor cannot be relayed."""
        await add_connector("c1", local_config(make_token()))
        vendor.route(
            "GET",
            LOCAL_HOST,
            "/rest/v3/devices/cam-1",
            json_response(200, device_body(server_id=None)),
        )
        vendor.route("GET", LOCAL_HOST, "/rest/v3/devices/cam-1/media.webm", httpx.Response(204))

        response = await client.get(
            MEDIA_URL,
            params={"connectorId": "c1", "cameraId": "cam-1", "action": "getStream"},
        )

        assert response.status_code == 502
        assert response.json()["error"] == "BAD_GATEWAY"

    @pytest.mark.asyncio
    async def test_unknown_camera(self, client, vendor, add_connector):
        """Unknown cameras are 404."""
        await add_connector("c1", cloud_config(make_token()))

        response = await client.get(
            MEDIA_URL, params={"connectorId": "c1", "cameraId": "ghost"}
        )

        assert response.status_code == 404
        assert response.json()["details"]["vms_error"] == "CameraNotFoundError"

    @pytest.mark.asyncio
    async def test_invalid_action(self, client):
        """Unknown actions fail request validation."""
        response = await client.get(
            MEDIA_URL,
            params={"connectorId": "c1", "cameraId": "cam-1", "action": "download"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_negative_position(self, client):
        """Positions must not be negative."""
        response = await client.get(
            MEDIA_URL,
            params={"connectorId": "c1", "cameraId": "cam-1", "positionMs": -1},
        )

        assert response.status_code == 400


class EndlessStream(httpx.AsyncByteStream):
    """Upstream body that never ends; records whether it was closed."""

    def __init__(self) -> None:
        self.chunks = 0
        self.closed = False

    async def __aiter__(self):
        while True:
            self.chunks += 1
            yield b"\x00" * 1024
            await asyncio.sleep(0)

    async def aclose(self) -> None:
        self.closed = True


class TestClientDisconnect:
    """Tests for releasing the upstream body when the client goes away."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("spec_version", ["2.3", "2.4"])
    async def test_upstream_closed_on_disconnect(self, app, vendor, add_connector, spec_version):
        """An endless relay stops and closes the vendor stream after a disconnect.

        ASGI 2.3 servers report the disconnect through receive; 2.4 servers
        make send raise OSError.
        """
        await add_connector("c1", local_config(make_token()))
        vendor.route(
            "GET",
            LOCAL_HOST,
            "/rest/v3/devices/cam-1",
            json_response(200, device_body(server_id=None)),
        )
        upstream = EndlessStream()
        vendor.route(
            "GET",
            LOCAL_HOST,
            "/rest/v3/devices/cam-1/media.webm",
            lambda request: httpx.Response(
                200, headers={"Content-Type": "video/webm"}, stream=upstream
            ),
        )

        disconnected = asyncio.Event()
        request_sent = False
        messages: list[dict] = []

        async def receive() -> dict:
            nonlocal request_sent
            if not request_sent:
                request_sent = True
                return {"type": "http.request", "body": b"", "more_body": False}
            await disconnected.wait()
            return {"type": "http.disconnect"}

        async def send(message: dict) -> None:
            if message["type"] == "http.response.body" and message.get("body"):
                if disconnected.is_set() and spec_version == "2.4":
                    raise OSError("connection reset")
                messages.append(message)
                if len(messages) >= 3:
                    disconnected.set()
            else:
                messages.append(message)

        scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": spec_version},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": MEDIA_URL,
            "raw_path": MEDIA_URL.encode(),
            "root_path": "",
            "query_string": b"connectorId=c1&cameraId=cam-1&action=getStream",
            "headers": [(b"host", b"test")],
            "client": ("127.0.0.1", 50000),
            "server": ("test", 80),
        }

        with contextlib.suppress(OSError, ClientDisconnect, ExceptionGroup):
            await asyncio.wait_for(app(scope, receive, send), timeout=5)

        # Background cleanup may finish a few loop turns after the app returns
        for _ in range(100):
            if upstream.closed:
                break
            await asyncio.sleep(0.01)

        assert messages[0]["type"] == "http.response.start"
        assert messages[0]["status"] == 200
        assert upstream.chunks >= 3
        assert upstream.closed
