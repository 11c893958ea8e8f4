"""Vendor API fakes and test data factories shared by the test suites.

Provides:
- FakeVendor: an httpx.MockTransport handler simulating the VMS HTTP API
- Factories for stored tokens, connector configurations and vendor bodies
"""

import json
import time
from collections import defaultdict
from collections.abc import Callable
from typing import Any

import httpx


CLOUD_URL = "https://cloud.test"
RELAY_DOMAIN = "relay.test"
SYSTEM_ID = "sys-1"
CLOUD_HOST = f"{SYSTEM_ID}.{RELAY_DOMAIN}"
CLOUD_TOKEN_HOST = "cloud.test"
LOCAL_HOST = "nvr.local"
LOCAL_PORT = 7001

HOUR_MS = 60 * 60 * 1000


Handler = Callable[[httpx.Request], httpx.Response]


def now_ms() -> int:
    return int(time.time() * 1000)


def json_response(status_code: int = 200, body: Any = None, **kwargs: Any) -> httpx.Response:
    """Vendor JSON response."""
    return httpx.Response(status_code, json=body, **kwargs)


def vendor_error(status_code: int, error_id: str, error_string: str = "error") -> httpx.Response:
    """Vendor REST error response."""
    return httpx.Response(
        status_code,
        json={"error": str(status_code), "errorId": error_id, "errorString": error_string},
    )


def request_json(request: httpx.Request) -> Any:
    """Decode the JSON body of a recorded request."""
    return json.loads(request.content) if request.content else None


# -----------------------------------------------------------------------------
# Fake Vendor
# -----------------------------------------------------------------------------


class FakeVendor:
    """Simulates the vendor HTTP API for httpx.MockTransport.

    Routes are keyed by (method, host, path). A route answers with a
    fixed response, a sequence of responses (the last one repeats), or a
    handler callable. Every request is recorded.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str, str], list[httpx.Response] | Handler] = {}
        self.requests: list[httpx.Request] = []
        self._served: dict[tuple[str, str, str], int] = defaultdict(int)

    def route(
        self,
        method: str,
        host: str,
        path: str,
        *responses: httpx.Response | Handler,
    ) -> None:
        key = (method.upper(), host, path)
        if len(responses) == 1 and callable(responses[0]) and not isinstance(
            responses[0], httpx.Response
        ):
            self._routes[key] = responses[0]
        else:
            self._routes[key] = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.host, request.url.path)
        target = self._routes.get(key)
        if target is None:
            return vendor_error(404, "notFound", f"No route for {request.method} {request.url.path}")
        if callable(target):
            return target(request)

        index = min(self._served[key], len(target) - 1)
        self._served[key] += 1
        template = target[index]
        # Responses are single-use; serve an unread copy
        return streamed(template.status_code, content=template.content, headers=template.headers)

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method.upper())
            and (path is None or r.url.path == path)
        ]

    def mock_transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    # Common vendor behaviour

    def cloud_token(
        self,
        *responses: httpx.Response | Handler,
    ) -> None:
        self.route("POST", CLOUD_TOKEN_HOST, "/cdb/oauth2/token", *responses)

    def local_session(self, *responses: httpx.Response | Handler) -> None:
        self.route("POST", LOCAL_HOST, "/rest/v3/login/sessions", *responses)


# -----------------------------------------------------------------------------
# Factories
# -----------------------------------------------------------------------------


def make_token(
    access_token: str = "cached-token",
    *,
    expires_in_ms: int = HOUR_MS,
    refresh_token: str | None = None,
    session_id: str | None = None,
) -> dict[str, Any]:
    """Stored (camelCase) token."""
    token: dict[str, Any] = {
        "accessToken": access_token,
        "expiresAt": now_ms() + expires_in_ms,
    }
    if refresh_token:
        token["refreshToken"] = refresh_token
    if session_id:
        token["sessionId"] = session_id
    return token


def cloud_config(token: dict[str, Any] | None = None, **overrides: Any) -> dict[str, Any]:
    """Stored cloud connector configuration."""
    config: dict[str, Any] = {
        "type": "cloud",
        "username": "operator@example.com",
        "password": "secret",
        "selectedSystem": SYSTEM_ID,
    }
    if token is not None:
        config["token"] = token
    config.update(overrides)
    return config


def local_config(token: dict[str, Any] | None = None, **overrides: Any) -> dict[str, Any]:
    """Stored local connector configuration."""
    config: dict[str, Any] = {
        "type": "local",
        "username": "admin",
        "password": "secret",
        "host": LOCAL_HOST,
        "port": LOCAL_PORT,
        "ignoreTlsErrors": False,
    }
    if token is not None:
        config["token"] = token
    config.update(overrides)
    return config


def cloud_token_body(
    access_token: str = "new-token",
    *,
    refresh_token: str | None = "new-refresh",
    expires_in: Any = "3600",
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": expires_in,
    }
    if refresh_token:
        body["refresh_token"] = refresh_token
    return body


def device_body(
    device_id: str = "cam-1",
    *,
    server_id: str | None = "srv-1",
    transports: Any = "rtsp|webm",
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": device_id,
        "name": "Lobby",
        "deviceType": "Camera",
        "status": "Online",
        "mediaStreams": [{"encoderIndex": 0, "transports": transports}],
    }
    if server_id:
        body["serverId"] = server_id
    return body


def streamed(
    status_code: int,
    *,
    content: bytes = b"",
    headers: Any = None,
) -> httpx.Response:
    """A response whose body has not been read yet."""
    response_headers = httpx.Headers(headers)
    if content and "Content-Length" not in response_headers:
        response_headers["Content-Length"] = str(len(content))
    return httpx.Response(
        status_code,
        headers=response_headers,
        stream=httpx.ByteStream(content),
    )


async def open_response(
    status_code: int = 200,
    *,
    content: bytes = b"",
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """An unconsumed streamed response, as the transports return them."""
    transport = httpx.MockTransport(
        lambda request: streamed(status_code, content=content, headers=headers)
    )
    client = httpx.AsyncClient(transport=transport)
    request = client.build_request("GET", "https://vendor.test/media")
    return await client.send(request, stream=True)
