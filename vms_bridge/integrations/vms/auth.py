"""Token lifecycle for VMS connectors.

The TokenManager hands out a currently-valid access token per connector:

1. Load and validate the stored configuration (fails fast)
2. Serve the cached token while it is outside the safety margin
3. Otherwise acquire a new one: cloud refresh grant when possible,
   then password grant (cloud) or session login (local)
4. Persist the new token before returning it

Concurrent acquisitions for the same connector share one in-flight
attempt.
"""

import asyncio
import math
import time
from typing import Any

from pydantic import ValidationError

from vms_bridge.core.logging import get_logger
from vms_bridge.services.credential_store import CredentialStore
from vms_bridge.services.exceptions import CredentialStoreError

from .exceptions import (
    ConnectorNotFoundError,
    InvalidConnectorConfigError,
    VMSApiError,
    VMSAuthError,
    VMSPersistenceError,
    VMSResponseShapeError,
    VMSStoreUnavailableError,
    VMSVendorError,
)
from .models import (
    CloudConnectorConfig,
    CloudTokenResponse,
    LocalConnectorConfig,
    LocalSessionResponse,
    ResponseShape,
    VMSToken,
    connector_config_adapter,
    dump_connector_config,
)
from .transport import TransportPool, build_base_url, interpret_response

logger = get_logger(__name__)

ConnectorConfigType = CloudConnectorConfig | LocalConnectorConfig

DEFAULT_REFRESH_MARGIN_SEC = 60

# Expiry fallbacks (milliseconds)
DEFAULT_CLOUD_TOKEN_TTL_MS = 24 * 60 * 60 * 1000
FALLBACK_TOKEN_TTL_MS = 60 * 60 * 1000

# Absolute expiries below this are taken to be in seconds
_EPOCH_MS_THRESHOLD = 100_000_000_000

CLOUD_TOKEN_PATH = "/cdb/oauth2/token"
LOCAL_SESSION_PATH = "/rest/v3/login/sessions"


# -----------------------------------------------------------------------------
# Expiry Computation
# -----------------------------------------------------------------------------


def now_ms() -> int:
    return int(time.time() * 1000)


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def calculate_expires_at(
    expires_at: Any = None,
    expires_in: Any = None,
    *,
    now: int | None = None,
) -> int:
    """Compute an absolute expiry (epoch ms) from vendor expiry fields.

    Applied in order:
    - absolute expiry, if numeric and in the future
    - now + relative lifetime (seconds), if numeric and positive
    - now + 24 hours
    The result is forced to now + 1 hour if it is still not in the future.

    Args:
        expires_at: Absolute expiry, epoch seconds or milliseconds
        expires_in: Relative lifetime in seconds
        now: Current time in epoch ms (defaults to the clock)

    Returns:
        Expiry in epoch milliseconds, strictly after ``now``
    """
    current = now if now is not None else now_ms()

    result: int | None = None
    absolute = _to_number(expires_at)
    if absolute is not None:
        if absolute < _EPOCH_MS_THRESHOLD:
            absolute *= 1000
        if absolute > current:
            result = int(absolute)

    if result is None:
        relative = _to_number(expires_in)
        if relative is not None and relative > 0:
            result = current + int(relative * 1000)

    if result is None:
        result = current + DEFAULT_CLOUD_TOKEN_TTL_MS

    if result <= current:
        result = current + FALLBACK_TOKEN_TTL_MS
    return result


def calculate_session_expires_at(expires_in_s: Any, *, now: int | None = None) -> int:
    """Expiry of a local session; defaults to one hour when invalid."""
    current = now if now is not None else now_ms()
    seconds = _to_number(expires_in_s)
    if seconds is None or seconds <= 0:
        logger.warning("Invalid session lifetime, defaulting to 1 hour")
        return current + FALLBACK_TOKEN_TTL_MS
    return current + int(seconds * 1000)


def is_token_expiring(
    expires_at: int,
    margin_sec: int = DEFAULT_REFRESH_MARGIN_SEC,
    *,
    now: int | None = None,
) -> bool:
    """Whether a token expires within the safety margin."""
    current = now if now is not None else now_ms()
    return expires_at - current <= margin_sec * 1000


def cloud_system_scope(system_id: str) -> str:
    return f"cloudSystemId={system_id}"


# -----------------------------------------------------------------------------
# Token Manager
# -----------------------------------------------------------------------------


class TokenManager:
    """Returns valid tokens for connectors, refreshing and persisting them.

    Usage:
        manager = TokenManager(store, transports, cloud_url=..., relay_domain=...)
        config, token = await manager.ensure_valid_token(connector_id)
    """

    def __init__(
        self,
        store: CredentialStore,
        transports: TransportPool,
        *,
        cloud_url: str,
        relay_domain: str,
        cloud_client_id: str = "3rdParty",
        connector_category: str = "piko",
        refresh_margin_sec: int = DEFAULT_REFRESH_MARGIN_SEC,
    ) -> None:
        self.store = store
        self.transports = transports
        self.cloud_url = cloud_url.rstrip("/")
        self.relay_domain = relay_domain
        self.cloud_client_id = cloud_client_id
        self.connector_category = connector_category
        self.refresh_margin_sec = refresh_margin_sec

        # In-flight acquisitions keyed by (connector_id, force_refresh)
        self._inflight: dict[
            tuple[str, bool], asyncio.Task[tuple[ConnectorConfigType, VMSToken]]
        ] = {}

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def parse_config(
        self,
        raw: dict[str, Any],
        connector_id: str | None = None,
    ) -> ConnectorConfigType:
        """Validate a raw configuration into its deployment variant.

        Raises:
            InvalidConnectorConfigError: Missing or invalid fields
        """
        try:
            return connector_config_adapter.validate_python(raw)
        except ValidationError as e:
            fields = sorted(
                {".".join(str(part) for part in err["loc"]) or "type" for err in e.errors()}
            )
            raise InvalidConnectorConfigError(
                connector_id,
                f"missing or invalid fields: {', '.join(fields)}",
            ) from e

    async def load_config(self, connector_id: str) -> ConnectorConfigType:
        """Load and validate a connector configuration.

        Raises:
            ConnectorNotFoundError: No record for the id
            InvalidConnectorConfigError: Not a VMS connector, or invalid
            VMSStoreUnavailableError: Store unreadable
        """
        try:
            record = await self.store.load_config(connector_id)
        except CredentialStoreError as e:
            raise VMSStoreUnavailableError(
                connector_id,
                f"Failed to load configuration for connector {connector_id}",
            ) from e

        if record is None:
            raise ConnectorNotFoundError(connector_id)
        if record.category != self.connector_category:
            raise InvalidConnectorConfigError(
                connector_id,
                f"not a {self.connector_category} connector",
            )
        if not record.config:
            raise InvalidConnectorConfigError(connector_id, "configuration missing")
        return self.parse_config(record.config, connector_id)

    def is_token_fresh(self, token: VMSToken | None) -> bool:
        return token is not None and not is_token_expiring(
            token.expires_at, self.refresh_margin_sec
        )

    # -------------------------------------------------------------------------
    # Public Entry Point
    # -------------------------------------------------------------------------

    async def ensure_valid_token(
        self,
        connector_id: str,
        force_refresh: bool = False,
    ) -> tuple[ConnectorConfigType, VMSToken]:
        """Return the connector configuration and a valid token.

        Args:
            connector_id: Connector identifier
            force_refresh: Skip the cache and the refresh grant

        Returns:
            (configuration carrying the token, token)

        Raises:
            VMSConfigError: Missing or invalid configuration
            VMSAuthError: Every acquisition strategy failed
            VMSStoreUnavailableError: Store unreadable
            VMSPersistenceError: Token obtained but not persisted
        """
        config = await self.load_config(connector_id)
        # Fails fast when the connector needs a transport that is absent
        self.transports.for_config(config)

        cached = config.token
        if not force_refresh and cached is not None and self.is_token_fresh(cached):
            return config, cached

        logger.info(
            "Acquiring VMS token",
            connector_id=connector_id,
            deployment_type=config.type,
            force_refresh=force_refresh,
            has_token=config.token is not None,
        )

        key = (connector_id, force_refresh)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._acquire_and_persist(connector_id, config, force_refresh)
            )
            self._inflight[key] = task
            task.add_done_callback(lambda t, key=key: self._forget(key, t))
        else:
            logger.debug("Joining in-flight token acquisition", connector_id=connector_id)

        return await asyncio.shield(task)

    def _forget(
        self,
        key: tuple[str, bool],
        task: "asyncio.Task[tuple[ConnectorConfigType, VMSToken]]",
    ) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _acquire_and_persist(
        self,
        connector_id: str,
        config: ConnectorConfigType,
        force_refresh: bool,
    ) -> tuple[ConnectorConfigType, VMSToken]:
        token = await self._acquire(connector_id, config, force_refresh)

        updated = config.model_copy(update={"token": token})
        try:
            await self.store.update_config(connector_id, dump_connector_config(updated))
        except CredentialStoreError as e:
            logger.error(
                "Failed to persist VMS token",
                connector_id=connector_id,
                error=str(e),
            )
            raise VMSPersistenceError(
                connector_id,
                f"Failed to persist new token for connector {connector_id}",
            ) from e

        logger.info(
            "VMS token updated",
            connector_id=connector_id,
            expires_at=token.expires_at,
        )
        return updated, token

    async def _acquire(
        self,
        connector_id: str,
        config: ConnectorConfigType,
        force_refresh: bool,
    ) -> VMSToken:
        """Run the acquisition strategies, stopping at the first success."""
        last_error: VMSApiError | None = None

        refresh_token = config.token.refresh_token if config.token else None
        if (
            isinstance(config, CloudConnectorConfig)
            and refresh_token
            and not force_refresh
        ):
            try:
                return await self.refresh_cloud_token(refresh_token)
            except VMSApiError as e:
                last_error = e
                logger.warning(
                    "Token refresh failed, falling back to password grant",
                    connector_id=connector_id,
                    error=str(e),
                )

        try:
            return await self.fetch_token(config)
        except VMSApiError as e:
            last_error = e
            logger.error(
                "All VMS token attempts failed",
                connector_id=connector_id,
                error=str(e),
            )

        raise VMSAuthError(connector_id, last_error) from last_error

    # -------------------------------------------------------------------------
    # Vendor Grants
    # -------------------------------------------------------------------------

    async def fetch_token(
        self,
        config: ConnectorConfigType,
        scope: str | None = None,
    ) -> VMSToken:
        """Password grant (cloud) or session login (local).

        Cloud tokens are scoped to the selected system unless ``scope``
        overrides it.
        """
        if isinstance(config, CloudConnectorConfig):
            return await self.fetch_cloud_token(
                config.username,
                config.password,
                scope or cloud_system_scope(config.selected_system_id),
            )
        return await self.fetch_local_token(config)

    async def fetch_cloud_token(
        self,
        username: str,
        password: str,
        scope: str | None = None,
    ) -> VMSToken:
        """Cloud password grant."""
        body: dict[str, str] = {
            "grant_type": "password",
            "response_type": "token",
            "client_id": self.cloud_client_id,
            "username": username,
            "password": password,
        }
        if scope:
            body["scope"] = scope
        return await self._cloud_grant(body)

    async def refresh_cloud_token(self, refresh_token: str) -> VMSToken:
        """Cloud refresh grant."""
        return await self._cloud_grant(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.cloud_client_id,
            }
        )

    async def _cloud_grant(self, body: dict[str, str]) -> VMSToken:
        response = await self.transports.standard.send(
            "POST",
            f"{self.cloud_url}{CLOUD_TOKEN_PATH}",
            headers={"Accept": "application/json"},
            json_body=body,
        )
        data = await interpret_response(response, ResponseShape.JSON)
        if not isinstance(data, dict) or not data.get("access_token"):
            raise VMSVendorError(
                "Cloud token response missing access_token",
                status_code=response.status_code,
                raw_payload=data,
            )
        try:
            parsed = CloudTokenResponse.model_validate(data)
        except ValidationError as e:
            raise VMSResponseShapeError(
                "Invalid cloud token response",
                status_code=response.status_code,
            ) from e

        logger.debug("Cloud grant succeeded", grant_type=body["grant_type"])
        return VMSToken(
            access_token=parsed.access_token,
            refresh_token=parsed.refresh_token,
            expires_at=calculate_expires_at(parsed.expires_at, parsed.expires_in),
            scope=parsed.scope or None,
        )

    async def fetch_local_token(self, config: LocalConnectorConfig) -> VMSToken:
        """Session login against a local system."""
        transport = self.transports.for_config(config)
        url = f"{build_base_url(config, self.relay_domain)}{LOCAL_SESSION_PATH}"
        response = await transport.send(
            "POST",
            url,
            headers={"Accept": "application/json"},
            json_body={"username": config.username, "password": config.password},
            follow_redirects=True,
        )
        data = await interpret_response(response, ResponseShape.JSON)
        if not isinstance(data, dict) or not data.get("token"):
            raise VMSVendorError(
                "Local session response missing token",
                status_code=response.status_code,
                raw_payload=data,
            )
        try:
            parsed = LocalSessionResponse.model_validate(data)
        except ValidationError as e:
            raise VMSResponseShapeError(
                "Invalid local session response",
                status_code=response.status_code,
            ) from e

        logger.debug("Local session login succeeded", host=config.host)
        return VMSToken(
            access_token=parsed.token,
            expires_at=calculate_session_expires_at(parsed.expires_in_s),
            session_id=parsed.id,
        )
