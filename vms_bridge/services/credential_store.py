"""Connector configuration storage.

The store holds one record per connector: a category string and the
connector configuration as a JSON object (camelCase keys, decrypted).
Updates replace the whole configuration in a single write.

Implementations:
- RedisCredentialStore: one Redis hash per connector
- InMemoryCredentialStore: process-local dict (development, tests)
"""

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field
from redis.asyncio import Redis
from redis.exceptions import RedisError

from vms_bridge.core.logging import get_logger
from vms_bridge.services.exceptions import CredentialStoreError

logger = get_logger(__name__)


class ConnectorRecord(BaseModel):
    """A stored connector record."""

    connector_id: str
    category: str
    config: dict[str, Any] = Field(default_factory=dict)


class CredentialStore(ABC):
    """Read-by-id and atomic replace of connector configuration."""

    @abstractmethod
    async def load_config(self, connector_id: str) -> ConnectorRecord | None:
        """Load a connector record.

        Returns:
            The record, or None if no connector has this id

        Raises:
            CredentialStoreError: Backend failure
        """

    @abstractmethod
    async def update_config(self, connector_id: str, config: dict[str, Any]) -> None:
        """Replace the configuration of an existing connector.

        Raises:
            CredentialStoreError: Unknown connector or backend failure
        """

    @abstractmethod
    async def save_record(self, record: ConnectorRecord) -> None:
        """Create or overwrite a connector record."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check backend reachability."""


class InMemoryCredentialStore(CredentialStore):
    """Process-local store.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, records: list[ConnectorRecord] | None = None) -> None:
        self._records: dict[str, ConnectorRecord] = {}
        self._lock = asyncio.Lock()
        for record in records or []:
            self._records[record.connector_id] = record.model_copy(deep=True)

    async def load_config(self, connector_id: str) -> ConnectorRecord | None:
        record = self._records.get(connector_id)
        return record.model_copy(deep=True) if record else None

    async def update_config(self, connector_id: str, config: dict[str, Any]) -> None:
        async with self._lock:
            record = self._records.get(connector_id)
            if record is None:
                raise CredentialStoreError(
                    f"Connector not found: {connector_id}",
                    connector_id=connector_id,
                )
            self._records[connector_id] = record.model_copy(
                update={"config": copy.deepcopy(config)}
            )

    async def save_record(self, record: ConnectorRecord) -> None:
        async with self._lock:
            self._records[record.connector_id] = record.model_copy(deep=True)

    async def ping(self) -> bool:
        return True


class RedisCredentialStore(CredentialStore):
    """Redis-backed store.

    Each connector is a hash at ``{key_prefix}{connector_id}`` with the
    fields ``category`` and ``config`` (JSON text).
    """

    CATEGORY_FIELD = "category"
    CONFIG_FIELD = "config"

    def __init__(self, redis: Redis, key_prefix: str = "vms:connector:") -> None:
        self._redis = redis
        self._key_prefix = key_prefix

    def _key(self, connector_id: str) -> str:
        return f"{self._key_prefix}{connector_id}"

    async def load_config(self, connector_id: str) -> ConnectorRecord | None:
        try:
            data = await self._redis.hgetall(self._key(connector_id))
        except RedisError as e:
            raise CredentialStoreError(
                "Failed to load connector record",
                connector_id=connector_id,
                cause=e,
            ) from e

        if not data:
            return None

        raw_config = data.get(self.CONFIG_FIELD)
        try:
            config = json.loads(raw_config) if raw_config else {}
        except ValueError:
            logger.warning(
                "Stored connector configuration is not valid JSON",
                connector_id=connector_id,
            )
            config = {}
        if not isinstance(config, dict):
            config = {}

        return ConnectorRecord(
            connector_id=connector_id,
            category=data.get(self.CATEGORY_FIELD, ""),
            config=config,
        )

    async def update_config(self, connector_id: str, config: dict[str, Any]) -> None:
        key = self._key(connector_id)
        try:
            if not await self._redis.exists(key):
                raise CredentialStoreError(
                    f"Connector not found: {connector_id}",
                    connector_id=connector_id,
                )
            # Single-field HSET replaces the configuration atomically
            await self._redis.hset(key, self.CONFIG_FIELD, json.dumps(config))
        except RedisError as e:
            raise CredentialStoreError(
                "Failed to update connector record",
                connector_id=connector_id,
                cause=e,
            ) from e

    async def save_record(self, record: ConnectorRecord) -> None:
        try:
            await self._redis.hset(
                self._key(record.connector_id),
                mapping={
                    self.CATEGORY_FIELD: record.category,
                    self.CONFIG_FIELD: json.dumps(record.config),
                },
            )
        except RedisError as e:
            raise CredentialStoreError(
                "Failed to save connector record",
                connector_id=record.connector_id,
                cause=e,
            ) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error("Credential store health check failed", error=str(e))
            return False
