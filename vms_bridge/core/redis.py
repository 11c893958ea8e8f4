"""Redis connection for the credential store.

One pooled client per process, opened at startup and closed at shutdown.
An unreachable server does not block startup; the health endpoint
reports the store instead.
"""

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from vms_bridge.core.config import Settings
from vms_bridge.core.logging import get_logger

logger = get_logger(__name__)

_pool: ConnectionPool | None = None
_client: Redis | None = None


def redact_redis_url(settings: Settings) -> str:
    url = str(settings.redis_url)
    password = settings.redis_url.password
    return url.replace(password, "***") if password else url


async def init_redis(settings: Settings) -> Redis:
    """Open the pooled client and ping it once."""
    global _pool, _client

    _pool = ConnectionPool.from_url(
        str(settings.redis_url),
        max_connections=settings.redis_max_connections,
        decode_responses=True,
    )
    _client = Redis(connection_pool=_pool)

    try:
        await _client.ping()
    except RedisError as e:
        logger.warning(
            "Credential store Redis not reachable at startup",
            url=redact_redis_url(settings),
            error=str(e),
        )
    else:
        logger.info(
            "Credential store Redis connected",
            url=redact_redis_url(settings),
            max_connections=settings.redis_max_connections,
        )
    return _client


async def close_redis() -> None:
    """Close the client and disconnect the pool."""
    global _pool, _client

    client, pool = _client, _pool
    _client, _pool = None, None

    if client is not None:
        try:
            await client.aclose()
        except RedisError as e:
            logger.error("Error closing Redis client", error=str(e))
    if pool is not None:
        try:
            await pool.disconnect()
        except RedisError as e:
            logger.error("Error disconnecting Redis pool", error=str(e))
        logger.info("Credential store Redis closed")
