"""Process-wide Redis connection handle for the dedup ledger.

The client is created on first use. On reuse it is health-checked with PING
unless it last succeeded within ``health_check_interval`` seconds. A client
that fails the check, or that raised inside a ``connection()`` block, is
discarded so the next acquire reconnects.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from capi_dispatch.constants import REDIS_HEALTH_CHECK_INTERVAL_S, REDIS_MAX_CONNECTIONS, REDIS_SOCKET_TIMEOUT
from capi_dispatch.errors import LedgerError

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (RedisError, OSError)


class RedisHandle:
    """Lazily-connected, health-checked Redis client with acquire/release semantics."""

    def __init__(
        self,
        url: str,
        *,
        password: str | None = None,
        max_connections: int = REDIS_MAX_CONNECTIONS,
        socket_timeout: float = REDIS_SOCKET_TIMEOUT,
        client_factory: Callable[[], Redis] | None = None,
        health_check_interval: float = REDIS_HEALTH_CHECK_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self._password = password
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._client_factory = client_factory or self._create_client
        self._health_check_interval = health_check_interval
        self._clock = clock
        self._client: Redis | None = None
        self._last_ok: float | None = None
        self._lock = asyncio.Lock()

    def _create_client(self) -> Redis:
        """Create a Redis client with the configured settings."""
        return Redis.from_url(
            self.url,
            password=self._password,
            max_connections=self._max_connections,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
            decode_responses=True,
        )

    async def acquire(self) -> Redis:
        """Return a connected client, reconnecting once if the cached one is unhealthy.

        Raises:
            LedgerError: Redis is unreachable.
        """
        async with self._lock:
            if self._client is not None:
                if self._recently_ok():
                    return self._client
                try:
                    await self._client.ping()
                    self._last_ok = self._clock()
                    return self._client
                except _CONNECTION_ERRORS as exc:
                    logger.warning("Redis connection unhealthy; reconnecting: %s", exc)
                    await self._discard()

            client = self._client_factory()
            try:
                await client.ping()
            except _CONNECTION_ERRORS as exc:
                await _close_client(client)
                raise LedgerError(f"Redis unreachable: {exc}") from exc

            self._client = client
            self._last_ok = self._clock()
            logger.info("Redis connection ready")
            return client

    async def release(self, client: Redis, *, broken: bool = False) -> None:
        """Hand a client back; a broken client is dropped so the next acquire reconnects."""
        async with self._lock:
            if client is not self._client:
                return
            if broken:
                await self._discard()
            else:
                self._last_ok = self._clock()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Redis]:
        client = await self.acquire()
        broken = False
        try:
            yield client
        except _CONNECTION_ERRORS:
            broken = True
            raise
        finally:
            await self.release(client, broken=broken)

    async def ping(self) -> bool:
        """Round-trip a PING to the store."""
        try:
            async with self.connection() as client:
                await client.ping()
        except (LedgerError, *_CONNECTION_ERRORS):
            return False
        return True

    async def close(self) -> None:
        async with self._lock:
            await self._discard()

    async def _discard(self) -> None:
        client, self._client = self._client, None
        self._last_ok = None
        if client is not None:
            await _close_client(client)

    def _recently_ok(self) -> bool:
        return self._last_ok is not None and self._clock() - self._last_ok < self._health_check_interval


async def _close_client(client: Redis) -> None:
    try:
        await client.aclose()
    except _CONNECTION_ERRORS:
        logger.warning("Error closing Redis client", exc_info=True)


# Module-level handle, reused across invocations in a long-running server
_handle: RedisHandle | None = None


def get_redis_handle(url: str, **kwargs: object) -> RedisHandle:
    """Return the process-wide handle for ``url``, creating it on first use."""
    global _handle
    if _handle is None or _handle.url != url:
        _handle = RedisHandle(url, **kwargs)  # type: ignore[arg-type]
    return _handle


async def reset_redis_handle() -> None:
    global _handle
    handle, _handle = _handle, None
    if handle is not None:
        await handle.close()
