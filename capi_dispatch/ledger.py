"""Dedup ledger: durable record of which logical events were already dispatched."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol, Sequence

from redis.exceptions import RedisError

from capi_dispatch.constants import LEDGER_PREFIX, LEDGER_TTL_SECONDS
from capi_dispatch.errors import LedgerError
from capi_dispatch.models import DedupKey
from capi_dispatch.redis_handle import RedisHandle

logger = logging.getLogger(__name__)


class DedupLedger(Protocol):
    async def exists(self, key: DedupKey) -> bool: ...

    async def mark_dispatched(self, key: DedupKey, when: datetime) -> None: ...

    async def mark_dispatched_many(self, keys: Sequence[DedupKey], when: datetime) -> None: ...


class RedisDedupLedger:
    """Ledger backed by Redis string keys with a TTL.

    Store failures raise ``LedgerError``; an unreachable store is never read as
    "not yet dispatched".
    """

    def __init__(
        self,
        handle: RedisHandle,
        prefix: str = LEDGER_PREFIX,
        ttl_seconds: int = LEDGER_TTL_SECONDS,
    ) -> None:
        self._handle = handle
        self._prefix = prefix
        self._ttl_seconds = ttl_seconds

    async def exists(self, key: DedupKey) -> bool:
        redis_key = key.ledger_key(self._prefix)
        try:
            async with self._handle.connection() as client:
                count = await client.exists(redis_key)
        except (RedisError, OSError) as exc:
            raise LedgerError(f"Ledger check failed for {redis_key}: {exc}") from exc
        return count == 1

    async def mark_dispatched(self, key: DedupKey, when: datetime) -> None:
        await self.mark_dispatched_many([key], when)

    async def mark_dispatched_many(self, keys: Sequence[DedupKey], when: datetime) -> None:
        """Record every key in one MULTI/EXEC transaction: all are written or none are."""
        if not keys:
            return
        redis_keys = [key.ledger_key(self._prefix) for key in keys]
        value = when.isoformat()
        try:
            async with self._handle.connection() as client:
                async with client.pipeline(transaction=True) as pipe:
                    for redis_key in redis_keys:
                        pipe.set(redis_key, value, ex=self._ttl_seconds)
                    await pipe.execute()
        except (RedisError, OSError) as exc:
            raise LedgerError(f"Ledger write failed for {len(redis_keys)} keys: {exc}") from exc
        logger.debug("marked dispatched: %s", ", ".join(redis_keys))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDedupLedger:
    """Process-local ledger with expiry, for tests and dry runs."""

    def __init__(
        self,
        prefix: str = LEDGER_PREFIX,
        ttl_seconds: int = LEDGER_TTL_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._prefix = prefix
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: dict[str, tuple[str, datetime]] = {}

    async def exists(self, key: DedupKey) -> bool:
        redis_key = key.ledger_key(self._prefix)
        entry = self._entries.get(redis_key)
        if entry is None:
            return False
        if entry[1] <= self._clock():
            del self._entries[redis_key]
            return False
        return True

    async def mark_dispatched(self, key: DedupKey, when: datetime) -> None:
        await self.mark_dispatched_many([key], when)

    async def mark_dispatched_many(self, keys: Sequence[DedupKey], when: datetime) -> None:
        expires = self._clock() + self._ttl
        self._entries.update({key.ledger_key(self._prefix): (when.isoformat(), expires) for key in keys})

    def get(self, key: DedupKey) -> str | None:
        entry = self._entries.get(key.ledger_key(self._prefix))
        return entry[0] if entry else None

    def keys(self) -> list[str]:
        return sorted(self._entries)
