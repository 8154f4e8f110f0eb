"""Integration test: orchestrator against a live Redis ledger.

Skipped when Redis is unavailable.
"""

from __future__ import annotations

import pytest

from capi_dispatch.ledger import RedisDedupLedger
from capi_dispatch.models import DedupKey
from capi_dispatch.orchestrator import DispatchOrchestrator
from capi_dispatch.redis_handle import RedisHandle
from tests.conftest import FIXED_NOW, RecordingSink, StaticSource, make_row


@pytest.fixture
async def redis_handle(tmp_path):  # type: ignore[misc]
    """Attempt to connect to Redis; skip test if unavailable."""
    handle = RedisHandle("redis://localhost:6379", socket_timeout=1)
    if not await handle.ping():
        await handle.close()
        pytest.skip("Redis not available")
    yield handle
    await handle.close()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_dispatch_run_commits_to_redis(redis_handle: RedisHandle, tmp_path) -> None:
    # Use a unique prefix to avoid test pollution
    prefix = f"capi:test:{tmp_path.name}"
    ledger = RedisDedupLedger(redis_handle, prefix=prefix, ttl_seconds=60)
    sink = RecordingSink()
    orchestrator = DispatchOrchestrator(StaticSource([make_row()]), ledger, sink, clock=lambda: FIXED_NOW)

    try:
        assert (await orchestrator.run()).processed == 1
        assert (await orchestrator.run()).processed == 0

        key = DedupKey("A", "s1").ledger_key(prefix)
        async with redis_handle.connection() as client:
            assert await client.get(key) == FIXED_NOW.isoformat()
            ttl = await client.ttl(key)
        assert 0 < ttl <= 60
    finally:
        async with redis_handle.connection() as client:
            await client.delete(DedupKey("A", "s1").ledger_key(prefix))
