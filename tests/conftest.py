"""Pytest configuration for capi_dispatch tests."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Sequence

import pytest

from capi_dispatch.models import OutboundEvent, SourceRow

logging.getLogger("capi_dispatch").handlers.clear()

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def pytest_collection_modifyitems(config, items):
    """Set per-marker timeouts: unit=1s, integration=5s."""
    for item in items:
        if "unit" in item.keywords:
            item.add_marker(pytest.mark.timeout(1))
        elif "integration" in item.keywords:
            item.add_marker(pytest.mark.timeout(5))


class MockRedisClient:
    """In-process stand-in for ``redis.asyncio.Redis`` (strings with TTL only)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.ping_error: Exception | None = None
        self.command_error: Exception | None = None
        self.exec_error: Exception | None = None
        self.closed = False
        self.pings = 0

    async def ping(self) -> bool:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error
        return True

    async def exists(self, *keys: str) -> int:
        if self.command_error is not None:
            raise self.command_error
        return sum(1 for key in keys if key in self.data)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        if self.command_error is not None:
            raise self.command_error
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    def pipeline(self, transaction: bool = True) -> "MockPipeline":
        return MockPipeline(self)

    async def aclose(self) -> None:
        self.closed = True


class MockPipeline:
    """MULTI/EXEC stand-in: queued SETs apply together on ``execute`` or not at all."""

    def __init__(self, client: MockRedisClient) -> None:
        self._client = client
        self._queued: list[tuple[str, str, int | None]] = []

    async def __aenter__(self) -> "MockPipeline":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._queued.clear()

    def set(self, key: str, value: str, ex: int | None = None) -> "MockPipeline":
        self._queued.append((key, value, ex))
        return self

    async def execute(self) -> list[bool]:
        error = self._client.exec_error or self._client.command_error
        if error is not None:
            raise error
        for key, value, ex in self._queued:
            self._client.data[key] = value
            self._client.ttls[key] = ex
        results = [True] * len(self._queued)
        self._queued.clear()
        return results


class StaticSource:
    """Row source returning a fixed list (or raising)."""

    def __init__(self, rows: list[SourceRow] | None = None, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.calls = 0

    async def fetch_rows(self) -> list[SourceRow]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.rows)


class RecordingSink:
    """Delivery stand-in recording every batch it is given."""

    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        self.response = response if response is not None else {"events_received": 0}
        self.error = error
        self.batches: list[list[OutboundEvent]] = []

    async def send(self, events: Sequence[OutboundEvent]) -> Any:
        self.batches.append(list(events))
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def events(self) -> list[OutboundEvent]:
        return [event for batch in self.batches for event in batch]


def make_row(
    session_id: str = "s1",
    phone: str | None = "+1 (555) 000-1111",
    messages_sent: int = 6,
    source_url: str | None = "https://x",
    experiment_label: str | None = "A",
) -> SourceRow:
    return SourceRow.model_validate(
        {
            "session_id": session_id,
            "phone_e164": phone,
            "messages_sent": messages_sent,
            "source_url": source_url,
            "experiment_label": experiment_label,
        }
    )


async def no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def mock_redis() -> MockRedisClient:
    return MockRedisClient()
