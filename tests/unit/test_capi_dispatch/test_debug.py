"""Tests for the diagnostic single-event fire."""

from __future__ import annotations

import hashlib

import pytest

from capi_dispatch.debug import fire_debug_event
from tests.conftest import FIXED_NOW, RecordingSink


@pytest.mark.asyncio
async def test_fire_debug_event_sends_one_synthetic_event() -> None:
    sink = RecordingSink(response={"events_received": 1})

    result = await fire_debug_event(
        sink,
        identity="+1 555 000 1111",
        session_id="debug-1",
        experiment_label="B",
        clock=lambda: FIXED_NOW,
    )

    assert result.ok is True
    assert result.out == {"events_received": 1}
    sent = result.sent["data"]
    assert len(sent) == 1
    assert sent[0]["event_id"] == "chat-threshold:B:debug-1"
    assert sent[0]["custom_data"] == {"messages_sent": 6, "experiment_label": "B", "source_url": None}
    assert sent[0]["user_data"]["ph"] == [hashlib.sha256(b"15550001111").hexdigest()]
    assert "event_source_url" not in sent[0]
    assert len(sink.batches) == 1


@pytest.mark.asyncio
async def test_fire_debug_event_rejects_invalid_identity() -> None:
    sink = RecordingSink()

    with pytest.raises(ValueError):
        await fire_debug_event(sink, identity="5550001111", session_id="debug-1")
    with pytest.raises(ValueError):
        await fire_debug_event(sink, identity="+15550001111", session_id="  ")
    assert sink.batches == []
