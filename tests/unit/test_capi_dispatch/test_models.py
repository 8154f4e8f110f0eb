"""Tests for source rows, dedup keys and outbound event payloads."""

from __future__ import annotations

import hashlib

import pytest
from pydantic import ValidationError

from capi_dispatch.models import DedupKey, RunReport, SourceRow, build_outbound_event
from tests.conftest import make_row


def test_source_row_parses_question_columns() -> None:
    row = SourceRow.model_validate(
        {"session_id": "s9", "phone_e164": "+4412345678", "messages_sent": "7", "source_url": None}
    )
    assert row.session_id == "s9"
    assert row.identity_raw == "+4412345678"
    assert row.activity_count == 7
    assert row.origin_url is None
    assert row.experiment == "default"


@pytest.mark.parametrize(("raw", "expected"), [(12345, "12345"), ("abc", "abc")])
def test_source_row_session_id_is_text(raw: object, expected: str) -> None:
    row = SourceRow.model_validate({"session_id": raw, "messages_sent": 6})
    assert row.session_id == expected


def test_source_row_rejects_missing_activity_count() -> None:
    with pytest.raises(ValidationError):
        SourceRow.model_validate({"session_id": "s1", "messages_sent": None})


def test_source_row_is_immutable() -> None:
    row = make_row()
    with pytest.raises(ValidationError):
        row.session_id = "other"  # type: ignore[misc]


def test_dedup_key_from_row() -> None:
    key = DedupKey.for_row(make_row(experiment_label="  A "))
    assert key == DedupKey("A", "s1")
    assert key.event_id == "chat-threshold:A:s1"
    assert key.ledger_key() == "capi:chat-threshold:A:s1"
    assert key.ledger_key("test") == "test:A:s1"


def test_build_outbound_event() -> None:
    event = build_outbound_event(
        session_id="s1",
        identity="+15550001111",
        activity_count=6,
        origin_url="https://x",
        experiment_label="A",
        action_source="website",
        event_time=1_700_000_000,
    )
    payload = event.to_payload()
    assert payload == {
        "event_name": "ChatMessagesThresholdCrossed",
        "event_time": 1_700_000_000,
        "event_source_url": "https://x",
        "action_source": "website",
        "event_id": "chat-threshold:A:s1",
        "user_data": {"ph": [hashlib.sha256(b"15550001111").hexdigest()]},
        "custom_data": {"messages_sent": 6, "experiment_label": "A", "source_url": "https://x"},
    }


def test_payload_omits_missing_source_url() -> None:
    event = build_outbound_event(
        session_id="s1",
        identity="+15550001111",
        activity_count=6,
        origin_url="",
        experiment_label=None,
        action_source="chat",
        event_time=1,
    )
    payload = event.to_payload()
    assert "event_source_url" not in payload
    assert payload["custom_data"] == {"messages_sent": 6, "experiment_label": "default", "source_url": None}
    assert payload["event_id"] == "chat-threshold:default:s1"


def test_run_report_response_shape() -> None:
    assert RunReport(processed=0).to_response() == {"status": "ok", "processed": 0}
    assert RunReport(processed=2, meta={"events_received": 2}).to_response() == {
        "status": "ok",
        "processed": 2,
        "meta": {"events_received": 2},
    }
