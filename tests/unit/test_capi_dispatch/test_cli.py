"""Tests for the capi-dispatch command line."""

from __future__ import annotations

import json

import pytest

from capi_dispatch import cli
from capi_dispatch.errors import ConfigError, DeliveryError
from capi_dispatch.ledger import InMemoryDedupLedger
from capi_dispatch.runtime import DispatchServices
from tests.conftest import RecordingSink, StaticSource, make_row


def _install(monkeypatch: pytest.MonkeyPatch, services: DispatchServices) -> None:
    monkeypatch.setattr(cli, "get_config", lambda: object())
    monkeypatch.setattr(cli, "build_services", lambda _config: services)
    monkeypatch.setattr(cli, "setup_logging", lambda _level=None: None)


def _services(sink: RecordingSink | None = None) -> DispatchServices:
    return DispatchServices(
        source=StaticSource([make_row()]),
        ledger=InMemoryDedupLedger(),
        delivery=sink or RecordingSink(response={"events_received": 1}),
        exclusions=frozenset(),
        action_source="website",
    )


def test_run_prints_report(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _install(monkeypatch, _services())

    assert cli.main(["run"]) == 0
    assert json.loads(capsys.readouterr().out) == {
        "status": "ok",
        "processed": 1,
        "meta": {"events_received": 1},
    }


def test_run_failure_exits_nonzero(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _install(monkeypatch, _services(RecordingSink(error=DeliveryError("Meta CAPI 503: busy"))))

    assert cli.main(["run"]) == 1
    assert json.loads(capsys.readouterr().out) == {"error": "Meta CAPI 503: busy"}


def test_config_error_exits_two(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def _fail() -> None:
        raise ConfigError("Missing credential: set one of META_ACCESS_TOKEN")

    monkeypatch.setattr(cli, "get_config", _fail)
    monkeypatch.setattr(cli, "setup_logging", lambda _level=None: None)

    assert cli.main(["run"]) == 2
    assert "META_ACCESS_TOKEN" in json.loads(capsys.readouterr().out)["error"]


def test_debug_fire_command(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    services = _services()
    _install(monkeypatch, services)

    assert cli.main(["debug-fire", "--e164", "+15550001111", "--session-id", "d1"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["sent"]["data"][0]["event_id"] == "chat-threshold:default:d1"
    assert services.ledger.keys() == []  # type: ignore[attr-defined]


def test_fetch_rows_command(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _install(monkeypatch, _services())

    assert cli.main(["fetch-rows"]) == 0
    rows = json.loads(capsys.readouterr().out)["rows"]
    assert rows[0]["phone_e164"] == "+1 (555) 000-1111"
