# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger, metrics


def test_log_event_emits_valid_jsonl(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    captured: list[str] = []

    def fake_print(line: str) -> None:
        captured.append(line)

    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", fake_print)

    payload: dict[str, Any] = {
        "ts_ms": 1,
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Must be valid JSON, payload preserved exactly
    assert json.loads(captured[0]) == payload


def test_log_event_adds_timestamp(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    monkeypatch.setattr(logger, "now_ms", lambda: 42)

    logger.log_event({"event_type": "TEST"})

    assert json.loads(captured[0]) == {"ts_ms": 42, "event_type": "TEST"}


def test_log_event_never_raises_on_unserializable(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    logger.log_event({"ts_ms": 1, "event_type": "TEST", "blob": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["ts_ms"] == 1


def test_timed_emits_once_even_on_error(logs) -> None:
    with pytest.raises(RuntimeError):
        with metrics.timed("tts_synthesis", stream_sid="MZ1", details={"label": "1-0"}):
            raise RuntimeError("provider down")

    timers = logs.of("METRIC_TIMER")
    assert len(timers) == 1
    assert timers[0]["metric"] == "tts_synthesis"
    assert timers[0]["details"] == {"label": "1-0"}
    assert timers[0]["value_ms"] >= 0
