# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger


class LogCapture(list[dict[str, Any]]):
    """Decoded log_event payloads, in emission order."""

    def of(self, event_type: str) -> list[dict[str, Any]]:
        return [e for e in self if e.get("event_type") == event_type]


@pytest.fixture
def logs(monkeypatch: pytest.MonkeyPatch) -> LogCapture:
    captured = LogCapture()

    def fake_print(line: str) -> None:
        captured.append(json.loads(line))

    monkeypatch.setattr(logger, "_print", fake_print)
    return captured
