"""
Latency metrics for observability.

Responsibilities:
- Measure durations using monotonic time (immune to clock changes)
- Emit metrics as JSONL events via observability.logger
- Never aggregate: one metric = one log event

Durations use monotonic time; event timestamps (ts_ms) use wall-clock
time for log correlation.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event, now_ms


def emit_metric(
    name: str,
    value_ms: int,
    *,
    stream_sid: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a single METRIC_TIMER event."""
    log_event({
        "ts_ms": now_ms(),
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": value_ms,
        "stream_sid": stream_sid,
        "details": details or {},
    })


@contextmanager
def timed(
    name: str,
    *,
    stream_sid: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Context manager for measuring durations safely.

    Guarantees:
    - Metric is emitted exactly once
    - Exceptions inside the block do NOT suppress timing

    Usage:
        with timed("tts_synthesis", stream_sid=sid, details={"label": label}):
            audio = await synthesize(text)
    """
    start_ns = time.monotonic_ns()
    try:
        yield
    finally:
        emit_metric(
            name,
            (time.monotonic_ns() - start_ns) // 1_000_000,
            stream_sid=stream_sid,
            details=details,
        )
