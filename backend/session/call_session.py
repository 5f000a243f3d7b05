"""
Call session container.

- One per carrier media stream
- Owned and mutated by SessionController only
- Contains no orchestration logic
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from constants import UNKNOWN_CALLER_NUMBER


@dataclass
class CallSession:
    """Mutable per-call state."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    stream_sid: str
    call_sid: str
    caller_number: str = UNKNOWN_CALLER_NUMBER
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Conversation progress
    # ------------------------------------------------------------------

    # Incremented once per processed caller transcription
    interaction_count: int = 0

    # Playback markers sent to the carrier and not yet acknowledged
    marks: set[str] = field(default_factory=set)

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this call."""
        return {
            "stream_sid": self.stream_sid,
            "call_sid": self.call_sid,
        }

    def duration_s(self) -> float:
        return time.time() - self.created_at
