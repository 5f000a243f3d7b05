"""
Rolling conversation history for one call.

Responsibilities:
- Store ordered caller/assistant turns
- Enforce truncation rules:
  - Max turns OR max characters (whichever is hit first)
  - Drop oldest turns until constraints are satisfied
  - Allow a single oversized turn (with warning)
- Provide a serializable representation for LLM consumption

History lives only as long as the call; nothing is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from observability.logger import log_event
from constants import MAX_CONTEXT_CHARS, MAX_CONTEXT_TURNS


Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Turn:
    """Single conversation turn."""
    role: Role
    text: str
    interaction_id: int


class ConversationContext:
    """
    Mutable conversation history owned by the response generator.

    Invariants:
    - Turns are stored in chronological order
    - interaction_id is non-decreasing but not required to be contiguous
    """

    def __init__(
        self,
        stream_sid: str | None = None,
        *,
        max_turns: int = MAX_CONTEXT_TURNS,
        max_chars: int = MAX_CONTEXT_CHARS,
    ) -> None:
        self._stream_sid = stream_sid
        self._max_turns = max_turns
        self._max_chars = max_chars
        self._turns: list[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def commit_interaction(
        self,
        *,
        interaction_id: int,
        user_text: str,
        assistant_text: str,
    ) -> None:
        """Append one completed caller/assistant exchange."""
        self._turns.append(Turn("user", user_text, interaction_id))
        if assistant_text:
            self._turns.append(Turn("assistant", assistant_text, interaction_id))
        self._truncate()

    def serialize(self) -> list[dict[str, str]]:
        """
        Serialize turns into a role/content structure.

        Output format:
        [
          {"role": "user", "content": "..."},
          {"role": "assistant", "content": "..."},
        ]
        """
        return [
            {"role": t.role, "content": t.text}
            for t in self._turns
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _truncate(self) -> None:
        while self._violates_limits():
            # If only one turn remains, allow it even if oversized
            if len(self._turns) == 1:
                log_event({
                    "event_type": "context_single_turn_oversized",
                    "stream_sid": self._stream_sid,
                    "interaction_id": self._turns[0].interaction_id,
                    "char_count": len(self._turns[0].text),
                })
                break

            dropped = self._turns.pop(0)
            log_event({
                "event_type": "context_turn_dropped",
                "stream_sid": self._stream_sid,
                "interaction_id": dropped.interaction_id,
                "role": dropped.role,
                "char_count": len(dropped.text),
            })

    def _violates_limits(self) -> bool:
        if len(self._turns) > self._max_turns:
            return True

        total_chars = sum(len(t.text) for t in self._turns)
        return total_chars > self._max_chars
