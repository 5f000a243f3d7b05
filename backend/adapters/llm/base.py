"""
Response generator contract.

Purpose:
- Define the interface for incrementally streamed responses.
- Keep barge-in, playback, and synthesis semantics OUT of the generator.

Rules:
- This file contains NO logic.
- No retries.
- No knowledge of TTS, playback, or the carrier.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class LLMAdapter(ABC):
    """
    Abstract base class for streaming response generators.

    input text -> vendor stream -> RESPONSE_FRAGMENT events.
    """

    @abstractmethod
    async def generate(self, text: str, interaction_id: int) -> None:
        """
        Start generating a response to `text` for `interaction_id`.

        Contract:
        - Must return immediately; generation runs in the background.
        - Emits zero or more ResponseFragment events, each independently
          speakable, cut at sentence or delimiter boundaries.
        - sequence_index values for one interaction_id start at 0 and
          strictly increase, including across repeated calls that reuse
          the same interaction_id.
        - Trailing text at stream completion is emitted with is_final=True.
        - Tool calls are resolved before emission continues and never
          produce fragments themselves.
        - Must NOT retry internally. A failure emits ServiceError and
          keeps whatever fragments were already emitted.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Cancel all in-flight generations.

        Idempotent. No events are emitted after close() returns.
        """
        raise NotImplementedError
