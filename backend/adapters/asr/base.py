"""
Transcription pipeline contract.

This module defines the *interface only*: no buffering, endpointing,
reconnects, or barge-in decisions live here.

Key invariants:
- The adapter emits Utterance / Transcription events; it does not call
  the generator or the playback multiplexer.
- send() never blocks the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ASRAdapter(ABC):
    """
    Abstract interface for a streaming transcription pipeline.

    Note: emit_event callback must be async.

    Implementations are responsible for:
    - Accepting carrier audio payloads via send()
    - Producing Utterance (interim) events as soon as any recognition exists
    - Producing Transcription (final) events at utterance boundaries
    - Recovering from backend connection loss

    Non-responsibilities:
    - No barge-in policy (controller-owned)
    - No direct interaction with the carrier WebSocket
    """

    @property
    @abstractmethod
    def disabled(self) -> bool:
        """True after reconnecting failed, until reset() is called."""
        raise NotImplementedError

    @abstractmethod
    def send(self, payload: str) -> None:
        """
        Provide one carrier audio payload (base64 mu-law).

        Contract:
        - Fire-and-forget: must return without awaiting network I/O.
        - Undecodable payloads are logged and dropped.
        - While the pipeline is disabled, audio is dropped silently.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        """
        Re-enable a pipeline disabled after a failed reconnect.

        Clears buffered audio and any partially accumulated transcript.
        The controller calls this when the caller presses a key while
        transcription is disabled.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Close the backend connection and stop background tasks.

        Idempotent. No events are emitted after close() returns.
        """
        raise NotImplementedError
