"""
Speech synthesizer contract and shared fan-out behavior.

Key invariants:
- One synthesis request per fragment, issued immediately. There is no
  request queue: requests for the same interaction run concurrently and
  may complete in any order.
- Each AudioChunk carries the fragment's sequence_index and
  interaction_id unchanged. Reordering is the playback multiplexer's job.
- A failed fragment is logged and dropped; nothing is retried.

Providers implement only `_synthesize(text) -> mu-law 8kHz bytes`.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from observability.logger import log_event, now_ms
from observability.metrics import timed
from orchestrator.chunking import clean_fragment_text
from orchestrator.enums.service import Service
from orchestrator.events import (
    AudioChunk,
    Event,
    EventType,
    ResponseFragment,
    ServiceError,
)


def chunk_label(interaction_id: int, sequence_index: int | None) -> str:
    """Playback marker label for one synthesized fragment."""
    if sequence_index is None:
        return str(interaction_id)
    return f"{interaction_id}-{sequence_index}"


class TTSAdapter(ABC):
    """
    Abstract fan-out speech synthesizer.

    Note: emit_event callback must be async.

    Non-responsibilities:
    - No ordering (multiplexer-owned)
    - No barge-in handling
    - No direct interaction with the carrier WebSocket
    """

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Awaitable[None]],
        stream_sid: str | None = None,
    ) -> None:
        self._emit_event = emit_event
        self._stream_sid = stream_sid

        # Active synthesis tasks keyed by label
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(self, fragment: ResponseFragment, interaction_id: int) -> None:
        """
        Schedule synthesis of a single fragment.

        Fire-and-forget:
        - Returns immediately
        - Emits AudioChunk or ServiceError asynchronously
        """
        text = clean_fragment_text(fragment.text)
        label = chunk_label(interaction_id, fragment.sequence_index)

        if not text:
            log_event({
                "event_type": "TTS_SKIPPED_EMPTY",
                "stream_sid": self._stream_sid,
                "label": label,
            })
            return

        if label in self._tasks:
            # Duplicate request for an in-flight fragment
            return

        task = asyncio.create_task(
            self._run_synthesis(
                interaction_id=interaction_id,
                sequence_index=fragment.sequence_index,
                label=label,
                text=text,
            )
        )
        self._tasks[label] = task

        def _cleanup(_: asyncio.Task[None]) -> None:
            self._tasks.pop(label, None)

        task.add_done_callback(_cleanup)

    async def close(self) -> None:
        """Cancel every in-flight synthesis. Idempotent."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def in_flight(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Provider hook
    # ------------------------------------------------------------------

    @abstractmethod
    async def _synthesize(self, text: str) -> bytes:
        """
        Synthesize text to mu-law 8kHz mono audio.

        Raises on provider failure; the caller converts that into a
        dropped fragment.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run_synthesis(
        self,
        *,
        interaction_id: int,
        sequence_index: int | None,
        label: str,
        text: str,
    ) -> None:
        try:
            with timed(
                "tts_synthesis",
                stream_sid=self._stream_sid,
                details={"label": label, "chars": len(text)},
            ):
                audio = await self._synthesize(text)

            if not audio:
                raise ValueError("provider returned no audio")

        except asyncio.CancelledError:
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            reason = f"{type(exc).__name__}: {exc}"
            log_event({
                "event_type": "TTS_ERROR",
                "stream_sid": self._stream_sid,
                "label": label,
                "reason": reason,
            })
            await self._emit_event(
                ServiceError(
                    event_type=EventType.SERVICE_ERROR,
                    ts_ms=now_ms(),
                    service=Service.TTS,
                    reason=reason,
                    interaction_id=interaction_id,
                    sequence_index=sequence_index,
                )
            )
            return

        await self._emit_event(
            AudioChunk(
                event_type=EventType.AUDIO_CHUNK,
                ts_ms=now_ms(),
                interaction_id=interaction_id,
                sequence_index=sequence_index,
                label=label,
                audio=audio,
            )
        )
