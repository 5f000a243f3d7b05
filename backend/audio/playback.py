"""
Playback multiplexer.

Synthesized chunks arrive in completion order; the carrier must hear
them in fragment order. For every interaction the multiplexer keeps a
reorder buffer keyed by sequence index and a cursor naming the next
index to play.

Rules:
- index == cursor: emit, advance, then drain any buffered successors
- index >  cursor: buffer and wait (bounded by the gap timeout)
- index <  cursor: stale, dropped
- index is None: whole response, emitted immediately

A second generate() on the same interaction (seed message, then the
caller's first reply) continues the same index sequence. If playback
was interrupted in between, rebase() restarts the cursor at the new
turn's first index.

push(), rebase() and interrupt() are synchronous. Nothing else touches
the buffers, so none of them interleave.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Protocol

from constants import PLAYBACK_GAP_TIMEOUT_MS
from observability.logger import log_event
from orchestrator.events import AudioChunk


class PlaybackSink(Protocol):
    """Where ordered audio goes (OutboundChannel in production)."""

    def send_media(self, audio: bytes, label: str) -> None: ...

    def send_clear(self) -> int: ...


@dataclass
class _InteractionStream:
    """Reorder state for one interaction."""
    cursor: int = 0
    # After an interrupt the cursor adopts the first index that arrives
    fresh: bool = False
    # Interrupted since the current turn began; cleared by rebase()
    interrupted: bool = False
    pending: dict[int, AudioChunk] = field(default_factory=dict)
    gap_timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.gap_timer is not None:
            self.gap_timer.cancel()
            self.gap_timer = None


class PlaybackMultiplexer:
    """Orders synthesized chunks per interaction and supports hard interrupts."""

    def __init__(
        self,
        *,
        sink: PlaybackSink,
        on_audio_sent: Callable[[str], None],
        has_pending_playback: Callable[[], bool],
        gap_timeout_ms: int = PLAYBACK_GAP_TIMEOUT_MS,
        stream_sid: str | None = None,
    ) -> None:
        self._sink = sink
        self._on_audio_sent = on_audio_sent
        self._has_pending_playback = has_pending_playback
        self._gap_timeout_s = gap_timeout_ms / 1000.0
        self._stream_sid = stream_sid

        self._streams: dict[int, _InteractionStream] = {}
        self._emitted_since_interrupt = False
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def push(self, chunk: AudioChunk) -> None:
        if self._closed:
            return

        if chunk.sequence_index is None:
            self._emit(chunk)
            return

        stream = self._streams.get(chunk.interaction_id)
        if stream is None:
            stream = _InteractionStream()
            self._streams[chunk.interaction_id] = stream

        index = chunk.sequence_index

        if stream.fresh:
            stream.cursor = index
            stream.fresh = False

        if index < stream.cursor or index in stream.pending:
            log_event({
                "event_type": "PLAYBACK_STALE_DROPPED",
                "stream_sid": self._stream_sid,
                "interaction_id": chunk.interaction_id,
                "sequence_index": index,
                "cursor": stream.cursor,
            })
            return

        stream.pending[index] = chunk

        cursor_before = stream.cursor
        self._drain(stream)

        if stream.cursor != cursor_before:
            # The gap being waited on (if any) closed
            stream.cancel_timer()

        if stream.pending:
            self._arm_gap_timer(chunk.interaction_id, stream)

    def interrupt(self) -> bool:
        """
        Stop everything queued for playback.

        Returns:
            True if playback was interrupted, False if this was a no-op.
        """
        if self._closed:
            return False
        if not self._has_pending_playback() or not self._emitted_since_interrupt:
            return False

        dropped_chunks = 0
        for stream in self._streams.values():
            dropped_chunks += len(stream.pending)
            stream.pending.clear()
            stream.cancel_timer()
            stream.fresh = True
            stream.interrupted = True

        self._emitted_since_interrupt = False
        dropped_messages = self._sink.send_clear()

        log_event({
            "event_type": "PLAYBACK_INTERRUPTED",
            "stream_sid": self._stream_sid,
            "dropped_chunks": dropped_chunks,
            "dropped_messages": dropped_messages,
        })
        return True

    def rebase(self, interaction_id: int, index: int) -> bool:
        """
        Start a new turn of an interaction at `index`.

        Applies only to interactions interrupted since their current turn
        began. The cursor moves to index and buffered chunks below it
        (audio of the cut-off turn) are dropped.

        Returns:
            True if the stream was re-based.
        """
        stream = self._streams.get(interaction_id)
        if self._closed or stream is None or not stream.interrupted:
            return False

        dropped = sorted(i for i in stream.pending if i < index)
        for i in dropped:
            del stream.pending[i]

        stream.cancel_timer()
        stream.cursor = index
        stream.fresh = False
        stream.interrupted = False

        log_event({
            "event_type": "PLAYBACK_REBASED",
            "stream_sid": self._stream_sid,
            "interaction_id": interaction_id,
            "cursor": index,
            "dropped_indices": dropped,
        })

        self._drain(stream)
        if stream.pending:
            self._arm_gap_timer(interaction_id, stream)
        return True

    def close(self) -> None:
        self._closed = True
        for stream in self._streams.values():
            stream.cancel_timer()
            stream.pending.clear()
        self._streams.clear()

    def buffered(self, interaction_id: int) -> list[int]:
        """Buffered (not yet emitted) indices for an interaction, ascending."""
        stream = self._streams.get(interaction_id)
        return sorted(stream.pending) if stream is not None else []

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _drain(self, stream: _InteractionStream) -> None:
        while stream.cursor in stream.pending:
            chunk = stream.pending.pop(stream.cursor)
            stream.cursor += 1
            self._emit(chunk)

    def _emit(self, chunk: AudioChunk) -> None:
        self._sink.send_media(chunk.audio, chunk.label)
        self._on_audio_sent(chunk.label)
        self._emitted_since_interrupt = True

        log_event({
            "event_type": "PLAYBACK_EMITTED",
            "stream_sid": self._stream_sid,
            "label": chunk.label,
            "bytes": len(chunk.audio),
        })

    def _arm_gap_timer(self, interaction_id: int, stream: _InteractionStream) -> None:
        if stream.gap_timer is not None:
            return
        loop = asyncio.get_running_loop()
        stream.gap_timer = loop.call_later(
            self._gap_timeout_s,
            self._on_gap_timeout,
            interaction_id,
        )

    def _on_gap_timeout(self, interaction_id: int) -> None:
        stream = self._streams.get(interaction_id)
        if stream is None:
            return
        stream.gap_timer = None
        if self._closed or not stream.pending:
            return

        lowest = min(stream.pending)
        skipped = list(range(stream.cursor, lowest))

        log_event({
            "event_type": "PLAYBACK_GAP_SKIPPED",
            "stream_sid": self._stream_sid,
            "interaction_id": interaction_id,
            "skipped_indices": skipped,
            "resume_index": lowest,
        })

        stream.cursor = lowest
        self._drain(stream)

        if stream.pending:
            self._arm_gap_timer(interaction_id, stream)
