"""
Outbound carrier channel.

A FIFO of JSON messages drained by a single writer task. Enqueueing is
synchronous, so the order in which the multiplexer emits chunks is the
order they reach the carrier, regardless of how many tasks produce audio.
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from typing import Any, Awaitable, Callable

from observability.logger import log_event
from protocol.media_stream import encode_clear, encode_mark, encode_media


class OutboundChannel:
    """Ordered writer for media / mark / clear messages on one stream."""

    def __init__(
        self,
        *,
        stream_sid: str,
        send_text: Callable[[str], Awaitable[None]],
    ) -> None:
        self._stream_sid = stream_sid
        self._send_text = send_text

        self._queue: deque[dict[str, Any]] = deque()
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Producer side (synchronous)
    # ------------------------------------------------------------------

    def send_media(self, audio: bytes, label: str) -> None:
        """Queue one audio payload followed by its playback marker."""
        if self._closed:
            return
        self._queue.append(encode_media(stream_sid=self._stream_sid, audio=audio))
        self._queue.append(encode_mark(stream_sid=self._stream_sid, name=label))
        self._kick()

    def send_clear(self) -> int:
        """
        Drop every message not yet written, then queue a clear.

        Returns:
            Number of unsent messages discarded.
        """
        if self._closed:
            return 0
        dropped = len(self._queue)
        self._queue.clear()
        self._queue.append(encode_clear(stream_sid=self._stream_sid))
        self._kick()
        return dropped

    def pending(self) -> int:
        return len(self._queue)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is None and not self._closed:
            self._task = asyncio.create_task(self._writer_loop())

    async def close(self) -> None:
        """Stop the writer. Unsent messages are discarded. Idempotent."""
        self._closed = True
        self._queue.clear()
        self._wakeup.set()

        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _kick(self) -> None:
        self.start()
        self._wakeup.set()

    async def _writer_loop(self) -> None:
        while not self._closed:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            msg = self._queue.popleft()
            try:
                await self._send_text(json.dumps(msg))
            except asyncio.CancelledError:
                raise
            except Exception as e:  # pylint: disable=broad-exception-caught
                # Socket is gone; the route tears the session down
                log_event({
                    "event_type": "OUTBOUND_SEND_FAILED",
                    "stream_sid": self._stream_sid,
                    "message_event": msg.get("event"),
                    "error": repr(e),
                })
                self._closed = True
                self._queue.clear()
                return
