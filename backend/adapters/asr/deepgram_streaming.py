"""
Persistent Deepgram live-streaming transcription pipeline.

Core model:
- One Deepgram WebSocket per call, opened lazily on the first audio
  payload and kept open for the whole call.
- Carrier mu-law 8kHz audio is forwarded as-is (no resampling).
- send() only appends to an in-memory buffer; a single sender task
  drains it to Deepgram, so the carrier read loop never waits on the
  network.

Event behavior:
- Interim results (is_final=false) => Utterance(text) for barge-in.
- Final segments (is_final=true) accumulate; speech_final=true emits the
  accumulated text as Transcription and resets the accumulator.
- UtteranceEnd flushes the accumulator when the last final segment was
  not speech_final (Deepgram missed the endpoint in noisy audio).

Failure behavior:
- A send/receive failure drops the socket and logs it. The sender
  reconnects with backoff; frames that were not yet sent stay buffered
  and are replayed in order once the new socket is up.
- If no connection can be made within the reconnect window the pipeline
  disables itself: buffered audio is discarded and further audio is
  ignored until reset().
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import time
import urllib.parse
from collections import deque
from typing import Any, Awaitable, Callable, Sequence

from websockets.asyncio.client import connect as ws_connect

from adapters.asr.base import ASRAdapter
from constants import (
    ASR_ENDPOINTING_MS,
    ASR_MODEL_DEFAULT,
    ASR_RECONNECT_BACKOFF_MS,
    ASR_RECONNECT_WINDOW_MS,
    ASR_REPLAY_BUFFER_FRAMES,
    ASR_UTTERANCE_END_MS,
    TELEPHONY_ENCODING,
    TELEPHONY_SAMPLE_RATE_HZ,
)
from observability.logger import log_event, now_ms
from orchestrator.enums.service import Service
from orchestrator.events import (
    Event,
    EventType,
    ServiceError,
    Transcription,
    Utterance,
)


ConnectFn = Callable[..., Awaitable[Any]]


class DeepgramStreamingASRAdapter(ASRAdapter):
    """
    Deepgram live WebSocket adapter with buffered replay on reconnect.

    Public interface:
    - send(payload): called for every carrier media event
    - reset(): re-enable after the pipeline gave up reconnecting
    - close(): called on stream stop / socket close
    """

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Awaitable[None]],
        api_key: str,
        model: str = ASR_MODEL_DEFAULT,
        stream_sid: str | None = None,
        reconnect_window_ms: int = ASR_RECONNECT_WINDOW_MS,
        reconnect_backoff_ms: Sequence[int] = ASR_RECONNECT_BACKOFF_MS,
        replay_buffer_frames: int = ASR_REPLAY_BUFFER_FRAMES,
        connect: ConnectFn = ws_connect,
    ) -> None:
        self._emit_event = emit_event
        self._api_key = api_key
        self._model = model
        self._stream_sid = stream_sid
        self._reconnect_window_s = reconnect_window_ms / 1000.0
        self._backoff_ms = tuple(reconnect_backoff_ms) or (0,)
        self._connect = connect

        # Audio not yet accepted by Deepgram, oldest first
        self._pending: deque[bytes] = deque(maxlen=replay_buffer_frames)
        self._wakeup = asyncio.Event()

        self._ws: Any = None
        self._sender_task: asyncio.Task[None] | None = None
        self._recv_task: asyncio.Task[None] | None = None

        self._disabled = False
        self._closed = False

        # Endpointing state
        self._final_parts: list[str] = []
        self._speech_final = False

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def send(self, payload: str) -> None:
        if self._closed or self._disabled:
            return

        try:
            audio = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            log_event({
                "event_type": "ASR_PAYLOAD_DECODE_ERROR",
                "stream_sid": self._stream_sid,
                "error": str(e),
            })
            return

        if not audio:
            return

        self._pending.append(audio)
        self._ensure_sender()
        self._wakeup.set()

    def reset(self) -> None:
        self._pending.clear()
        self._final_parts.clear()
        self._speech_final = False
        self._disabled = False

        log_event({
            "event_type": "ASR_RESET",
            "stream_sid": self._stream_sid,
        })

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending.clear()

        tasks = [t for t in (self._sender_task, self._recv_task) if t is not None]
        self._sender_task = None
        self._recv_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.send(json.dumps({"type": "CloseStream"}))
                await ws.close()
            except Exception:  # pylint: disable=broad-exception-caught
                pass

        log_event({
            "event_type": "ASR_CLOSED",
            "stream_sid": self._stream_sid,
        })

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _build_url(self) -> str:
        params: dict[str, str] = {
            "model": self._model,
            "encoding": TELEPHONY_ENCODING,
            "sample_rate": str(TELEPHONY_SAMPLE_RATE_HZ),
            "punctuate": "true",
            "smart_format": "true",
            "interim_results": "true",
            "endpointing": str(ASR_ENDPOINTING_MS),
            "utterance_end_ms": str(ASR_UTTERANCE_END_MS),
        }

        qs = urllib.parse.urlencode(params)
        return f"wss://api.deepgram.com/v1/listen?{qs}"

    async def _connect_within_window(self) -> bool:
        """
        Try to (re)connect until the reconnect window closes.

        Returns:
            True once connected, False if the window elapsed.
        """
        deadline = time.monotonic() + self._reconnect_window_s
        url = self._build_url()
        headers = {"Authorization": f"Token {self._api_key}"}
        attempt = 0

        while True:
            delay_s = self._backoff_ms[min(attempt, len(self._backoff_ms) - 1)] / 1000.0
            remaining = deadline - time.monotonic() - delay_s
            if remaining <= 0:
                return False

            if delay_s:
                await asyncio.sleep(delay_s)

            try:
                ws = await asyncio.wait_for(
                    self._connect(
                        url,
                        additional_headers=headers,
                        max_size=2**22,
                        ping_interval=None,
                    ),
                    timeout=remaining,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "ASR_CONNECT_FAILED",
                    "stream_sid": self._stream_sid,
                    "attempt": attempt,
                    "error": repr(e),
                })
                attempt += 1
                continue

            self._ws = ws
            self._recv_task = asyncio.create_task(self._recv_loop(ws))

            log_event({
                "event_type": "ASR_CONNECTED",
                "stream_sid": self._stream_sid,
                "attempt": attempt,
                "replay_frames": len(self._pending),
            })
            return True

    async def _drop_connection(self, ws: Any) -> None:
        """Forget ws if it is still current and close it best-effort."""
        if self._ws is not ws:
            return
        self._ws = None

        rt = self._recv_task
        self._recv_task = None
        if rt is not None and rt is not asyncio.current_task() and not rt.done():
            rt.cancel()

        try:
            await ws.close()
        except Exception:  # pylint: disable=broad-exception-caught
            pass

    def _disable(self) -> None:
        dropped = len(self._pending)
        self._pending.clear()
        self._disabled = True

        log_event({
            "event_type": "ASR_DISABLED",
            "stream_sid": self._stream_sid,
            "dropped_frames": dropped,
        })

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    def _ensure_sender(self) -> None:
        if self._sender_task is None or self._sender_task.done():
            self._sender_task = asyncio.create_task(self._sender_loop())

    async def _sender_loop(self) -> None:
        while not self._closed and not self._disabled:
            if not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            ws = self._ws
            if ws is None:
                if not await self._connect_within_window():
                    self._disable()
                    await self._emit_error("deepgram_reconnect_window_elapsed")
                    return
                continue

            frame = self._pending.popleft()
            try:
                await ws.send(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:  # pylint: disable=broad-exception-caught
                # Keep the frame for replay on the next connection
                self._pending.appendleft(frame)
                log_event({
                    "event_type": "ASR_SEND_FAILED",
                    "stream_sid": self._stream_sid,
                    "error": repr(e),
                })
                await self._drop_connection(ws)

    async def _recv_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except (TypeError, ValueError):
                    log_event({
                        "event_type": "ASR_MESSAGE_DECODE_ERROR",
                        "stream_sid": self._stream_sid,
                    })
                    continue

                if isinstance(data, dict):
                    await self._handle_message(data)

        except asyncio.CancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "ASR_RECV_FAILED",
                "stream_sid": self._stream_sid,
                "error": repr(e),
            })

        if not self._closed:
            # Socket ended underneath us; reconnect on the next frame
            await self._drop_connection(ws)

    # -------------------------------------------------------------------------
    # Message handling
    # -------------------------------------------------------------------------

    async def _handle_message(self, data: dict[str, Any]) -> None:
        msg_type = data.get("type")

        if msg_type == "UtteranceEnd":
            if not self._speech_final:
                await self._flush_final()
            return

        if msg_type != "Results":
            return

        alternatives = (data.get("channel") or {}).get("alternatives") or []
        raw_text = alternatives[0].get("transcript") if alternatives else None
        text = raw_text.strip() if isinstance(raw_text, str) else ""

        if data.get("is_final") and text:
            self._final_parts.append(text)
            if data.get("speech_final"):
                self._speech_final = True
                await self._flush_final()
            else:
                self._speech_final = False
            return

        if text:
            await self._emit_event(
                Utterance(
                    event_type=EventType.UTTERANCE,
                    ts_ms=now_ms(),
                    text=text,
                )
            )

    async def _flush_final(self) -> None:
        text = " ".join(self._final_parts)
        self._final_parts.clear()
        if not text:
            return

        await self._emit_event(
            Transcription(
                event_type=EventType.TRANSCRIPTION,
                ts_ms=now_ms(),
                text=text,
            )
        )

    async def _emit_error(self, reason: str) -> None:
        await self._emit_event(
            ServiceError(
                event_type=EventType.SERVICE_ERROR,
                ts_ms=now_ms(),
                service=Service.ASR,
                reason=reason,
            )
        )
