"""
Session controller.

Routes events between the four pipeline components of one call:

    carrier audio -> transcription -> generator -> synthesizer -> multiplexer

Components never call each other. Each one reports through its
emit_event callback, which is handle_event() below; the controller
decides what happens next.

Responsibilities:
- Greeting / seed message on stream start
- Barge-in policy (interim transcripts vs outstanding playback markers)
- Re-basing playback when a new turn reuses an interrupted interaction
- Re-enabling disabled transcription on a caller keypress
- Interaction counting
- Playback marker bookkeeping
- Teardown

NOT responsible for:
- Network I/O
- Fragment ordering (multiplexer-owned)
- Retries (adapters log and drop)
"""

from __future__ import annotations

from typing import Awaitable, Callable

from adapters.asr.base import ASRAdapter
from adapters.llm.base import LLMAdapter
from adapters.tts.base import TTSAdapter
from audio.playback import PlaybackMultiplexer
from constants import (
    BARGE_IN_MIN_CHARS,
    GREETING_INTERACTION_ID,
    GREETING_TEXT_DEFAULT,
    UNKNOWN_CALLER_NUMBER,
)
from observability.logger import log_event, now_ms
from orchestrator.events import (
    AudioChunk,
    Dtmf,
    Event,
    EventType,
    Mark,
    Media,
    ResponseFragment,
    ServiceError,
    StreamStart,
    StreamStop,
    Transcription,
    Utterance,
)
from session.call_session import CallSession


class SessionController:
    """One controller == one call."""

    def __init__(
        self,
        *,
        session: CallSession,
        greeting_text: str = GREETING_TEXT_DEFAULT,
        barge_in_min_chars: int = BARGE_IN_MIN_CHARS,
    ) -> None:
        self.session = session
        self._greeting_text = greeting_text
        self._barge_in_min_chars = barge_in_min_chars

        self._transcriber: ASRAdapter | None = None
        self._generator: LLMAdapter | None = None
        self._synthesizer: TTSAdapter | None = None
        self._multiplexer: PlaybackMultiplexer | None = None

        self._closed = False

        self._handlers: dict[EventType, Callable[[Event], Awaitable[None]]] = {
            EventType.STREAM_START: self._dispatch_stream_start,
            EventType.MEDIA: self._dispatch_media,
            EventType.MARK: self._dispatch_mark,
            EventType.DTMF: self._dispatch_dtmf,
            EventType.STREAM_STOP: self._dispatch_stream_stop,
            EventType.UTTERANCE: self._dispatch_utterance,
            EventType.TRANSCRIPTION: self._dispatch_transcription,
            EventType.RESPONSE_FRAGMENT: self._dispatch_fragment,
            EventType.AUDIO_CHUNK: self._dispatch_audio_chunk,
            EventType.SERVICE_ERROR: self._dispatch_service_error,
        }

    # ------------------------------------------------------------------
    # Wiring (called by SessionGateway)
    # ------------------------------------------------------------------

    def attach_transcriber(self, adapter: ASRAdapter) -> None:
        self._transcriber = adapter

    def attach_generator(self, adapter: LLMAdapter) -> None:
        self._generator = adapter

    def attach_synthesizer(self, adapter: TTSAdapter) -> None:
        self._synthesizer = adapter

    def attach_multiplexer(self, multiplexer: PlaybackMultiplexer) -> None:
        self._multiplexer = multiplexer

    # ------------------------------------------------------------------
    # Playback marker bookkeeping (multiplexer callbacks)
    # ------------------------------------------------------------------

    def register_mark(self, label: str) -> None:
        self.session.marks.add(label)

    def has_pending_playback(self) -> bool:
        return bool(self.session.marks)

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """Single entry point for carrier and component events."""
        if self._closed:
            return

        handler = self._handlers.get(event.event_type)
        if handler is None:
            log_event({
                **self.session.log_context(),
                "event_type": "UNHANDLED_EVENT",
                "event": event.event_type.value,
            })
            return

        await handler(event)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def on_stream_start(self, event: StreamStart) -> None:
        session = self.session
        session.stream_sid = event.stream_sid
        session.call_sid = event.call_sid
        session.caller_number = event.caller_number or UNKNOWN_CALLER_NUMBER
        session.interaction_count = 0
        session.marks.clear()

        seed = event.first_message

        log_event({
            **session.log_context(),
            "event_type": "CALL_STARTED",
            "caller_number": session.caller_number,
            "outbound": seed is not None,
        })

        if seed is not None:
            # The seed is not a caller turn; the counter stays put
            if self._generator is not None:
                await self._generator.generate(seed, session.interaction_count)
            return

        if self._synthesizer is not None:
            greeting = ResponseFragment(
                event_type=EventType.RESPONSE_FRAGMENT,
                ts_ms=now_ms(),
                interaction_id=GREETING_INTERACTION_ID,
                sequence_index=None,
                text=self._greeting_text,
                is_final=True,
            )
            await self._synthesizer.generate(greeting, greeting.interaction_id)

    def on_inbound_audio(self, payload: str) -> None:
        if self._transcriber is not None:
            self._transcriber.send(payload)

    def on_utterance(self, text: str) -> None:
        """Interim transcript: barge-in only, never starts generation."""
        if not self.has_pending_playback():
            return
        if len(text) < self._barge_in_min_chars:
            return
        if self._multiplexer is None:
            return

        if self._multiplexer.interrupt():
            log_event({
                **self.session.log_context(),
                "event_type": "BARGE_IN",
                "utterance_chars": len(text),
                "interaction_count": self.session.interaction_count,
            })

    async def on_final_transcription(self, text: str) -> None:
        if not text.strip():
            return

        session = self.session
        interaction_id = session.interaction_count

        log_event({
            **session.log_context(),
            "event_type": "CALLER_TURN",
            "interaction_id": interaction_id,
            "chars": len(text),
        })

        if self._generator is not None:
            await self._generator.generate(text, interaction_id)
        session.interaction_count += 1

    async def on_generated_fragment(self, fragment: ResponseFragment) -> None:
        if (
            fragment.opens_turn
            and fragment.sequence_index is not None
            and self._multiplexer is not None
        ):
            # The seed and the first caller reply share an interaction id
            self._multiplexer.rebase(fragment.interaction_id, fragment.sequence_index)

        if self._synthesizer is not None:
            await self._synthesizer.generate(fragment, fragment.interaction_id)

    def on_synthesized_chunk(self, chunk: AudioChunk) -> None:
        if self._multiplexer is not None:
            self._multiplexer.push(chunk)

    def on_marker_acknowledged(self, label: str) -> None:
        self.session.marks.discard(label)

    def on_keypress(self, digit: str) -> None:
        """Any key re-enables transcription that gave up reconnecting."""
        transcriber = self._transcriber
        reset = transcriber is not None and transcriber.disabled

        log_event({
            **self.session.log_context(),
            "event_type": "CALLER_KEYPRESS",
            "digit": digit,
            "transcription_reset": reset,
        })

        if reset and transcriber is not None:
            transcriber.reset()

    async def on_stream_stop(self) -> None:
        await self.close()

    async def close(self) -> None:
        """Tear down every component. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._multiplexer is not None:
            self._multiplexer.close()
        if self._transcriber is not None:
            await self._transcriber.close()
        if self._generator is not None:
            await self._generator.close()
        if self._synthesizer is not None:
            await self._synthesizer.close()

        log_event({
            **self.session.log_context(),
            "event_type": "CALL_ENDED",
            "interaction_count": self.session.interaction_count,
            "duration_s": round(self.session.duration_s(), 3),
        })

        self.session.marks.clear()

    # ------------------------------------------------------------------
    # Dispatch shims (typed handlers above take payloads, not events)
    # ------------------------------------------------------------------

    async def _dispatch_stream_start(self, event: Event) -> None:
        assert isinstance(event, StreamStart)
        await self.on_stream_start(event)

    async def _dispatch_media(self, event: Event) -> None:
        assert isinstance(event, Media)
        self.on_inbound_audio(event.payload)

    async def _dispatch_mark(self, event: Event) -> None:
        assert isinstance(event, Mark)
        self.on_marker_acknowledged(event.name)

    async def _dispatch_dtmf(self, event: Event) -> None:
        assert isinstance(event, Dtmf)
        self.on_keypress(event.digit)

    async def _dispatch_stream_stop(self, event: Event) -> None:
        assert isinstance(event, StreamStop)
        await self.on_stream_stop()

    async def _dispatch_utterance(self, event: Event) -> None:
        assert isinstance(event, Utterance)
        self.on_utterance(event.text)

    async def _dispatch_transcription(self, event: Event) -> None:
        assert isinstance(event, Transcription)
        await self.on_final_transcription(event.text)

    async def _dispatch_fragment(self, event: Event) -> None:
        assert isinstance(event, ResponseFragment)
        await self.on_generated_fragment(event)

    async def _dispatch_audio_chunk(self, event: Event) -> None:
        assert isinstance(event, AudioChunk)
        self.on_synthesized_chunk(event)

    async def _dispatch_service_error(self, event: Event) -> None:
        assert isinstance(event, ServiceError)
        log_event({
            **self.session.log_context(),
            "event_type": "SERVICE_ERROR",
            "service": event.service.value,
            "reason": event.reason,
            "interaction_id": event.interaction_id,
            "sequence_index": event.sequence_index,
        })
