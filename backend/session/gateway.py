"""
Session gateway.

Responsibilities:
- Decode inbound carrier messages into events
- Drop protocol violations (bad JSON, unknown events, missing fields,
  anything before `start`) with a log line and no state change
- Build the call's components on `start` and wire them to the controller
- Forward events into the controller
- Tear everything down on `stop` or socket close

NOT responsible for:
- Barge-in, ordering, or counting (controller / multiplexer)
- Writing to the socket (OutboundChannel)
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TYPE_CHECKING

from adapters.asr.base import ASRAdapter
from adapters.asr.deepgram_streaming import DeepgramStreamingASRAdapter
from adapters.llm.base import LLMAdapter
from adapters.llm.streaming import StreamingLLMAdapter
from adapters.tts.base import TTSAdapter
from adapters.tts.elevenlabs import ElevenLabsTTSAdapter
from adapters.tts.speechmatics import SpeechmaticsTTSAdapter
from audio.playback import PlaybackMultiplexer
from config import ConfigError
from observability.logger import log_event, now_ms
from orchestrator.events import Event, StreamStart, StreamStop
from protocol.media_stream import ProtocolError, decode_inbound
from session.call_session import CallSession
from session.controller import SessionController
from session.outbound import OutboundChannel

if TYPE_CHECKING:
    from config import AppConfig


EmitFn = Callable[[Event], Awaitable[None]]


class SessionGateway:
    """
    One gateway == one carrier WebSocket.

    The controller (and every component) exists only between `start`
    and `stop`.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        llm_client: Any,  # Type: openai.AsyncOpenAI
        send_text: Callable[[str], Awaitable[None]],
    ) -> None:
        self._config = config
        self._llm_client = llm_client
        self._send_text = send_text

        self.controller: SessionController | None = None
        self.outbound: OutboundChannel | None = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        """True once the carrier sent `stop` or the gateway was closed."""
        return self._stopped

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_text_message(self, raw: str) -> None:
        if self._stopped:
            return

        try:
            event = decode_inbound(raw, ts_ms=now_ms())
        except ProtocolError as e:
            log_event({
                "event_type": "PROTOCOL_VIOLATION",
                "stream_sid": self._stream_sid(),
                "error_type": type(e).__name__,
                "error": str(e),
                "payload_preview": raw[:100],
            })
            return

        if event is None:
            return

        if isinstance(event, StreamStart):
            if self.controller is not None:
                log_event({
                    "event_type": "PROTOCOL_VIOLATION",
                    "stream_sid": self._stream_sid(),
                    "error_type": "DuplicateStart",
                    "error": "stream already started",
                })
                return
            await self._start(event)
            return

        if self.controller is None:
            log_event({
                "event_type": "EVENT_BEFORE_START",
                "event": event.event_type.value,
            })
            return

        await self.controller.handle_event(event)

        if isinstance(event, StreamStop):
            await self.close(reason="carrier_stop")

    async def close(self, reason: str | None = None) -> None:
        """Release the call. Idempotent."""
        if self._stopped:
            return
        self._stopped = True

        if self.controller is not None:
            await self.controller.close()
        if self.outbound is not None:
            await self.outbound.close()

        log_event({
            "event_type": "GATEWAY_CLOSED",
            "stream_sid": self._stream_sid(),
            "reason": reason,
        })

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def _start(self, start: StreamStart) -> None:
        cfg = self._config
        session = CallSession(stream_sid=start.stream_sid, call_sid=start.call_sid)

        controller = SessionController(
            session=session,
            greeting_text=cfg.greeting_text,
            barge_in_min_chars=cfg.barge_in_min_chars,
        )
        emit = controller.handle_event

        outbound = OutboundChannel(stream_sid=start.stream_sid, send_text=self._send_text)
        outbound.start()

        controller.attach_multiplexer(
            PlaybackMultiplexer(
                sink=outbound,
                on_audio_sent=controller.register_mark,
                has_pending_playback=controller.has_pending_playback,
                gap_timeout_ms=cfg.playback_gap_timeout_ms,
                stream_sid=start.stream_sid,
            )
        )
        controller.attach_transcriber(self._build_transcriber(emit, start.stream_sid))
        controller.attach_generator(self._build_generator(emit, start.stream_sid))
        controller.attach_synthesizer(self._build_synthesizer(emit, start.stream_sid))

        self.controller = controller
        self.outbound = outbound

        await controller.handle_event(start)

    # ------------------------------------------------------------------
    # Component construction (overridable in tests)
    # ------------------------------------------------------------------

    def _build_transcriber(self, emit: EmitFn, stream_sid: str) -> ASRAdapter:
        cfg = self._config
        if not cfg.deepgram_api_key:
            raise ConfigError("DEEPGRAM_API_KEY missing")

        return DeepgramStreamingASRAdapter(
            emit_event=emit,
            api_key=cfg.deepgram_api_key,
            model=cfg.deepgram_model,
            stream_sid=stream_sid,
            reconnect_window_ms=cfg.asr_reconnect_window_ms,
        )

    def _build_generator(self, emit: EmitFn, stream_sid: str) -> LLMAdapter:
        return StreamingLLMAdapter(
            emit_event=emit,
            client=self._llm_client,
            model=self._config.llm_model,
            stream_sid=stream_sid,
            provider=self._config.llm_provider,
        )

    def _build_synthesizer(self, emit: EmitFn, stream_sid: str) -> TTSAdapter:
        cfg = self._config
        provider = cfg.tts_provider.lower()

        if provider == "speechmatics":
            if not cfg.speechmatics_api_key:
                raise ConfigError("SPEECHMATICS_API_KEY missing")
            return SpeechmaticsTTSAdapter(
                emit_event=emit,
                api_key=cfg.speechmatics_api_key,
                voice=cfg.speechmatics_voice,
                stream_sid=stream_sid,
            )

        if provider == "elevenlabs":
            if not cfg.elevenlabs_api_key:
                raise ConfigError("ELEVENLABS_API_KEY missing")
            return ElevenLabsTTSAdapter(
                emit_event=emit,
                api_key=cfg.elevenlabs_api_key,
                voice_id=cfg.elevenlabs_voice_id,
                model_id=cfg.elevenlabs_model_id,
                stream_sid=stream_sid,
            )

        raise ConfigError(f"Unknown TTS_PROVIDER: {cfg.tts_provider}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _stream_sid(self) -> str | None:
        if self.controller is None:
            return None
        return self.controller.session.stream_sid
