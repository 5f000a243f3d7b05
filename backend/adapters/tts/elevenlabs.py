"""
ElevenLabs TTS provider.

Requests carrier-native mu-law 8kHz output directly, so no resampling
is needed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from elevenlabs.client import AsyncElevenLabs

from adapters.tts.base import TTSAdapter
from orchestrator.events import Event

_OUTPUT_FORMAT = "ulaw_8000"


class ElevenLabsTTSAdapter(TTSAdapter):
    """ElevenLabs streaming-endpoint synthesizer, collected per fragment."""

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Awaitable[None]],
        api_key: str,
        voice_id: str = "21m00Tcm4TlvDq8ikWAM",  # default ElevenLabs voice
        model_id: str = "eleven_turbo_v2",
        stream_sid: str | None = None,
    ) -> None:
        super().__init__(emit_event=emit_event, stream_sid=stream_sid)
        self._voice_id = voice_id
        self._model_id = model_id
        self._client = AsyncElevenLabs(api_key=api_key)

    async def _synthesize(self, text: str) -> bytes:
        audio = bytearray()

        async for chunk in self._client.text_to_speech.stream(
            voice_id=self._voice_id,
            model_id=self._model_id,
            text=text,
            output_format=_OUTPUT_FORMAT,
        ):
            if chunk:
                audio.extend(chunk)

        return bytes(audio)
