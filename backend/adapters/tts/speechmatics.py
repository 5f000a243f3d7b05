"""
Speechmatics TTS provider.

One synthesis call per fragment via the Speechmatics async TTS API.
Output is PCM16 16kHz, converted to carrier mu-law 8kHz by
TelephonyCodec before it leaves the adapter.

This module intentionally contains provider-specific logic only; fan-out,
labels, and failure handling live in adapters.tts.base.
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable

from speechmatics.tts import AsyncClient, OutputFormat, Voice # pyright: ignore[reportMissingTypeStubs] # pylint: disable=no-name-in-module, import-error

from adapters.tts.base import TTSAdapter
from audio.telephony_codec import TelephonyCodec
from constants import PROVIDER_CHUNK_SIZE, TTS_PCM_SAMPLE_RATE_HZ
from orchestrator.events import Event


class SpeechmaticsTTSAdapter(TTSAdapter):
    """Speechmatics chunked (non-streaming) synthesizer."""

    _VOICE_MAP: dict[str, Voice] = {
        "sarah": Voice.SARAH,
        "theo": Voice.THEO,
        "megan": Voice.MEGAN,
    }

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Awaitable[None]],
        api_key: str,
        voice: str = "sarah",
        stream_sid: str | None = None,
    ) -> None:
        super().__init__(emit_event=emit_event, stream_sid=stream_sid)
        self._api_key = api_key
        self._voice = self._resolve_voice(voice)
        self._codec = TelephonyCodec(source_rate_hz=TTS_PCM_SAMPLE_RATE_HZ)

    async def _synthesize(self, text: str) -> bytes:
        pcm = bytearray()

        async with AsyncClient(api_key=self._api_key) as client:
            async with await client.generate(
                text=text,
                voice=self._voice,
                output_format=OutputFormat.RAW_PCM_16000,
            ) as response:
                async for chunk in response.content.iter_chunked(PROVIDER_CHUNK_SIZE):
                    pcm.extend(chunk)

        return self._codec.encode(bytes(pcm))

    @classmethod
    def _resolve_voice(cls, voice: str) -> Voice:
        """
        Convert user-facing voice string to Speechmatics Voice enum.

        Defaults to SARAH if unknown.
        """
        return cls._VOICE_MAP.get(voice.lower(), Voice.SARAH)
