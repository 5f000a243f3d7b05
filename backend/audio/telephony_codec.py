"""
Telephony audio conversion.

The carrier plays mu-law @ 8kHz. Providers that only return PCM16 at a
higher rate are converted here before their audio becomes an AudioChunk.
"""

import audioop

import numpy as np
from scipy import signal

from constants import TELEPHONY_SAMPLE_RATE_HZ, TTS_PCM_SAMPLE_RATE_HZ


class TelephonyCodec:
    """Converts provider PCM16 audio to carrier mu-law."""

    def __init__(self, source_rate_hz: int = TTS_PCM_SAMPLE_RATE_HZ):
        if source_rate_hz % TELEPHONY_SAMPLE_RATE_HZ != 0:
            raise ValueError(
                f"source rate {source_rate_hz} is not a multiple of "
                f"{TELEPHONY_SAMPLE_RATE_HZ}"
            )
        self._decimation = source_rate_hz // TELEPHONY_SAMPLE_RATE_HZ

    def encode(self, pcm_bytes: bytes) -> bytes:
        """Convert PCM16 @ source rate to mu-law @ 8kHz."""
        if not pcm_bytes:
            return b""

        # Drop a trailing half sample rather than misalign the stream
        if len(pcm_bytes) % 2:
            pcm_bytes = pcm_bytes[:-1]

        samples = np.frombuffer(pcm_bytes, dtype=np.int16)

        if self._decimation > 1:
            samples = signal.resample_poly(samples, 1, self._decimation)

        # Clip and convert back to int16
        samples_8k = np.clip(samples, -32768, 32767).astype(np.int16)

        return audioop.lin2ulaw(samples_8k.tobytes(), 2)
