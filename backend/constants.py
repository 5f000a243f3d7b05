"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for behavioral defaults in the call orchestrator.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Values that operators tune per deployment are read through AppConfig,
  which falls back to the defaults below.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Telephony audio (Twilio Media Streams: mu-law @ 8kHz)
# =============================================================================

TELEPHONY_SAMPLE_RATE_HZ: Final[int] = 8_000
TELEPHONY_ENCODING: Final[str] = "mulaw"

# Speechmatics returns PCM16 @ 16kHz; resampled down before sending to the carrier
TTS_PCM_SAMPLE_RATE_HZ: Final[int] = 16_000
PROVIDER_CHUNK_SIZE: Final[int] = 4096

# =============================================================================
# Barge-in
# =============================================================================

# Partial transcripts shorter than this never interrupt playback
BARGE_IN_MIN_CHARS: Final[int] = 5

# =============================================================================
# Playback ordering
# =============================================================================

# How long the multiplexer waits for a missing sequence index before
# skipping it and draining later chunks
PLAYBACK_GAP_TIMEOUT_MS: Final[int] = 3_000

# =============================================================================
# Transcription (Deepgram live)
# =============================================================================

ASR_MODEL_DEFAULT: Final[str] = "nova-2"
ASR_ENDPOINTING_MS: Final[int] = 200
ASR_UTTERANCE_END_MS: Final[int] = 1_000

# Reconnect attempts must succeed within this window for buffered audio
# to be replayed; otherwise transcription is disabled until reset()
ASR_RECONNECT_WINDOW_MS: Final[int] = 5_000
ASR_RECONNECT_BACKOFF_MS: Final[Tuple[int, ...]] = (0, 250, 500, 1_000, 2_000)

# Unsent audio kept for replay (frames). 10s of 20ms frames.
ASR_REPLAY_BUFFER_FRAMES: Final[int] = 500

# =============================================================================
# Response fragmenting
# =============================================================================

FRAGMENT_DELIMITER: Final[str] = "•"
SENTENCE_END_CHARS: Final[Tuple[str, ...]] = (".", "!", "?")

# Line prefix the model uses to request a tool call
TOOL_CALL_PREFIX: Final[str] = "@"

# Upper bound on tool round trips within one interaction
MAX_TOOL_ROUNDS: Final[int] = 3

# =============================================================================
# Conversation context
# =============================================================================

MAX_CONTEXT_TURNS: Final[int] = 8
MAX_CONTEXT_CHARS: Final[int] = 6_000

# Truncation rule:
# While (turn_count > MAX_CONTEXT_TURNS) OR (total_chars > MAX_CONTEXT_CHARS):
#     drop oldest turn

# =============================================================================
# Session defaults
# =============================================================================

GREETING_TEXT_DEFAULT: Final[str] = (
    "Welcome to Bart's Automotive. • How can I help you today?"
)
OUTBOUND_FIRST_MESSAGE_DEFAULT: Final[str] = "Hi, how are you?"
UNKNOWN_CALLER_NUMBER: Final[str] = "Unknown"

# Whole-response fragments (greeting) are attributed to the first interaction
GREETING_INTERACTION_ID: Final[int] = 0
