"""
Unified event definitions for a call session.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- Every event the session controller reacts to exists here.
- No clocks, no timers, no async, no side effects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from orchestrator.enums.service import Service


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the session controller.

    Every event type must be explicitly handled or explicitly ignored
    by SessionController.handle_event.
    """

    # ------------------------------------------------------------------
    # Carrier media stream (inbound)
    # ------------------------------------------------------------------
    STREAM_START = "STREAM_START"
    MEDIA = "MEDIA"
    MARK = "MARK"
    DTMF = "DTMF"
    STREAM_STOP = "STREAM_STOP"

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------
    UTTERANCE = "UTTERANCE"
    TRANSCRIPTION = "TRANSCRIPTION"

    # ------------------------------------------------------------------
    # Response generation
    # ------------------------------------------------------------------
    RESPONSE_FRAGMENT = "RESPONSE_FRAGMENT"

    # ------------------------------------------------------------------
    # Speech synthesis
    # ------------------------------------------------------------------
    AUDIO_CHUNK = "AUDIO_CHUNK"

    # ------------------------------------------------------------------
    # Upstream failures (already recovered by the adapter)
    # ------------------------------------------------------------------
    SERVICE_ERROR = "SERVICE_ERROR"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Carrier Media Stream Events
# =============================================================================

@dataclass(frozen=True)
class StreamStart(Event):
    """Carrier opened the media stream for a call."""
    stream_sid: str
    call_sid: str
    custom_parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def first_message(self) -> str | None:
        """Optional seed message for outbound calls."""
        value = self.custom_parameters.get("firstMessage")
        return value if isinstance(value, str) and value else None

    @property
    def caller_number(self) -> str | None:
        value = self.custom_parameters.get("callerNumber")
        return value if isinstance(value, str) and value else None


@dataclass(frozen=True)
class Media(Event):
    """One inbound audio payload (base64 mu-law, carrier encoding)."""
    payload: str


@dataclass(frozen=True)
class Mark(Event):
    """Carrier finished playing the audio segment named `name`."""
    name: str
    sequence_number: int | None = None


@dataclass(frozen=True)
class Dtmf(Event):
    """Caller pressed a key on the phone keypad."""
    digit: str


@dataclass(frozen=True)
class StreamStop(Event):
    """Carrier closed the media stream."""


# =============================================================================
# Transcription Events
# =============================================================================

@dataclass(frozen=True)
class Utterance(Event):
    """
    Interim recognition result.

    Low latency, may be revised. Used only for barge-in detection.
    """
    text: str


@dataclass(frozen=True)
class Transcription(Event):
    """Finalized caller turn text."""
    text: str


# =============================================================================
# Response Generation Events
# =============================================================================

@dataclass(frozen=True)
class ResponseFragment(Event):
    """
    One independently speakable piece of a generated response.

    sequence_index is None only for a whole, non-streamed response
    (e.g. the greeting). opens_turn marks the first fragment of one
    generate() call.
    """
    interaction_id: int
    sequence_index: int | None
    text: str
    is_final: bool = False
    opens_turn: bool = False


# =============================================================================
# Speech Synthesis Events
# =============================================================================

@dataclass(frozen=True)
class AudioChunk(Event):
    """
    Synthesized audio for exactly one fragment.

    Completion order across chunks is unordered; sequence_index and
    interaction_id are carried unchanged from the fragment.
    """
    interaction_id: int
    sequence_index: int | None
    label: str
    audio: bytes


# =============================================================================
# Upstream Failure Events
# =============================================================================

@dataclass(frozen=True)
class ServiceError(Event):
    """
    An upstream service failed and the adapter dropped its output.

    The session continues; this event exists for observability only.
    """
    service: Service
    reason: str
    interaction_id: int | None = None
    sequence_index: int | None = None
