# backend/protocol/media_stream.py
"""
JSON framing helpers for the carrier media stream (Twilio Media Streams).

Inbound (carrier -> server), one JSON object per text message:

    {"event": "connected", ...}                                  ignored
    {"event": "start", "start": {"streamSid", "callSid",
                                 "customParameters": {...}}}
    {"event": "media", "media": {"payload": "<base64 mu-law>"}}
    {"event": "mark", "sequenceNumber": "7", "mark": {"name": "3-1"}}
    {"event": "dtmf", "dtmf": {"track": "inbound_track", "digit": "1"}}
    {"event": "stop"}

Outbound (server -> carrier):

    {"event": "media", "streamSid": ..., "media": {"payload": ...}}
    {"event": "mark",  "streamSid": ..., "mark": {"name": ...}}
    {"event": "clear", "streamSid": ...}

Usage example:

    try:
        event = decode_inbound(raw, ts_ms=now_ms())
    except ProtocolError as e:
        log_event({"event_type": "PROTOCOL_VIOLATION", "error": str(e)})
        return

    if event is None:
        return  # informational message, nothing to do
"""

from __future__ import annotations

import base64
import json
from typing import Any

from orchestrator.events import (
    Dtmf,
    Event,
    EventType,
    Mark,
    Media,
    StreamStart,
    StreamStop,
)


# -------------------------
# Exceptions
# -------------------------

class ProtocolError(Exception):
    """Base class for inbound media stream protocol violations."""


class InvalidMessage(ProtocolError):
    """
    Raised when a message is not valid JSON or lacks a required field.

    The message is unsafe to act on and must be dropped.
    """


class UnknownEvent(ProtocolError):
    """Raised when the `event` discriminant is not one we understand."""


# Informational carrier events with no session effect
_IGNORED_EVENTS = frozenset({"connected"})


# -------------------------
# Low-level helpers
# -------------------------

def _require(obj: Any, key: str, where: str) -> Any:
    if not isinstance(obj, dict) or key not in obj:
        raise InvalidMessage(f"missing field {where}.{key}")
    return obj[key]


def _require_str(obj: Any, key: str, where: str) -> str:
    value = _require(obj, key, where)
    if not isinstance(value, str) or not value:
        raise InvalidMessage(f"field {where}.{key} must be a non-empty string")
    return value


def _optional_int(value: Any) -> int | None:
    # Twilio sends sequence numbers as strings
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# -------------------------
# Carrier -> Server
# -------------------------

def decode_inbound(raw: str, *, ts_ms: int) -> Event | None:
    """
    Decode one inbound carrier message into an event.

    Returns None for informational messages that carry no session effect.

    Raises:
        InvalidMessage: malformed JSON or missing fields
        UnknownEvent: unrecognized `event` value
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidMessage(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise InvalidMessage("message is not a JSON object")

    kind = data.get("event")

    if kind in _IGNORED_EVENTS:
        return None

    if kind == "start":
        start = _require(data, "start", "message")
        params = start.get("customParameters") if isinstance(start, dict) else None
        return StreamStart(
            event_type=EventType.STREAM_START,
            ts_ms=ts_ms,
            stream_sid=_require_str(start, "streamSid", "start"),
            call_sid=_require_str(start, "callSid", "start"),
            custom_parameters=dict(params) if isinstance(params, dict) else {},
        )

    if kind == "media":
        media = _require(data, "media", "message")
        payload = _require(media, "payload", "media")
        if not isinstance(payload, str):
            raise InvalidMessage("field media.payload must be a string")
        return Media(
            event_type=EventType.MEDIA,
            ts_ms=ts_ms,
            payload=payload,
        )

    if kind == "mark":
        mark = _require(data, "mark", "message")
        return Mark(
            event_type=EventType.MARK,
            ts_ms=ts_ms,
            name=_require_str(mark, "name", "mark"),
            sequence_number=_optional_int(data.get("sequenceNumber")),
        )

    if kind == "dtmf":
        dtmf = _require(data, "dtmf", "message")
        return Dtmf(
            event_type=EventType.DTMF,
            ts_ms=ts_ms,
            digit=_require_str(dtmf, "digit", "dtmf"),
        )

    if kind == "stop":
        return StreamStop(event_type=EventType.STREAM_STOP, ts_ms=ts_ms)

    raise UnknownEvent(f"unknown event: {kind!r}")


# -------------------------
# Server -> Carrier
# -------------------------

def encode_media(*, stream_sid: str, audio: bytes) -> dict[str, Any]:
    """Outbound media message for mu-law 8kHz audio."""
    return {
        "event": "media",
        "streamSid": stream_sid,
        "media": {"payload": base64.b64encode(audio).decode("ascii")},
    }


def encode_mark(*, stream_sid: str, name: str) -> dict[str, Any]:
    return {
        "event": "mark",
        "streamSid": stream_sid,
        "mark": {"name": name},
    }


def encode_clear(*, stream_sid: str) -> dict[str, Any]:
    """Ask the carrier to discard all audio it has buffered but not played."""
    return {
        "event": "clear",
        "streamSid": stream_sid,
    }
