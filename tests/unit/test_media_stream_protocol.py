# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json

import pytest

from orchestrator.events import Dtmf, EventType, Mark, Media, StreamStart, StreamStop
from protocol.media_stream import (
    InvalidMessage,
    UnknownEvent,
    decode_inbound,
    encode_clear,
    encode_mark,
    encode_media,
)


def test_decode_start_with_custom_parameters():
    raw = json.dumps({
        "event": "start",
        "start": {
            "streamSid": "MZ1",
            "callSid": "CA1",
            "customParameters": {"firstMessage": "Hello", "callerNumber": "+1555"},
        },
    })

    event = decode_inbound(raw, ts_ms=10)

    assert isinstance(event, StreamStart)
    assert event.stream_sid == "MZ1"
    assert event.call_sid == "CA1"
    assert event.first_message == "Hello"
    assert event.caller_number == "+1555"
    assert event.ts_ms == 10


def test_decode_start_without_parameters():
    raw = json.dumps({"event": "start", "start": {"streamSid": "MZ1", "callSid": "CA1"}})

    event = decode_inbound(raw, ts_ms=0)

    assert isinstance(event, StreamStart)
    assert event.first_message is None
    assert event.caller_number is None


def test_decode_media_mark_stop():
    media = decode_inbound(json.dumps({"event": "media", "media": {"payload": "AAAA"}}), ts_ms=0)
    mark = decode_inbound(
        json.dumps({"event": "mark", "sequenceNumber": "7", "mark": {"name": "3-1"}}),
        ts_ms=0,
    )
    stop = decode_inbound(json.dumps({"event": "stop"}), ts_ms=0)

    assert isinstance(media, Media) and media.payload == "AAAA"
    assert isinstance(mark, Mark) and mark.name == "3-1" and mark.sequence_number == 7
    assert isinstance(stop, StreamStop)


def test_connected_is_informational():
    assert decode_inbound(json.dumps({"event": "connected", "protocol": "Call"}), ts_ms=0) is None


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        json.dumps(["event", "media"]),
        json.dumps({"event": "media"}),
        json.dumps({"event": "media", "media": {}}),
        json.dumps({"event": "mark", "mark": {"name": ""}}),
        json.dumps({"event": "start", "start": {"streamSid": "MZ1"}}),
    ],
)
def test_malformed_messages_raise_invalid_message(raw: str):
    with pytest.raises(InvalidMessage):
        decode_inbound(raw, ts_ms=0)


def test_unknown_event_raises():
    with pytest.raises(UnknownEvent):
        decode_inbound(json.dumps({"event": "teleport"}), ts_ms=0)


def test_outbound_encoders():
    media = encode_media(stream_sid="MZ1", audio=b"\xff\x7f")

    assert media["event"] == "media"
    assert media["streamSid"] == "MZ1"
    assert base64.b64decode(media["media"]["payload"]) == b"\xff\x7f"

    assert encode_mark(stream_sid="MZ1", name="2-0") == {
        "event": "mark",
        "streamSid": "MZ1",
        "mark": {"name": "2-0"},
    }
    assert encode_clear(stream_sid="MZ1") == {"event": "clear", "streamSid": "MZ1"}


def test_keypress_is_decoded():
    event = decode_inbound(
        json.dumps({
            "event": "dtmf",
            "streamSid": "MZ1",
            "sequenceNumber": "5",
            "dtmf": {"track": "inbound_track", "digit": "7"},
        }),
        ts_ms=3,
    )

    assert isinstance(event, Dtmf)
    assert event.digit == "7"
    assert event.event_type is EventType.DTMF


def test_keypress_without_digit_is_rejected():
    with pytest.raises(InvalidMessage):
        decode_inbound(json.dumps({"event": "dtmf", "dtmf": {"track": "inbound_track"}}), ts_ms=0)
