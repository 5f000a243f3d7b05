# pylint: disable=missing-module-docstring,missing-function-docstring,protected-access

import asyncio
import json
from typing import Any

import pytest

from adapters.tts.base import chunk_label
from config import AppConfig, ConfigError
from orchestrator.events import AudioChunk, EventType, ResponseFragment
from session.gateway import SessionGateway


class FakeTranscriber:
    def __init__(self) -> None:
        self.payloads: list[str] = []
        self.closed = False
        self.disabled = False
        self.resets = 0

    def send(self, payload: str) -> None:
        self.payloads.append(payload)

    def reset(self) -> None:
        self.disabled = False
        self.resets += 1

    async def close(self) -> None:
        self.closed = True


class FakeGenerator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []

    async def generate(self, text: str, interaction_id: int) -> None:
        self.calls.append((text, interaction_id))

    async def close(self) -> None:
        pass


class EchoSynthesizer:
    """Turns every fragment into audio immediately."""

    def __init__(self, emit: Any) -> None:
        self._emit = emit

    async def generate(self, fragment: ResponseFragment, interaction_id: int) -> None:
        await self._emit(
            AudioChunk(
                event_type=EventType.AUDIO_CHUNK,
                ts_ms=0,
                interaction_id=interaction_id,
                sequence_index=fragment.sequence_index,
                label=chunk_label(interaction_id, fragment.sequence_index),
                audio=fragment.text.encode(),
            )
        )

    async def close(self) -> None:
        pass


class FakeGateway(SessionGateway):
    def __init__(self) -> None:
        self.written: list[dict[str, Any]] = []

        async def send_text(text: str) -> None:
            self.written.append(json.loads(text))

        super().__init__(config=AppConfig(greeting_text="Hi there."), llm_client=None, send_text=send_text)
        self.transcriber = FakeTranscriber()
        self.generator = FakeGenerator()

    def _build_transcriber(self, emit, stream_sid):  # type: ignore[override]
        return self.transcriber

    def _build_generator(self, emit, stream_sid):  # type: ignore[override]
        return self.generator

    def _build_synthesizer(self, emit, stream_sid):  # type: ignore[override]
        return EchoSynthesizer(emit)


def start_msg(**params: str) -> str:
    return json.dumps({
        "event": "start",
        "start": {"streamSid": "MZ1", "callSid": "CA1", "customParameters": params},
    })


async def spin(times: int = 20) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_events_before_start_are_ignored(logs):
    gw = FakeGateway()

    await gw.on_text_message(json.dumps({"event": "media", "media": {"payload": "AAAA"}}))
    await gw.on_text_message(json.dumps({"event": "mark", "mark": {"name": "0"}}))

    assert gw.controller is None
    assert gw.transcriber.payloads == []
    assert len(logs.of("EVENT_BEFORE_START")) == 2


@pytest.mark.asyncio
async def test_protocol_violations_are_logged_and_ignored(logs):
    gw = FakeGateway()
    await gw.on_text_message(start_msg())

    await gw.on_text_message("{broken")
    await gw.on_text_message(json.dumps({"event": "teleport"}))
    await gw.on_text_message(json.dumps({"event": "media", "media": {}}))

    violations = logs.of("PROTOCOL_VIOLATION")
    assert [v["error_type"] for v in violations] == [
        "InvalidMessage",
        "UnknownEvent",
        "InvalidMessage",
    ]
    assert gw.transcriber.payloads == []
    assert not gw.stopped


@pytest.mark.asyncio
async def test_greeting_reaches_the_carrier_with_label_zero():
    gw = FakeGateway()

    await gw.on_text_message(json.dumps({"event": "connected"}))
    await gw.on_text_message(start_msg())
    await spin()

    assert gw.generator.calls == []
    assert [m["event"] for m in gw.written] == ["media", "mark"]
    assert gw.written[1]["mark"]["name"] == "0"
    assert gw.controller is not None
    assert gw.controller.session.marks == {"0"}

    await gw.on_text_message(json.dumps({"event": "mark", "mark": {"name": "0"}}))
    assert gw.controller.session.marks == set()
    await gw.close()


@pytest.mark.asyncio
async def test_seeded_call_starts_generation():
    gw = FakeGateway()

    await gw.on_text_message(start_msg(firstMessage="Hello", callerNumber="+1555"))

    assert gw.generator.calls == [("Hello", 0)]
    assert gw.controller is not None
    assert gw.controller.session.caller_number == "+1555"
    await gw.close()


@pytest.mark.asyncio
async def test_duplicate_start_is_ignored(logs):
    gw = FakeGateway()

    await gw.on_text_message(start_msg())
    controller = gw.controller
    await gw.on_text_message(start_msg())

    assert gw.controller is controller
    assert logs.of("PROTOCOL_VIOLATION")[0]["error_type"] == "DuplicateStart"
    await gw.close()


@pytest.mark.asyncio
async def test_media_is_forwarded_and_stop_tears_down():
    gw = FakeGateway()
    await gw.on_text_message(start_msg())

    await gw.on_text_message(json.dumps({"event": "media", "media": {"payload": "AAAA"}}))
    await gw.on_text_message(json.dumps({"event": "stop"}))

    assert gw.transcriber.payloads == ["AAAA"]
    assert gw.transcriber.closed
    assert gw.stopped
    assert gw.controller is not None and gw.controller.closed

    # Nothing is processed after stop
    await gw.on_text_message(json.dumps({"event": "media", "media": {"payload": "BBBB"}}))
    assert gw.transcriber.payloads == ["AAAA"]


def test_unknown_tts_provider_is_a_config_error():
    gw = SessionGateway(
        config=AppConfig(tts_provider="nope"),
        llm_client=None,
        send_text=lambda text: asyncio.sleep(0),
    )

    async def emit(event: Any) -> None:
        pass

    with pytest.raises(ConfigError):
        gw._build_synthesizer(emit, "MZ1")


@pytest.mark.asyncio
async def test_keypress_reaches_disabled_transcriber():
    gw = FakeGateway()
    await gw.on_text_message(start_msg())
    gw.transcriber.disabled = True

    await gw.on_text_message(json.dumps({"event": "dtmf", "dtmf": {"track": "inbound_track", "digit": "9"}}))

    assert gw.transcriber.resets == 1
    assert not gw.transcriber.disabled
    await gw.close()
