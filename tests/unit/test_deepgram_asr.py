# pylint: disable=missing-module-docstring,missing-function-docstring,protected-access

import asyncio
import base64
import json
from typing import Any

import pytest

from adapters.asr.deepgram_streaming import DeepgramStreamingASRAdapter
from orchestrator.enums.service import Service
from orchestrator.events import Event, ServiceError, Transcription, Utterance
from protocol.media_stream import decode_inbound
from session.call_session import CallSession
from session.controller import SessionController


class FakeSocket:
    """Stand-in for a websockets ClientConnection."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.sent: list[Any] = []
        self.closed = False
        self._fail_sends = fail_sends
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, data: Any) -> None:
        if self._fail_sends:
            raise ConnectionError("socket dropped")
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def feed(self, message: dict[str, Any]) -> None:
        self._incoming.put_nowait(json.dumps(message))

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    def __init__(self, *outcomes: Any) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeSocket:
        self.calls.append((url, kwargs))
        outcome = self._outcomes.pop(0) if self._outcomes else ConnectionError("refused")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_asr(
    connector: FakeConnector,
    *,
    reconnect_window_ms: int = 1_000,
) -> tuple[DeepgramStreamingASRAdapter, list[Event]]:
    events: list[Event] = []

    async def emit(event: Event) -> None:
        events.append(event)

    asr = DeepgramStreamingASRAdapter(
        emit_event=emit,
        api_key="dg-key",
        stream_sid="MZ1",
        reconnect_window_ms=reconnect_window_ms,
        reconnect_backoff_ms=(0, 10),
        connect=connector,
    )
    return asr, events


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def results(text: str, *, is_final: bool = False, speech_final: bool = False) -> dict[str, Any]:
    return {
        "type": "Results",
        "is_final": is_final,
        "speech_final": speech_final,
        "channel": {"alternatives": [{"transcript": text}]},
    }


async def spin(times: int = 50) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_audio_is_forwarded_on_first_connection():
    ws = FakeSocket()
    connector = FakeConnector(ws)
    asr, _ = make_asr(connector)

    asr.send(b64(b"\x01" * 160))
    asr.send(b64(b"\x02" * 160))
    await spin()

    assert ws.sent == [b"\x01" * 160, b"\x02" * 160]

    url, kwargs = connector.calls[0]
    assert url.startswith("wss://api.deepgram.com/v1/listen?")
    assert "encoding=mulaw" in url
    assert "sample_rate=8000" in url
    assert "interim_results=true" in url
    assert kwargs["additional_headers"] == {"Authorization": "Token dg-key"}

    await asr.close()
    assert ws.sent[-1] == json.dumps({"type": "CloseStream"})


@pytest.mark.asyncio
async def test_bad_base64_is_dropped(logs):
    connector = FakeConnector(FakeSocket())
    asr, _ = make_asr(connector)

    asr.send("not base64!!")
    await spin()

    assert connector.calls == []
    assert len(logs.of("ASR_PAYLOAD_DECODE_ERROR")) == 1
    await asr.close()


@pytest.mark.asyncio
async def test_interim_results_become_utterances():
    ws = FakeSocket()
    asr, events = make_asr(FakeConnector(ws))
    asr.send(b64(b"\x00"))
    await spin()

    ws.feed(results("hold on"))
    ws.feed(results(""))
    await spin()

    assert [(type(e), e.text) for e in events] == [(Utterance, "hold on")]  # type: ignore[attr-defined]
    await asr.close()


@pytest.mark.asyncio
async def test_final_segments_accumulate_until_speech_final():
    ws = FakeSocket()
    asr, events = make_asr(FakeConnector(ws))
    asr.send(b64(b"\x00"))
    await spin()

    ws.feed(results("I need", is_final=True))
    ws.feed(results("new brake pads", is_final=True, speech_final=True))
    await spin()

    finals = [e for e in events if isinstance(e, Transcription)]
    assert [e.text for e in finals] == ["I need new brake pads"]
    await asr.close()


@pytest.mark.asyncio
async def test_utterance_end_flushes_when_not_speech_final():
    ws = FakeSocket()
    asr, events = make_asr(FakeConnector(ws))
    asr.send(b64(b"\x00"))
    await spin()

    ws.feed(results("is it ready", is_final=True))
    ws.feed({"type": "UtteranceEnd"})
    await spin()

    finals = [e for e in events if isinstance(e, Transcription)]
    assert [e.text for e in finals] == ["is it ready"]
    await asr.close()


@pytest.mark.asyncio
async def test_utterance_end_after_speech_final_emits_nothing_more():
    ws = FakeSocket()
    asr, events = make_asr(FakeConnector(ws))
    asr.send(b64(b"\x00"))
    await spin()

    ws.feed(results("thanks", is_final=True, speech_final=True))
    ws.feed({"type": "UtteranceEnd"})
    await spin()

    finals = [e for e in events if isinstance(e, Transcription)]
    assert [e.text for e in finals] == ["thanks"]
    await asr.close()


@pytest.mark.asyncio
async def test_unsent_audio_is_replayed_after_reconnect(logs):
    broken = FakeSocket(fail_sends=True)
    healthy = FakeSocket()
    asr, _ = make_asr(FakeConnector(broken, healthy))

    asr.send(b64(b"\x01"))
    asr.send(b64(b"\x02"))
    await spin()

    assert healthy.sent == [b"\x01", b"\x02"]
    assert broken.closed
    assert len(logs.of("ASR_SEND_FAILED")) == 1
    assert len(logs.of("ASR_CONNECTED")) == 2
    await asr.close()


@pytest.mark.asyncio
async def test_gives_up_after_window_and_stays_disabled_until_reset(logs):
    connector = FakeConnector()  # every attempt is refused
    asr, events = make_asr(connector, reconnect_window_ms=50)

    asr.send(b64(b"\x01"))
    await asyncio.sleep(0.2)

    assert asr.disabled
    errors = [e for e in events if isinstance(e, ServiceError)]
    assert len(errors) == 1
    assert errors[0].service is Service.ASR
    assert len(logs.of("ASR_DISABLED")) == 1

    attempts = len(connector.calls)
    asr.send(b64(b"\x02"))
    await spin()
    assert len(connector.calls) == attempts

    ws = FakeSocket()
    connector._outcomes.append(ws)
    asr.reset()
    assert not asr.disabled

    asr.send(b64(b"\x03"))
    await spin()
    assert ws.sent == [b"\x03"]
    await asr.close()


@pytest.mark.asyncio
async def test_close_is_idempotent():
    ws = FakeSocket()
    asr, _ = make_asr(FakeConnector(ws))
    asr.send(b64(b"\x00"))
    await spin()

    await asr.close()
    await asr.close()

    asr.send(b64(b"\x01"))
    await spin()
    assert b"\x01" not in ws.sent


@pytest.mark.asyncio
async def test_caller_keypress_brings_disabled_transcription_back(logs):
    connector = FakeConnector()  # every attempt is refused
    asr, _ = make_asr(connector, reconnect_window_ms=50)
    controller = SessionController(session=CallSession(stream_sid="MZ1", call_sid="CA1"))
    controller.attach_transcriber(asr)

    controller.on_inbound_audio(b64(b"\x01"))
    await asyncio.sleep(0.2)
    assert asr.disabled

    ws = FakeSocket()
    connector._outcomes.append(ws)
    keypress = decode_inbound(
        json.dumps({"event": "dtmf", "dtmf": {"track": "inbound_track", "digit": "1"}}),
        ts_ms=0,
    )
    assert keypress is not None
    await controller.handle_event(keypress)

    assert not asr.disabled
    assert len(logs.of("ASR_RESET")) == 1

    controller.on_inbound_audio(b64(b"\x03"))
    await spin()
    assert ws.sent == [b"\x03"]
    await asr.close()
