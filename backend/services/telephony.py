"""
Twilio call placement and TwiML builders.

The REST client is synchronous; calls are pushed to the default executor
so route handlers never block the event loop.
"""

from __future__ import annotations

import asyncio
import urllib.parse

from twilio.rest import Client
from twilio.twiml.voice_response import Connect, VoiceResponse

from config import AppConfig, ConfigError
from constants import OUTBOUND_FIRST_MESSAGE_DEFAULT
from observability.logger import log_event


MEDIA_STREAM_PATH = "/connection"


def media_stream_url(host: str) -> str:
    return f"wss://{host}{MEDIA_STREAM_PATH}"


def build_stream_twiml(
    host: str,
    *,
    first_message: str | None = None,
    caller_number: str | None = None,
) -> str:
    """TwiML that connects the call audio to our media stream WebSocket."""
    response = VoiceResponse()
    connect = Connect()
    stream = connect.stream(url=media_stream_url(host))

    if first_message is not None:
        stream.parameter(name="firstMessage", value=first_message)
    if caller_number is not None:
        stream.parameter(name="callerNumber", value=caller_number)

    response.append(connect)
    return str(response)


def build_outbound_twiml(host: str, *, first_message: str | None, number: str | None) -> str:
    return build_stream_twiml(
        host,
        first_message=first_message or OUTBOUND_FIRST_MESSAGE_DEFAULT,
        caller_number=number or "",
    )


class TwilioTelephony:
    """Outbound call placement through the Twilio REST API."""

    def __init__(self, *, config: AppConfig, client: Client | None = None) -> None:
        self._config = config
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            cfg = self._config
            if not cfg.twilio_account_sid or not cfg.twilio_auth_token:
                raise ConfigError("TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN not set")
            self._client = Client(cfg.twilio_account_sid, cfg.twilio_auth_token)
        return self._client

    async def place_call(self, *, number: str, first_message: str, host: str) -> str:
        """
        Dial `number`; Twilio then fetches the outbound TwiML from `host`.

        Returns:
            The new call's sid.
        """
        if not self._config.from_number:
            raise ConfigError("FROM_NUMBER not set")

        query = urllib.parse.urlencode({"firstMessage": first_message, "number": number})
        twiml_url = f"https://{host}/outgoing-call-twiml?{query}"
        client = self._get_client()

        loop = asyncio.get_running_loop()
        call = await loop.run_in_executor(
            None,
            lambda: client.calls.create(
                to=number,
                from_=self._config.from_number,
                url=twiml_url,
            ),
        )

        log_event({
            "event_type": "OUTBOUND_CALL_PLACED",
            "call_sid": call.sid,
            "to": number,
        })
        return call.sid
