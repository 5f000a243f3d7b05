"""
Route registration for the call orchestrator API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire a SessionGateway to each carrier WebSocket
- Pull dependencies from app.state
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from config import AppConfig
from observability.logger import log_event
from services.telephony import (
    MEDIA_STREAM_PATH,
    TwilioTelephony,
    build_outbound_twiml,
    build_stream_twiml,
)
from session.gateway import SessionGateway


def _public_host(config: AppConfig, request: Request | None = None) -> str:
    if config.server_host:
        return config.server_host
    if request is not None:
        return request.headers.get("host", "localhost")
    return "localhost"


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.post("/incoming")
    async def incoming_call(request: Request) -> Response: # pyright: ignore[reportUnusedFunction]
        twiml = build_stream_twiml(_public_host(app.state.config, request))
        return Response(content=twiml, media_type="text/xml")

    @app.post("/outgoing-call")
    async def outgoing_call(request: Request) -> Response: # pyright: ignore[reportUnusedFunction]
        telephony: TwilioTelephony = app.state.telephony

        try:
            body: Any = await request.json()
        except ValueError:
            body = None

        number = body.get("number") if isinstance(body, dict) else None
        first_message = body.get("firstMessage") if isinstance(body, dict) else None
        if not isinstance(number, str) or not number:
            return JSONResponse({"error": "number is required"}, status_code=400)

        log_event({
            "event_type": "OUTBOUND_CALL_REQUESTED",
            "to": number,
        })

        try:
            call_sid = await telephony.place_call(
                number=number,
                first_message=first_message if isinstance(first_message, str) else "",
                host=_public_host(app.state.config, request),
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "OUTBOUND_CALL_FAILED",
                "to": number,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return JSONResponse({"error": "Failed to initiate call"}, status_code=500)

        return JSONResponse({"message": "Call initiated", "callSid": call_sid})

    @app.api_route("/outgoing-call-twiml", methods=["GET", "POST"])
    async def outgoing_call_twiml( # pyright: ignore[reportUnusedFunction]
        request: Request,
        firstMessage: str | None = None,  # pylint: disable=invalid-name
        number: str | None = None,
    ) -> Response:
        twiml = build_outbound_twiml(
            _public_host(app.state.config, request),
            first_message=firstMessage,
            number=number,
        )
        return Response(content=twiml, media_type="text/xml")

    @app.websocket(MEDIA_STREAM_PATH)
    async def media_stream(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = SessionGateway(
            config=app.state.config,
            llm_client=app.state.llm_client,
            send_text=ws.send_text,
        )

        try:
            while not gateway.stopped:
                msg = await ws.receive_text()
                await gateway.on_text_message(msg)

        except WebSocketDisconnect:
            await gateway.close(reason="carrier_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "stream_sid": (
                    gateway.controller.session.stream_sid if gateway.controller else None
                ),
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.close(reason="server_error")

        else:
            await gateway.close(reason="carrier_stop")
