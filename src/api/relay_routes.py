"""Twilio ConversationRelay integration.

This module provides:
- Voice webhook returning TwiML that connects the call to ConversationRelay.
- The WebSocket endpoint ConversationRelay streams call events to.

Twilio performs speech-to-text and text-to-speech; this service only exchanges
text with the relay.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, WebSocket, WebSocketDisconnect
from twilio.twiml.voice_response import VoiceResponse

from api.dependencies import get_relay_options, get_text_generator, get_tracer
from config.settings import get_settings
from llm.base import TextGenerator
from relay.handler import RelayOptions, RelaySessionHandler
from relay.tracing import Tracer

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/relay", tags=["relay"])

RELAY_WS_PATH = "/api/relay/ws"


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _relay_ws_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return _to_ws_url(settings.public_base_url.rstrip("/") + RELAY_WS_PATH)
    # Tunnels terminate TLS in front of us, so the request scheme is not a reliable hint.
    host = request.headers.get("host") or request.url.netloc
    return f"wss://{host}{RELAY_WS_PATH}"


def _twiml_conversation_relay(
    *,
    ws_url: str,
    language: str,
    tts_provider: str,
    voice: str,
    debug: str | None,
) -> str:
    response = VoiceResponse()
    connect = response.connect()
    relay = connect.conversation_relay(url=ws_url, debug=debug)
    relay.language(code=language, tts_provider=tts_provider, voice=voice)
    return str(response)


@router.post("/incoming-call")
async def incoming_call(request: Request) -> Response:
    settings = get_settings()
    ws_url = _relay_ws_url(request)
    LOGGER.info("Incoming call; connecting ConversationRelay to %s", ws_url)
    return _twiml_response(
        _twiml_conversation_relay(
            ws_url=ws_url,
            language=settings.relay_language,
            tts_provider=settings.relay_tts_provider,
            voice=settings.relay_voice,
            debug=settings.relay_debug,
        )
    )


@router.websocket("/ws")
async def conversation_relay_socket(
    websocket: WebSocket,
    generator: TextGenerator = Depends(get_text_generator),
    options: RelayOptions = Depends(get_relay_options),
    tracer: Tracer = Depends(get_tracer),
) -> None:
    await websocket.accept()
    LOGGER.info("Twilio ConversationRelay connected")
    handler = RelaySessionHandler(websocket, generator, options, tracer=tracer)

    code: int | None = None
    reason: str | None = None
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                code, reason = message.get("code"), message.get("reason")
                break
            # Text or binary frame; both go through the relay parser.
            frame = message.get("text")
            if frame is None:
                frame = message.get("bytes")
            await handler.handle_raw(frame)
    except WebSocketDisconnect as exc:
        code, reason = exc.code, exc.reason
    except RuntimeError as exc:
        # Raised by Starlette when the socket is used after it was closed.
        handler.on_error(exc)
    finally:
        await handler.on_close(code, reason)
