"""Per-call ConversationRelay session handler.

The handler consumes relay events in arrival order. A prompt starts one
generation task and returns immediately, so an interrupt or a newer prompt can
be processed while the model is still answering. Every reply is checked
against the session's turn fence before it is spoken: a result whose turn was
interrupted or superseded is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from config.settings import Settings
from llm.base import TextGenerator
from prompts.loader import load_prompt
from relay.directives import encode_speak
from relay.errors import MalformedEventError
from relay.events import (
    DtmfEvent,
    ErrorEvent,
    InboundEvent,
    InterruptEvent,
    PromptEvent,
    SetupEvent,
    StopEvent,
    parse_relay_event,
)
from relay.session import CallSession, SessionPhase
from relay.tracing import NullTracer, Tracer

LOGGER = logging.getLogger(__name__)

# Events that may be processed before setup has been received.
_PRE_SETUP_EVENTS = (SetupEvent, ErrorEvent, StopEvent)


class RelayTransport(Protocol):
    """Outbound half of the relay connection. FastAPI's WebSocket satisfies it."""

    async def send_json(self, data: Any) -> None:  # pragma: no cover - protocol stub
        ...


@dataclass(frozen=True)
class RelayOptions:
    system_prompt: str
    language: str = "en-US"
    greeting_text: str = "Hello! Welcome to the voice assistant. How can I help you today?"
    fallback_text: str = "I'm having trouble processing that request. Please try again."
    empty_reply_text: str = "I'm sorry, I didn't understand that."
    generation_timeout: float | None = 15.0
    cancel_superseded: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> RelayOptions:
        return cls(
            system_prompt=load_prompt(settings.system_prompt_file),
            language=settings.relay_language,
            greeting_text=settings.greeting_text,
            fallback_text=settings.fallback_text,
            empty_reply_text=settings.empty_reply_text,
            generation_timeout=settings.generation_timeout_seconds,
            cancel_superseded=settings.cancel_superseded_generations,
        )


class RelaySessionHandler:
    """State machine for one relay connection: Idle -> Active -> Closed."""

    def __init__(
        self,
        transport: RelayTransport,
        generator: TextGenerator,
        options: RelayOptions,
        *,
        tracer: Tracer | None = None,
    ) -> None:
        self._transport = transport
        self._generator = generator
        self._options = options
        self._tracer: Tracer = tracer or NullTracer()
        self.session = CallSession()
        self._inflight: set[asyncio.Task] = set()
        self._dispatch: dict[type, Callable[[Any], Awaitable[None]]] = {
            SetupEvent: self._on_setup,
            PromptEvent: self._on_prompt,
            InterruptEvent: self._on_interrupt,
            DtmfEvent: self._on_dtmf,
            ErrorEvent: self._on_error,
            StopEvent: self._on_stop,
        }

    async def handle_raw(self, raw: str | bytes) -> None:
        """Process one inbound frame. Malformed frames are logged and dropped."""

        if self.session.closed:
            LOGGER.debug("Session closed; ignoring frame (call_sid=%s)", self.session.call_sid)
            return
        try:
            event = parse_relay_event(raw)
        except MalformedEventError as exc:
            LOGGER.warning(
                "Dropping malformed relay frame (call_sid=%s): %s", self.session.call_sid, exc.detail
            )
            return
        await self.dispatch(event)

    async def dispatch(self, event: InboundEvent) -> None:
        if self.session.closed:
            LOGGER.debug("Session closed; ignoring %s event", event.type)
            return
        if self.session.phase is SessionPhase.IDLE and not isinstance(event, _PRE_SETUP_EVENTS):
            LOGGER.warning("Ignoring %s event received before setup", event.type)
            return
        await self._dispatch[type(event)](event)

    async def on_close(self, code: int | None = None, reason: str | None = None) -> None:
        """The transport is gone: close the session and drop outstanding generations."""

        LOGGER.info(
            "ConversationRelay disconnected (call_sid=%s, code=%s, reason=%s)",
            self.session.call_sid,
            code,
            reason or "",
        )
        if not self.session.closed:
            self.session.close("disconnected")
        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.session.pending_generation = None

    def on_error(self, exc: BaseException) -> None:
        LOGGER.error("Relay transport error (call_sid=%s): %s", self.session.call_sid, exc)

    async def _on_setup(self, event: SetupEvent) -> None:
        if self.session.active:
            LOGGER.warning(
                "Duplicate setup for active call %s (got %s); ignoring",
                self.session.call_sid,
                event.call_sid,
            )
            return
        inputs = {"call_sid": event.call_sid, "from": event.from_number, "to": event.to_number}
        with self._tracer.call("handle_call_setup", inputs) as trace:
            self.session.activate(event.call_sid, event.from_number, event.to_number)
            LOGGER.info(
                "Call setup call_sid=%s from=%s to=%s",
                event.call_sid,
                event.from_number,
                event.to_number,
            )
            await self._speak(self._options.greeting_text)
            trace.output = {**inputs, "timestamp": self.session.created_at.isoformat()}

    async def _on_prompt(self, event: PromptEvent) -> None:
        if not event.last:
            LOGGER.debug("Partial prompt ignored (call_sid=%s)", self.session.call_sid)
            return
        utterance = event.voice_prompt.strip()
        if not utterance:
            LOGGER.info("Empty prompt ignored (call_sid=%s)", self.session.call_sid)
            return

        if self._options.cancel_superseded:
            self._cancel_pending()
        turn = self.session.begin_turn()
        lang = event.lang or self._options.language
        LOGGER.info(
            "User said (call_sid=%s, turn=%s, lang=%s): %s",
            self.session.call_sid,
            turn,
            lang,
            utterance,
        )

        task = asyncio.create_task(
            self._run_turn(turn, utterance, lang),
            name=f"relay-turn-{self.session.call_sid}-{turn}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        self.session.pending_generation = task

    async def _on_interrupt(self, event: InterruptEvent) -> None:
        inputs = {
            "utterance_until_interrupt": event.utterance_until_interrupt,
            "duration_until_interrupt_ms": event.duration_until_interrupt_ms,
        }
        with self._tracer.call("handle_user_interruption", inputs) as trace:
            self.session.interrupt()
            LOGGER.info(
                "User interrupted turn %s after %s ms (call_sid=%s): %r",
                self.session.turn_seq,
                event.duration_until_interrupt_ms,
                self.session.call_sid,
                event.utterance_until_interrupt,
            )
            if self._options.cancel_superseded:
                self._cancel_pending()
            trace.output = {**inputs, "turn": self.session.turn_seq}

    async def _on_dtmf(self, event: DtmfEvent) -> None:
        with self._tracer.call("handle_dtmf_input", {"digit": event.digit}) as trace:
            LOGGER.info("DTMF digit received (call_sid=%s): %s", self.session.call_sid, event.digit)
            await self._speak(f"You pressed {event.digit}")
            trace.output = {"digit": event.digit}

    async def _on_error(self, event: ErrorEvent) -> None:
        LOGGER.error("Error from Twilio (call_sid=%s): %s", self.session.call_sid, event.description)

    async def _on_stop(self, event: StopEvent) -> None:
        reason = event.reason or "normal"
        with self._tracer.call("handle_call_end", {"reason": reason}) as trace:
            self.session.close(reason)
            LOGGER.info(
                "Call ended call_sid=%s reason=%s turns=%s",
                self.session.call_sid,
                reason,
                self.session.turn_seq,
            )
            trace.output = {"call_sid": self.session.call_sid, "reason": reason, "turns": self.session.turn_seq}

    def _cancel_pending(self) -> None:
        pending = self.session.pending_generation
        if pending is not None and not pending.done():
            LOGGER.debug("Cancelling superseded generation %s", pending.get_name())
            pending.cancel()
        self.session.pending_generation = None

    async def _run_turn(self, turn: int, utterance: str, lang: str) -> None:
        started = time.monotonic()
        inputs = {"turn": turn, "user_message": utterance, "language": lang}
        try:
            with self._tracer.call("handle_conversation_turn", inputs) as trace:
                reply = await self._generate_reply(utterance)
                if not self.session.is_current(turn):
                    LOGGER.info(
                        "Discarding reply for superseded turn %s (current=%s, interrupted=%s, call_sid=%s)",
                        turn,
                        self.session.turn_seq,
                        self.session.interrupted,
                        self.session.call_sid,
                    )
                    trace.output = {**inputs, "ai_response": reply, "discarded": True}
                    return
                await self._speak(reply, lang=lang)
                processing_ms = int((time.monotonic() - started) * 1000)
                LOGGER.info(
                    "Turn %s answered in %d ms (call_sid=%s): %r -> %r",
                    turn,
                    processing_ms,
                    self.session.call_sid,
                    utterance,
                    reply,
                )
                trace.output = {
                    **inputs,
                    "ai_response": reply,
                    "discarded": False,
                    "processing_time_ms": processing_ms,
                }
        except asyncio.CancelledError:
            LOGGER.debug("Generation for turn %s cancelled", turn)
            raise
        except Exception:
            LOGGER.exception("Failed to deliver reply for turn %s (call_sid=%s)", turn, self.session.call_sid)
        finally:
            if self.session.pending_generation is asyncio.current_task():
                self.session.pending_generation = None

    async def _generate_reply(self, utterance: str) -> str:
        with self._tracer.call("get_ai_response", {"user_message": utterance}) as trace:
            trace.output = await self._request_reply(utterance)
        return trace.output

    async def _request_reply(self, utterance: str) -> str:
        try:
            reply = await asyncio.wait_for(
                self._generator.generate(self._options.system_prompt, utterance),
                timeout=self._options.generation_timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Generation timed out after %ss (call_sid=%s)",
                self._options.generation_timeout,
                self.session.call_sid,
            )
            return self._options.fallback_text
        except Exception:
            LOGGER.exception("Generation failed (call_sid=%s)", self.session.call_sid)
            return self._options.fallback_text

        reply = (reply or "").strip()
        return reply or self._options.empty_reply_text

    async def _speak(self, text: str, *, lang: str | None = None) -> None:
        directive = encode_speak(text, lang=lang or self._options.language)
        with self._tracer.call("send_text_to_tts", {"text": text, "lang": directive["lang"]}) as trace:
            LOGGER.info("Sending to Twilio for TTS (call_sid=%s): %s", self.session.call_sid, text)
            await self._transport.send_json(directive)
            trace.output = directive
