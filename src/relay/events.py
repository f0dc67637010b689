"""Inbound ConversationRelay events.

Twilio sends one JSON object per WebSocket text frame, tagged by `type`.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from relay.errors import MalformedEventError


class RelayEvent(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class SetupEvent(RelayEvent):
    type: Literal["setup"]
    call_sid: str = Field(alias="callSid")
    from_number: str = Field(alias="from")
    to_number: str = Field(alias="to")


class PromptEvent(RelayEvent):
    type: Literal["prompt"]
    voice_prompt: str = Field(alias="voicePrompt")
    lang: str | None = None
    # Partial transcripts arrive with last=false when partialPrompts is enabled.
    last: bool = True


class InterruptEvent(RelayEvent):
    type: Literal["interrupt"]
    utterance_until_interrupt: str = Field(alias="utteranceUntilInterrupt")
    duration_until_interrupt_ms: int = Field(alias="durationUntilInterruptMs")


class DtmfEvent(RelayEvent):
    type: Literal["dtmf"]
    digit: str


class ErrorEvent(RelayEvent):
    type: Literal["error"]
    description: str


class StopEvent(RelayEvent):
    type: Literal["stop"]
    reason: str | None = None


InboundEvent = Annotated[
    Union[SetupEvent, PromptEvent, InterruptEvent, DtmfEvent, ErrorEvent, StopEvent],
    Field(discriminator="type"),
]

_INBOUND_ADAPTER: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


def parse_relay_event(raw: str | bytes | dict[str, Any]) -> InboundEvent:
    """Decode one relay frame into a typed event.

    Raises MalformedEventError for invalid JSON, unknown event types and
    missing required fields.
    """

    if isinstance(raw, dict):
        payload = raw
    else:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise MalformedEventError(f"Invalid JSON frame: {exc}") from exc

    if not isinstance(payload, dict):
        raise MalformedEventError("Relay frame is not a JSON object.")

    try:
        return _INBOUND_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        event_type = payload.get("type")
        raise MalformedEventError(
            f"Invalid {event_type!r} event: {exc.error_count()} validation error(s)"
        ) from exc
