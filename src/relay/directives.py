"""Outbound ConversationRelay directives."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class SpeakDirective(BaseModel):
    """Text token for Twilio to synthesize."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    token: str
    last: bool = True
    lang: str
    interruptible: bool = True
    preemptible: bool = True


def encode_speak(
    text: str,
    *,
    lang: str,
    last: bool = True,
    interruptible: bool = True,
    preemptible: bool = True,
) -> dict[str, Any]:
    """Return the wire message asking the relay to speak `text`."""

    return SpeakDirective(
        token=text,
        last=last,
        lang=lang,
        interruptible=interruptible,
        preemptible=preemptible,
    ).model_dump()
