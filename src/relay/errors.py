"""Domain-specific exceptions for relay sessions.

These exceptions are safe to import from API layers without pulling in provider SDKs.
"""

from __future__ import annotations


class RelayError(Exception):
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class MalformedEventError(RelayError):
    default_detail = "Malformed relay event."


class GenerationFailedError(RelayError):
    default_detail = "Text generation failed."
