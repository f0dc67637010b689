"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi.requests import HTTPConnection

from config.settings import get_settings
from relay.handler import RelayOptions
from relay.tracing import NullTracer, Tracer

if TYPE_CHECKING:  # pragma: no cover
    from llm.base import BaseLLMClient, TextGenerator


@lru_cache(maxsize=1)
def _generator_factory() -> BaseLLMClient:
    # Lazy import so provider SDK clients are only built when a call connects.
    from llm.factory import build_llm_client

    return build_llm_client()


def get_text_generator() -> TextGenerator:
    return _generator_factory()


def get_relay_options() -> RelayOptions:
    return RelayOptions.from_settings(get_settings())


def get_tracer(connection: HTTPConnection) -> Tracer:
    # Set by the app lifespan; absent when the app runs without it.
    return getattr(connection.app.state, "tracer", None) or NullTracer()
