"""Entry point for the ConversationRelay voice assistant service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import health_router
from api.routes import router as api_router
from config.settings import get_settings
from prompts.loader import load_prompt
from relay.tracing import build_tracer

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    LOGGER.info(
        "Voice assistant ready (provider=%s, model=%s, public_base_url=%s)",
        settings.llm_provider,
        settings.llm_model,
        settings.public_base_url or "<request host>",
    )
    app.state.tracer = build_tracer(
        settings.weave_project,
        system_prompt=load_prompt(settings.system_prompt_file),
    )
    yield


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="ConversationRelay Voice Assistant",
    description="Bridges Twilio ConversationRelay calls to a text-generation backend.",
    lifespan=lifespan,
)
app.include_router(health_router)
app.include_router(api_router, prefix="/api")
