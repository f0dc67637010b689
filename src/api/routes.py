"""Top-level HTTP routes."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from api.relay_routes import router as relay_router

health_router = APIRouter(tags=["health"])

router = APIRouter()
router.include_router(relay_router)


@health_router.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    # Polled by Twilio and load balancers; must stay dependency-free.
    return "OK"
