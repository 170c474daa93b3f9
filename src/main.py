"""Entry point for the PIN-gated voice concierge service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import router as api_router
from api.twilio_routes import router as twilio_router
from config.settings import get_settings
from config.voice_config import get_voice_config

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_voice_config()
    LOGGER.info(
        "Voice concierge ready: %d allowed numbers, stt=%s",
        len(config.allowed_numbers),
        config.stt_provider,
    )
    yield


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Voice Concierge",
    description="PIN-gated phone assistant with asynchronous follow-up.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")
app.include_router(twilio_router, prefix="/api")
