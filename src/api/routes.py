"""Operational routes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.dependencies import get_call_service
from api.schemas import HealthResponse
from calls.service import CallService
from config.settings import get_settings
from escalation.queue import EscalationQueue

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(service: CallService = Depends(get_call_service)) -> HealthResponse:
    settings = get_settings()
    queue = EscalationQueue(settings.pending_queue_path, settings.processed_queue_path)
    return HealthResponse(
        timestamp=datetime.now(timezone.utc),
        active_calls=service.active_calls,
        stt_provider=service.config.stt_provider,
        escalation_method=service.config.escalation.method,
        pending_escalations=queue.pending_count(),
    )
