"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime
    active_calls: int
    stt_provider: str
    escalation_method: str
    pending_escalations: int = Field(description="Entries waiting for the queue worker.")
