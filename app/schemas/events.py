# app/schemas/events.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class LifecycleEventRead(BaseModel):
    """What notification and payment collaborators receive."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: int
    kind: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    idempotency_key: str
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
    attempts: int = 0


class RelayResult(BaseModel):
    delivered: int
    failed: int
    remaining: int
