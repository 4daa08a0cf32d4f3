# app/api/auth.py
"""
Caller identity for the HTTP surface.

Authentication happens upstream; the gateway forwards the verified caller as
``X-Actor-Id`` and ``X-Actor-Role`` headers. The API key gate in ``app.main``
keeps anyone else from asserting those headers directly.
"""
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, HTTPException

from app.core.config import settings
from app.core.logging import set_request_context
from app.core.status import ActorRole
from app.schemas.actor import Actor


def api_key_valid(presented: Optional[str]) -> bool:
    """True when the presented key matches API_KEY; an unset key only passes outside production."""
    expected = settings.API_KEY
    if not expected:
        return not settings.is_production
    return bool(presented) and secrets.compare_digest(presented, expected)


async def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    if x_actor_id is None or x_actor_role is None:
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id or X-Actor-Role header")
    try:
        actor = Actor(id=int(x_actor_id), role=ActorRole(x_actor_role.strip().lower()))
    except ValueError:
        raise HTTPException(status_code=422, detail="Invalid actor headers")
    set_request_context(actor_id=actor.label)
    return actor
