# app/api/routes/events.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.auth import get_actor
from app.api.dependencies import get_dispatcher
from app.core.status import ActorRole
from app.schemas.actor import Actor
from app.schemas.events import LifecycleEventRead, RelayResult
from app.services.access import ensure_role
from app.services.notifications import EventDispatcher

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/pending", response_model=list[LifecycleEventRead])
async def pending_events(
    actor: Actor = Depends(get_actor),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    ensure_role(actor, ActorRole.ADMIN, ActorRole.SYSTEM)
    return await dispatcher.pending()


@router.post("/relay", response_model=RelayResult)
async def relay_events(
    actor: Actor = Depends(get_actor),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    """Deliver outstanding events; run periodically by the scheduler."""
    ensure_role(actor, ActorRole.ADMIN, ActorRole.SYSTEM)
    return await dispatcher.dispatch_pending()
