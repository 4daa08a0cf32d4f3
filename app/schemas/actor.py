# app/schemas/actor.py
from __future__ import annotations

from pydantic import BaseModel, Field

from app.core.status import ActorRole


class Actor(BaseModel):
    """Authenticated caller as asserted by the authentication collaborator."""
    id: int = Field(..., ge=0)
    role: ActorRole

    @property
    def label(self) -> str:
        return f"{self.role.value}:{self.id}"

    @property
    def is_privileged(self) -> bool:
        return self.role in (ActorRole.ADMIN, ActorRole.SYSTEM)


SYSTEM_ACTOR = Actor(id=0, role=ActorRole.SYSTEM)
