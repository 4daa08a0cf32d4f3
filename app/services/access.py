# app/services/access.py
from __future__ import annotations

from app.core.errors import NotAuthorized
from app.core.status import ActorRole
from app.schemas.actor import Actor


def ensure_booking_access(actor: Actor, *, patient_id: int, practitioner_id: int) -> None:
    """Patients see their own bookings, practitioners their own diary; staff see everything."""
    if actor.is_privileged:
        return
    if actor.role is ActorRole.PATIENT and actor.id == patient_id:
        return
    if actor.role is ActorRole.PRACTITIONER and actor.id == practitioner_id:
        return
    raise NotAuthorized("Not allowed to act on this booking", actor=actor.label)


def ensure_schedule_access(actor: Actor, practitioner_id: int) -> None:
    if actor.role is ActorRole.ADMIN:
        return
    if actor.role is ActorRole.PRACTITIONER and actor.id == practitioner_id:
        return
    raise NotAuthorized("Only the practitioner or an admin may edit this schedule", actor=actor.label)


def ensure_role(actor: Actor, *roles: ActorRole) -> None:
    if actor.role not in roles:
        raise NotAuthorized(
            f"Role {actor.role.value} may not perform this operation", actor=actor.label
        )
