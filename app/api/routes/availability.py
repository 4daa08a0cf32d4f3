# app/api/routes/availability.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.auth import get_actor
from app.api.dependencies import get_resolver, get_schedule_admin
from app.core.schedule import parse_hhmm
from app.schemas.actor import Actor
from app.schemas.availability import (
    AvailabilityResponse,
    OverrideCreate,
    OverrideRead,
    RuleCreate,
    RuleRead,
    SlotRead,
    WindowRead,
)
from app.services.availability import AvailabilityResolver
from app.services.schedule_admin import ScheduleAdmin

router = APIRouter(prefix="/practitioners", tags=["availability"])


@router.get("/{practitioner_id}/slots", response_model=AvailabilityResponse)
async def open_slots(
    practitioner_id: int,
    clinic_id: int = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    slot_minutes: Optional[int] = Query(None, description="Defaults to DEFAULT_SLOT_MIN"),
    actor: Actor = Depends(get_actor),
    resolver: AvailabilityResolver = Depends(get_resolver),
):
    """Open slots for a practitioner at a clinic, oldest first."""
    if slot_minutes is None:
        slot_minutes = resolver.config.DEFAULT_SLOT_MIN
    slots = await resolver.list_open_slots(practitioner_id, clinic_id, start_date, end_date, slot_minutes)
    return AvailabilityResponse(
        practitioner_id=practitioner_id,
        clinic_id=clinic_id,
        start_date=start_date,
        end_date=end_date,
        slot_minutes=slot_minutes,
        slots=[SlotRead.from_candidate(s) for s in slots],
    )


@router.get("/{practitioner_id}/windows", response_model=list[WindowRead])
async def open_windows(
    practitioner_id: int,
    clinic_id: int = Query(...),
    on_date: date = Query(..., alias="date"),
    actor: Actor = Depends(get_actor),
    resolver: AvailabilityResolver = Depends(get_resolver),
):
    """Working windows on one date before bookings are taken out."""
    windows = await resolver.windows_for_date(practitioner_id, clinic_id, on_date)
    return [WindowRead.from_interval(w) for w in windows]


@router.get("/{practitioner_id}/rules", response_model=list[RuleRead])
async def list_rules(
    practitioner_id: int,
    include_inactive: bool = Query(False),
    actor: Actor = Depends(get_actor),
    admin: ScheduleAdmin = Depends(get_schedule_admin),
):
    rules = await admin.list_rules(practitioner_id, include_inactive=include_inactive)
    return [RuleRead.from_rule(r) for r in rules]


@router.post("/{practitioner_id}/rules", response_model=RuleRead, status_code=201)
async def add_rule(
    practitioner_id: int,
    payload: RuleCreate,
    actor: Actor = Depends(get_actor),
    admin: ScheduleAdmin = Depends(get_schedule_admin),
):
    rule = await admin.add_rule(
        actor,
        practitioner_id,
        payload.day_of_week,
        parse_hhmm(payload.start_time),
        parse_hhmm(payload.end_time),
        clinic_id=payload.clinic_id,
    )
    return RuleRead.from_rule(rule)


@router.delete("/{practitioner_id}/rules/{rule_id}", response_model=RuleRead)
async def deactivate_rule(
    practitioner_id: int,
    rule_id: int,
    actor: Actor = Depends(get_actor),
    admin: ScheduleAdmin = Depends(get_schedule_admin),
):
    rule = await admin.deactivate_rule(actor, practitioner_id, rule_id)
    return RuleRead.from_rule(rule)


@router.post("/{practitioner_id}/overrides", response_model=OverrideRead, status_code=201)
async def add_override(
    practitioner_id: int,
    payload: OverrideCreate,
    actor: Actor = Depends(get_actor),
    admin: ScheduleAdmin = Depends(get_schedule_admin),
):
    override = await admin.add_override(
        actor,
        practitioner_id,
        payload.date,
        payload.is_available,
        start=None if payload.start_time is None else parse_hhmm(payload.start_time),
        end=None if payload.end_time is None else parse_hhmm(payload.end_time),
        clinic_id=payload.clinic_id,
        reason=payload.reason,
    )
    return OverrideRead.from_override(override)
