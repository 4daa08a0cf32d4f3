# app/api/routes/bookings.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.auth import get_actor
from app.api.dependencies import get_coordinator, get_engine, get_payments
from app.schemas.actor import Actor
from app.schemas.booking import (
    BookingCreate,
    BookingRead,
    PaymentRead,
    SettlementRequest,
    TransitionRequest,
)
from app.services.booking import BookingEngine
from app.services.lifecycle import LifecycleCoordinator
from app.services.payments import PaymentService

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingRead, status_code=201)
async def create_booking(
    payload: BookingCreate,
    actor: Actor = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Reserve a slot as a pending booking. 409 means: fetch slots again."""
    return await engine.commit_booking(
        actor,
        patient_id=payload.patient_id,
        practitioner_id=payload.practitioner_id,
        clinic_id=payload.clinic_id,
        appointment_date=payload.date,
        start_minute=payload.start_minute,
        duration_minutes=payload.duration_minutes,
        treatment_type_id=payload.treatment_type_id,
        notes=payload.notes,
    )


@router.get("/by-reference/{reference}", response_model=BookingRead)
async def get_booking_by_reference(
    reference: str,
    actor: Actor = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    return await engine.get_by_reference(actor, reference)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: int,
    actor: Actor = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    return await engine.get_booking(actor, booking_id)


@router.post("/{booking_id}/transitions", response_model=BookingRead)
async def transition_booking(
    booking_id: int,
    payload: TransitionRequest,
    actor: Actor = Depends(get_actor),
    coordinator: LifecycleCoordinator = Depends(get_coordinator),
):
    return await coordinator.transition(booking_id, payload.target_status, actor, reason=payload.reason)


@router.get("/{booking_id}/payment", response_model=PaymentRead)
async def get_payment(
    booking_id: int,
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payments),
):
    return await payments.get_payment(booking_id, actor)


@router.post("/{booking_id}/payment/settlement", response_model=PaymentRead)
async def settle_payment(
    booking_id: int,
    payload: SettlementRequest,
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payments),
):
    return await payments.settle(
        booking_id,
        payload.succeeded,
        actor,
        provider_reference=payload.provider_reference,
        failure_reason=payload.failure_reason,
    )


@router.post("/{booking_id}/payment/refund", response_model=PaymentRead)
async def refund_payment(
    booking_id: int,
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payments),
):
    return await payments.refund(booking_id, actor)


@router.post("/{booking_id}/payment/retry", response_model=PaymentRead, status_code=201)
async def retry_payment(
    booking_id: int,
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payments),
):
    return await payments.retry(booking_id, actor)
