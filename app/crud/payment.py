# app/crud/payment.py

from __future__ import annotations
from decimal import Decimal
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.status import PaymentStatus
from app.db.models.payment import Payment


async def create_payment(db: AsyncSession, *, booking_id: int, amount: Decimal, currency: str) -> Payment:
    payment = Payment(
        booking_id=booking_id,
        amount=amount,
        currency=currency,
        status=PaymentStatus.PENDING,
    )
    db.add(payment)
    await db.flush()
    return payment


async def list_payments(db: AsyncSession, booking_id: int) -> Sequence[Payment]:
    res = await db.execute(
        sa.select(Payment).where(Payment.booking_id == booking_id).order_by(Payment.id.asc())
    )
    return res.scalars().all()


async def get_latest_payment(db: AsyncSession, booking_id: int, *, for_update: bool = False) -> Optional[Payment]:
    q = sa.select(Payment).where(Payment.booking_id == booking_id).order_by(Payment.id.desc()).limit(1)
    if for_update:
        q = q.with_for_update()
    res = await db.execute(q)
    return res.scalar_one_or_none()


async def get_authoritative_payment(db: AsyncSession, booking_id: int) -> Optional[Payment]:
    """The booking's newest payment that has not failed, if any."""
    res = await db.execute(
        sa.select(Payment)
        .where(Payment.booking_id == booking_id, Payment.status != PaymentStatus.FAILED)
        .order_by(Payment.id.desc())
        .limit(1)
    )
    return res.scalar_one_or_none()
