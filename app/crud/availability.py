# app/crud/availability.py

from __future__ import annotations
from datetime import date
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import schedule
from app.db.models.availability import AvailabilityOverride, AvailabilityRule, ScheduleLock


def to_rule(row: AvailabilityRule) -> schedule.RecurringRule:
    return schedule.RecurringRule(
        id=row.id,
        practitioner_id=row.practitioner_id,
        day_of_week=row.day_of_week,
        start=row.start_minute,
        end=row.end_minute,
        clinic_id=row.clinic_id,
        is_active=row.is_active,
    )


def to_override(row: AvailabilityOverride) -> schedule.AvailabilityOverride:
    return schedule.AvailabilityOverride(
        id=row.id,
        practitioner_id=row.practitioner_id,
        date=row.on_date,
        is_available=row.is_available,
        start=row.start_minute,
        end=row.end_minute,
        clinic_id=row.clinic_id,
        reason=row.reason,
    )


async def list_rules(
    db: AsyncSession,
    practitioner_id: int,
    *,
    day_of_week: Optional[int] = None,
    active_only: bool = True,
) -> list[schedule.RecurringRule]:
    q = sa.select(AvailabilityRule).where(AvailabilityRule.practitioner_id == practitioner_id)
    if day_of_week is not None:
        q = q.where(AvailabilityRule.day_of_week == day_of_week)
    if active_only:
        q = q.where(AvailabilityRule.is_active.is_(True))
    q = q.order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_minute)
    res = await db.execute(q)
    return [to_rule(r) for r in res.scalars().all()]


async def list_overrides(
    db: AsyncSession,
    practitioner_id: int,
    start_date: date,
    end_date: date,
) -> list[schedule.AvailabilityOverride]:
    q = (
        sa.select(AvailabilityOverride)
        .where(
            AvailabilityOverride.practitioner_id == practitioner_id,
            AvailabilityOverride.on_date.between(start_date, end_date),
        )
        .order_by(AvailabilityOverride.on_date, AvailabilityOverride.id)
    )
    res = await db.execute(q)
    return [to_override(r) for r in res.scalars().all()]


async def create_rule(db: AsyncSession, rule: schedule.RecurringRule) -> schedule.RecurringRule:
    row = AvailabilityRule(
        practitioner_id=rule.practitioner_id,
        clinic_id=rule.clinic_id,
        day_of_week=rule.day_of_week,
        start_minute=rule.start,
        end_minute=rule.end,
        is_active=rule.is_active,
    )
    db.add(row)
    await db.flush()
    return to_rule(row)


async def get_rule(db: AsyncSession, rule_id: int) -> Optional[AvailabilityRule]:
    return await db.get(AvailabilityRule, rule_id)


async def create_override(
    db: AsyncSession, override: schedule.AvailabilityOverride
) -> schedule.AvailabilityOverride:
    row = AvailabilityOverride(
        practitioner_id=override.practitioner_id,
        clinic_id=override.clinic_id,
        on_date=override.date,
        is_available=override.is_available,
        start_minute=override.start,
        end_minute=override.end,
        reason=override.reason,
    )
    db.add(row)
    await db.flush()
    return to_override(row)


async def acquire_schedule_lock(db: AsyncSession, practitioner_id: int, on_date: date) -> int:
    """
    Upsert the (practitioner, date) lock row and bump its version.

    The write holds a row lock on Postgres and the database write lock on
    SQLite until the surrounding transaction ends, so concurrent commits for
    the same practitioner and day run one after another.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"schedule locks are not supported on {dialect}")

    stmt = insert(ScheduleLock).values(practitioner_id=practitioner_id, lock_date=on_date, version=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[ScheduleLock.practitioner_id, ScheduleLock.lock_date],
        set_={"version": ScheduleLock.version + 1},
    ).returning(ScheduleLock.version)
    res = await db.execute(stmt)
    return res.scalar_one()
