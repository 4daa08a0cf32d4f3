# app/services/schedule_admin.py
"""Maintenance of weekly rules and dated overrides."""
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound, ValidationError
from app.core.logging import get_logger
from app.core.schedule import AvailabilityOverride, RecurringRule, find_overlapping_rules
from app.crud import availability as availability_crud
from app.crud import directory
from app.db.session import Store
from app.schemas.actor import Actor
from app.services.access import ensure_schedule_access

logger = get_logger(__name__)


class ScheduleAdmin:
    def __init__(self, store: Store):
        self.store = store

    async def add_rule(
        self,
        actor: Actor,
        practitioner_id: int,
        day_of_week: int,
        start: int,
        end: int,
        clinic_id: Optional[int] = None,
    ) -> RecurringRule:
        ensure_schedule_access(actor, practitioner_id)
        rule = RecurringRule(
            practitioner_id=practitioner_id,
            day_of_week=day_of_week,
            start=start,
            end=end,
            clinic_id=clinic_id,
        )
        created = await self.store.run(self._add_rule, rule, name="add_rule")
        logger.info(
            "availability_rule_added",
            rule_id=created.id,
            practitioner_id=practitioner_id,
            day_of_week=day_of_week,
            window=str(created.interval),
            actor=actor.label,
        )
        return created

    @staticmethod
    async def _add_rule(db: AsyncSession, rule: RecurringRule) -> RecurringRule:
        await directory.require_active_practitioner(db, rule.practitioner_id)
        if rule.clinic_id is not None:
            await directory.require_active_clinic(db, rule.clinic_id)

        existing = await availability_crud.list_rules(db, rule.practitioner_id, day_of_week=rule.day_of_week)
        clashes = find_overlapping_rules([*existing, rule])
        if clashes:
            other = clashes[0][0]
            raise ValidationError(
                f"Rule {rule.interval} overlaps existing rule {other.interval}",
                practitioner_id=rule.practitioner_id,
                day_of_week=rule.day_of_week,
                existing_rule_id=other.id,
            )
        return await availability_crud.create_rule(db, rule)

    async def deactivate_rule(self, actor: Actor, practitioner_id: int, rule_id: int) -> RecurringRule:
        ensure_schedule_access(actor, practitioner_id)
        rule = await self.store.run(self._deactivate_rule, practitioner_id, rule_id, name="deactivate_rule")
        logger.info("availability_rule_deactivated", rule_id=rule_id, actor=actor.label)
        return rule

    @staticmethod
    async def _deactivate_rule(db: AsyncSession, practitioner_id: int, rule_id: int) -> RecurringRule:
        row = await availability_crud.get_rule(db, rule_id)
        if row is None or row.practitioner_id != practitioner_id:
            raise NotFound(f"Rule {rule_id} not found", rule_id=rule_id)
        row.is_active = False
        await db.flush()
        return availability_crud.to_rule(row)

    async def add_override(
        self,
        actor: Actor,
        practitioner_id: int,
        on_date: date,
        is_available: bool,
        start: Optional[int] = None,
        end: Optional[int] = None,
        clinic_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> AvailabilityOverride:
        ensure_schedule_access(actor, practitioner_id)
        override = AvailabilityOverride(
            practitioner_id=practitioner_id,
            date=on_date,
            is_available=is_available,
            start=start,
            end=end,
            clinic_id=clinic_id,
            reason=reason,
        )
        created = await self.store.run(self._add_override, override, name="add_override")
        logger.info(
            "availability_override_added",
            override_id=created.id,
            practitioner_id=practitioner_id,
            date=on_date.isoformat(),
            is_available=is_available,
            actor=actor.label,
        )
        return created

    @staticmethod
    async def _add_override(db: AsyncSession, override: AvailabilityOverride) -> AvailabilityOverride:
        await directory.require_active_practitioner(db, override.practitioner_id)
        if override.clinic_id is not None:
            await directory.require_active_clinic(db, override.clinic_id)
        return await availability_crud.create_override(db, override)

    async def list_rules(self, practitioner_id: int, *, include_inactive: bool = False) -> list[RecurringRule]:
        return await self.store.run(
            availability_crud.list_rules, practitioner_id, active_only=not include_inactive, name="list_rules"
        )

    async def list_overrides(self, practitioner_id: int, start_date: date, end_date: date) -> list[AvailabilityOverride]:
        return await self.store.run(
            availability_crud.list_overrides, practitioner_id, start_date, end_date, name="list_overrides"
        )
