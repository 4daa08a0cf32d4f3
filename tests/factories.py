"""
Shared test data: fixed ids, actors, dates and a controllable clock.

Imported by conftest after the test environment is pinned.
"""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.core.status import ActorRole
from app.db.models.availability import AvailabilityRule
from app.schemas.actor import Actor

EDMONTON = ZoneInfo('America/Edmonton')

# Monday 2 June 2025, 08:00 local
NOW = datetime(2025, 6, 2, 8, 0, tzinfo=EDMONTON)
TODAY = NOW.date()
NEXT_MONDAY = date(2025, 6, 9)
NEXT_TUESDAY = date(2025, 6, 10)

CLINIC_ID = 1
OTHER_CLINIC_ID = 2
CLOSED_CLINIC_ID = 3
PRACTITIONER_ID = 1
OTHER_PRACTITIONER_ID = 2
INACTIVE_PRACTITIONER_ID = 3
PATIENT_ID = 1
OTHER_PATIENT_ID = 2
TREATMENT_ID = 1

PATIENT = Actor(id=PATIENT_ID, role=ActorRole.PATIENT)
OTHER_PATIENT = Actor(id=OTHER_PATIENT_ID, role=ActorRole.PATIENT)
PRACTITIONER = Actor(id=PRACTITIONER_ID, role=ActorRole.PRACTITIONER)
OTHER_PRACTITIONER = Actor(id=OTHER_PRACTITIONER_ID, role=ActorRole.PRACTITIONER)
ADMIN = Actor(id=99, role=ActorRole.ADMIN)
SYSTEM = Actor(id=0, role=ActorRole.SYSTEM)


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


async def add_rule(store, practitioner_id, day_of_week, start, end, clinic_id=None):
    async def _add(db):
        db.add(AvailabilityRule(
            practitioner_id=practitioner_id,
            clinic_id=clinic_id,
            day_of_week=day_of_week,
            start_minute=start,
            end_minute=end,
        ))
    await store.run(_add, name="add_rule")
