#!/usr/bin/env python3
"""
Shared fixtures: a file-backed SQLite store per test, a frozen clock and a
small seeded clinic.

The environment is pinned before anything from ``app`` is imported so the
settings singleton and the module-level engine pick it up.
"""

import os
import sys
from decimal import Decimal

import pytest
import pytest_asyncio

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

os.environ.update({
    'APP_ENV': 'testing',
    'DATABASE_URL': 'sqlite+aiosqlite:///:memory:',
    'API_KEY': 'test-api-key',
    'LOCAL_TIMEZONE': 'America/Edmonton',
    'LOG_LEVEL': 'WARNING',
})

from sqlalchemy.ext.asyncio import create_async_engine

from app.db.base import init_db
from app.db.models.availability import AvailabilityRule
from app.db.models.clinic import Clinic, Practitioner, TreatmentType
from app.db.models.patient import Patient
from app.db.session import Store
from tests.factories import (
    CLINIC_ID,
    CLOSED_CLINIC_ID,
    INACTIVE_PRACTITIONER_ID,
    NOW,
    OTHER_CLINIC_ID,
    OTHER_PATIENT_ID,
    OTHER_PRACTITIONER_ID,
    PATIENT_ID,
    PRACTITIONER_ID,
    TREATMENT_ID,
    FrozenClock,
)


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: pure logic tests with no store")
    config.addinivalue_line("markers", "integration: tests that run against a real database file")
    config.addinivalue_line("markers", "slow: tests that take longer to run")
    config.addinivalue_line("markers", "smoke: quick health checks")


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh database file per test so concurrent sessions use separate connections."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


async def _seed(db):
    db.add_all([
        Clinic(id=CLINIC_ID, name="Downtown Physio", address="100 Jasper Ave"),
        Clinic(id=OTHER_CLINIC_ID, name="Southside Physio", address="50 Whyte Ave"),
        Clinic(id=CLOSED_CLINIC_ID, name="Old Strathcona", is_active=False),
        Practitioner(id=PRACTITIONER_ID, full_name="Dana Reid", email="dana@example.com",
                     default_fee=Decimal("90.00")),
        Practitioner(id=OTHER_PRACTITIONER_ID, full_name="Sam Okafor", email="sam@example.com",
                     default_fee=Decimal("85.00")),
        Practitioner(id=INACTIVE_PRACTITIONER_ID, full_name="Lee Park", email="lee@example.com",
                     default_fee=Decimal("80.00"), is_active=False),
        Patient(id=PATIENT_ID, full_name="Alex Martin", email="alex@example.com", phone="+17805550100"),
        Patient(id=OTHER_PATIENT_ID, full_name="Jordan Blake", email="jordan@example.com"),
        TreatmentType(id=TREATMENT_ID, name="Initial assessment", default_duration_min=45,
                      price=Decimal("120.00")),
    ])
    await db.flush()
    # Mondays 09:00-12:00 at any clinic
    db.add_all([
        AvailabilityRule(practitioner_id=PRACTITIONER_ID, day_of_week=0, start_minute=540, end_minute=720),
        AvailabilityRule(practitioner_id=INACTIVE_PRACTITIONER_ID, day_of_week=0, start_minute=540, end_minute=720),
    ])


@pytest_asyncio.fixture
async def store(engine):
    s = Store.from_engine(engine, timeout_seconds=15)
    await s.run(_seed, name="seed")
    return s
