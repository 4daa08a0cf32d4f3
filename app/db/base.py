# app/db/base.py

"""
This file imports all the ORM models so Alembic can discover them.
Whenever you add a new model, import it here.
"""
from app.db.models.clinic import Clinic, Practitioner, TreatmentType
from app.db.models.patient import Patient
from app.db.models.availability import AvailabilityRule, AvailabilityOverride, ScheduleLock
from app.db.models.booking import Booking, TreatmentSession
from app.db.models.payment import Payment
from app.db.models.lifecycle_event import LifecycleEvent
from app.db.session import engine, Base

async def init_db(bind=None):
    """Initialize database by creating all tables"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
