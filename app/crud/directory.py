# app/crud/directory.py
"""Loaders for the entities a booking references."""

from __future__ import annotations
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ClinicInactive, NotFound, PractitionerInactive, ValidationError
from app.db.models.clinic import Clinic, Practitioner, TreatmentType
from app.db.models.patient import Patient


async def get_practitioner(db: AsyncSession, practitioner_id: int) -> Optional[Practitioner]:
    return await db.get(Practitioner, practitioner_id)


async def get_clinic(db: AsyncSession, clinic_id: int) -> Optional[Clinic]:
    return await db.get(Clinic, clinic_id)


async def get_patient(db: AsyncSession, patient_id: int) -> Optional[Patient]:
    return await db.get(Patient, patient_id)


async def get_treatment_type(db: AsyncSession, treatment_type_id: int) -> Optional[TreatmentType]:
    return await db.get(TreatmentType, treatment_type_id)


async def require_active_practitioner(db: AsyncSession, practitioner_id: int) -> Practitioner:
    practitioner = await get_practitioner(db, practitioner_id)
    if practitioner is None:
        raise NotFound(f"Practitioner {practitioner_id} not found", practitioner_id=practitioner_id)
    if not practitioner.is_active:
        raise PractitionerInactive(
            f"Practitioner {practitioner_id} is not taking bookings", practitioner_id=practitioner_id
        )
    return practitioner


async def require_active_clinic(db: AsyncSession, clinic_id: int) -> Clinic:
    clinic = await get_clinic(db, clinic_id)
    if clinic is None:
        raise NotFound(f"Clinic {clinic_id} not found", clinic_id=clinic_id)
    if not clinic.is_active:
        raise ClinicInactive(f"Clinic {clinic_id} is closed for bookings", clinic_id=clinic_id)
    return clinic


async def require_active_patient(db: AsyncSession, patient_id: int) -> Patient:
    patient = await get_patient(db, patient_id)
    if patient is None:
        raise NotFound(f"Patient {patient_id} not found", patient_id=patient_id)
    if not patient.is_active:
        raise ValidationError("Patient account has been deactivated", patient_id=patient_id)
    return patient


async def require_active_treatment_type(db: AsyncSession, treatment_type_id: int) -> TreatmentType:
    treatment = await get_treatment_type(db, treatment_type_id)
    if treatment is None:
        raise NotFound(f"Treatment type {treatment_type_id} not found", treatment_type_id=treatment_type_id)
    if not treatment.is_active:
        raise ValidationError("Treatment type is no longer offered", treatment_type_id=treatment_type_id)
    return treatment
