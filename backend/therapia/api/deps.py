from __future__ import annotations
import uuid
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therapia.models import Patient, Therapist


async def get_owned_patient(
    db: AsyncSession, patient_id: uuid.UUID, therapist_id: uuid.UUID
) -> Patient:
    """Patient row if it belongs to the therapist, else 404 (no hint that it exists)."""
    patient = (await db.execute(
        select(Patient).where(Patient.id == patient_id, Patient.therapist_user_id == therapist_id)
    )).scalar_one_or_none()
    if patient is None:
        raise HTTPException(status_code=404, detail="Paziente non trovato")
    return patient


async def get_portal_patient(db: AsyncSession, user_id: uuid.UUID) -> Patient:
    patient = (await db.execute(
        select(Patient).where(Patient.patient_user_id == user_id)
    )).scalar_one_or_none()
    if patient is None:
        raise HTTPException(status_code=404, detail="Profilo paziente non trovato")
    return patient


async def get_or_create_therapist(
    db: AsyncSession, user_id: uuid.UUID, email: Optional[str] = None
) -> Therapist:
    therapist = await db.get(Therapist, user_id)
    if therapist is None:
        therapist = Therapist(user_id=user_id, email=email)
        db.add(therapist)
        await db.flush()
    return therapist
