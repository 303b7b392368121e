from __future__ import annotations
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therapia.db import get_db
from therapia.api.deps import get_portal_patient
from therapia.models import (
    Appointment, AppointmentMessage, ConsentDocument, ExerciseCompletion, ObjectiveCompletion,
    PatientNote, PatientSessionThought, utcnow,
)
from therapia.schemas import (
    PortalOverview, PatientPublic, PatientProfileUpdate,
    DiaryNoteIn, PatientNotePublic, ThoughtsIn, ThoughtsPublic,
    CompletionToggle, ObjectiveCompletionPublic, ExerciseCompletionPublic,
    AppointmentMessageIn, AppointmentMessagePublic,
)
from therapia.services.auth_service import CurrentUser, get_current_user
from therapia.services.therapy_plan import load_completion, set_completed

router = APIRouter(prefix="/api/patient", tags=["patient"])

UPCOMING_LIMIT = 5
DIARY_LIMIT = 10


@router.get("/me", response_model=PortalOverview)
async def overview(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Everything the patient dashboard shows in one call."""
    patient = await get_portal_patient(db, current_user.id)

    upcoming = (await db.execute(
        select(Appointment)
        .where(Appointment.patient_id == patient.id, Appointment.starts_at >= utcnow())
        .order_by(Appointment.starts_at)
        .limit(UPCOMING_LIMIT)
    )).scalars().all()
    diary = (await db.execute(
        select(PatientNote)
        .where(PatientNote.patient_id == patient.id)
        .order_by(PatientNote.note_date.desc(), PatientNote.created_at.desc())
        .limit(DIARY_LIMIT)
    )).scalars().all()
    consents = (await db.execute(
        select(ConsentDocument)
        .where(ConsentDocument.patient_id == patient.id)
        .order_by(ConsentDocument.created_at.desc())
    )).scalars().all()
    completion = await load_completion(db, patient.id)

    return {
        "patient": patient,
        "upcoming_appointments": upcoming,
        "diary": diary,
        "thoughts": await db.get(PatientSessionThought, patient.id),
        "objectives": completion["objectives"],
        "exercises": completion["exercises"],
        "consents": consents,
    }


@router.put("/me", response_model=PatientPublic)
async def update_me(
    req: PatientProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_portal_patient(db, current_user.id)
    for key, value in req.model_dump(exclude_unset=True).items():
        setattr(patient, key, value)
    await db.commit()
    return patient


# ---------- diary ----------
async def _own_note(db: AsyncSession, note_id: uuid.UUID, patient_id: uuid.UUID) -> PatientNote:
    note = (await db.execute(
        select(PatientNote).where(PatientNote.id == note_id, PatientNote.patient_id == patient_id)
    )).scalar_one_or_none()
    if note is None:
        raise HTTPException(status_code=404, detail="Nota non trovata")
    return note


@router.post("/diary", response_model=PatientNotePublic, status_code=201)
async def add_diary_note(
    req: DiaryNoteIn,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_portal_patient(db, current_user.id)
    content = req.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Nota vuota")
    note = PatientNote(patient_id=patient.id, note_date=date.today(), content=content)
    db.add(note)
    await db.commit()
    return note


@router.put("/diary/{note_id}", response_model=PatientNotePublic)
async def edit_diary_note(
    note_id: uuid.UUID,
    req: DiaryNoteIn,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_portal_patient(db, current_user.id)
    note = await _own_note(db, note_id, patient.id)
    content = req.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Nota vuota")
    note.content = content
    await db.commit()
    return note


@router.delete("/diary/{note_id}", status_code=204)
async def delete_diary_note(
    note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_portal_patient(db, current_user.id)
    note = await _own_note(db, note_id, patient.id)
    await db.delete(note)
    await db.commit()


# ---------- thoughts for the next session ----------
@router.put("/thoughts", response_model=ThoughtsPublic)
async def save_thoughts(
    req: ThoughtsIn,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_portal_patient(db, current_user.id)
    content = req.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Testo vuoto")

    row: Optional[PatientSessionThought] = await db.get(PatientSessionThought, patient.id)
    if row is None:
        row = PatientSessionThought(patient_id=patient.id, content=content)
        db.add(row)
    else:
        row.content = content
        row.created_at = utcnow()
    await db.commit()
    return row


# ---------- completion ----------
@router.patch("/objectives/{completion_id}", response_model=ObjectiveCompletionPublic)
async def toggle_objective(
    completion_id: uuid.UUID,
    req: CompletionToggle,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_portal_patient(db, current_user.id)
    row = (await db.execute(
        select(ObjectiveCompletion).where(
            ObjectiveCompletion.id == completion_id, ObjectiveCompletion.patient_id == patient.id
        )
    )).scalar_one_or_none()
    if row is None:
        raise HTTPException(status_code=404, detail="Obiettivo non trovato")
    set_completed(row, req.completed)
    await db.commit()
    return row


@router.patch("/exercises/{completion_id}", response_model=ExerciseCompletionPublic)
async def toggle_exercise(
    completion_id: uuid.UUID,
    req: CompletionToggle,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_portal_patient(db, current_user.id)
    row = (await db.execute(
        select(ExerciseCompletion).where(
            ExerciseCompletion.id == completion_id, ExerciseCompletion.patient_id == patient.id
        )
    )).scalar_one_or_none()
    if row is None:
        raise HTTPException(status_code=404, detail="Esercizio non trovato")
    set_completed(row, req.completed)
    await db.commit()
    return row


# ---------- appointment messages ----------
@router.post(
    "/appointments/{appointment_id}/messages",
    response_model=AppointmentMessagePublic,
    status_code=201,
)
async def message_therapist(
    appointment_id: uuid.UUID,
    req: AppointmentMessageIn,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_portal_patient(db, current_user.id)
    appointment = (await db.execute(
        select(Appointment).where(Appointment.id == appointment_id, Appointment.patient_id == patient.id)
    )).scalar_one_or_none()
    if appointment is None:
        raise HTTPException(status_code=404, detail="Appuntamento non trovato")

    text = req.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Messaggio vuoto")
    msg = AppointmentMessage(appointment_id=appointment.id, patient_id=patient.id, message=text)
    db.add(msg)
    await db.commit()
    return msg
