from __future__ import annotations
import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from therapia.db import get_db
from therapia.api.deps import get_owned_patient, get_or_create_therapist
from therapia.errors import SendGridError
from therapia.models import (
    Appointment, AppointmentMessage, ConsentDocument, ExerciseCompletion, ObjectiveCompletion,
    Patient, PatientNote, PatientSessionThought, SessionNote,
)
from therapia.schemas import (
    TherapistProfileUpdate, TherapistProfilePublic,
    PatientCreate, PatientUpdate, PatientPublic,
    SessionNoteCreate, SessionNotePublic,
    TherapyPlanUpdate, TherapyPlanPublic, SessionItemsMerge, SendObjectivesReq, CompletionPublic,
    AppointmentCreate, AppointmentPublic, AppointmentMessagePublic,
    PatientNotePublic, ThoughtsPublic, ConsentCreate, ConsentPublic,
)
from therapia.services.auth_service import CurrentUser, get_current_user
from therapia.services.clinical_context import build_structured_notes, load_plan
from therapia.services.mailer import render_appointment_confirmation, render_objectives, send_email
from therapia.services.therapy_plan import load_completion, merge_session_items, save_plan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/therapist", tags=["therapist"])


# ---------- profile ----------
@router.get("/profile", response_model=TherapistProfilePublic)
async def get_profile(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    therapist = await get_or_create_therapist(db, current_user.id, current_user.email)
    await db.commit()
    return therapist


@router.put("/profile", response_model=TherapistProfilePublic)
async def update_profile(
    req: TherapistProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    therapist = await get_or_create_therapist(db, current_user.id, current_user.email)
    for key, value in req.model_dump(exclude_unset=True).items():
        setattr(therapist, key, value)
    await db.commit()
    return therapist


# ---------- patients ----------
@router.get("/patients", response_model=List[PatientPublic])
async def list_patients(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    res = await db.execute(
        select(Patient)
        .where(Patient.therapist_user_id == current_user.id)
        .order_by(Patient.display_name)
    )
    return res.scalars().all()


@router.post("/patients", response_model=PatientPublic, status_code=201)
async def create_patient(
    req: PatientCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_or_create_therapist(db, current_user.id, current_user.email)
    # unset durations fall back to the column defaults
    patient = Patient(therapist_user_id=current_user.id, **req.model_dump(exclude_none=True))
    db.add(patient)
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise HTTPException(status_code=500, detail=f"Errore creazione paziente: {e}")
    return patient


@router.get("/patients/{patient_id}", response_model=PatientPublic)
async def get_patient(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await get_owned_patient(db, patient_id, current_user.id)


@router.patch("/patients/{patient_id}", response_model=PatientPublic)
async def update_patient(
    patient_id: uuid.UUID,
    req: PatientUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_owned_patient(db, patient_id, current_user.id)
    for key, value in req.model_dump(exclude_unset=True).items():
        setattr(patient, key, value)
    await db.commit()
    return patient


# ---------- session notes ----------
@router.get("/patients/{patient_id}/session-notes", response_model=List[SessionNotePublic])
async def list_session_notes(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    res = await db.execute(
        select(SessionNote)
        .where(SessionNote.patient_id == patient_id)
        .order_by(SessionNote.session_date.desc())
    )
    return res.scalars().all()


@router.post("/patients/{patient_id}/session-notes", response_model=SessionNotePublic, status_code=201)
async def create_session_note(
    patient_id: uuid.UUID,
    req: SessionNoteCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    notes = build_structured_notes(
        transcript=req.transcript,
        ai_summary=req.ai_summary,
        themes=req.themes,
        objectives=req.objectives,
        exercises=req.exercises,
        personal_notes=req.personal_notes,
    )
    if not notes:
        raise HTTPException(status_code=400, detail="La seduta è vuota")

    note = SessionNote(
        patient_id=patient_id,
        therapist_user_id=current_user.id,
        session_date=req.session_date,
        notes=notes,
        ai_summary=req.ai_summary or None,
        themes=list(req.themes),
    )
    db.add(note)
    await db.commit()
    return note


# ---------- therapy plan ----------
@router.get("/patients/{patient_id}/plan", response_model=TherapyPlanPublic)
async def get_plan(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    plan = await load_plan(db, patient_id)
    if plan is None:
        return TherapyPlanPublic(patient_id=patient_id)
    return plan


@router.put("/patients/{patient_id}/plan", response_model=TherapyPlanPublic)
async def update_plan(
    patient_id: uuid.UUID,
    req: TherapyPlanUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    try:
        plan = await save_plan(db, patient_id, req.model_dump(exclude_unset=True))
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise HTTPException(status_code=500, detail=f"Errore salvataggio piano: {e}")
    return plan


@router.post("/patients/{patient_id}/plan/session-items", response_model=TherapyPlanPublic)
async def add_session_items(
    patient_id: uuid.UUID,
    req: SessionItemsMerge,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Objectives/exercises chosen at the end of a session are appended to the plan."""
    await get_owned_patient(db, patient_id, current_user.id)
    plan = await merge_session_items(db, patient_id, req.obiettivi_specifici, req.esercizi)
    await db.commit()
    return plan


@router.get("/patients/{patient_id}/completion", response_model=CompletionPublic)
async def get_completion(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    return await load_completion(db, patient_id)


@router.post("/send-objectives")
async def send_objectives(
    req: SendObjectivesReq,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_owned_patient(db, req.patient_id, current_user.id)
    if not patient.email:
        raise HTTPException(status_code=400, detail="Paziente non trovato o email mancante")
    if not (req.obiettivi_generali or req.obiettivi_specifici or req.esercizi):
        raise HTTPException(status_code=400, detail="Nessun obiettivo o esercizio selezionato")

    await send_email(
        patient.email,
        "📋 Il tuo piano terapeutico aggiornato",
        render_objectives(
            patient.display_name, req.obiettivi_generali, req.obiettivi_specifici, req.esercizi
        ),
        to_name=patient.display_name,
    )
    return {"success": True}


# ---------- appointments ----------
@router.get("/appointments", response_model=List[AppointmentPublic])
async def list_appointments(
    start: Optional[datetime] = Query(None, alias="from"),
    end: Optional[datetime] = Query(None, alias="to"),
    patient_id: Optional[uuid.UUID] = Query(None, alias="patientId"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    q = select(Appointment).where(Appointment.therapist_user_id == current_user.id)
    if start:
        q = q.where(Appointment.starts_at >= start)
    if end:
        q = q.where(Appointment.starts_at < end)
    if patient_id:
        q = q.where(Appointment.patient_id == patient_id)
    res = await db.execute(q.order_by(Appointment.starts_at))
    return res.scalars().all()


@router.post("/appointments", response_model=AppointmentPublic, status_code=201)
async def create_appointment(
    req: AppointmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = None
    if req.patient_id:
        patient = await get_owned_patient(db, req.patient_id, current_user.id)
    else:
        await get_or_create_therapist(db, current_user.id, current_user.email)

    ends_at = req.ends_at or req.starts_at + timedelta(minutes=req.duration_minutes)
    appointment = Appointment(
        therapist_user_id=current_user.id,
        patient_id=req.patient_id,
        title=req.title or "Seduta",
        starts_at=req.starts_at,
        ends_at=ends_at,
        location=req.location,
    )
    db.add(appointment)
    await db.commit()

    if patient is not None and patient.email:
        try:
            await send_email(
                patient.email,
                f"📅 Appuntamento confermato: {appointment.title}",
                render_appointment_confirmation(
                    patient.display_name, appointment.title, appointment.starts_at, appointment.location
                ),
                to_name=patient.display_name,
            )
        except SendGridError:
            # the appointment is saved either way
            logger.warning("Appointment %s: confirmation email not sent", appointment.id)
    return appointment


@router.delete("/appointments/{appointment_id}", status_code=204)
async def delete_appointment(
    appointment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    res = await db.execute(
        delete(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.therapist_user_id == current_user.id,
        )
    )
    if res.rowcount == 0:
        raise HTTPException(status_code=404, detail="Appuntamento non trovato")
    await db.commit()


# ---------- patient communications ----------
@router.get("/patients/{patient_id}/messages", response_model=List[AppointmentMessagePublic])
async def list_messages(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    res = await db.execute(
        select(AppointmentMessage)
        .where(AppointmentMessage.patient_id == patient_id)
        .order_by(AppointmentMessage.created_at.desc())
    )
    return res.scalars().all()


async def _owned_message(db: AsyncSession, message_id: uuid.UUID, therapist_id: uuid.UUID) -> AppointmentMessage:
    message = (await db.execute(
        select(AppointmentMessage)
        .join(Patient, Patient.id == AppointmentMessage.patient_id)
        .where(AppointmentMessage.id == message_id, Patient.therapist_user_id == therapist_id)
    )).scalar_one_or_none()
    if message is None:
        raise HTTPException(status_code=404, detail="Messaggio non trovato")
    return message


@router.patch("/messages/{message_id}/read", response_model=AppointmentMessagePublic)
async def mark_message_read(
    message_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    message = await _owned_message(db, message_id, current_user.id)
    message.read_by_therapist = True
    await db.commit()
    return message


@router.delete("/messages/{message_id}", status_code=204)
async def delete_message(
    message_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    message = await _owned_message(db, message_id, current_user.id)
    await db.delete(message)
    await db.commit()


@router.get("/patients/{patient_id}/thoughts", response_model=Optional[ThoughtsPublic])
async def get_thoughts(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    return await db.get(PatientSessionThought, patient_id)


@router.delete("/patients/{patient_id}/thoughts", status_code=204)
async def clear_thoughts(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    await db.execute(delete(PatientSessionThought).where(PatientSessionThought.patient_id == patient_id))
    await db.commit()


@router.get("/patients/{patient_id}/diary", response_model=List[PatientNotePublic])
async def read_diary(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    res = await db.execute(
        select(PatientNote)
        .where(PatientNote.patient_id == patient_id)
        .order_by(PatientNote.note_date.desc(), PatientNote.created_at.desc())
    )
    return res.scalars().all()


# ---------- consents ----------
@router.get("/patients/{patient_id}/consents", response_model=List[ConsentPublic])
async def list_consents(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    res = await db.execute(
        select(ConsentDocument)
        .where(ConsentDocument.patient_id == patient_id)
        .order_by(ConsentDocument.created_at.desc())
    )
    return res.scalars().all()


@router.post("/patients/{patient_id}/consents", response_model=ConsentPublic, status_code=201)
async def create_consent(
    patient_id: uuid.UUID,
    req: ConsentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    consent = ConsentDocument(
        patient_id=patient_id, therapist_user_id=current_user.id, title=req.title, status="pending"
    )
    db.add(consent)
    await db.commit()
    return consent


@router.delete("/consents/{consent_id}", status_code=204)
async def delete_consent(
    consent_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    res = await db.execute(
        delete(ConsentDocument).where(
            ConsentDocument.id == consent_id,
            ConsentDocument.therapist_user_id == current_user.id,
        )
    )
    if res.rowcount == 0:
        raise HTTPException(status_code=404, detail="Consenso non trovato")
    await db.commit()
