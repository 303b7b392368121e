from __future__ import annotations
import logging
import uuid
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therapia import config
from therapia.db import get_db
from therapia.api.deps import get_owned_patient
from therapia.models import Patient, QuestionnaireResult
from therapia.schemas import (
    SubmitQuestionnaireReq, SubmitQuestionnaireResp, QuestionnaireInviteReq,
    Gad7ResultReq, QuestionnaireResultPublic,
)
from therapia.services.auth_service import CurrentUser, get_current_user
from therapia.services.clinical_context import format_date_it
from therapia.services.mailer import render_gad7_result, render_questionnaire_invite, send_email
from therapia.services.questionnaires import (
    REGISTRY, InvalidAnswers, UnknownQuestionnaire, get_questionnaire, score,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["questionnaires"])


@router.get("/questionnaires")
async def list_questionnaires():
    return [q.public() for q in REGISTRY.values()]


@router.post("/submit-questionnaire", response_model=SubmitQuestionnaireResp)
async def submit_questionnaire(req: SubmitQuestionnaireReq, db: AsyncSession = Depends(get_db)):
    """
    Reached from the invite link, so no login: the patient id in the link is the key.
    Total and severity are always computed here, never taken from the client.
    """
    patient = await db.get(Patient, req.patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail="Paziente non trovato")

    try:
        total, severity = score(req.type, req.answers)
    except (UnknownQuestionnaire, InvalidAnswers) as e:
        raise HTTPException(status_code=400, detail=str(e))

    db.add(QuestionnaireResult(
        patient_id=patient.id,
        therapist_user_id=patient.therapist_user_id,
        type=req.type,
        answers=list(req.answers),
        total=total,
        severity=severity,
    ))
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise HTTPException(status_code=500, detail=f"Errore salvataggio questionario: {e}")

    logger.info("Questionnaire %s saved for patient %s (total=%d)", req.type, patient.id, total)
    return {
        "success": True,
        "total": total,
        "severity": severity,
        "max_score": get_questionnaire(req.type).max_score,
    }


@router.get("/patients/{patient_id}/questionnaire-results", response_model=List[QuestionnaireResultPublic])
async def questionnaire_history(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await get_owned_patient(db, patient_id, current_user.id)
    res = await db.execute(
        select(QuestionnaireResult)
        .where(QuestionnaireResult.patient_id == patient_id)
        .order_by(QuestionnaireResult.created_at.desc())
    )
    return res.scalars().all()


@router.post("/send-questionnaire-invite")
async def send_questionnaire_invite(
    req: QuestionnaireInviteReq,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        q = get_questionnaire(req.questionnaire_type)
    except UnknownQuestionnaire:
        raise HTTPException(status_code=400, detail="Tipo questionario non valido")
    patient = await get_owned_patient(db, req.patient_id, current_user.id)

    link = f"{config.APP_URL.rstrip('/')}/app/paziente/questionari/{q.path}?patientId={patient.id}"
    await send_email(
        req.email,
        f"{q.label} – Questionario da compilare",
        render_questionnaire_invite(req.patient_name or patient.display_name, q.label, link),
        to_name=req.patient_name or patient.display_name,
    )
    return {"success": True}


@router.post("/send-gad7-result")
async def send_gad7_result(
    req: Gad7ResultReq,
    current_user: CurrentUser = Depends(get_current_user),
):
    await send_email(
        req.to or req.to_email,
        "Risultati GAD-7",
        render_gad7_result(
            req.patient_name or req.to_name,
            req.total,
            req.severity,
            req.result_date or format_date_it(date.today()),
        ),
        to_name=req.to_name,
    )
    return {"success": True}
