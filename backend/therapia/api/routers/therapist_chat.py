from __future__ import annotations
import logging
import uuid
from datetime import datetime
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from therapia.db import get_db
from therapia.api.deps import get_owned_patient
from therapia.models import Appointment
from therapia.schemas import TherapistChatReq
from therapia.services.auth_service import CurrentUser, get_current_user
from therapia.services.llm_client import call_gemini
from therapia.services.prompt_builder import ASSISTANT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["assistant"])


class _NewAppointment(BaseModel):
    patientId: uuid.UUID
    startsAt: datetime
    endsAt: datetime
    title: Optional[str] = None
    location: Optional[str] = None


async def _create_appointment(db: AsyncSession, therapist_id: uuid.UUID, data: dict) -> dict:
    try:
        appt = _NewAppointment(**data)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Dati appuntamento incompleti")
    if appt.endsAt <= appt.startsAt:
        raise HTTPException(status_code=400, detail="Dati appuntamento incompleti")
    await get_owned_patient(db, appt.patientId, therapist_id)

    title = appt.title or "Seduta"
    db.add(Appointment(
        therapist_user_id=therapist_id,
        patient_id=appt.patientId,
        title=title,
        starts_at=appt.startsAt,
        ends_at=appt.endsAt,
        location=appt.location,
    ))
    await db.commit()
    when = appt.startsAt.strftime("%d/%m/%Y, %H:%M")
    return {"ok": True, "reply": f'✅ Appuntamento "{title}" creato con successo per il {when}!'}


async def _delete_appointment(db: AsyncSession, therapist_id: uuid.UUID, data: dict) -> dict:
    try:
        appointment_id = uuid.UUID(str(data.get("appointmentId") or ""))
    except ValueError:
        raise HTTPException(status_code=400, detail="ID appuntamento mancante")
    res = await db.execute(
        delete(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.therapist_user_id == therapist_id,
        )
    )
    if res.rowcount == 0:
        raise HTTPException(status_code=404, detail="Appuntamento non trovato")
    await db.commit()
    return {"ok": True, "reply": "✅ Appuntamento cancellato con successo!"}


def _create_patient_redirect(data: dict) -> dict:
    name = (data.get("display_name") or "").strip()
    email = (data.get("email") or "").strip()
    if not name or not email:
        raise HTTPException(status_code=400, detail="Nome ed email obbligatori")
    query = urlencode({"name": name, "email": email, "phone": data.get("phone") or ""}, quote_via=quote)
    return {
        "ok": True,
        "action": "redirect",
        "url": f"/app/therapist/pazienti/nuovo?{query}",
        "reply": f"✅ Ti porto alla pagina di creazione paziente con i dati già precompilati per {name}!",
    }


@router.post("/therapist-chat")
async def therapist_chat(
    req: TherapistChatReq,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Platform help assistant; a few direct actions skip the model entirely."""
    if req.action == "create_appointment":
        return await _create_appointment(db, current_user.id, req.action_data)
    if req.action == "delete_appointment":
        return await _delete_appointment(db, current_user.id, req.action_data)
    if req.action == "create_patient":
        return _create_patient_redirect(req.action_data)

    if not req.message:
        raise HTTPException(status_code=400, detail="Messaggio mancante")

    reply = await call_gemini(
        ASSISTANT_SYSTEM_PROMPT,
        req.message,
        temperature=0.3,
        max_tokens=400,
        history=[t.model_dump() for t in req.conversation_history],
    )
    return {"reply": reply}
