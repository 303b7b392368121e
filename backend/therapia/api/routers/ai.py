from __future__ import annotations
import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from therapia.db import get_db
from therapia.api.deps import get_owned_patient
from therapia.errors import GroqError
from therapia.models import SessionNote
from therapia.schemas import (
    TranscriptReq, PatientIdReq, ObjectivesReq,
    SummaryResp, ThemesResp, AssessmentResp, ObjectivesResp, PlanSuggestionsResp,
)
from therapia.services.auth_service import CurrentUser, get_current_user
from therapia.services.clinical_context import (
    get_orientation, load_plan, load_recent_results, load_session_notes,
    build_assessment_context, build_objectives_context, build_plan_context, has_minimal_context,
)
from therapia.services.llm_client import call_gemini, groq_chat
from therapia.services.llm_parsing import LLMResponseFormatError, parse_json_object, as_str_list
from therapia.services.prompt_builder import (
    THEMES_SYSTEM_PROMPT,
    build_summary_system_prompt, build_assessment_system_prompt,
    build_objectives_system_prompt, build_plan_system_prompt,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ai"])

MAX_THEMES = 5
ASSESSMENT_RESULTS_LIMIT = 30
RESULTS_LIMIT = 20
PLAN_NOTES_LIMIT = 5
RAW_PREVIEW_CHARS = 500

INSUFFICIENT_CONTEXT_MSG = (
    "Dati clinici insufficienti per generare suggerimenti appropriati. Compila almeno uno dei "
    "seguenti campi prima di richiedere suggerimenti IA:\n\n"
    "• Problematiche iniziali del paziente\n"
    "• Obiettivi terapeutici dichiarati\n"
    "• Anamnesi\n"
    "• Valutazione psicodiagnostica\n"
    "• Note di almeno una seduta"
)

OBJECTIVES_PLACEHOLDER = {
    "obiettivi_generali": ["Obiettivo generale da definire manualmente"],
    "obiettivi_specifici": ["Obiettivo specifico da definire manualmente"],
    "esercizi": ["Esercizio da definire manualmente"],
}


def _require_patient_id(patient_id):
    if not patient_id:
        raise HTTPException(status_code=400, detail="Patient ID mancante")
    return patient_id


def _invalid_format(raw: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "Formato risposta IA non valido", "rawResponse": raw[:RAW_PREVIEW_CHARS]},
    )


@router.post("/ai-summary", response_model=SummaryResp)
async def ai_summary(
    req: TranscriptReq,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Structured Italian summary of a session transcript (Groq)."""
    if not req.transcript:
        raise HTTPException(status_code=400, detail="Nessuna trascrizione fornita")

    orientation = ""
    if req.patient_id:
        patient = await get_owned_patient(db, req.patient_id, current_user.id)
        orientation = await get_orientation(db, patient.therapist_user_id)

    try:
        summary = await groq_chat(
            [
                {"role": "system", "content": build_summary_system_prompt(orientation)},
                {"role": "user", "content": f"Trascrizione seduta:\n\n{req.transcript}"},
            ],
            temperature=0.3,
            max_tokens=2000,
        )
    except GroqError as e:
        raise GroqError("Errore generazione riassunto", details=e.details or e.message)
    return {"summary": summary}


@router.post("/generate-themes", response_model=ThemesResp)
async def generate_themes(
    req: TranscriptReq,
    current_user: CurrentUser = Depends(get_current_user),
):
    if not req.transcript:
        raise HTTPException(status_code=400, detail="Trascrizione mancante")

    raw = await call_gemini(
        THEMES_SYSTEM_PROMPT,
        "Analizza questa trascrizione di seduta terapeutica e identifica i temi principali:"
        f"\n\n{req.transcript}",
        temperature=0.3,
        max_tokens=500,
    )
    try:
        data = parse_json_object(raw)
        if not isinstance(data.get("themes"), list):
            raise LLMResponseFormatError("Struttura JSON non valida", raw=raw)
    except LLMResponseFormatError:
        logger.warning("Themes: unparsable AI response")
        return _invalid_format(raw)

    return {
        "themes": as_str_list(data["themes"])[:MAX_THEMES],
        "transcript_length": len(req.transcript),
    }


@router.post("/generate-assessment", response_model=AssessmentResp)
async def generate_assessment(
    req: PatientIdReq,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Anamnesis, diagnostic evaluation and case formulation from every recorded session."""
    patient = await get_owned_patient(db, _require_patient_id(req.patient_id), current_user.id)
    orientation = await get_orientation(db, patient.therapist_user_id)

    notes = await load_session_notes(db, patient.id)
    if not notes:
        raise HTTPException(
            status_code=400,
            detail="Nessuna seduta disponibile. Registra almeno 1-2 sedute prima di generare la valutazione.",
        )
    results = await load_recent_results(db, patient.id, ASSESSMENT_RESULTS_LIMIT)

    raw = await call_gemini(
        build_assessment_system_prompt(orientation, has_questionnaires=bool(results)),
        build_assessment_context(patient, notes, results),
        temperature=0.4,
        max_tokens=2500,
    )
    try:
        data = parse_json_object(raw)
    except LLMResponseFormatError:
        logger.warning("Assessment: unparsable AI response for patient %s", patient.id)
        return _invalid_format(raw)

    return {"assessment": {
        "anamnesi": str(data.get("anamnesi") or ""),
        "valutazione_psicodiagnostica": str(data.get("valutazione_psicodiagnostica") or ""),
        "formulazione_caso": str(data.get("formulazione_caso") or ""),
    }}


@router.post("/generate-objectives", response_model=ObjectivesResp, response_model_exclude_none=True)
async def generate_objectives(
    req: ObjectivesReq,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Objectives and exercises. lastSessionOnly=true analyses only the live transcript
    (or the latest saved session); otherwise the whole course of therapy plus the plan.
    """
    patient = await get_owned_patient(db, _require_patient_id(req.patient_id), current_user.id)
    orientation = await get_orientation(db, patient.therapist_user_id)

    if req.last_session_only:
        if req.transcript_text:
            notes = [SessionNote(notes=req.transcript_text, session_date=date.today())]
        else:
            notes = await load_session_notes(db, patient.id, newest_first=True, limit=1)
    else:
        notes = await load_session_notes(db, patient.id)
    if not notes:
        raise HTTPException(status_code=400, detail="Nessuna seduta trovata per questo paziente")

    plan = None if req.last_session_only else await load_plan(db, patient.id)
    results = await load_recent_results(db, patient.id, RESULTS_LIMIT)

    raw = await call_gemini(
        build_objectives_system_prompt(orientation, req.last_session_only),
        build_objectives_context(patient, notes, results, plan, req.last_session_only),
        temperature=0.3,
        max_tokens=2000,
    )
    base = {
        "sessions_analyzed": len(notes),
        "patient_name": patient.display_name,
        "last_session_only": req.last_session_only,
    }
    try:
        data = parse_json_object(raw)
        if not all(isinstance(data.get(k), list) for k in OBJECTIVES_PLACEHOLDER):
            raise LLMResponseFormatError("Struttura JSON non valida - campi mancanti", raw=raw)
    except LLMResponseFormatError:
        logger.warning("Objectives: unparsable AI response, returning placeholders")
        return {
            **OBJECTIVES_PLACEHOLDER,
            **base,
            "error_info": "Risposta IA non parsabile, forniti placeholder",
        }

    return {
        "obiettivi_generali": as_str_list(data["obiettivi_generali"]),
        "obiettivi_specifici": as_str_list(data["obiettivi_specifici"]),
        "esercizi": as_str_list(data["esercizi"]),
        **base,
    }


@router.post("/suggest-plan", response_model=PlanSuggestionsResp)
async def suggest_plan(
    req: PatientIdReq,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_owned_patient(db, _require_patient_id(req.patient_id), current_user.id)
    orientation = await get_orientation(db, patient.therapist_user_id)
    plan = await load_plan(db, patient.id)
    notes = await load_session_notes(db, patient.id, newest_first=True, limit=PLAN_NOTES_LIMIT)
    results = await load_recent_results(db, patient.id, RESULTS_LIMIT)

    if not has_minimal_context(patient, plan, notes, results):
        raise HTTPException(status_code=400, detail=INSUFFICIENT_CONTEXT_MSG)

    try:
        raw = await groq_chat(
            [
                {"role": "system", "content": build_plan_system_prompt(orientation)},
                {"role": "user", "content": build_plan_context(patient, plan, notes, results)},
            ],
            temperature=0.5,
            max_tokens=1500,
        )
    except GroqError as e:
        raise GroqError("Errore generazione suggerimenti", details=e.details or e.message)

    try:
        data = parse_json_object(raw)
    except LLMResponseFormatError:
        logger.warning("Suggest plan: unparsable AI response for patient %s", patient.id)
        return _invalid_format(raw)

    return {"suggestions": {
        "obiettivi_generali": as_str_list(data.get("obiettivi_generali")),
        "obiettivi_specifici": as_str_list(data.get("obiettivi_specifici")),
        "esercizi": as_str_list(data.get("esercizi")),
        "note": str(data.get("note") or ""),
    }}
