from __future__ import annotations
import uuid
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therapia.models import Patient, QuestionnaireResult, SessionNote, Therapist, TherapyPlan

PLAN_NOTE_PREVIEW_CHARS = 500


def format_date_it(value: Union[date, datetime, None]) -> str:
    """d/m/yyyy like the Italian locale, without zero padding."""
    if value is None:
        return ""
    return f"{value.day}/{value.month}/{value.year}"


def _filled(text: Optional[str]) -> bool:
    return bool(text and text.strip())


async def get_orientation(db: AsyncSession, therapist_user_id: Optional[uuid.UUID]) -> str:
    if not therapist_user_id:
        return ""
    orientation = (await db.execute(
        select(Therapist.therapeutic_orientation).where(Therapist.user_id == therapist_user_id)
    )).scalar_one_or_none()
    return orientation or ""


async def load_plan(db: AsyncSession, patient_id: uuid.UUID) -> Optional[TherapyPlan]:
    return (await db.execute(
        select(TherapyPlan).where(TherapyPlan.patient_id == patient_id)
    )).scalar_one_or_none()


async def load_recent_results(
    db: AsyncSession, patient_id: uuid.UUID, limit: int
) -> List[QuestionnaireResult]:
    return list((await db.execute(
        select(QuestionnaireResult)
        .where(QuestionnaireResult.patient_id == patient_id)
        .order_by(QuestionnaireResult.created_at.desc())
        .limit(limit)
    )).scalars().all())


async def load_session_notes(
    db: AsyncSession, patient_id: uuid.UUID, *, newest_first: bool = False, limit: Optional[int] = None
) -> List[SessionNote]:
    order = SessionNote.session_date.desc() if newest_first else SessionNote.session_date.asc()
    q = select(SessionNote).where(SessionNote.patient_id == patient_id).order_by(order)
    if limit:
        q = q.limit(limit)
    return list((await db.execute(q)).scalars().all())


def latest_results_by_type(results: Iterable[QuestionnaireResult]) -> List[QuestionnaireResult]:
    """Keep the first result seen per type; input is expected newest first."""
    seen = {}
    for r in results:
        if r.type not in seen:
            seen[r.type] = r
    return list(seen.values())


def format_questionnaire_block(results: Sequence[QuestionnaireResult], header: str) -> str:
    latest = latest_results_by_type(results)
    if not latest:
        return ""
    lines = [f"{header}:"]
    for r in latest:
        severity = f" → {r.severity}" if r.severity else ""
        lines.append(f"• {r.type}: punteggio {r.total}{severity} ({format_date_it(r.created_at)})")
    return "\n".join(lines) + "\n\n"


def _plan_sections(plan: Optional[TherapyPlan]) -> str:
    if plan is None:
        return ""
    out = ""
    if _filled(plan.anamnesi):
        out += f"ANAMNESI:\n{plan.anamnesi}\n\n"
    if _filled(plan.valutazione_psicodiagnostica):
        out += f"VALUTAZIONE PSICODIAGNOSTICA:\n{plan.valutazione_psicodiagnostica}\n\n"
    if _filled(plan.formulazione_caso):
        out += f"FORMULAZIONE DEL CASO:\n{plan.formulazione_caso}\n\n"
    return out


def build_assessment_context(
    patient: Patient,
    notes: Sequence[SessionNote],
    results: Sequence[QuestionnaireResult],
) -> str:
    context = f"PAZIENTE: {patient.display_name or 'Non specificato'}\n\n"
    if _filled(patient.issues):
        context += f"PROBLEMATICHE INIZIALI:\n{patient.issues}\n\n"
    if _filled(patient.goals):
        context += f"OBIETTIVI DICHIARATI:\n{patient.goals}\n\n"
    context += format_questionnaire_block(results, "RISULTATI QUESTIONARI CLINICI (più recenti)")

    context += f"SEDUTE REGISTRATE ({len(notes)} totali):\n\n"
    for i, note in enumerate(notes, start=1):
        context += f"--- SEDUTA {i} ({format_date_it(note.session_date)}) ---\n"
        if note.ai_summary:
            context += f"Riassunto IA:\n{note.ai_summary}\n\n"
        if note.notes:
            context += f"Note:\n{note.notes}\n\n"
        if note.themes:
            context += f"Temi: {', '.join(note.themes)}\n\n"
    return context


def build_objectives_context(
    patient: Patient,
    notes: Sequence[SessionNote],
    results: Sequence[QuestionnaireResult],
    plan: Optional[TherapyPlan],
    last_session_only: bool,
) -> str:
    context = f"PAZIENTE: {patient.display_name}\n\n"
    if _filled(patient.issues):
        context += f"PROBLEMATICHE: {patient.issues}\n\n"
    context += _plan_sections(plan)
    context += format_questionnaire_block(results, "RISULTATI QUESTIONARI CLINICI")

    if last_session_only:
        note = notes[0]
        context += "CONTENUTO DELLA SEDUTA (da analizzare):\n"
        context += f"Seduta del {format_date_it(note.session_date)}:\n"
        body = note.ai_summary or note.notes
        if body:
            context += body + "\n"
    else:
        context += f"TUTTE LE SEDUTE TERAPEUTICHE ({len(notes)} sedute):\n"
        for i, note in enumerate(notes, start=1):
            context += f"\nSeduta {i} ({format_date_it(note.session_date)}):\n"
            body = note.ai_summary or note.notes
            if body:
                context += body + "\n"
    return context


def _note_has_content(note: SessionNote) -> bool:
    return _filled(note.notes) or _filled(note.ai_summary)


def has_minimal_context(
    patient: Patient,
    plan: Optional[TherapyPlan],
    notes: Sequence[SessionNote],
    results: Sequence[QuestionnaireResult],
) -> bool:
    return (
        _filled(patient.issues)
        or _filled(patient.goals)
        or (plan is not None and (
            _filled(plan.anamnesi)
            or _filled(plan.valutazione_psicodiagnostica)
            or _filled(plan.formulazione_caso)
        ))
        or any(_note_has_content(n) for n in notes)
        or len(results) > 0
    )


def build_plan_context(
    patient: Patient,
    plan: Optional[TherapyPlan],
    notes: Sequence[SessionNote],
    results: Sequence[QuestionnaireResult],
) -> str:
    context = f"PAZIENTE: {patient.display_name or 'Non specificato'}\n\n"
    if _filled(patient.issues):
        context += f"PROBLEMATICHE INIZIALI:\n{patient.issues}\n\n"
    if _filled(patient.goals):
        context += f"OBIETTIVI DICHIARATI:\n{patient.goals}\n\n"
    context += _plan_sections(plan)
    context += format_questionnaire_block(results, "RISULTATI QUESTIONARI CLINICI")

    valid = [n for n in notes if _note_has_content(n)]
    if valid:
        context += f"SEDUTE PRECEDENTI (ultime {len(valid)}):\n"
        for i, note in enumerate(valid, start=1):
            context += f"\nSeduta {i} ({format_date_it(note.session_date)}):\n"
            if _filled(note.ai_summary):
                context += note.ai_summary + "\n"
            else:
                context += note.notes[:PLAN_NOTE_PREVIEW_CHARS] + "...\n"
    return context


def build_structured_notes(
    transcript: Optional[str] = None,
    ai_summary: Optional[str] = None,
    themes: Sequence[str] = (),
    objectives: Sequence[str] = (),
    exercises: Sequence[str] = (),
    personal_notes: Optional[str] = None,
) -> str:
    """Full text stored in session_notes.notes, one emoji-titled section per filled part."""
    def bullets(items: Sequence[str]) -> str:
        return "\n".join(f"• {i}" for i in items)

    out = ""
    if _filled(transcript):
        out += f"📝 TRASCRIZIONE SEDUTA:\n{transcript.strip()}\n\n"
    if _filled(ai_summary):
        out += f"✨ RIASSUNTO IA:\n{ai_summary.strip()}\n\n"
    if themes:
        out += f"🎯 TEMI PRINCIPALI:\n{bullets(themes)}\n\n"
    if objectives:
        out += f"🎯 OBIETTIVI EMERSI:\n{bullets(objectives)}\n\n"
    if exercises:
        out += f"💪 ESERCIZI PROPOSTI:\n{bullets(exercises)}\n\n"
    if _filled(personal_notes):
        out += f"📝 NOTE PERSONALI TERAPEUTA:\n{personal_notes.strip()}"
    return out.strip()
