from __future__ import annotations
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from therapia.models import ExerciseCompletion, ObjectiveCompletion, TherapyPlan

PLAN_TEXT_FIELDS = ("anamnesi", "valutazione_psicodiagnostica", "formulazione_caso")
PLAN_LIST_FIELDS = ("obiettivi_generali", "obiettivi_specifici", "esercizi")


def _clean(items: Optional[Sequence[str]]) -> List[str]:
    return [i.strip() for i in (items or []) if i and i.strip()]


async def get_or_create_plan(
    db: AsyncSession, patient_id: uuid.UUID
) -> TherapyPlan:
    plan = (await db.execute(
        select(TherapyPlan).where(TherapyPlan.patient_id == patient_id)
    )).scalar_one_or_none()
    if plan is None:
        plan = TherapyPlan(
            patient_id=patient_id, obiettivi_generali=[], obiettivi_specifici=[], esercizi=[]
        )
        db.add(plan)
    return plan


async def sync_completion_rows(db: AsyncSession, plan: TherapyPlan) -> None:
    """Rebuild the per-item completion rows from the plan lists (progress is reset)."""
    await db.execute(delete(ObjectiveCompletion).where(ObjectiveCompletion.patient_id == plan.patient_id))
    await db.execute(delete(ExerciseCompletion).where(ExerciseCompletion.patient_id == plan.patient_id))

    for objective_type, items in (
        ("generale", plan.obiettivi_generali),
        ("specifico", plan.obiettivi_specifici),
    ):
        for index, text in enumerate(items):
            db.add(ObjectiveCompletion(
                patient_id=plan.patient_id,
                objective_type=objective_type,
                objective_index=index,
                objective_text=text,
                completed=False,
            ))
    for index, text in enumerate(plan.esercizi):
        db.add(ExerciseCompletion(
            patient_id=plan.patient_id, exercise_index=index, exercise_text=text, completed=False,
        ))


async def save_plan(db: AsyncSession, patient_id: uuid.UUID, data: Dict) -> TherapyPlan:
    """Upsert the plan. Completion rows are rebuilt only when a list field is sent."""
    plan = await get_or_create_plan(db, patient_id)
    for name in PLAN_TEXT_FIELDS:
        if name in data:
            setattr(plan, name, data[name])
    lists_changed = False
    for name in PLAN_LIST_FIELDS:
        if name in data:
            setattr(plan, name, _clean(data[name]))
            lists_changed = True
    await db.flush()
    if lists_changed:
        await sync_completion_rows(db, plan)
    return plan


async def merge_session_items(
    db: AsyncSession,
    patient_id: uuid.UUID,
    obiettivi_specifici: Sequence[str],
    esercizi: Sequence[str],
) -> TherapyPlan:
    """Append objectives/exercises picked in a session, skipping ones already in the plan."""
    plan = await get_or_create_plan(db, patient_id)
    current_obj = list(plan.obiettivi_specifici or [])
    current_ex = list(plan.esercizi or [])
    current_obj += [o for o in _clean(obiettivi_specifici) if o not in current_obj]
    current_ex += [e for e in _clean(esercizi) if e not in current_ex]
    plan.obiettivi_specifici = current_obj
    plan.esercizi = current_ex
    # keep already-completed items: only add rows for the new tail
    await db.flush()
    existing_obj = {r.objective_index for r in (await db.execute(
        select(ObjectiveCompletion).where(
            ObjectiveCompletion.patient_id == patient_id,
            ObjectiveCompletion.objective_type == "specifico",
        )
    )).scalars()}
    for index, text in enumerate(current_obj):
        if index not in existing_obj:
            db.add(ObjectiveCompletion(
                patient_id=patient_id, objective_type="specifico",
                objective_index=index, objective_text=text, completed=False,
            ))
    existing_ex = {r.exercise_index for r in (await db.execute(
        select(ExerciseCompletion).where(ExerciseCompletion.patient_id == patient_id)
    )).scalars()}
    for index, text in enumerate(current_ex):
        if index not in existing_ex:
            db.add(ExerciseCompletion(
                patient_id=patient_id, exercise_index=index, exercise_text=text, completed=False,
            ))
    return plan


def set_completed(row, completed: bool) -> None:
    row.completed = completed
    row.completed_at = datetime.now(timezone.utc) if completed else None


async def load_completion(db: AsyncSession, patient_id: uuid.UUID) -> Dict[str, list]:
    objectives = (await db.execute(
        select(ObjectiveCompletion)
        .where(ObjectiveCompletion.patient_id == patient_id)
        .order_by(ObjectiveCompletion.objective_type, ObjectiveCompletion.objective_index)
    )).scalars().all()
    exercises = (await db.execute(
        select(ExerciseCompletion)
        .where(ExerciseCompletion.patient_id == patient_id)
        .order_by(ExerciseCompletion.exercise_index)
    )).scalars().all()
    return {"objectives": list(objectives), "exercises": list(exercises)}
