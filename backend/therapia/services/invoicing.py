from __future__ import annotations
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from therapia import config
from therapia.models import Invoice, Patient

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]

SESSION_TYPE_LABELS = {
    "individual": "Individuale",
    "couple": "Coppia",
    "family": "Famiglia",
}


def to_money(value: Number) -> Decimal:
    # str() keeps floats like 0.1 from dragging binary noise into Decimal
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    enpap_rate: Decimal
    enpap_amount: Decimal
    bollo_amount: Decimal
    total_amount: Decimal


def compute_totals(amounts: Iterable[Number], enpap_rate: Optional[Number] = None) -> InvoiceTotals:
    """subtotal + ENPAP (rate % of subtotal) + bollo, each rounded half-up to cents."""
    rate = Decimal(str(enpap_rate if enpap_rate is not None else config.ENPAP_DEFAULT_RATE))
    subtotal = to_money(sum((Decimal(str(a)) for a in amounts), Decimal("0")))
    enpap_amount = to_money(subtotal * rate / Decimal("100"))

    bollo_amount = Decimal("0.00")
    if subtotal + enpap_amount > Decimal(config.BOLLO_THRESHOLD):
        bollo_amount = to_money(config.BOLLO_AMOUNT)

    total_amount = to_money(subtotal + enpap_amount + bollo_amount)
    return InvoiceTotals(subtotal, rate, enpap_amount, bollo_amount, total_amount)


def rate_for(patient: Patient, session_type: str) -> Decimal:
    rate = {
        "individual": patient.rate_individual,
        "couple": patient.rate_couple,
        "family": patient.rate_family,
    }.get(session_type)
    return to_money(rate or 0)


def session_type_label(session_type: str) -> str:
    return SESSION_TYPE_LABELS.get(session_type, session_type)


async def next_invoice_number(db: AsyncSession, therapist_id: uuid.UUID, year: int) -> str:
    """Progressive number per therapist and year: '2025/001', '2025/002', ..."""
    prefix = f"{year}/"
    count = (await db.execute(
        select(func.count(Invoice.id)).where(
            Invoice.therapist_user_id == therapist_id,
            Invoice.invoice_number.like(f"{prefix}%"),
        )
    )).scalar_one()
    return f"{prefix}{count + 1:03d}"


def format_rate(rate: Number) -> str:
    """2.00 -> '2', 2.50 -> '2.5'"""
    return f"{Decimal(str(rate)):.2f}".rstrip("0").rstrip(".")
