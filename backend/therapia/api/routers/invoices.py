from __future__ import annotations
import logging
import uuid
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from therapia.db import get_db
from therapia.api.deps import get_owned_patient
from therapia.models import Invoice, InvoiceItem, Patient, Therapist
from therapia.schemas import InvoiceCreate, InvoicePublic, SendInvoiceReq
from therapia.services.auth_service import CurrentUser, get_current_user
from therapia.services.clinical_context import format_date_it
from therapia.services.invoice_pdf import InvoicePdfData, InvoicePdfItem, pdf_filename, render_invoice_pdf
from therapia.services.invoicing import (
    compute_totals, format_rate, next_invoice_number, rate_for, session_type_label, to_money,
)
from therapia.services.mailer import pdf_attachment, render_invoice, send_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["invoices"])

DEFAULT_DUE_DAYS = 30
DEFAULT_ITEM_DESCRIPTION = "Seduta psicologica"


async def _load_invoice(db: AsyncSession, invoice_id: uuid.UUID, therapist_id: uuid.UUID) -> Invoice:
    invoice = (await db.execute(
        select(Invoice)
        .options(selectinload(Invoice.items))
        .where(Invoice.id == invoice_id, Invoice.therapist_user_id == therapist_id)
    )).scalar_one_or_none()
    if invoice is None:
        raise HTTPException(status_code=404, detail="Fattura non trovata")
    return invoice


def _join(*parts: Optional[str], sep: str = " ") -> str:
    return sep.join(p for p in parts if p)


def build_pdf_data(invoice: Invoice, patient: Patient, therapist: Optional[Therapist]) -> InvoicePdfData:
    t = therapist
    province = f"({patient.province})" if patient.province else None
    return InvoicePdfData(
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.created_at.date(),
        due_date=invoice.due_date,
        period_start=invoice.period_start,
        period_end=invoice.period_end,
        therapist_name=(t.full_name if t and t.full_name else "Il tuo terapeuta"),
        therapist_address=(t.address or "") if t else "",
        therapist_city_line=_join(
            t.postal_code, t.city, f"({t.province})" if t.province else None
        ) if t else "",
        therapist_vat=(t.vat_number or "") if t else "",
        therapist_registration=(t.registration_number or "") if t else "",
        therapist_iban=(t.iban or "") if t else "",
        patient_name=patient.display_name,
        patient_fiscal_code=patient.fiscal_code or "",
        patient_address=_join(patient.address, patient.city, patient.postal_code, province, sep=", "),
        patient_email=patient.email or "",
        items=[
            InvoicePdfItem(i.session_date, i.description, i.session_type, i.amount)
            for i in invoice.items
        ],
        subtotal=invoice.subtotal,
        enpap_rate=invoice.enpap_rate,
        enpap_amount=invoice.enpap_amount,
        bollo_amount=invoice.bollo_amount,
        total_amount=invoice.total_amount,
        notes=invoice.notes or "",
    )


@router.post("/invoices", response_model=InvoicePublic, status_code=201)
async def create_invoice(
    req: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    patient = await get_owned_patient(db, req.patient_id, current_user.id)

    items = []
    for item in req.items:
        amount = to_money(item.amount) if item.amount is not None else rate_for(patient, item.session_type)
        items.append(InvoiceItem(
            session_date=item.session_date,
            description=item.description or DEFAULT_ITEM_DESCRIPTION,
            session_type=item.session_type,
            amount=amount,
        ))
    totals = compute_totals([i.amount for i in items], req.enpap_rate)

    today = date.today()
    invoice = Invoice(
        therapist_user_id=current_user.id,
        patient_id=patient.id,
        invoice_number=await next_invoice_number(db, current_user.id, today.year),
        period_start=req.period_start,
        period_end=req.period_end,
        due_date=req.due_date or today + timedelta(days=DEFAULT_DUE_DAYS),
        subtotal=totals.subtotal,
        enpap_rate=totals.enpap_rate,
        enpap_amount=totals.enpap_amount,
        bollo_amount=totals.bollo_amount,
        total_amount=totals.total_amount,
        notes=req.notes,
        items=items,
    )
    db.add(invoice)
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise HTTPException(status_code=500, detail=f"Errore creazione fattura: {e}")

    logger.info("Invoice %s created (total %s)", invoice.invoice_number, invoice.total_amount)
    return await _load_invoice(db, invoice.id, current_user.id)


@router.get("/invoices", response_model=List[InvoicePublic])
async def list_invoices(
    patient_id: Optional[uuid.UUID] = Query(None, alias="patientId"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    q = (
        select(Invoice)
        .options(selectinload(Invoice.items))
        .where(Invoice.therapist_user_id == current_user.id)
        .order_by(Invoice.created_at.desc())
    )
    if patient_id:
        q = q.where(Invoice.patient_id == patient_id)
    return (await db.execute(q)).scalars().all()


@router.get("/invoices/{invoice_id}/pdf")
async def invoice_pdf(
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    invoice = await _load_invoice(db, invoice_id, current_user.id)
    patient = await db.get(Patient, invoice.patient_id)
    therapist = await db.get(Therapist, invoice.therapist_user_id)

    pdf = render_invoice_pdf(build_pdf_data(invoice, patient, therapist))
    filename = pdf_filename(invoice.invoice_number)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/send-invoice")
async def send_invoice(
    req: SendInvoiceReq,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    invoice = await _load_invoice(db, req.invoice_id, current_user.id)
    patient = await db.get(Patient, invoice.patient_id)
    if not patient.email:
        raise HTTPException(status_code=400, detail="Email paziente mancante")
    therapist = await db.get(Therapist, invoice.therapist_user_id)

    data = build_pdf_data(invoice, patient, therapist)
    html = render_invoice(
        invoice_number=invoice.invoice_number,
        therapist_name=data.therapist_name,
        patient_name=patient.display_name,
        period=f"{format_date_it(invoice.period_start)} – {format_date_it(invoice.period_end)}",
        due_date=format_date_it(invoice.due_date),
        rows=[
            {
                "date": format_date_it(i.session_date),
                "description": i.description,
                "type": session_type_label(i.session_type),
                "amount": f"€{i.amount:.2f}",
            }
            for i in invoice.items
        ],
        subtotal=invoice.subtotal,
        enpap_rate=format_rate(invoice.enpap_rate),
        enpap_amount=invoice.enpap_amount,
        bollo_amount=invoice.bollo_amount,
        total_amount=invoice.total_amount,
        iban=data.therapist_iban,
    )
    await send_email(
        patient.email,
        f"Fattura {invoice.invoice_number} – {data.therapist_name}",
        html,
        to_name=patient.display_name,
        attachments=[pdf_attachment(pdf_filename(invoice.invoice_number), render_invoice_pdf(data))],
    )

    invoice.status = "sent"
    await db.commit()
    return {"success": True}
