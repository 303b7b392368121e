from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from io import BytesIO
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from therapia.services.clinical_context import format_date_it
from therapia.services.invoicing import format_rate, session_type_label

ACCENT = colors.HexColor("#7c3aed")
MUTED = colors.HexColor("#64748b")
LIGHT = colors.HexColor("#f1f5f9")


@dataclass
class InvoicePdfItem:
    session_date: date
    description: str
    session_type: str
    amount: Decimal


@dataclass
class InvoicePdfData:
    invoice_number: str
    invoice_date: date
    due_date: Optional[date]
    period_start: Optional[date]
    period_end: Optional[date]

    therapist_name: str
    therapist_address: str = ""
    therapist_city_line: str = ""
    therapist_vat: str = ""
    therapist_registration: str = ""
    therapist_iban: str = ""

    patient_name: str = ""
    patient_fiscal_code: str = ""
    patient_address: str = ""
    patient_email: str = ""

    items: List[InvoicePdfItem] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    enpap_rate: Decimal = Decimal("2")
    enpap_amount: Decimal = Decimal("0.00")
    bollo_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    notes: str = ""


def pdf_filename(invoice_number: str) -> str:
    return f"Fattura_{invoice_number.replace('/', '-')}.pdf"


def _euro(value: Decimal) -> str:
    return f"€ {Decimal(value):.2f}"


def _lines(*parts: str) -> str:
    return "<br/>".join(escape(p) for p in parts if p)


def render_invoice_pdf(data: InvoicePdfData) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=A4,
        leftMargin=18 * mm, rightMargin=18 * mm, topMargin=16 * mm, bottomMargin=16 * mm,
        title=f"Fattura {data.invoice_number}",
    )
    styles = getSampleStyleSheet()
    small = ParagraphStyle("small", parent=styles["Normal"], fontSize=9, leading=12)
    label = ParagraphStyle("label", parent=small, textColor=MUTED, fontName="Helvetica-Bold")
    story = []

    # header: title on the left, number and dates on the right
    header = Table(
        [[
            Paragraph('<font size="22" color="#7c3aed"><b>FATTURA</b></font>', styles["Normal"]),
            Paragraph(
                f"<b>Nr. {escape(data.invoice_number)}</b><br/>"
                f"Data: {format_date_it(data.invoice_date)}<br/>"
                f"Scadenza: {format_date_it(data.due_date) or '-'}",
                small,
            ),
        ]],
        colWidths=[110 * mm, 64 * mm],
    )
    header.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    story += [header, Spacer(1, 8 * mm)]

    issuer = Paragraph(
        "<b>" + escape(data.therapist_name) + "</b><br/>"
        + _lines(
            "Psicologo e Psicoterapeuta",
            data.therapist_address,
            data.therapist_city_line,
            f"P.IVA: {data.therapist_vat}" if data.therapist_vat else "",
            f"Iscr. Ordine n. {data.therapist_registration}" if data.therapist_registration else "",
        ),
        small,
    )
    payment = Paragraph(
        _lines(
            "Bonifico Bancario",
            f"IBAN: {data.therapist_iban}" if data.therapist_iban else "",
            f"Intestatario: {data.therapist_name}",
        ),
        small,
    )
    billed = Paragraph(
        "<b>" + escape(data.patient_name) + "</b><br/>"
        + _lines(
            f"CF: {data.patient_fiscal_code}" if data.patient_fiscal_code else "",
            data.patient_address,
            data.patient_email,
        ),
        small,
    )
    period = Paragraph(
        f"Dal: {format_date_it(data.period_start) or '-'}<br/>Al: {format_date_it(data.period_end) or '-'}",
        small,
    )
    boxes = Table(
        [
            [Paragraph("EMITTENTE", label), Paragraph("MODALITÀ PAGAMENTO", label)],
            [issuer, payment],
            [Paragraph("FATTURATO A", label), Paragraph("PERIODO DI FATTURAZIONE", label)],
            [billed, period],
        ],
        colWidths=[87 * mm, 87 * mm],
    )
    boxes.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("BOTTOMPADDING", (0, 1), (-1, 1), 10),
    ]))
    story += [boxes, Spacer(1, 8 * mm)]

    rows = [["Data", "Descrizione", "Tipo", "Importo"]]
    for item in data.items:
        rows.append([
            format_date_it(item.session_date),
            Paragraph(escape(item.description), small),
            session_type_label(item.session_type),
            _euro(item.amount),
        ])
    table = Table(rows, colWidths=[26 * mm, 92 * mm, 28 * mm, 28 * mm], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), ACCENT),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (3, 0), (3, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, LIGHT]),
        ("LINEBELOW", (0, -1), (-1, -1), 0.5, MUTED),
    ]))
    story += [table, Spacer(1, 6 * mm)]

    totals = Table(
        [
            ["Imponibile", _euro(data.subtotal)],
            [f"ENPAP ({format_rate(data.enpap_rate)}%)", _euro(data.enpap_amount)],
            ["Bollo", _euro(data.bollo_amount)],
            ["TOTALE", _euro(data.total_amount)],
        ],
        colWidths=[40 * mm, 30 * mm],
        hAlign="RIGHT",
    )
    totals.setStyle(TableStyle([
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, -1), (-1, -1), 11),
        ("LINEABOVE", (0, -1), (-1, -1), 1, ACCENT),
        ("TEXTCOLOR", (0, -1), (-1, -1), ACCENT),
    ]))
    story.append(totals)

    if data.notes:
        story += [
            Spacer(1, 8 * mm),
            Paragraph("NOTE", label),
            Paragraph(escape(data.notes).replace("\n", "<br/>"), small),
        ]

    doc.build(story)
    return buffer.getvalue()
