from __future__ import annotations
import base64
import logging
from datetime import datetime
from decimal import Decimal
from html import escape
from typing import Any, Dict, List, Optional, Sequence

import httpx
from httpx import Timeout

from therapia import config
from therapia.errors import SendGridError

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
DEFAULT_TIMEOUT = Timeout(15.0)

_WRAPPER = (
    '<div style="font-family:Arial,sans-serif;max-width:650px;margin:0 auto;'
    'background:#f9fafb;padding:32px;border-radius:12px;">{body}'
    '<p style="color:#94a3b8;font-size:12px;margin-top:32px;">CiaoDoc</p></div>'
)


def _headers() -> Dict[str, str]:
    if not config.SENDGRID_API_KEY:
        raise SendGridError("SENDGRID_API_KEY non configurata")
    return {
        "Authorization": f"Bearer {config.SENDGRID_API_KEY}",
        "Content-Type": "application/json",
    }


def pdf_attachment(filename: str, content: bytes) -> Dict[str, str]:
    return {
        "content": base64.b64encode(content).decode("ascii"),
        "filename": filename,
        "type": "application/pdf",
        "disposition": "attachment",
    }


async def send_email(
    to: str,
    subject: str,
    html: str,
    *,
    to_name: Optional[str] = None,
    attachments: Optional[List[Dict[str, str]]] = None,
) -> None:
    recipient: Dict[str, str] = {"email": to}
    if to_name:
        recipient["name"] = to_name
    payload: Dict[str, Any] = {
        "personalizations": [{"to": [recipient], "subject": subject}],
        "from": {"email": config.SENDGRID_FROM, "name": config.SENDGRID_FROM_NAME},
        "content": [{"type": "text/html", "value": html}],
    }
    if attachments:
        payload["attachments"] = attachments

    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
        r = await client.post(SENDGRID_URL, headers=_headers(), json=payload)
    if r.status_code >= 400:
        raise SendGridError("Errore invio email", details=r.text)
    logger.info("Email sent: subject=%r", subject)


def _list_items(items: Sequence[str]) -> str:
    return "".join(f'<li style="margin-bottom:6px;">{escape(i)}</li>' for i in items)


def _money(value: Decimal) -> str:
    return f"€{Decimal(value):.2f}"


def render_gad7_result(patient_name: str, total: int, severity: str, date: str) -> str:
    body = (
        '<h1 style="color:#1e293b;font-size:22px;">Risultati GAD-7</h1>'
        f'<p style="color:#374151;">Paziente: <strong>{escape(patient_name)}</strong></p>'
        f'<p style="color:#374151;">Data: {escape(date)}</p>'
        f'<p style="color:#374151;">Totale: <strong>{total} / 21</strong></p>'
        f'<p style="color:#374151;">Gravità: <strong>{escape(severity)}</strong></p>'
    )
    return _WRAPPER.format(body=body)


def render_objectives(
    patient_name: str,
    obiettivi_generali: Sequence[str],
    obiettivi_specifici: Sequence[str],
    esercizi: Sequence[str],
) -> str:
    body = (
        '<h1 style="color:#1e293b;font-size:22px;">📋 Il tuo piano terapeutico</h1>'
        f'<p style="color:#374151;">Ciao {escape(patient_name)}, ecco gli obiettivi e gli esercizi '
        'concordati con il tuo terapeuta.</p>'
    )
    for title, items in (
        ("🎯 Obiettivi Generali", obiettivi_generali),
        ("✅ Obiettivi Specifici", obiettivi_specifici),
        ("💪 Esercizi", esercizi),
    ):
        if items:
            body += f'<h2 style="color:#1e293b;font-size:17px;">{title}</h2><ul>{_list_items(items)}</ul>'
    return _WRAPPER.format(body=body)


def render_questionnaire_invite(patient_name: Optional[str], label: str, link: str) -> str:
    greeting = f"Ciao {escape(patient_name)}," if patient_name else "Ciao,"
    body = (
        f'<h1 style="color:#1e293b;font-size:22px;">{escape(label)}</h1>'
        f'<p style="color:#374151;">{greeting}</p>'
        '<p style="color:#374151;">il tuo terapeuta ti chiede di compilare un breve questionario. '
        'Richiede pochi minuti.</p>'
        f'<p><a href="{escape(link, quote=True)}" style="background:#7c3aed;color:white;'
        'padding:12px 20px;border-radius:8px;text-decoration:none;">Compila il questionario</a></p>'
    )
    return _WRAPPER.format(body=body)


def render_appointment_confirmation(
    patient_name: str, title: str, starts_at: datetime, location: Optional[str]
) -> str:
    when = starts_at.strftime("%d/%m/%Y alle %H:%M")
    body = (
        '<h1 style="color:#1e293b;font-size:22px;">📅 Appuntamento confermato</h1>'
        f'<p style="color:#374151;">Ciao {escape(patient_name)},</p>'
        f'<p style="color:#374151;">è stato fissato l\'appuntamento <strong>{escape(title)}</strong> '
        f'per il {when}.</p>'
    )
    if location:
        body += f'<p style="color:#374151;">Luogo: {escape(location)}</p>'
    return _WRAPPER.format(body=body)


def render_invoice(
    *,
    invoice_number: str,
    therapist_name: str,
    patient_name: str,
    period: str,
    due_date: str,
    rows: Sequence[Dict[str, str]],
    subtotal: Decimal,
    enpap_rate: str,
    enpap_amount: Decimal,
    bollo_amount: Decimal,
    total_amount: Decimal,
    iban: Optional[str],
) -> str:
    table_rows = "".join(
        "<tr>"
        f'<td style="padding:8px 12px;">{escape(r["date"])}</td>'
        f'<td style="padding:8px 12px;">{escape(r["description"])}</td>'
        f'<td style="padding:8px 12px;">{escape(r["type"])}</td>'
        f'<td style="padding:8px 12px;text-align:right;">{escape(r["amount"])}</td>'
        "</tr>"
        for r in rows
    )
    body = (
        f'<h1 style="color:#1e293b;font-size:22px;">📄 Fattura {escape(invoice_number)}</h1>'
        f'<p style="color:#64748b;">da {escape(therapist_name)}</p>'
        f'<p style="color:#374151;">Gentile {escape(patient_name)},</p>'
        f'<p style="color:#374151;">Ti inviamo la fattura per le sedute del periodo '
        f'<strong>{escape(period)}</strong>.</p>'
        '<table style="width:100%;border-collapse:collapse;background:white;">'
        "<thead><tr><th>Data</th><th>Descrizione</th><th>Tipo</th><th>Importo</th></tr></thead>"
        f"<tbody>{table_rows}</tbody></table>"
        f'<p style="text-align:right;">Imponibile: {_money(subtotal)}<br>'
        f"ENPAP ({enpap_rate}%): {_money(enpap_amount)}<br>"
        f"Bollo: {_money(bollo_amount)}<br>"
        f"<strong>Totale: {_money(total_amount)}</strong></p>"
        f'<p style="color:#374151;">Scadenza: {escape(due_date)}</p>'
    )
    if iban:
        body += (
            '<div style="background:#eef2ff;padding:12px;border-radius:8px;">'
            f"Pagamento tramite bonifico bancario<br>IBAN: <strong>{escape(iban)}</strong></div>"
        )
    body += '<p style="color:#374151;">In allegato trovi la fattura in formato PDF.</p>'
    return _WRAPPER.format(body=body)
