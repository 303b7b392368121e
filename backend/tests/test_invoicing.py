import base64
import uuid
from datetime import date
from decimal import Decimal

import pytest

from therapia.models import Invoice, Patient
from therapia.services.invoice_pdf import InvoicePdfData, InvoicePdfItem, pdf_filename, render_invoice_pdf
from therapia.services.invoicing import compute_totals, format_rate, to_money


def test_totals_below_bollo_threshold():
    t = compute_totals([60])
    assert t.subtotal == Decimal("60.00")
    assert t.enpap_amount == Decimal("1.20")
    assert t.bollo_amount == Decimal("0.00")
    assert t.total_amount == Decimal("61.20")


def test_totals_with_bollo():
    t = compute_totals(["70.00", "10.00"])
    assert t.subtotal == Decimal("80.00")
    assert t.enpap_amount == Decimal("1.60")
    assert t.bollo_amount == Decimal("2.00")
    assert t.total_amount == Decimal("83.60")


def test_bollo_threshold_is_strict():
    assert compute_totals(["77.47"], enpap_rate=0).bollo_amount == Decimal("0.00")
    assert compute_totals(["77.48"], enpap_rate=0).bollo_amount == Decimal("2.00")


def test_enpap_rounds_half_up():
    # 4% of 12.50 = 0.50, 2% of 0.25 = 0.005 -> 0.01
    assert compute_totals(["12.50"], enpap_rate=4).enpap_amount == Decimal("0.50")
    assert compute_totals(["0.25"]).enpap_amount == Decimal("0.01")


def test_money_helpers():
    assert to_money(0.1 + 0.2) == Decimal("0.30")
    assert format_rate(Decimal("2.00")) == "2"
    assert format_rate(Decimal("2.50")) == "2.5"
    assert format_rate(Decimal("10")) == "10"
    assert pdf_filename("2025/003") == "Fattura_2025-003.pdf"


def test_render_invoice_pdf():
    data = InvoicePdfData(
        invoice_number="2025/001",
        invoice_date=date(2025, 3, 1),
        due_date=date(2025, 3, 31),
        period_start=date(2025, 2, 1),
        period_end=date(2025, 2, 28),
        therapist_name="Dott.ssa Giulia Rossi",
        therapist_iban="IT60X0542811101000000123456",
        patient_name="Mario <Bianchi>",
        items=[
            InvoicePdfItem(date(2025, 2, 4), "Seduta psicologica", "individual", Decimal("70.00")),
            InvoicePdfItem(date(2025, 2, 11), "Seduta di coppia", "couple", Decimal("90.00")),
        ],
        subtotal=Decimal("160.00"),
        enpap_amount=Decimal("3.20"),
        bollo_amount=Decimal("2.00"),
        total_amount=Decimal("165.20"),
        notes="Pagamento tramite bonifico",
    )
    pdf = render_invoice_pdf(data)
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def _create_invoice(client, seed, **extra):
    body = {
        "patientId": str(seed.patient_id),
        "periodStart": "2025-02-01",
        "periodEnd": "2025-02-28",
        "items": [
            {"sessionDate": "2025-02-04"},
            {"sessionDate": "2025-02-11", "sessionType": "couple", "description": "Seduta di coppia"},
        ],
    }
    body.update(extra)
    return client.post("/api/invoices", headers=seed.headers, json=body)


def test_create_invoice_uses_patient_rates(client, seed):
    r = _create_invoice(client, seed)
    assert r.status_code == 201
    data = r.json()
    year = date.today().year
    assert data["invoice_number"] == f"{year}/001"
    assert data["status"] == "draft"
    assert Decimal(data["subtotal"]) == Decimal("160.00")
    assert Decimal(data["enpap_amount"]) == Decimal("3.20")
    assert Decimal(data["bollo_amount"]) == Decimal("2.00")
    assert Decimal(data["total_amount"]) == Decimal("165.20")
    assert [i["description"] for i in data["items"]] == ["Seduta psicologica", "Seduta di coppia"]
    assert [Decimal(i["amount"]) for i in data["items"]] == [Decimal("70.00"), Decimal("90.00")]
    assert data["due_date"] is not None


def test_invoice_numbers_are_progressive(client, seed):
    year = date.today().year
    first = _create_invoice(client, seed).json()
    second = _create_invoice(client, seed, items=[{"sessionDate": "2025-02-18", "amount": 50}]).json()
    assert first["invoice_number"] == f"{year}/001"
    assert second["invoice_number"] == f"{year}/002"
    assert Decimal(second["bollo_amount"]) == Decimal("0.00")

    r = client.get(f"/api/invoices?patientId={seed.patient_id}", headers=seed.headers)
    assert r.status_code == 200
    assert {i["invoice_number"] for i in r.json()} == {f"{year}/001", f"{year}/002"}


def test_create_invoice_validation(client, seed):
    r = _create_invoice(client, seed, items=[])
    assert r.status_code == 400
    r = _create_invoice(client, seed, periodStart="2025-03-01")
    assert r.status_code == 400
    assert r.json()["error"] == "Dati mancanti"


def test_invoice_pdf_download(client, seed):
    invoice = _create_invoice(client, seed).json()
    r = client.get(f"/api/invoices/{invoice['id']}/pdf", headers=seed.headers)
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    filename = pdf_filename(invoice["invoice_number"])
    assert f'filename="{filename}"' in r.headers["content-disposition"]
    assert r.content.startswith(b"%PDF")


def test_invoice_is_scoped_to_therapist(client, seed, other_headers):
    invoice = _create_invoice(client, seed).json()
    r = client.get(f"/api/invoices/{invoice['id']}/pdf", headers=other_headers)
    assert r.status_code == 404
    assert r.json() == {"error": "Fattura non trovata"}
    assert client.get("/api/invoices", headers=other_headers).json() == []


def test_send_invoice(client, db, seed, outbox):
    invoice = _create_invoice(client, seed).json()
    r = client.post("/api/send-invoice", headers=seed.headers, json={"invoiceId": invoice["id"]})
    assert r.status_code == 200
    assert r.json() == {"success": True}

    [mail] = outbox
    assert mail["to"] == "mario@example.com"
    assert mail["subject"] == f"Fattura {invoice['invoice_number']} – Dott.ssa Giulia Rossi"
    assert "ENPAP (2%)" in mail["html"]
    assert "IT60X0542811101000000123456" in mail["html"]
    [attachment] = mail["attachments"]
    assert attachment["filename"] == pdf_filename(invoice["invoice_number"])
    assert base64.b64decode(attachment["content"]).startswith(b"%PDF")

    assert db.get(Invoice, uuid.UUID(invoice["id"])).status == "sent"


def test_send_invoice_needs_patient_email(client, db, seed, outbox):
    invoice = _create_invoice(client, seed).json()
    db.get(Patient, seed.patient_id).email = None
    db.commit()

    r = client.post("/api/send-invoice", headers=seed.headers, json={"invoiceId": invoice["id"]})
    assert r.status_code == 400
    assert r.json() == {"error": "Email paziente mancante"}
    assert outbox == []


@pytest.mark.parametrize("session_type,expected", [("individual", "70.00"), ("family", "0.00")])
def test_missing_rate_falls_back(client, seed, session_type, expected):
    r = _create_invoice(client, seed, items=[{"sessionDate": "2025-02-04", "sessionType": session_type}])
    assert r.status_code == 201
    assert Decimal(r.json()["items"][0]["amount"]) == Decimal(expected)
