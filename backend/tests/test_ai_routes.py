import json
import uuid
from datetime import date

import pytest

from therapia.api.routers import ai as ai_router
from therapia.errors import GroqError
from therapia.models import Patient, SessionNote


@pytest.fixture
def gemini(monkeypatch):
    """Replace the Gemini call; set .reply to control the answer, read .calls to inspect prompts."""
    class FakeGemini:
        reply = "{}"
        calls = []

        async def __call__(self, system_prompt, user_prompt, **kwargs):
            self.calls.append({"system": system_prompt, "user": user_prompt, **kwargs})
            return self.reply

    fake = FakeGemini()
    fake.calls = []
    monkeypatch.setattr(ai_router, "call_gemini", fake)
    return fake


@pytest.fixture
def groq(monkeypatch):
    class FakeGroq:
        reply = ""
        error = None
        calls = []

        async def __call__(self, messages, **kwargs):
            self.calls.append({"messages": messages, **kwargs})
            if self.error:
                raise self.error
            return self.reply

    fake = FakeGroq()
    fake.calls = []
    monkeypatch.setattr(ai_router, "groq_chat", fake)
    return fake


def _add_note(db, seed, **kw):
    db.add(SessionNote(
        patient_id=seed.patient_id,
        therapist_user_id=seed.therapist_id,
        session_date=kw.pop("session_date", date(2025, 2, 4)),
        **kw,
    ))
    db.commit()


# ---------- summary ----------
def test_ai_summary_uses_orientation(client, seed, groq):
    groq.reply = "## MOTIVO DELLA SEDUTA\nAnsia lavorativa"
    r = client.post("/api/ai-summary", headers=seed.headers, json={
        "transcript": "TERAPEUTA: Come va?\n\nPAZIENTE: Male al lavoro.",
        "patientId": str(seed.patient_id),
    })
    assert r.status_code == 200
    assert r.json() == {"summary": "## MOTIVO DELLA SEDUTA\nAnsia lavorativa"}

    [call] = groq.calls
    system, user = call["messages"]
    assert "Cognitivo-comportamentale" in system["content"]
    assert user["content"].startswith("Trascrizione seduta:")


def test_ai_summary_without_transcript(client, seed, groq):
    r = client.post("/api/ai-summary", headers=seed.headers, json={})
    assert r.status_code == 400
    assert r.json() == {"error": "Nessuna trascrizione fornita"}
    assert groq.calls == []


def test_ai_summary_upstream_failure(client, seed, groq):
    groq.error = GroqError("Groq error: 503", details="unavailable")
    r = client.post("/api/ai-summary", headers=seed.headers, json={"transcript": "testo"})
    assert r.status_code == 500
    assert r.json() == {"error": "Errore generazione riassunto", "details": "unavailable"}


def test_ai_summary_requires_login(client):
    r = client.post("/api/ai-summary", json={"transcript": "testo"})
    assert r.status_code == 401


# ---------- themes ----------
def test_generate_themes_caps_at_five(client, seed, gemini):
    gemini.reply = '```json\n{"themes": ["Ansia", "Lavoro", "Sonno", "Famiglia", "Autostima", "Sport"]}\n```'
    r = client.post("/api/generate-themes", headers=seed.headers, json={"transcript": "abcdef"})
    assert r.status_code == 200
    assert r.json() == {
        "themes": ["Ansia", "Lavoro", "Sonno", "Famiglia", "Autostima"],
        "transcript_length": 6,
    }


def test_generate_themes_invalid_reply(client, seed, gemini):
    gemini.reply = "Non sono riuscito a identificare temi."
    r = client.post("/api/generate-themes", headers=seed.headers, json={"transcript": "abc"})
    assert r.status_code == 500
    assert r.json() == {
        "error": "Formato risposta IA non valido",
        "rawResponse": "Non sono riuscito a identificare temi.",
    }


def test_generate_themes_missing_transcript(client, seed, gemini):
    r = client.post("/api/generate-themes", headers=seed.headers, json={"transcript": ""})
    assert r.status_code == 400
    assert r.json() == {"error": "Trascrizione mancante"}


# ---------- assessment ----------
def test_generate_assessment_needs_sessions(client, seed, gemini):
    r = client.post("/api/generate-assessment", headers=seed.headers, json={"patientId": str(seed.patient_id)})
    assert r.status_code == 400
    assert r.json()["error"].startswith("Nessuna seduta disponibile")
    assert gemini.calls == []


def test_generate_assessment(client, db, seed, gemini):
    _add_note(db, seed, notes="Il paziente riferisce insonnia.", ai_summary="Insonnia e ansia.", themes=["Sonno"])
    gemini.reply = json.dumps({
        "anamnesi": "Uomo di 45 anni...",
        "valutazione_psicodiagnostica": "Quadro ansioso",
        "formulazione_caso": "Ipotesi CBT",
    })
    r = client.post("/api/generate-assessment", headers=seed.headers, json={"patientId": str(seed.patient_id)})
    assert r.status_code == 200
    assert r.json()["assessment"]["valutazione_psicodiagnostica"] == "Quadro ansioso"

    [call] = gemini.calls
    assert "SEDUTE REGISTRATE (1 totali)" in call["user"]
    assert "Insonnia e ansia." in call["user"]
    assert "Temi: Sonno" in call["user"]


def test_generate_assessment_missing_patient_id(client, seed, gemini):
    r = client.post("/api/generate-assessment", headers=seed.headers, json={})
    assert r.status_code == 400
    assert r.json() == {"error": "Patient ID mancante"}


def test_generate_assessment_foreign_patient(client, seed, other_headers, gemini):
    r = client.post("/api/generate-assessment", headers=other_headers, json={"patientId": str(seed.patient_id)})
    assert r.status_code == 404


# ---------- objectives ----------
OBJECTIVES = {
    "obiettivi_generali": ["Ridurre l'ansia"],
    "obiettivi_specifici": ["Dormire 7 ore", "Tenere un diario"],
    "esercizi": ["Respirazione diaframmatica"],
}


def test_generate_objectives_from_live_transcript(client, seed, gemini):
    gemini.reply = json.dumps(OBJECTIVES)
    r = client.post("/api/generate-objectives", headers=seed.headers, json={
        "patientId": str(seed.patient_id),
        "lastSessionOnly": True,
        "transcriptText": "PAZIENTE: non dormo da settimane",
    })
    assert r.status_code == 200
    data = r.json()
    assert data["obiettivi_specifici"] == ["Dormire 7 ore", "Tenere un diario"]
    assert data["sessions_analyzed"] == 1
    assert data["patient_name"] == "Mario Bianchi"
    assert data["last_session_only"] is True
    assert "error_info" not in data
    assert "non dormo da settimane" in gemini.calls[0]["user"]


def test_generate_objectives_placeholders_on_bad_reply(client, db, seed, gemini):
    _add_note(db, seed, notes="Seduta uno")
    _add_note(db, seed, notes="Seduta due", session_date=date(2025, 2, 11))
    gemini.reply = '{"obiettivi_generali": ["solo questo"]}'
    r = client.post("/api/generate-objectives", headers=seed.headers, json={"patientId": str(seed.patient_id)})
    assert r.status_code == 200
    data = r.json()
    assert data["obiettivi_generali"] == ["Obiettivo generale da definire manualmente"]
    assert data["esercizi"] == ["Esercizio da definire manualmente"]
    assert data["sessions_analyzed"] == 2
    assert data["error_info"] == "Risposta IA non parsabile, forniti placeholder"


def test_generate_objectives_without_sessions(client, seed, gemini):
    r = client.post("/api/generate-objectives", headers=seed.headers, json={"patientId": str(seed.patient_id)})
    assert r.status_code == 400
    assert r.json() == {"error": "Nessuna seduta trovata per questo paziente"}


# ---------- plan suggestions ----------
def test_suggest_plan(client, seed, groq):
    groq.reply = json.dumps({**OBJECTIVES, "note": "Monitorare il sonno"})
    r = client.post("/api/suggest-plan", headers=seed.headers, json={"patientId": str(seed.patient_id)})
    assert r.status_code == 200
    suggestions = r.json()["suggestions"]
    assert suggestions["esercizi"] == ["Respirazione diaframmatica"]
    assert suggestions["note"] == "Monitorare il sonno"

    user = groq.calls[0]["messages"][1]["content"]
    assert "PROBLEMATICHE INIZIALI:\nAnsia da prestazione" in user


def test_suggest_plan_insufficient_context(client, db, seed, groq):
    bare_id = uuid.uuid4()
    db.add(Patient(id=bare_id, therapist_user_id=seed.therapist_id, display_name="Nuovo Paziente"))
    db.commit()

    r = client.post("/api/suggest-plan", headers=seed.headers, json={"patientId": str(bare_id)})
    assert r.status_code == 400
    assert r.json()["error"] == ai_router.INSUFFICIENT_CONTEXT_MSG
    assert groq.calls == []


def test_suggest_plan_unparsable(client, seed, groq):
    groq.reply = "Mi dispiace, non posso."
    r = client.post("/api/suggest-plan", headers=seed.headers, json={"patientId": str(seed.patient_id)})
    assert r.status_code == 500
    assert r.json()["error"] == "Formato risposta IA non valido"
