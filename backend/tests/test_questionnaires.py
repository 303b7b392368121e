import uuid

import pytest

from therapia.models import QuestionnaireResult
from therapia.services.questionnaires import (
    REGISTRY, InvalidAnswers, UnknownQuestionnaire, get_questionnaire, score, severity_for,
)


@pytest.mark.parametrize("total,expected", [
    (0, "Ansia minima"),
    (4, "Ansia minima"),
    (5, "Ansia lieve"),
    (9, "Ansia lieve"),
    (10, "Ansia moderata"),
    (14, "Ansia moderata"),
    (15, "Ansia grave"),
    (21, "Ansia grave"),
])
def test_gad7_ladder(total, expected):
    assert severity_for("ansia", total) == expected


def test_phq9_ladder_edges():
    assert severity_for("depressione", 4) == "Minima"
    assert severity_for("depressione", 19) == "Depressione moderatamente grave"
    assert severity_for("depressione", 20) == "Depressione grave"


def test_mean_scored_questionnaires_use_average():
    burnout = get_questionnaire("burnout")
    assert burnout.max_score == 100
    assert get_questionnaire("dca").max_score == 6
    assert score("burnout", [50] * 12) == (600, "Burnout moderato")
    assert score("burnout", [0] * 12) == (0, "Assenza di burnout")
    # dca: mean 2.5 is moderate, 2.4 is mild
    assert severity_for("dca", 25) == "Moderata"
    assert severity_for("dca", 24) == "Lieve"


def test_registry_paths_and_labels():
    assert len(REGISTRY) == 22
    assert get_questionnaire("ansia").path == "gad7"
    assert get_questionnaire("depressione").path == "phq9"
    assert get_questionnaire("ansia").label == "Test ansia (GAD-7)"
    assert get_questionnaire("ansia").max_score == 21


def test_score_rejects_bad_answers():
    with pytest.raises(InvalidAnswers):
        score("ansia", [1, 2, 3])
    with pytest.raises(InvalidAnswers):
        score("ansia", [0, 0, 0, 0, 0, 0, 4])
    with pytest.raises(InvalidAnswers):
        score("autismo", [True] + [0] * 9)
    with pytest.raises(UnknownQuestionnaire):
        score("non-esiste", [0])


def test_list_questionnaires(client):
    r = client.get("/api/questionnaires")
    assert r.status_code == 200
    by_type = {q["type"]: q for q in r.json()}
    assert by_type["ansia"]["path"] == "gad7"
    assert by_type["ansia"]["question_count"] == 7


def test_submit_questionnaire_scores_server_side(client, db, seed):
    r = client.post("/api/submit-questionnaire", json={
        "patientId": str(seed.patient_id),
        "type": "ansia",
        "answers": [2, 2, 2, 2, 1, 1, 1],
        "total": 0,
        "severity": "Ansia minima",
    })
    assert r.status_code == 200
    assert r.json() == {"success": True, "total": 11, "severity": "Ansia moderata", "max_score": 21}

    row = db.query(QuestionnaireResult).one()
    assert row.total == 11
    assert row.therapist_user_id == seed.therapist_id
    assert row.answers == [2, 2, 2, 2, 1, 1, 1]


def test_submit_questionnaire_errors(client, seed):
    r = client.post("/api/submit-questionnaire", json={
        "patientId": str(uuid.uuid4()), "type": "ansia", "answers": [0] * 7,
    })
    assert r.status_code == 404
    assert r.json() == {"error": "Paziente non trovato"}

    r = client.post("/api/submit-questionnaire", json={
        "patientId": str(seed.patient_id), "type": "ansia", "answers": [0] * 6,
    })
    assert r.status_code == 400
    assert "Risposte incomplete" in r.json()["error"]

    r = client.post("/api/submit-questionnaire", json={"type": "ansia"})
    assert r.status_code == 400
    assert r.json()["error"] == "Dati mancanti"


def test_questionnaire_history_is_scoped_to_therapist(client, seed, other_headers):
    client.post("/api/submit-questionnaire", json={
        "patientId": str(seed.patient_id), "type": "insonnia", "answers": [4] * 7,
    })
    r = client.get(f"/api/patients/{seed.patient_id}/questionnaire-results", headers=seed.headers)
    assert r.status_code == 200
    [result] = r.json()
    assert result["type"] == "insonnia"
    assert result["severity"] == "Insonnia clinica grave"

    r = client.get(f"/api/patients/{seed.patient_id}/questionnaire-results", headers=other_headers)
    assert r.status_code == 404


def test_send_questionnaire_invite(client, seed, outbox):
    r = client.post("/api/send-questionnaire-invite", headers=seed.headers, json={
        "patientId": str(seed.patient_id),
        "email": "mario@example.com",
        "questionnaireType": "ansia",
    })
    assert r.status_code == 200
    [mail] = outbox
    assert mail["to"] == "mario@example.com"
    assert mail["subject"] == "Test ansia (GAD-7) – Questionario da compilare"
    assert f"/app/paziente/questionari/gad7?patientId={seed.patient_id}" in mail["html"]
    assert "Mario Bianchi" in mail["html"]


def test_send_questionnaire_invite_unknown_type(client, seed, outbox):
    r = client.post("/api/send-questionnaire-invite", headers=seed.headers, json={
        "patientId": str(seed.patient_id),
        "email": "mario@example.com",
        "questionnaireType": "oroscopo",
    })
    assert r.status_code == 400
    assert r.json() == {"error": "Tipo questionario non valido"}
    assert outbox == []


def test_send_gad7_result(client, seed, outbox):
    r = client.post("/api/send-gad7-result", headers=seed.headers, json={
        "toEmail": "giulia@studio.it",
        "patientName": "Mario Bianchi",
        "total": 12,
        "severity": "Ansia moderata",
        "date": "3/2/2025",
    })
    assert r.status_code == 200
    [mail] = outbox
    assert mail["subject"] == "Risultati GAD-7"
    assert "12 / 21" in mail["html"]
    assert "3/2/2025" in mail["html"]


def test_send_gad7_result_needs_recipient(client, seed, outbox):
    r = client.post("/api/send-gad7-result", headers=seed.headers, json={
        "total": 3, "severity": "Ansia minima",
    })
    assert r.status_code == 400
    assert outbox == []
