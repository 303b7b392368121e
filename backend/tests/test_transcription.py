import asyncio

import httpx
import pytest

from therapia import config
from therapia.api.routers import transcribe as transcribe_router
from therapia.errors import DeepgramError
from therapia.services.transcription import (
    TranscriptNotFound, format_transcript, grant_temporary_token, group_utterances, transcribe_audio,
)

DIARIZED = {
    "results": {
        "utterances": [
            {"speaker": 0, "transcript": "Buongiorno, come sta oggi?"},
            {"speaker": 0, "transcript": "Ha dormito meglio?"},
            {"speaker": 1, "transcript": "Un po' meglio, grazie."},
            {"speaker": 1, "transcript": "  "},
            {"speaker": 0, "transcript": "Bene."},
        ],
    },
}


def test_group_utterances_merges_consecutive_speaker():
    blocks = group_utterances(DIARIZED["results"]["utterances"])
    assert blocks == [
        {"speaker": 0, "text": "Buongiorno, come sta oggi? Ha dormito meglio?"},
        {"speaker": 1, "text": "Un po' meglio, grazie."},
        {"speaker": 0, "text": "Bene."},
    ]


def test_format_transcript_labels_speakers():
    assert format_transcript(DIARIZED) == (
        "TERAPEUTA: Buongiorno, come sta oggi? Ha dormito meglio?\n\n"
        "PAZIENTE: Un po' meglio, grazie.\n\n"
        "TERAPEUTA: Bene."
    )


def test_format_transcript_falls_back_to_channel():
    payload = {"results": {"channels": [{"alternatives": [{"transcript": " testo semplice "}]}]}}
    assert format_transcript(payload) == "testo semplice"


def test_format_transcript_without_text():
    with pytest.raises(TranscriptNotFound):
        format_transcript({"results": {"channels": [{"alternatives": [{"transcript": ""}]}]}})
    with pytest.raises(TranscriptNotFound):
        format_transcript({})


def test_transcribe_audio_calls_deepgram(monkeypatch, mock_http):
    monkeypatch.setattr(config, "DEEPGRAM_API_KEY", "dg-key")
    mock_http.handler = lambda request: httpx.Response(200, json=DIARIZED)

    payload = asyncio.run(transcribe_audio(b"\x1a\x45\xdf\xa3", "audio/webm"))

    assert payload == DIARIZED
    [request] = mock_http.requests
    assert request.url.path == "/v1/listen"
    assert request.url.params["model"] == "nova-2"
    assert request.url.params["language"] == "it"
    assert request.url.params["diarize"] == "true"
    assert request.headers["Authorization"] == "Token dg-key"
    assert request.headers["Content-Type"] == "audio/webm"


def test_transcribe_audio_upstream_error(monkeypatch, mock_http):
    monkeypatch.setattr(config, "DEEPGRAM_API_KEY", "dg-key")
    mock_http.handler = lambda request: httpx.Response(402, text="Insufficient credits")

    with pytest.raises(DeepgramError) as exc:
        asyncio.run(transcribe_audio(b"abc"))
    assert exc.value.message == "Errore Deepgram: 402"
    assert exc.value.details == "Insufficient credits"


def test_transcribe_audio_without_key(monkeypatch):
    monkeypatch.setattr(config, "DEEPGRAM_API_KEY", "")
    with pytest.raises(DeepgramError):
        asyncio.run(transcribe_audio(b"abc"))


def test_grant_temporary_token(monkeypatch, mock_http):
    monkeypatch.setattr(config, "DEEPGRAM_API_KEY", "dg-key")
    mock_http.handler = lambda request: httpx.Response(200, json={"access_token": "tmp-123"})

    assert asyncio.run(grant_temporary_token()) == "tmp-123"
    assert mock_http.requests[0].url.path == "/v1/auth/grant"


def test_transcribe_route(client, seed, monkeypatch):
    async def fake_transcribe(audio, content_type):
        assert audio == b"fake-audio"
        return DIARIZED

    monkeypatch.setattr(transcribe_router, "transcribe_audio", fake_transcribe)
    r = client.post(
        "/api/transcribe",
        headers=seed.headers,
        files={"audio": ("seduta.webm", b"fake-audio", "audio/webm")},
    )
    assert r.status_code == 200
    assert r.json()["transcript"].startswith("TERAPEUTA: Buongiorno")


def test_transcribe_route_empty_result(client, seed, monkeypatch):
    async def fake_transcribe(audio, content_type):
        return {"results": {"utterances": []}}

    monkeypatch.setattr(transcribe_router, "transcribe_audio", fake_transcribe)
    r = client.post(
        "/api/transcribe",
        headers=seed.headers,
        files={"audio": ("seduta.webm", b"fake-audio", "audio/webm")},
    )
    assert r.status_code == 500
    assert r.json() == {"error": "Nessuna trascrizione trovata"}


def test_transcribe_route_missing_file(client, seed):
    r = client.post("/api/transcribe", headers=seed.headers)
    assert r.status_code == 400
    assert r.json() == {"error": "File audio mancante"}


def test_transcribe_route_requires_login(client):
    r = client.post("/api/transcribe", files={"audio": ("a.webm", b"x", "audio/webm")})
    assert r.status_code == 401
    assert r.json() == {"error": "Non autenticato"}


def test_transcribe_upstream_error_envelope(client, seed, monkeypatch):
    async def failing(audio, content_type):
        raise DeepgramError("Errore Deepgram: 500", details="boom")

    monkeypatch.setattr(transcribe_router, "transcribe_audio", failing)
    r = client.post(
        "/api/transcribe",
        headers=seed.headers,
        files={"audio": ("seduta.webm", b"fake-audio", "audio/webm")},
    )
    assert r.status_code == 500
    assert r.json() == {"error": "Errore Deepgram: 500", "details": "boom"}
