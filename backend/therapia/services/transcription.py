from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import httpx
from httpx import Timeout

from therapia import config
from therapia.errors import DeepgramError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = Timeout(10.0, read=600.0)

LISTEN_PARAMS = {
    "model": "nova-2",
    "language": "it",
    "smart_format": "true",
    "diarize": "true",
    "punctuate": "true",
    "utterances": "true",
    "paragraphs": "true",
}

# rough webm/opus bitrate used to estimate duration from the upload size
BYTES_PER_SECOND = 30 * 1024
MAX_RECOMMENDED_MINUTES = 90

THERAPIST_SPEAKER = 0
THERAPIST_LABEL = "TERAPEUTA"
PATIENT_LABEL = "PAZIENTE"


class TranscriptNotFound(ValueError):
    pass


def _headers(content_type: Optional[str] = None) -> Dict[str, str]:
    if not config.DEEPGRAM_API_KEY:
        raise DeepgramError("Deepgram API key non configurata")
    headers = {"Authorization": f"Token {config.DEEPGRAM_API_KEY}"}
    if content_type:
        headers["Content-Type"] = content_type
    return headers


def estimate_minutes(size_bytes: int) -> float:
    return size_bytes / BYTES_PER_SECOND / 60


def group_utterances(utterances: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Merge consecutive utterances of the same speaker into one block."""
    blocks: List[Dict[str, Any]] = []
    for utt in utterances:
        text = (utt.get("transcript") or "").strip()
        if not text:
            continue
        speaker = utt.get("speaker", 0)
        if blocks and blocks[-1]["speaker"] == speaker:
            blocks[-1]["text"] += " " + text
        else:
            blocks.append({"speaker": speaker, "text": text})
    return blocks


def speaker_label(speaker: int) -> str:
    return THERAPIST_LABEL if speaker == THERAPIST_SPEAKER else PATIENT_LABEL


def format_transcript(payload: Dict[str, Any]) -> str:
    results = payload.get("results") or {}
    blocks = group_utterances(results.get("utterances") or [])
    if blocks:
        return "\n\n".join(f"{speaker_label(b['speaker'])}: {b['text']}" for b in blocks)

    # no diarization available: plain transcript of the first channel
    try:
        transcript = results["channels"][0]["alternatives"][0]["transcript"]
    except (KeyError, IndexError, TypeError):
        transcript = ""
    if not transcript or not transcript.strip():
        raise TranscriptNotFound("Nessuna trascrizione trovata")
    return transcript.strip()


async def transcribe_audio(audio: bytes, content_type: str = "audio/webm") -> Dict[str, Any]:
    """Send the recording to Deepgram pre-recorded /v1/listen and return the raw JSON."""
    minutes = estimate_minutes(len(audio))
    if minutes > MAX_RECOMMENDED_MINUTES:
        logger.warning(
            "Audio di circa %.0f minuti, oltre il limite consigliato di %d",
            minutes, MAX_RECOMMENDED_MINUTES,
        )

    url = f"{config.DEEPGRAM_BASE.rstrip('/')}/v1/listen"
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
        r = await client.post(
            url, params=LISTEN_PARAMS, headers=_headers(content_type or "audio/webm"), content=audio
        )
    if r.status_code >= 400:
        raise DeepgramError(f"Errore Deepgram: {r.status_code}", details=r.text)
    logger.info("Deepgram transcription done (%d bytes, ~%.1f min)", len(audio), minutes)
    return r.json()


async def grant_temporary_token(ttl_seconds: int = 300) -> str:
    """Short-lived token so the browser can stream to Deepgram without the API key."""
    url = f"{config.DEEPGRAM_BASE.rstrip('/')}/v1/auth/grant"
    async with httpx.AsyncClient(timeout=Timeout(10.0)) as client:
        r = await client.post(
            url, headers=_headers("application/json"), json={"ttl_seconds": ttl_seconds}
        )
    if r.status_code >= 400:
        raise DeepgramError("Errore generazione token", details=r.text)
    token = r.json().get("access_token")
    if not token:
        raise DeepgramError("Errore generazione token", details="access_token mancante")
    return token
