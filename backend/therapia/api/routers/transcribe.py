from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from therapia.services.auth_service import CurrentUser, get_current_user
from therapia.services.transcription import (
    TranscriptNotFound, format_transcript, grant_temporary_token, transcribe_audio,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["transcription"])


@router.post("/transcribe")
async def transcribe(
    audio: Optional[UploadFile] = File(None),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Recorded session -> diarized transcript (TERAPEUTA / PAZIENTE blocks)."""
    if audio is None:
        raise HTTPException(status_code=400, detail="File audio mancante")
    content = await audio.read()
    if not content:
        raise HTTPException(status_code=400, detail="File audio mancante")

    payload = await transcribe_audio(content, audio.content_type or "audio/webm")
    try:
        transcript = format_transcript(payload)
    except TranscriptNotFound as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"transcript": transcript}


@router.post("/transcribe-token")
async def transcribe_token(current_user: CurrentUser = Depends(get_current_user)):
    token = await grant_temporary_token()
    return {"token": token}
