from __future__ import annotations
import asyncio
import logging
from typing import Dict, List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import OpenAI, APIConnectionError, RateLimitError, OpenAIError

from therapia import config
from therapia.errors import GeminiError, GroqError

logger = logging.getLogger(__name__)

_gemini_client: Optional[genai.Client] = None
_groq_client: Optional[OpenAI] = None


def _gemini() -> genai.Client:
    global _gemini_client
    if not config.GEMINI_API_KEY:
        raise GeminiError("GEMINI_API_KEY non configurata")
    if _gemini_client is None:
        _gemini_client = genai.Client(api_key=config.GEMINI_API_KEY)
    return _gemini_client


def _groq() -> OpenAI:
    global _groq_client
    if not config.GROQ_API_KEY:
        raise GroqError("GROQ_API_KEY non configurata")
    if _groq_client is None:
        _groq_client = OpenAI(
            api_key=config.GROQ_API_KEY,
            base_url=config.GROQ_BASE_URL,
            timeout=config.LLM_TIMEOUT_S,
        )
    return _groq_client


def to_gemini_history(history: Optional[List[Dict[str, str]]]) -> List[types.Content]:
    """OpenAI-style [{role, content}] -> Gemini contents (assistant becomes model)."""
    contents: List[types.Content] = []
    for msg in history or []:
        text = msg.get("content") or ""
        if not text:
            continue
        role = "model" if msg.get("role") == "assistant" else "user"
        contents.append(types.Content(role=role, parts=[types.Part(text=text)]))
    return contents


async def call_gemini(
    system_prompt: str,
    user_prompt: str,
    *,
    temperature: float = 0.3,
    max_tokens: int = 2000,
    history: Optional[List[Dict[str, str]]] = None,
) -> str:
    """One generateContent round trip; returns the reply text."""
    client = _gemini()
    contents = to_gemini_history(history)
    contents.append(types.Content(role="user", parts=[types.Part(text=user_prompt)]))
    generation_config = types.GenerateContentConfig(
        system_instruction=system_prompt,
        temperature=temperature,
        max_output_tokens=max_tokens,
    )

    def _call():
        return client.models.generate_content(
            model=config.GEMINI_MODEL,
            contents=contents,
            config=generation_config,
        )

    try:
        resp = await asyncio.to_thread(_call)
    except genai_errors.APIError as e:
        raise GeminiError(f"Gemini API error: {e.code}", details=str(e))

    text = (resp.text or "").strip()
    if not text:
        raise GeminiError("Nessuna risposta da Gemini")
    logger.info("Gemini reply: %d chars (model=%s)", len(text), config.GEMINI_MODEL)
    return text


async def groq_chat(
    messages: List[Dict[str, str]],
    *,
    temperature: float = 0.3,
    max_tokens: int = 2000,
) -> str:
    client = _groq()

    def _call():
        return client.chat.completions.create(
            model=config.GROQ_MODEL,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    try:
        resp = await asyncio.to_thread(_call)
    except (RateLimitError, APIConnectionError, OpenAIError) as e:
        raise GroqError(f"Groq error: {e}", details=str(e))

    text = (resp.choices[0].message.content or "").strip()
    if not text:
        raise GroqError("Nessuna risposta da Groq")
    logger.info("Groq reply: %d chars (model=%s)", len(text), config.GROQ_MODEL)
    return text
