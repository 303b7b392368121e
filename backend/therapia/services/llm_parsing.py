from __future__ import annotations
import json
import re
from typing import Any, Dict

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
# keep \t \n \r, drop the rest of C0 plus DEL
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class LLMResponseFormatError(ValueError):
    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def strip_control_chars(text: str) -> str:
    return _CONTROL_RE.sub("", text or "")


def parse_json_object(text: str) -> Dict[str, Any]:
    """Pull the outermost {...} out of an LLM reply and decode it."""
    cleaned = strip_control_chars(strip_code_fences(text))
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise LLMResponseFormatError("Nessun oggetto JSON nella risposta", raw=text)
    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise LLMResponseFormatError(f"JSON non valido: {e}", raw=text)
    if not isinstance(data, dict):
        raise LLMResponseFormatError("La risposta non è un oggetto JSON", raw=text)
    return data


def as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]
