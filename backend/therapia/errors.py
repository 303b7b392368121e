from __future__ import annotations
from typing import Any, Optional


class UpstreamServiceError(RuntimeError):
    """An external API (LLM, speech-to-text, email) failed or is not configured."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class GeminiError(UpstreamServiceError):
    pass


class GroqError(UpstreamServiceError):
    pass


class DeepgramError(UpstreamServiceError):
    pass


class SendGridError(UpstreamServiceError):
    pass
