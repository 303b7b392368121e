import asyncio
from types import SimpleNamespace

import pytest
from google.genai import errors as genai_errors
from openai import OpenAIError

from therapia import config
from therapia.errors import GeminiError, GroqError
from therapia.services import llm_client


class StubGemini:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = []
        self.models = self

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


class StubGroq:
    def __init__(self, content="", error=None):
        self.content = content
        self.error = error
        self.calls = []
        self.chat = SimpleNamespace(completions=self)

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


# ---------- Gemini ----------
def test_call_gemini_sends_system_and_history(monkeypatch):
    stub = StubGemini(text="  Risposta  ")
    monkeypatch.setattr(llm_client, "_gemini", lambda: stub)

    reply = asyncio.run(llm_client.call_gemini(
        "Sei un assistente.", "Come aggiungo un paziente?",
        temperature=0.7, max_tokens=400,
        history=[{"role": "user", "content": "Ciao"}, {"role": "assistant", "content": "Ciao!"}],
    ))

    assert reply == "Risposta"
    [call] = stub.calls
    assert call["model"] == config.GEMINI_MODEL
    assert [c.role for c in call["contents"]] == ["user", "model", "user"]
    assert call["contents"][-1].parts[0].text == "Come aggiungo un paziente?"
    assert call["config"].system_instruction == "Sei un assistente."
    assert call["config"].max_output_tokens == 400


def test_call_gemini_without_key(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    with pytest.raises(GeminiError) as exc:
        asyncio.run(llm_client.call_gemini("s", "u"))
    assert exc.value.message == "GEMINI_API_KEY non configurata"


def test_call_gemini_empty_reply(monkeypatch):
    monkeypatch.setattr(llm_client, "_gemini", lambda: StubGemini(text="   "))
    with pytest.raises(GeminiError) as exc:
        asyncio.run(llm_client.call_gemini("s", "u"))
    assert exc.value.message == "Nessuna risposta da Gemini"


def test_call_gemini_api_error(monkeypatch):
    error = genai_errors.ClientError(
        429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
    )
    monkeypatch.setattr(llm_client, "_gemini", lambda: StubGemini(error=error))
    with pytest.raises(GeminiError) as exc:
        asyncio.run(llm_client.call_gemini("s", "u"))
    assert exc.value.message == "Gemini API error: 429"
    assert "Quota exceeded" in exc.value.details


# ---------- Groq ----------
def test_groq_chat(monkeypatch):
    stub = StubGroq(content="## MOTIVO DELLA SEDUTA\n")
    monkeypatch.setattr(llm_client, "_groq", lambda: stub)
    messages = [{"role": "system", "content": "s"}, {"role": "user", "content": "u"}]

    assert asyncio.run(llm_client.groq_chat(messages, max_tokens=1500)) == "## MOTIVO DELLA SEDUTA"
    [call] = stub.calls
    assert call["model"] == config.GROQ_MODEL
    assert call["messages"] == messages
    assert call["max_tokens"] == 1500


def test_groq_chat_without_key(monkeypatch):
    monkeypatch.setattr(config, "GROQ_API_KEY", "")
    with pytest.raises(GroqError) as exc:
        asyncio.run(llm_client.groq_chat([{"role": "user", "content": "u"}]))
    assert exc.value.message == "GROQ_API_KEY non configurata"


def test_groq_chat_empty_reply(monkeypatch):
    monkeypatch.setattr(llm_client, "_groq", lambda: StubGroq(content=None))
    with pytest.raises(GroqError) as exc:
        asyncio.run(llm_client.groq_chat([{"role": "user", "content": "u"}]))
    assert exc.value.message == "Nessuna risposta da Groq"


def test_groq_chat_wraps_sdk_errors(monkeypatch):
    monkeypatch.setattr(llm_client, "_groq", lambda: StubGroq(error=OpenAIError("connection reset")))
    with pytest.raises(GroqError) as exc:
        asyncio.run(llm_client.groq_chat([{"role": "user", "content": "u"}]))
    assert exc.value.details == "connection reset"
