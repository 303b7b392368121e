import pytest

from therapia.services.llm_client import to_gemini_history
from therapia.services.llm_parsing import (
    LLMResponseFormatError, as_str_list, parse_json_object, strip_code_fences, strip_control_chars,
)


def test_parse_fenced_json():
    raw = 'Ecco i temi:\n```json\n{"themes": ["ansia", "lavoro"]}\n```'
    assert parse_json_object(raw) == {"themes": ["ansia", "lavoro"]}


def test_parse_takes_outermost_object():
    raw = 'prefisso {"a": {"b": 1}, "c": [1, 2]} suffisso'
    assert parse_json_object(raw) == {"a": {"b": 1}, "c": [1, 2]}


def test_control_characters_are_dropped():
    assert strip_control_chars("a\x00b\x07c\n\td") == "abc\n\td"
    assert parse_json_object('{"note": "ok\x01"}') == {"note": "ok"}


def test_strip_code_fences():
    assert strip_code_fences("```JSON\n{}\n```") == "{}"
    assert strip_code_fences(None) == ""


@pytest.mark.parametrize("raw", [
    "nessun json qui",
    '{"themes": [1, 2,}',
    "} prima {",
])
def test_parse_rejects_garbage(raw):
    with pytest.raises(LLMResponseFormatError) as exc:
        parse_json_object(raw)
    assert exc.value.raw == raw


def test_as_str_list():
    assert as_str_list(["  uno ", "", 2, " "]) == ["uno", "2"]
    assert as_str_list("non una lista") == []
    assert as_str_list(None) == []


def test_gemini_history_roles():
    contents = to_gemini_history([
        {"role": "user", "content": "Come creo un paziente?"},
        {"role": "assistant", "content": "Vai su Pazienti."},
        {"role": "assistant", "content": ""},
    ])
    assert [c.role for c in contents] == ["user", "model"]
    assert contents[1].parts[0].text == "Vai su Pazienti."
