import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from app.config import openai_client
from app.services import translation_service
from app.services.languages import LanguageCode, field_name
from app.services.translation_service import (
    ConfigurationError,
    MalformedResponse,
    RateLimited,
    UpstreamError,
    parse_completion_text,
    strip_code_fences,
    translate_description,
)


def _payload(**overrides):
    payload = {field_name(code): f"{code.value} text" for code in LanguageCode}
    payload.update(overrides)
    return payload


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _install_client(monkeypatch, completions):
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    monkeypatch.setattr(translation_service, "get_openai_client", lambda: client)
    return client


def _openai_request():
    return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def test_strip_code_fences_handles_json_fence():
    raw = '```json\n{"description_fr": "Soupe"}\n```'
    assert strip_code_fences(raw) == '{"description_fr": "Soupe"}'


def test_strip_code_fences_leaves_plain_json_untouched():
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_completion_text_accepts_fenced_payload():
    result = parse_completion_text("```\n" + json.dumps(_payload()) + "\n```")
    assert result[LanguageCode.KZ] == "kz text"
    assert set(result.as_fields()) == {field_name(code) for code in LanguageCode}


def test_partial_payload_is_a_parse_failure():
    payload = _payload()
    del payload["description_it"]
    with pytest.raises(MalformedResponse) as excinfo:
        parse_completion_text(json.dumps(payload))
    assert "it" in str(excinfo.value)


def test_non_string_value_is_a_parse_failure():
    with pytest.raises(MalformedResponse):
        parse_completion_text(json.dumps(_payload(description_ru=None)))


def test_empty_completion_is_a_parse_failure():
    with pytest.raises(MalformedResponse):
        parse_completion_text("   ")


def test_invalid_json_is_a_parse_failure():
    with pytest.raises(MalformedResponse):
        parse_completion_text("Sure! Here are your translations:")


def test_translate_description_returns_all_languages(monkeypatch):
    completions = FakeCompletions(content=json.dumps(_payload(description_fr="Saumon grillé")))
    _install_client(monkeypatch, completions)

    result = translate_description("Grilled salmon")

    assert result[LanguageCode.FR] == "Saumon grillé"
    request = completions.requests[0]
    assert request["response_format"] == {"type": "json_object"}
    assert "Grilled salmon" in request["messages"][-1]["content"]


def test_translate_description_maps_rate_limit(monkeypatch):
    response = httpx.Response(429, request=_openai_request())
    error = openai.RateLimitError("Rate limit reached", response=response, body=None)
    _install_client(monkeypatch, FakeCompletions(error=error))

    with pytest.raises(RateLimited) as excinfo:
        translate_description("Grilled salmon")
    assert str(excinfo.value) == translation_service.RATE_LIMITED_MESSAGE


def test_translate_description_maps_server_error(monkeypatch):
    response = httpx.Response(503, request=_openai_request())
    error = openai.InternalServerError("Service unavailable", response=response, body=None)
    _install_client(monkeypatch, FakeCompletions(error=error))

    with pytest.raises(UpstreamError) as excinfo:
        translate_description("Grilled salmon")
    assert excinfo.value.status_code == 503


def test_translate_description_maps_connection_error(monkeypatch):
    error = openai.APIConnectionError(request=_openai_request())
    _install_client(monkeypatch, FakeCompletions(error=error))

    with pytest.raises(UpstreamError) as excinfo:
        translate_description("Grilled salmon")
    assert excinfo.value.status_code is None


def test_missing_api_key_raises_configuration_error(monkeypatch):
    monkeypatch.setattr(openai_client, "OPENAI_API_KEY", None)
    openai_client.get_openai_client.cache_clear()
    try:
        with pytest.raises(ConfigurationError):
            translate_description("Grilled salmon")
    finally:
        openai_client.get_openai_client.cache_clear()
