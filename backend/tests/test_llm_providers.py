from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from app.services.llm import (
    ANALYSIS_STAGE,
    FIXTURES_STAGE,
    InferenceClient,
    InferenceConfigurationError,
    InferenceExecutionError,
    InferenceRequest,
    UnknownInferenceProviderError,
    available_providers,
    get_provider,
)
from app.services.llm import gemini as gemini_module
from app.services.llm import openai as openai_module
from app.services.llm.gemini import GeminiProvider
from app.services.llm.openai import OpenAIProvider


class _FakeGenai:
    """Records configure/generate calls; ``failures`` maps api keys to errors."""

    def __init__(self, failures: dict[str, Exception] | None = None, text: str = '{"ok": true}'):
        self.failures = failures or {}
        self.text = text
        self.configured: list[str] = []
        self.calls: list[dict[str, Any]] = []
        self._current_key: str | None = None

    def configure(self, *, api_key: str) -> None:
        self._current_key = api_key
        self.configured.append(api_key)

    def GenerativeModel(self, model: str, system_instruction: str | None = None):  # noqa: N802
        fake = self

        class _Model:
            def generate_content(self, prompt, tools=None, request_options=None):
                fake.calls.append(
                    {
                        "key": fake._current_key,
                        "model": model,
                        "tools": tools,
                        "request_options": request_options,
                    }
                )
                error = fake.failures.get(fake._current_key)
                if error is not None and (tools or not isinstance(error, _GroundingError)):
                    raise error
                return SimpleNamespace(text=fake.text, candidates=[])

        return _Model()


class _GroundingError(RuntimeError):
    pass


def _request(**overrides: Any) -> InferenceRequest:
    values: dict[str, Any] = {
        "stage": ANALYSIS_STAGE,
        "model": "gemini-2.5-pro",
        "prompt": "Analyse PSG vs OM",
        "timeout": 30.0,
    }
    values.update(overrides)
    return InferenceRequest(**values)


def test_providers_are_resolved_by_name(test_settings) -> None:
    assert available_providers() == ("gemini", "openai")
    assert isinstance(get_provider(" Gemini "), GeminiProvider)
    with pytest.raises(UnknownInferenceProviderError):
        get_provider("mistral")

    client = InferenceClient(test_settings.model_copy(update={"llm_default_provider": "openai"}))
    assert client.provider_name == "openai"
    with pytest.raises(UnknownInferenceProviderError):
        InferenceClient(test_settings.model_copy(update={"llm_default_provider": "mistral"}))


def test_gemini_cycles_through_api_keys(test_settings, monkeypatch) -> None:
    fake = _FakeGenai(failures={"test-key": RuntimeError("quota exceeded")})
    monkeypatch.setattr(gemini_module, "genai", fake)
    settings = test_settings.model_copy(update={"gemini_additional_api_keys": ["backup", "test-key"]})

    text = GeminiProvider().generate(_request(), settings=settings)

    assert text == '{"ok": true}'
    assert fake.configured == ["test-key", "backup"]
    assert fake.calls[-1]["request_options"] == {"timeout": 30.0}


def test_gemini_raises_after_exhausting_keys(test_settings, monkeypatch) -> None:
    fake = _FakeGenai(failures={"test-key": RuntimeError("quota exceeded")})
    monkeypatch.setattr(gemini_module, "genai", fake)

    with pytest.raises(InferenceExecutionError) as excinfo:
        GeminiProvider().generate(_request(), settings=test_settings)
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_gemini_drops_search_tool_when_grounding_is_unsupported(test_settings, monkeypatch) -> None:
    fake = _FakeGenai(failures={"test-key": _GroundingError("Search Grounding is not supported.")})
    monkeypatch.setattr(gemini_module, "genai", fake)

    text = GeminiProvider().generate(_request(use_search=True), settings=test_settings)

    assert text == '{"ok": true}'
    assert fake.calls[0]["tools"] == [{"google_search_retrieval": {}}]
    assert fake.calls[1]["tools"] is None


def test_gemini_reads_text_from_candidate_parts() -> None:
    response = SimpleNamespace(
        text=None,
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(text="[1, "), {"text": "2]"}]))],
    )
    assert gemini_module._response_text(response) == "[1, 2]"

    with pytest.raises(InferenceExecutionError):
        gemini_module._response_text(SimpleNamespace(text="", candidates=[]))


def test_gemini_requires_a_key(test_settings) -> None:
    settings = test_settings.model_copy(update={"gemini_api_key": None, "gemini_additional_api_keys": []})
    with pytest.raises(InferenceConfigurationError):
        GeminiProvider().ensure_ready(settings)


def test_openai_requires_a_key(test_settings) -> None:
    settings = test_settings.model_copy(update={"openai_api_key": None})
    with pytest.raises(InferenceConfigurationError):
        openai_module.get_openai_client(settings)


def test_openai_sends_responses_payload(test_settings, monkeypatch) -> None:
    captured: dict[str, Any] = {}

    def create(**payload: Any):
        captured.update(payload)
        return SimpleNamespace(output_text="[]")

    client = SimpleNamespace(responses=SimpleNamespace(create=create))
    monkeypatch.setattr(openai_module, "get_openai_client", lambda settings: client)

    text = OpenAIProvider().generate(
        _request(model="gpt-5", system_instruction="JSON only", use_search=True),
        settings=test_settings,
    )

    assert text == "[]"
    assert captured["model"] == "gpt-5"
    assert captured["input"][0] == {"role": "system", "content": "JSON only"}
    assert captured["tools"] == [{"type": "web_search_preview"}]
    assert captured["timeout"] == 30.0


def test_openai_wraps_sdk_errors(test_settings, monkeypatch) -> None:
    class _ApiError(Exception):
        status_code = 429

    def create(**payload: Any):
        raise _ApiError("rate limited")

    client = SimpleNamespace(responses=SimpleNamespace(create=create))
    monkeypatch.setattr(openai_module, "get_openai_client", lambda settings: client)

    with pytest.raises(InferenceExecutionError, match="status=429"):
        OpenAIProvider().generate(_request(), settings=test_settings)


class _StubProvider:
    name = "stub"

    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.requests: list[InferenceRequest] = []

    def ensure_ready(self, settings) -> None:
        return None

    def default_model(self, stage: str) -> str:
        return f"stub-{stage}"

    def generate(self, request: InferenceRequest, *, settings) -> str:
        self.requests.append(request)
        return self.reply


def test_inference_client_resolves_models_per_stage(test_settings) -> None:
    settings = test_settings.model_copy(update={"llm_stage_models": {ANALYSIS_STAGE: "custom-pro"}})
    provider = _StubProvider("{}")
    client = InferenceClient(settings, provider=provider)

    assert client.model_for(FIXTURES_STAGE) == "stub-fixtures"
    assert client.model_for(ANALYSIS_STAGE) == "custom-pro"

    client.complete(ANALYSIS_STAGE, "prompt", use_search=True)
    assert provider.requests[0].model == "custom-pro"
    assert provider.requests[0].use_search is True


def test_inference_client_rejects_blank_replies(test_settings) -> None:
    client = InferenceClient(test_settings, provider=_StubProvider("   "))
    with pytest.raises(InferenceExecutionError):
        client.complete(FIXTURES_STAGE, "prompt")
