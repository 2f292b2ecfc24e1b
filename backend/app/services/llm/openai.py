"""OpenAI provider hooks."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping

from openai import OpenAI

from app.core.config import Settings

from .base import (
    InferenceConfigurationError,
    InferenceExecutionError,
    InferenceProvider,
    InferenceRequest,
)

_DEFAULT_STAGE_MODELS: dict[str, str] = {
    "fixtures": "gpt-4.1-mini",
    "analysis": "gpt-5",
}
_SEARCH_TOOL: Mapping[str, Any] = {"type": "web_search_preview"}


def _status_code_from_exception(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    if response is not None:
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status
    return None


def _exception_summary(exc: Exception) -> str:
    parts = [exc.__class__.__name__]
    status = _status_code_from_exception(exc)
    if isinstance(status, int):
        parts.append(f"status={status}")
    request_id = getattr(exc, "request_id", None)
    if isinstance(request_id, str) and request_id:
        parts.append(f"request_id={request_id}")
    message = str(exc)
    if message:
        parts.append(message)
    return ": ".join([parts[0], " ".join(parts[1:])]) if len(parts) > 1 else parts[0]


@lru_cache(maxsize=4)
def _client_cache(
    api_key: str,
    base_url: str | None,
    organization: str | None,
    project: str | None,
) -> OpenAI:
    kwargs: dict[str, Any] = {"api_key": api_key}
    if base_url:
        kwargs["base_url"] = base_url
    if organization:
        kwargs["organization"] = organization
    if project:
        kwargs["project"] = project
    return OpenAI(**kwargs)


def get_openai_client(settings: Settings) -> OpenAI:
    """Build or reuse an OpenAI client for the supplied settings."""

    if not settings.openai_api_key:
        raise InferenceConfigurationError("OPENAI_API_KEY is not configured")
    base_url = str(settings.openai_api_base) if settings.openai_api_base else None
    return _client_cache(
        settings.openai_api_key,
        base_url,
        settings.openai_org_id,
        settings.openai_project_id,
    )


def _response_text(response: Any) -> str:
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text.strip():
        return output_text
    dump: Mapping[str, Any]
    if hasattr(response, "model_dump"):
        dump = response.model_dump()
    elif isinstance(response, Mapping):
        dump = response
    else:
        dump = {}
    for item in dump.get("output", None) or []:
        for content in item.get("content", None) or []:
            if isinstance(content, dict):
                text = content.get("text") or content.get("output_text")
                if isinstance(text, str) and text.strip():
                    return text
    raise InferenceExecutionError("OpenAI response did not include any text")


@dataclass(slots=True)
class OpenAIProvider(InferenceProvider):
    name: str = "openai"

    def ensure_ready(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise InferenceConfigurationError("OPENAI_API_KEY is not configured")

    def default_model(self, stage: str) -> str:
        return _DEFAULT_STAGE_MODELS.get(stage, _DEFAULT_STAGE_MODELS["fixtures"])

    def generate(self, request: InferenceRequest, *, settings: Settings) -> str:
        client = get_openai_client(settings)
        messages: list[dict[str, str]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        messages.append({"role": "user", "content": request.prompt})
        payload: dict[str, Any] = {"model": request.model, "input": messages}
        if request.use_search:
            payload["tools"] = [dict(_SEARCH_TOOL)]
        if request.timeout:
            payload["timeout"] = request.timeout
        try:
            response = client.responses.create(**payload)
        except Exception as exc:
            raise InferenceExecutionError(_exception_summary(exc)) from exc
        return _response_text(response)


__all__ = ["OpenAIProvider", "get_openai_client"]
