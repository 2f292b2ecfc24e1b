"""Google Gemini provider hooks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import google.generativeai as genai
from loguru import logger

from app.core.config import Settings

from .base import (
    InferenceConfigurationError,
    InferenceExecutionError,
    InferenceProvider,
    InferenceRequest,
)

_SEARCH_TOOL: Mapping[str, Any] = {"google_search_retrieval": {}}

_DEFAULT_STAGE_MODELS: dict[str, str] = {
    "fixtures": "gemini-2.5-flash",
    "analysis": "gemini-2.5-pro",
}


def _is_search_grounding_error(exc: Exception) -> bool:
    message = str(exc)
    return "Search Grounding is not supported" in message


def _response_text(response: Any) -> str:
    try:
        text_candidate = getattr(response, "text", None)
    except ValueError:
        # The SDK raises when the first candidate has no text part.
        text_candidate = None
    if isinstance(text_candidate, str) and text_candidate.strip():
        return text_candidate

    chunks: list[str] = []
    for candidate in getattr(response, "candidates", None) or []:
        parts = None
        if isinstance(candidate, Mapping):
            parts = candidate.get("content") or candidate.get("parts")
        if parts is None:
            parts = getattr(candidate, "content", None)
        if parts is None:
            parts = getattr(candidate, "parts", None)
        if not parts:
            continue
        for part in getattr(parts, "parts", parts):
            text = part.get("text") if isinstance(part, Mapping) else getattr(part, "text", None)
            if isinstance(text, str) and text.strip():
                chunks.append(text)
    if not chunks:
        raise InferenceExecutionError("Gemini response did not include any text")
    return "".join(chunks)


@dataclass(slots=True)
class GeminiProvider(InferenceProvider):
    name: str = "gemini"

    def _resolve_api_keys(self, settings: Settings) -> list[str]:
        keys: list[str] = []
        for candidate in [settings.gemini_api_key, *(settings.gemini_additional_api_keys or [])]:
            if not candidate:
                continue
            value = str(candidate).strip()
            if value and value not in keys:
                keys.append(value)
        return keys

    def ensure_ready(self, settings: Settings) -> None:
        if not self._resolve_api_keys(settings):
            raise InferenceConfigurationError("GEMINI_API_KEY is not configured")

    def default_model(self, stage: str) -> str:
        return _DEFAULT_STAGE_MODELS.get(stage, _DEFAULT_STAGE_MODELS["fixtures"])

    def _invoke_with_api_key(
        self,
        request: InferenceRequest,
        *,
        api_key: str,
        attempt_index: int,
        total_attempts: int,
    ) -> Any:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(
            request.model,
            system_instruction=request.system_instruction,
        )
        request_options = {"timeout": request.timeout} if request.timeout else None
        tools = [dict(_SEARCH_TOOL)] if request.use_search else None
        try:
            return model.generate_content(
                request.prompt,
                tools=tools,
                request_options=request_options,
            )
        except Exception as exc:
            if tools and _is_search_grounding_error(exc):
                logger.warning(
                    "Gemini search grounding unavailable; retrying without tools stage={} attempt={}/{}",
                    request.stage,
                    attempt_index + 1,
                    total_attempts,
                )
                return model.generate_content(
                    request.prompt,
                    tools=None,
                    request_options=request_options,
                )
            raise

    def generate(self, request: InferenceRequest, *, settings: Settings) -> str:
        api_keys = self._resolve_api_keys(settings)
        if not api_keys:
            raise InferenceConfigurationError("GEMINI_API_KEY is not configured")
        last_error: Exception | None = None
        total_attempts = len(api_keys)
        for attempt_index, api_key in enumerate(api_keys):
            try:
                response = self._invoke_with_api_key(
                    request,
                    api_key=api_key,
                    attempt_index=attempt_index,
                    total_attempts=total_attempts,
                )
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Gemini request failed (key {}/{}), stage={}, error={}",
                    attempt_index + 1,
                    total_attempts,
                    request.stage,
                    exc,
                )
                continue
            return _response_text(response)
        raise InferenceExecutionError(
            "Gemini request failed after exhausting all configured API keys"
        ) from last_error


__all__ = ["GeminiProvider"]
