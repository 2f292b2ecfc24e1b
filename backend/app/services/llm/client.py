"""Stage-aware facade over the configured inference providers."""

from __future__ import annotations

import time
from typing import Callable

from loguru import logger

from app.core.config import Settings

from .base import InferenceExecutionError, InferenceProvider, InferenceRequest
from .gemini import GeminiProvider
from .openai import OpenAIProvider

FIXTURES_STAGE = "fixtures"
ANALYSIS_STAGE = "analysis"


class UnknownInferenceProviderError(LookupError):
    """Raised when `LLM_DEFAULT_PROVIDER` names no known provider."""


_PROVIDER_FACTORIES: dict[str, Callable[[], InferenceProvider]] = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
}


def available_providers() -> tuple[str, ...]:
    return tuple(sorted(_PROVIDER_FACTORIES))


def get_provider(name: str) -> InferenceProvider:
    """Instantiate the provider configured as ``name`` (case-insensitive)."""

    factory = _PROVIDER_FACTORIES.get(name.strip().lower())
    if factory is None:
        raise UnknownInferenceProviderError(
            f"Unknown inference provider '{name}'; expected one of {', '.join(available_providers())}"
        )
    return factory()


class InferenceClient:
    """Resolve provider and model per stage and issue single text calls.

    The client performs exactly one provider call per ``complete``; retries are
    owned by the callers so that they can decide what exhaustion means.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        provider: InferenceProvider | None = None,
    ) -> None:
        self._settings = settings
        self._provider = provider or get_provider(settings.llm_default_provider)

    @property
    def provider_name(self) -> str:
        return self._provider.name

    def model_for(self, stage: str) -> str:
        configured = (self._settings.llm_stage_models or {}).get(stage)
        return configured or self._provider.default_model(stage)

    def complete(
        self,
        stage: str,
        prompt: str,
        *,
        system_instruction: str | None = None,
        use_search: bool = False,
    ) -> str:
        self._provider.ensure_ready(self._settings)
        request = InferenceRequest(
            stage=stage,
            model=self.model_for(stage),
            prompt=prompt,
            system_instruction=system_instruction,
            use_search=use_search,
            timeout=self._settings.inference_timeout_seconds,
        )
        logger.info(
            "Inference call stage={} provider={} model={}",
            stage,
            self._provider.name,
            request.model,
        )
        started = time.perf_counter()
        text = self._provider.generate(request, settings=self._settings)
        if not text or not text.strip():
            raise InferenceExecutionError(f"{self._provider.name} returned an empty response")
        logger.info(
            "Inference call stage={} finished in {:.1f}s ({} chars)",
            stage,
            time.perf_counter() - started,
            len(text),
        )
        return text


__all__ = [
    "ANALYSIS_STAGE",
    "FIXTURES_STAGE",
    "InferenceClient",
    "UnknownInferenceProviderError",
    "available_providers",
    "get_provider",
]
