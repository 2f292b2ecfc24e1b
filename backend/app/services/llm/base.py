"""Provider contracts for inference integrations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from app.core.config import Settings


class InferenceExecutionError(RuntimeError):
    """Raised when a provider call fails or returns no usable text."""


class InferenceConfigurationError(InferenceExecutionError):
    """Raised when a provider is missing credentials or its SDK."""


@dataclass(frozen=True, slots=True)
class InferenceRequest:
    """One text-generation call issued to a provider."""

    stage: str
    model: str
    prompt: str
    system_instruction: str | None = None
    use_search: bool = False
    timeout: float | None = None


class InferenceProvider(Protocol):
    """Interface implemented by provider adapters."""

    name: str

    def ensure_ready(self, settings: Settings) -> None:
        """Validate credentials or raise :class:`InferenceConfigurationError`."""

    def default_model(self, stage: str) -> str:
        """Return provider fallback model for the supplied stage."""

    def generate(self, request: InferenceRequest, *, settings: Settings) -> str:
        """Execute the model call and return the response text."""


__all__ = [
    "InferenceConfigurationError",
    "InferenceExecutionError",
    "InferenceProvider",
    "InferenceRequest",
]
