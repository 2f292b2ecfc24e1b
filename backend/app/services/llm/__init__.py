"""Inference providers and the stage-aware client."""

from .base import (
    InferenceConfigurationError,
    InferenceExecutionError,
    InferenceProvider,
    InferenceRequest,
)
from .client import (
    ANALYSIS_STAGE,
    FIXTURES_STAGE,
    InferenceClient,
    UnknownInferenceProviderError,
    available_providers,
    get_provider,
)

__all__ = [
    "ANALYSIS_STAGE",
    "FIXTURES_STAGE",
    "InferenceClient",
    "InferenceConfigurationError",
    "InferenceExecutionError",
    "InferenceProvider",
    "InferenceRequest",
    "UnknownInferenceProviderError",
    "available_providers",
    "get_provider",
]
