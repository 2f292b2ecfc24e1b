"""Analysis orchestration: cache tiers, inference, repair, and simulation."""

from __future__ import annotations

import random
import threading
import time
from typing import Any, Callable, Mapping

from loguru import logger
from pydantic import ValidationError

from app.domain import FixtureRef, RatingVector, SportCategory
from app.schemas import AnalysisArtifact, artifact_payload
from ingestion.extract import parse_structured_text
from ingestion.repair import repair

from .cache_gateway import BackgroundWriter, RemoteCacheGateway
from .identity import make_id
from .llm import ANALYSIS_STAGE, InferenceClient
from .prompts import SYSTEM_INSTRUCTION, analysis_prompt
from .retry import with_retry
from .simulation import DEFAULT_PROFILES, DEFAULT_TRIALS, SportProfile, simulate


class InferenceUnavailableError(Exception):
    """Raised when the inference service cannot produce an analysis after retries."""


class AnalysisService:
    """Serve analysis artifacts keyed by the fixture's entity id."""

    def __init__(
        self,
        inference: InferenceClient,
        gateway: RemoteCacheGateway,
        writer: BackgroundWriter,
        *,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        trials: int = DEFAULT_TRIALS,
        profiles: Mapping[SportCategory, SportProfile] | None = None,
        seed: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._inference = inference
        self._gateway = gateway
        self._writer = writer
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._trials = trials
        self._profiles = dict(profiles or DEFAULT_PROFILES)
        self._seed = seed
        self._sleep = sleep
        self._memory: dict[str, AnalysisArtifact] = {}
        self._lock = threading.Lock()

    def cached_analysis(self, entity_id: str) -> AnalysisArtifact | None:
        """Return the artifact from memory or the remote cache without inference."""

        with self._lock:
            artifact = self._memory.get(entity_id)
        if artifact is not None:
            logger.debug("Analysis {} served from memory", entity_id)
            return artifact

        payload = self._gateway.get_analysis(entity_id)
        if payload is None:
            return None
        artifact = self._build_artifact(entity_id, repair(payload))
        if artifact is None:
            return None
        logger.info("Analysis {} loaded from remote cache", entity_id)
        with self._lock:
            self._memory[entity_id] = artifact
        return artifact

    def get_analysis(self, fixture: FixtureRef, *, force_refresh: bool = False) -> AnalysisArtifact:
        entity_id = fixture.id or make_id(fixture.participant_a, fixture.participant_b)
        if not force_refresh:
            cached = self.cached_analysis(entity_id)
            if cached is not None:
                return cached

        logger.info("Analysis cache miss for {}; requesting inference", entity_id)
        text = self._infer(fixture, entity_id)
        repaired = repair(parse_structured_text(text))
        repaired["entity_id"] = entity_id
        repaired["monte_carlo"] = self._simulate(repaired.get("simulation_inputs"), fixture.category)

        artifact = self._build_artifact(entity_id, repaired)
        if artifact is None:
            # Only reachable if repair emits something the schema rejects.
            raise InferenceUnavailableError(f"analysis for {entity_id} could not be assembled")

        with self._lock:
            self._memory[entity_id] = artifact
        self._writer.submit(
            f"put_analysis({entity_id})",
            self._gateway.put_analysis,
            entity_id,
            artifact_payload(artifact),
        )
        return artifact

    def _infer(self, fixture: FixtureRef, entity_id: str) -> str:
        prompt = analysis_prompt(fixture)
        try:
            return with_retry(
                lambda: self._inference.complete(
                    ANALYSIS_STAGE,
                    prompt,
                    system_instruction=SYSTEM_INSTRUCTION,
                    use_search=True,
                ),
                max_attempts=self._retry_attempts,
                initial_delay=self._retry_delay,
                label=f"analysis inference {entity_id}",
                sleep=self._sleep,
            )
        except Exception as exc:
            raise InferenceUnavailableError(
                f"inference unavailable for {entity_id} after {self._retry_attempts} attempt(s)"
            ) from exc

    def _simulate(self, inputs: Any, category: SportCategory) -> dict[str, Any] | None:
        ratings = RatingVector.from_payload(inputs)
        if ratings is None:
            return None
        rng = random.Random(self._seed) if self._seed is not None else None
        distribution = simulate(
            ratings,
            category,
            self._trials,
            profiles=self._profiles,
            rng=rng,
        )
        return distribution.as_payload()

    @staticmethod
    def _build_artifact(entity_id: str, repaired: dict[str, Any]) -> AnalysisArtifact | None:
        repaired["entity_id"] = entity_id
        try:
            return AnalysisArtifact.model_validate(repaired)
        except ValidationError as exc:
            logger.warning("Discarding invalid analysis payload for {}: {}", entity_id, exc)
            return None


__all__ = ["AnalysisService", "InferenceUnavailableError"]
