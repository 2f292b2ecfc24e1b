from __future__ import annotations

import json

import pytest

from app.domain import SportCategory
from app.schemas import AnalysisArtifact
from app.services.analysis_service import AnalysisService, InferenceUnavailableError
from app.services.cache_gateway import BackgroundWriter, RemoteCacheGateway
from app.services.circuit import CircuitState
from app.services.llm import ANALYSIS_STAGE

from conftest import FakeInference, MemoryStore

MODEL_REPLY = """Sure! Here is the analysis:
```json
{
  "summary": "PSG should control the game.",
  "scenarios": ["If PSG scores first then Over 2.5 goals"],
  "predictions": [{"betType": "1X2", "selection": "PSG", "odds": "1,60", "probability": "68%", "confidence": 72, "edge": 0}],
  "keyFactors": ["Home form", "home form"],
  "simulationInputs": {"homeAttack": 85, "homeDefense": 75, "awayAttack": 60, "awayDefense": 55},
  "monteCarlo": {"homeWinProb": 99, "distribution": [{"diff": 9, "count": 1}]},
}
```"""


def _service(inference: FakeInference, store: MemoryStore | None = None, circuit: CircuitState | None = None):
    gateway = RemoteCacheGateway(
        store,
        circuit or CircuitState(),
        retry_attempts=2,
        retry_delay=0,
        sleep=lambda _: None,
    )
    writer = BackgroundWriter(max_workers=1)
    service = AnalysisService(
        inference,
        gateway,
        writer,
        retry_attempts=3,
        retry_delay=0,
        trials=2_000,
        seed=11,
        sleep=lambda _: None,
    )
    return service, writer


def test_bare_string_scenario_end_to_end(make_fixture) -> None:
    """Malformed model output becomes a valid, simulated, persisted artifact."""
    store = MemoryStore()
    inference = FakeInference([MODEL_REPLY])
    service, writer = _service(inference, store)
    fixture = make_fixture()

    artifact = service.get_analysis(fixture)
    writer.drain(timeout=5)

    assert isinstance(artifact, AnalysisArtifact)
    assert artifact.entity_id == "parissg-olympiquedemarseille"
    assert inference.calls[0][0] == ANALYSIS_STAGE

    scenario = artifact.scenarios[0]
    assert scenario.condition == "If PSG scores first"
    assert scenario.outcome == "Over 2.5 goals"
    assert scenario.likelihood == "Medium"

    prediction = artifact.predictions[0]
    assert prediction.market == "1X2"
    assert prediction.odds == pytest.approx(1.6)
    assert prediction.edge == round(0.68 * 1.6 - 1, 3)
    assert artifact.key_factors == ["Home form"]
    assert artifact.injuries == []

    # The simulator output replaces whatever the model claimed.
    assert artifact.monte_carlo is not None
    assert artifact.monte_carlo.total_trials == 2_000
    assert sum(item.count for item in artifact.monte_carlo.histogram) == 2_000
    assert artifact.monte_carlo.home_win_probability > artifact.monte_carlo.away_win_probability

    stored = store.analyses[artifact.entity_id]
    assert AnalysisArtifact.model_validate(stored) == artifact


def test_memory_cache_prevents_second_inference(make_fixture) -> None:
    inference = FakeInference([MODEL_REPLY])
    service, _ = _service(inference, MemoryStore())
    fixture = make_fixture()

    first = service.get_analysis(fixture)
    second = service.get_analysis(fixture)

    assert first is second
    assert len(inference.calls) == 1


def test_remote_cache_hit_skips_inference(make_fixture) -> None:
    fixture = make_fixture()
    store = MemoryStore()
    store.analyses[fixture.id] = {"summary": "From the cache", "keyFactors": ["Cached"]}
    inference = FakeInference()
    service, _ = _service(inference, store)

    artifact = service.get_analysis(fixture)

    assert inference.calls == []
    assert artifact.summary == "From the cache"
    assert artifact.key_factors == ["Cached"]
    assert artifact.entity_id == fixture.id


def test_force_refresh_overwrites_cached_artifact(make_fixture) -> None:
    fixture = make_fixture()
    store = MemoryStore()
    store.analyses[fixture.id] = {"summary": "Old"}
    inference = FakeInference([json.dumps({"summary": "New"})])
    service, writer = _service(inference, store)

    artifact = service.get_analysis(fixture, force_refresh=True)
    writer.drain(timeout=5)

    assert artifact.summary == "New"
    assert artifact.monte_carlo is None
    assert store.analyses[fixture.id]["summary"] == "New"
    assert service.cached_analysis(fixture.id).summary == "New"


def test_transient_inference_failure_is_retried(make_fixture) -> None:
    inference = FakeInference([TimeoutError("slow"), MODEL_REPLY])
    service, _ = _service(inference)

    artifact = service.get_analysis(make_fixture())

    assert len(inference.calls) == 2
    assert artifact.summary == "PSG should control the game."


def test_exhausted_inference_raises_unavailable(make_fixture) -> None:
    inference = FakeInference([RuntimeError("down")] * 3)
    service, _ = _service(inference, MemoryStore())

    with pytest.raises(InferenceUnavailableError):
        service.get_analysis(make_fixture())
    assert len(inference.calls) == 3


def test_unparseable_reply_still_produces_artifact(make_fixture) -> None:
    service, _ = _service(FakeInference(["I cannot help with that."]))

    artifact = service.get_analysis(make_fixture())

    assert artifact.summary == "No summary available."
    assert artifact.predictions == []
    assert artifact.monte_carlo is None


def test_offline_store_never_blocks_analysis(make_fixture) -> None:
    circuit = CircuitState()
    circuit.mark_offline()
    store = MemoryStore()
    service, writer = _service(FakeInference([MODEL_REPLY]), store, circuit)

    artifact = service.get_analysis(make_fixture(category=SportCategory.BASKETBALL))
    writer.drain(timeout=5)

    assert artifact.monte_carlo is not None
    assert artifact.monte_carlo.draw_probability == 0.0
    assert store.calls == []


def test_cached_analysis_miss_returns_none() -> None:
    service, _ = _service(FakeInference(), MemoryStore())
    assert service.cached_analysis("nobody-here") is None
