from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query

from . import schemas
from .core.config import get_settings
from .domain import SportCategory
from .services.analysis_service import AnalysisService, InferenceUnavailableError
from .services.fixture_service import FixtureService
from .services.identity import make_id
from .services.runtime import Runtime, get_runtime

app = FastAPI(title="BetMind API", version="0.1.0", debug=get_settings().debug)


def _runtime() -> Runtime:
    """Provide the process-wide runtime."""

    return get_runtime()


def _fixture_service(runtime: Runtime = Depends(_runtime)) -> FixtureService:
    return runtime.fixtures


def _analysis_service(runtime: Runtime = Depends(_runtime)) -> AnalysisService:
    return runtime.analyses


@app.on_event("shutdown")
def on_shutdown() -> None:
    """Flush pending cache writes before the process exits."""

    if get_runtime.cache_info().currsize:
        get_runtime().close()


@app.get("/healthz", response_model=schemas.HealthStatus, tags=["system"])
def healthcheck(runtime: Runtime = Depends(_runtime)):
    """Readiness probe reporting the remote cache circuit state."""

    return schemas.HealthStatus(
        status="ok",
        remote_store=runtime.store_name,
        circuit="offline" if runtime.circuit.is_offline() else "online",
    )


@app.get("/fixtures", response_model=schemas.FixtureList, tags=["fixtures"])
def list_fixtures(
    *,
    category: Annotated[SportCategory | None, Query(description="Sport category filter")] = None,
    refresh: Annotated[bool, Query(description="Bypass cached listings")] = False,
    service: FixtureService = Depends(_fixture_service),
):
    """List today's non-expired fixtures, active ones first."""

    fixtures = service.list_fixtures(category, force_refresh=refresh)
    return schemas.FixtureList(
        total=len(fixtures),
        items=[schemas.Fixture.model_validate(fixture) for fixture in fixtures],
    )


@app.post("/analysis", response_model=schemas.AnalysisArtifact, tags=["analysis"])
def create_analysis(
    fixture: schemas.FixtureRequest,
    refresh: Annotated[bool, Query(description="Ignore cached analyses")] = False,
    service: AnalysisService = Depends(_analysis_service),
):
    """Return the analysis for a fixture, generating it when not cached."""

    entity_id = make_id(fixture.participant_a, fixture.participant_b)
    try:
        return service.get_analysis(fixture.to_domain(entity_id), force_refresh=refresh)
    except InferenceUnavailableError as exc:
        raise HTTPException(status_code=503, detail="analysis unavailable, retry") from exc


@app.get("/analysis/{entity_id}", response_model=schemas.AnalysisArtifact, tags=["analysis"])
def get_cached_analysis(entity_id: str, service: AnalysisService = Depends(_analysis_service)):
    """Return a previously generated analysis without calling the inference service."""

    artifact = service.cached_analysis(entity_id)
    if artifact is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return artifact
