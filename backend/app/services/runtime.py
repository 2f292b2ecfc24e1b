"""Process-wide wiring of settings, remote store, and services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from loguru import logger

from app.core.config import Settings, get_settings
from app.db import create_cache_engine, create_session_factory, init_db
from app.repositories import RemoteStore, SqlCacheStore, SupabaseRestStore

from .analysis_service import AnalysisService
from .cache_gateway import BackgroundWriter, RemoteCacheGateway, is_network_error
from .circuit import CircuitState
from .fixture_service import FixtureService
from .llm import InferenceClient
from .schedule import TemporalGate
from .simulation import resolve_profiles


@dataclass(slots=True)
class Runtime:
    settings: Settings
    store: RemoteStore | None
    circuit: CircuitState
    gateway: RemoteCacheGateway
    writer: BackgroundWriter
    inference: InferenceClient
    fixtures: FixtureService
    analyses: AnalysisService

    @property
    def store_name(self) -> str:
        return self.store.name if self.store is not None else "none"

    def close(self) -> None:
        self.writer.drain(timeout=self.settings.remote_store_timeout_seconds)
        self.writer.shutdown()
        if isinstance(self.store, SupabaseRestStore):
            self.store.close()


def build_remote_store(settings: Settings, circuit: CircuitState) -> RemoteStore | None:
    backend = settings.resolved_remote_store_backend
    if backend == "none":
        logger.info("Remote cache disabled")
        return None

    if backend == "rest":
        if not (settings.supabase_url and settings.supabase_anon_key):
            logger.warning("REMOTE_STORE_BACKEND=rest but SUPABASE_URL/SUPABASE_ANON_KEY are missing")
            return None
        return SupabaseRestStore(
            base_url=str(settings.supabase_url),
            api_key=settings.supabase_anon_key,
            timeout=settings.remote_store_timeout_seconds,
        )

    engine = create_cache_engine(
        settings.resolved_database_url,
        echo=settings.debug,
        timeout=settings.remote_store_timeout_seconds,
    )
    try:
        init_db(engine)
    except Exception as exc:
        if is_network_error(exc):
            logger.warning("Remote cache database unreachable at startup: {}", exc)
            circuit.mark_offline()
        else:
            logger.exception("Failed to initialise remote cache tables")
    return SqlCacheStore(create_session_factory(engine))


def build_runtime(
    settings: Settings,
    *,
    inference: InferenceClient | None = None,
    store: RemoteStore | None = None,
) -> Runtime:
    """Assemble services from ``settings``.

    ``inference`` and ``store`` replace the configured collaborators when given.
    """

    circuit = CircuitState("remote-store")
    if store is None:
        store = build_remote_store(settings, circuit)
    gateway = RemoteCacheGateway(
        store,
        circuit,
        retry_attempts=settings.remote_store_retry_attempts,
        retry_delay=settings.remote_store_retry_delay_seconds,
    )
    writer = BackgroundWriter(max_workers=settings.background_write_workers)
    client = inference or InferenceClient(settings)
    gate = TemporalGate(
        zone=settings.timezone,
        grace=timedelta(hours=settings.expiry_grace_hours),
        live_window=timedelta(minutes=settings.live_window_minutes),
    )

    fixtures = FixtureService(
        client,
        gateway,
        writer,
        gate=gate,
        retry_attempts=settings.inference_retry_attempts,
        retry_delay=settings.inference_retry_delay_seconds,
    )
    analyses = AnalysisService(
        client,
        gateway,
        writer,
        retry_attempts=settings.inference_retry_attempts,
        retry_delay=settings.inference_retry_delay_seconds,
        trials=settings.simulation_trials,
        profiles=resolve_profiles(settings.simulation_profiles),
        seed=settings.simulation_seed,
    )
    logger.info(
        "Runtime ready: store={} provider={} timezone={}",
        store.name if store is not None else "none",
        client.provider_name,
        settings.civil_timezone,
    )
    return Runtime(
        settings=settings,
        store=store,
        circuit=circuit,
        gateway=gateway,
        writer=writer,
        inference=client,
        fixtures=fixtures,
        analyses=analyses,
    )


@lru_cache
def get_runtime() -> Runtime:
    return build_runtime(get_settings())


__all__ = ["Runtime", "build_remote_store", "build_runtime", "get_runtime"]
