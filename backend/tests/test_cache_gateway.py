from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import exc as sa_exc

from app.db import create_cache_engine, create_session_factory, init_db
from app.repositories import SqlCacheStore, SupabaseRestStore
from app.services.cache_gateway import BackgroundWriter, RemoteCacheGateway, is_network_error
from app.services.circuit import CircuitState

from conftest import MemoryStore


def _rest_store(handler) -> SupabaseRestStore:
    return SupabaseRestStore(
        base_url="https://project.supabase.co",
        api_key="anon-key",
        transport=httpx.MockTransport(handler),
    )


def _gateway(store, circuit: CircuitState | None = None) -> RemoteCacheGateway:
    return RemoteCacheGateway(
        store,
        circuit or CircuitState(),
        retry_attempts=2,
        retry_delay=0,
        sleep=lambda _: None,
    )


def test_network_failure_opens_circuit_and_stops_all_calls() -> None:
    """After one connectivity failure no further request reaches the transport."""
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("Failed to fetch", request=request)

    circuit = CircuitState()
    gateway = _gateway(_rest_store(handler), circuit)

    assert gateway.get_analysis("psg-om") is None
    assert circuit.is_offline()
    assert len(calls) == 2  # both retry attempts

    assert gateway.get_analysis("psg-om") is None
    assert gateway.put_analysis("psg-om", {"summary": "x"}) is False
    assert gateway.get_fixtures(None, datetime.now(timezone.utc)) == []
    assert gateway.put_fixtures([{"id": "a-b"}]) is False
    assert len(calls) == 2


def test_http_status_error_is_a_miss_without_flipping() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403, json={"message": "permission denied"})

    circuit = CircuitState()
    gateway = _gateway(_rest_store(handler), circuit)

    assert gateway.get_analysis("psg-om") is None
    assert not circuit.is_offline()
    assert len(calls) == 1  # not retried


def test_rest_store_requests_and_upserts() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json=[{"artifact": {"summary": "cached"}}])
        return httpx.Response(201)

    gateway = _gateway(_rest_store(handler))

    assert gateway.get_analysis("psg-om") == {"summary": "cached"}
    assert gateway.put_analysis("psg-om", {"summary": "fresh"}) is True

    get_request, post_request = seen
    assert get_request.url.path == "/rest/v1/analysis_cache"
    assert get_request.url.params["entity_id"] == "eq.psg-om"
    assert get_request.headers["apikey"] == "anon-key"
    assert post_request.url.params["on_conflict"] == "entity_id"
    assert "merge-duplicates" in post_request.headers["Prefer"]
    body = json.loads(post_request.content)
    assert body[0]["entity_id"] == "psg-om"
    assert body[0]["artifact"] == {"summary": "fresh"}


def test_missing_store_is_a_permanent_miss() -> None:
    gateway = _gateway(None)
    assert gateway.get_analysis("a-b") is None
    assert gateway.put_analysis("a-b", {}) is False
    assert not gateway.available


def test_non_network_store_errors_do_not_open_circuit() -> None:
    store = MemoryStore(error=KeyError("artifact"))
    circuit = CircuitState()
    gateway = _gateway(store, circuit)

    assert gateway.get_analysis("a-b") is None
    assert gateway.get_analysis("a-b") is None
    assert not circuit.is_offline()
    assert store.calls == ["get_analysis", "get_analysis"]


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (httpx.ReadTimeout("timed out"), True),
        (ConnectionRefusedError("refused"), True),
        (TimeoutError(), True),
        (RuntimeError("TypeError: Failed to fetch"), True),
        (RuntimeError("Network request failed"), True),
        (sa_exc.OperationalError("SELECT 1", {}, Exception("could not connect to server")), True),
        (sa_exc.OperationalError("SELECT 1", {}, Exception("no such table: analysis_cache")), False),
        (sa_exc.IntegrityError("INSERT", {}, Exception("duplicate key")), False),
        (ValueError("bad payload"), False),
    ],
)
def test_is_network_error_classification(error, expected) -> None:
    assert is_network_error(error) is expected


def test_is_network_error_follows_cause_chain() -> None:
    try:
        try:
            raise ConnectionResetError("reset by peer")
        except ConnectionResetError as inner:
            raise RuntimeError("store call failed") from inner
    except RuntimeError as outer:
        assert is_network_error(outer)


def test_sql_store_round_trip(tmp_path) -> None:
    engine = create_cache_engine(f"sqlite:///{tmp_path / 'cache.db'}")
    init_db(engine)
    gateway = _gateway(SqlCacheStore(create_session_factory(engine)))
    now = datetime.now(timezone.utc)

    assert gateway.put_analysis("psg-om", {"summary": "v1"}) is True
    assert gateway.put_analysis("psg-om", {"summary": "v2"}) is True
    assert gateway.get_analysis("psg-om") == {"summary": "v2"}

    row = {
        "id": "psg-om",
        "participant_a": "PSG",
        "participant_b": "OM",
        "category": "football",
        "league": "Ligue 1",
        "date": "19/10",
        "time": "21:00",
        "quick_odds": 1.6,
        "quick_prediction": "PSG win",
        "cached_at": now.isoformat(),
    }
    assert gateway.put_fixtures([row]) is True
    assert gateway.put_fixtures([{**row, "time": "20:45"}]) is True

    rows = gateway.get_fixtures("football", now - timedelta(hours=1))
    assert len(rows) == 1
    assert rows[0]["time"] == "20:45"
    assert rows[0]["quick_prediction"] == "PSG win"
    assert gateway.get_fixtures("basketball", now - timedelta(hours=1)) == []
    assert gateway.get_fixtures("football", now + timedelta(hours=1)) == []


def test_sql_store_missing_tables_is_not_a_network_error(tmp_path) -> None:
    engine = create_cache_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    circuit = CircuitState()
    gateway = _gateway(SqlCacheStore(create_session_factory(engine)), circuit)

    assert gateway.get_analysis("psg-om") is None
    assert not circuit.is_offline()


def test_background_writer_swallows_and_logs_failures() -> None:
    writer = BackgroundWriter(max_workers=1)
    results: list[str] = []

    def fail() -> None:
        raise RuntimeError("write failed")

    failing = writer.submit("failing write", fail)
    writer.submit("ok write", results.append, "done")
    writer.drain(timeout=5)
    writer.shutdown()

    assert isinstance(failing.exception(), RuntimeError)
    assert results == ["done"]
