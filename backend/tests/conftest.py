from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Sequence

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings
from app.domain import FixtureRef, SportCategory
from app.services.identity import make_id


class FakeInference:
    """Scripted stand-in for :class:`InferenceClient`.

    Each ``complete`` call pops the next scripted reply; exceptions are raised.
    """

    provider_name = "fake"

    def __init__(self, replies: Sequence[Any] = ()) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, str]] = []

    def complete(self, stage: str, prompt: str, **kwargs: Any) -> str:
        self.calls.append((stage, prompt))
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class MemoryStore:
    """In-memory RemoteStore that records every call and can fail on demand."""

    name = "memory"

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[str] = []
        self.analyses: dict[str, dict[str, Any]] = {}
        self.fixtures: dict[str, dict[str, Any]] = {}

    def _record(self, call: str) -> None:
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    def get_analysis(self, entity_id: str) -> Mapping[str, Any] | None:
        self._record("get_analysis")
        return self.analyses.get(entity_id)

    def put_analysis(self, entity_id: str, artifact: Mapping[str, Any], updated_at: datetime) -> None:
        self._record("put_analysis")
        self.analyses[entity_id] = dict(artifact)

    def get_fixtures(self, category: str | None, cached_since: datetime) -> list[dict[str, Any]]:
        self._record("get_fixtures")
        return [
            dict(row)
            for row in self.fixtures.values()
            if category is None or row.get("category") == category
        ]

    def put_fixtures(self, rows: Sequence[Mapping[str, Any]]) -> None:
        self._record("put_fixtures")
        for row in rows:
            self.fixtures[row["id"]] = dict(row)


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'betmind.db'}",
        remote_store_backend="sql",
        remote_store_retry_attempts=2,
        remote_store_retry_delay_seconds=0,
        inference_retry_attempts=3,
        inference_retry_delay_seconds=0,
        simulation_trials=2_000,
        simulation_seed=7,
        gemini_api_key="test-key",
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    return settings


@pytest.fixture
def make_fixture():
    def _make(
        home: str = "Paris SG",
        away: str = "Olympique de Marseille",
        *,
        category: SportCategory = SportCategory.FOOTBALL,
        date: str = "19/10",
        time: str = "21:00",
    ) -> FixtureRef:
        return FixtureRef(
            id=make_id(home, away),
            participant_a=home,
            participant_b=away,
            category=category,
            scheduled_date=date,
            scheduled_time=time,
            league="Ligue 1",
        )

    return _make
