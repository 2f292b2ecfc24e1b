"""Fixture listing with in-process, remote, and inference tiers."""

from __future__ import annotations

import threading
import time
from datetime import date, datetime, timezone
from datetime import time as clock_time
from typing import Any, Callable, Mapping

from loguru import logger

from app.domain import FixtureRef, SportCategory
from ingestion.extract import parse_structured_text
from ingestion.normalize import normalize_fixtures

from .cache_gateway import BackgroundWriter, RemoteCacheGateway
from .llm import FIXTURES_STAGE, InferenceClient
from .prompts import SYSTEM_INSTRUCTION, fixtures_prompt
from .retry import with_retry
from .schedule import TemporalGate, sort_fixtures

_LIST_KEYS = ("fixtures", "matches", "events", "items", "data")


def _records_from_payload(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in _LIST_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
        return [payload]
    return []


class FixtureService:
    """List today's fixtures for a category.

    Lookup order is the in-process map (per category and civil day), then the
    remote cache rows written since the start of the civil day, then a fresh
    inference scrape. Whatever tier answers, lifecycle states are recomputed
    and expired fixtures are dropped before the listing is returned.
    """

    def __init__(
        self,
        inference: InferenceClient,
        gateway: RemoteCacheGateway,
        writer: BackgroundWriter,
        *,
        gate: TemporalGate,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._inference = inference
        self._gateway = gateway
        self._writer = writer
        self._gate = gate
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._memory: dict[tuple[str, str], list[FixtureRef]] = {}
        self._lock = threading.Lock()

    def _civil_now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=self._gate.zone)
        return now.astimezone(self._gate.zone)

    def list_fixtures(
        self,
        category: SportCategory | None = None,
        *,
        force_refresh: bool = False,
    ) -> list[FixtureRef]:
        now = self._civil_now()
        day = now.date()
        key = (category.value if category else "all", day.isoformat())

        fixtures: list[FixtureRef] | None = None
        if not force_refresh:
            with self._lock:
                cached = self._memory.get(key)
            if cached is not None:
                logger.debug("Fixture listing {} served from memory", key)
                fixtures = cached
            else:
                fixtures = self._from_remote(category, day)

        if fixtures is None:
            fixtures = self._scrape(category, day, now)

        return sort_fixtures(self._gate.refresh(fixtures, now))

    def _remember(self, category: SportCategory | None, day: date, fixtures: list[FixtureRef]) -> None:
        key = (category.value if category else "all", day.isoformat())
        with self._lock:
            self._memory[key] = list(fixtures)

    def _from_remote(self, category: SportCategory | None, day: date) -> list[FixtureRef] | None:
        start_of_day = datetime.combine(day, clock_time.min, tzinfo=self._gate.zone)
        rows = self._gateway.get_fixtures(category.value if category else None, start_of_day)
        fixtures = normalize_fixtures(rows, day)
        if not fixtures:
            return None
        logger.info("Loaded {} fixtures for {} from remote cache", len(fixtures), day)
        self._remember(category, day, fixtures)
        return fixtures

    def _scrape(self, category: SportCategory | None, day: date, now: datetime) -> list[FixtureRef]:
        prompt = fixtures_prompt(category, day.strftime("%d/%m/%Y"), str(self._gate.zone))
        try:
            text = with_retry(
                lambda: self._inference.complete(
                    FIXTURES_STAGE,
                    prompt,
                    system_instruction=SYSTEM_INSTRUCTION,
                    use_search=True,
                ),
                max_attempts=self._retry_attempts,
                initial_delay=self._retry_delay,
                label="fixture scrape",
                sleep=self._sleep,
            )
        except Exception as exc:
            logger.error("Fixture scrape failed for {}: {}", category.value if category else "all", exc)
            return []

        fixtures = normalize_fixtures(_records_from_payload(parse_structured_text(text)), day)
        if category is not None:
            fixtures = [fixture for fixture in fixtures if fixture.category is category]
        logger.info("Scraped {} fixtures for {}", len(fixtures), day)
        if not fixtures:
            return []

        self._remember(category, day, fixtures)
        cached_at = now.astimezone(timezone.utc)
        rows = [fixture.to_cache_row(cached_at) for fixture in fixtures]
        self._writer.submit("put_fixtures", self._gateway.put_fixtures, rows)
        return fixtures


__all__ = ["FixtureService"]
