from __future__ import annotations

import math
from datetime import date
from typing import Any, Iterable, Mapping

from loguru import logger

from app.domain import FixtureRef, SportCategory
from app.services.identity import make_id
from app.services.schedule import parse_civil_date, parse_clock


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _normalize_time(value: Any) -> str:
    clock = parse_clock(str(value)) if value is not None else None
    if clock is None:
        return str(value).strip() if value is not None else ""
    return f"{clock.hour:02d}:{clock.minute:02d}"


def _normalize_date(value: Any, today: date) -> str:
    if value in (None, ""):
        return today.strftime("%d/%m")
    parsed = parse_civil_date(str(value), today)
    if parsed is None:
        return str(value).strip()
    return parsed.strftime("%d/%m")


def _normalize_category(raw: Mapping[str, Any]) -> SportCategory:
    value = _first(raw, "category", "sport")
    if isinstance(value, SportCategory):
        return value
    if isinstance(value, str):
        try:
            return SportCategory(value.strip().lower())
        except ValueError:
            pass
    return SportCategory.classify(value, raw.get("league"))


def normalize_fixture(raw: Mapping[str, Any], today: date) -> FixtureRef | None:
    """Turn one scraped or cached fixture record into a :class:`FixtureRef`.

    Records without both participants are dropped. The id is always recomputed
    from the participant names so cached and freshly scraped rows agree.
    """

    if not isinstance(raw, Mapping):
        return None
    participant_a = _first(raw, "participant_a", "home", "homeTeam", "home_team")
    participant_b = _first(raw, "participant_b", "away", "awayTeam", "away_team")
    if participant_a is None or participant_b is None:
        return None

    league = _first(raw, "league", "competition")
    quick_odds = _parse_float(_first(raw, "quick_odds", "quickOdds", "odds"))
    quick_prediction = _first(raw, "quick_prediction", "quickPrediction")
    if quick_prediction is not None:
        quick_prediction = str(quick_prediction).strip() or None

    return FixtureRef(
        id=make_id(str(participant_a), str(participant_b)),
        participant_a=str(participant_a).strip(),
        participant_b=str(participant_b).strip(),
        category=_normalize_category(raw),
        scheduled_date=_normalize_date(_first(raw, "scheduled_date", "date"), today),
        scheduled_time=_normalize_time(_first(raw, "scheduled_time", "time")),
        league=str(league).strip() if league is not None else None,
        quick_odds=max(0.0, quick_odds) if quick_odds is not None and math.isfinite(quick_odds) else 0.0,
        quick_prediction=quick_prediction,
    )


def normalize_fixtures(records: Iterable[Any], today: date) -> list[FixtureRef]:
    fixtures: list[FixtureRef] = []
    seen: set[str] = set()
    for record in records:
        fixture = normalize_fixture(record, today)
        if fixture is None:
            logger.debug("Skipping fixture record without participants: {}", record)
            continue
        if fixture.id in seen:
            continue
        seen.add(fixture.id)
        fixtures.append(fixture)
    return fixtures
