"""Typed domain representations shared by ingestion, simulation, and caching."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Sequence


class SportCategory(str, Enum):
    FOOTBALL = "football"
    BASKETBALL = "basketball"
    OTHER = "other"

    @classmethod
    def classify(cls, *labels: Any) -> "SportCategory":
        """Map free-text sport or league labels onto a known category."""

        text = " ".join(str(label) for label in labels if label).lower()
        if not text:
            return cls.OTHER
        if "basket" in text or "nba" in text or "euroleague" in text:
            return cls.BASKETBALL
        if "foot" in text or "soccer" in text or "ligue" in text or "league" in text:
            return cls.FOOTBALL
        return cls.OTHER


# Short-priced favourites are surfaced as trending on the dashboard.
TRENDING_ODDS_CEILING = 2.5


class LifecycleState(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass(slots=True)
class FixtureRef:
    """A schedulable two-participant event as listed for the dashboard."""

    id: str
    participant_a: str
    participant_b: str
    category: SportCategory
    scheduled_date: str
    scheduled_time: str
    league: str | None = None
    quick_odds: float = 0.0
    quick_prediction: str | None = None
    lifecycle_state: LifecycleState = LifecycleState.SCHEDULED

    @property
    def is_trending(self) -> bool:
        return 0 < self.quick_odds < TRENDING_ODDS_CEILING

    def with_lifecycle(self, state: LifecycleState) -> "FixtureRef":
        return replace(self, lifecycle_state=state)

    def to_cache_row(self, cached_at: datetime) -> dict[str, Any]:
        return {
            "id": self.id,
            "participant_a": self.participant_a,
            "participant_b": self.participant_b,
            "category": self.category.value,
            "league": self.league,
            "date": self.scheduled_date,
            "time": self.scheduled_time,
            "quick_odds": self.quick_odds,
            "quick_prediction": self.quick_prediction,
            "cached_at": cached_at.isoformat(),
        }


NEUTRAL_RATING = 50.0
_RATING_FIELDS = ("attack_a", "defense_a", "attack_b", "defense_b", "tempo")
_RATING_ALIASES: dict[str, tuple[str, ...]] = {
    "attack_a": ("attack_a", "attackA", "homeAttack", "home_attack"),
    "defense_a": ("defense_a", "defenseA", "homeDefense", "home_defense"),
    "attack_b": ("attack_b", "attackB", "awayAttack", "away_attack"),
    "defense_b": ("defense_b", "defenseB", "awayDefense", "away_defense"),
    "tempo": ("tempo", "pace"),
}


def coerce_rating(value: Any, default: float = NEUTRAL_RATING) -> float:
    """Return ``value`` as a finite rating clamped to [0, 100]."""

    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip().rstrip("%").replace(",", ".")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    return min(100.0, max(0.0, number))


@dataclass(frozen=True, slots=True)
class RatingVector:
    """Bounded strength ratings that drive the outcome simulator."""

    attack_a: float = NEUTRAL_RATING
    defense_a: float = NEUTRAL_RATING
    attack_b: float = NEUTRAL_RATING
    defense_b: float = NEUTRAL_RATING
    tempo: float = NEUTRAL_RATING

    @classmethod
    def from_payload(cls, payload: Any) -> "RatingVector | None":
        """Build a vector from a mapping or a positional list of 4-5 numbers.

        Returns ``None`` when the payload carries no rating structure at all.
        Individual garbage values fall back to the neutral rating.
        """

        if isinstance(payload, Mapping):
            values: dict[str, float] = {}
            for name in _RATING_FIELDS:
                raw = next(
                    (payload[alias] for alias in _RATING_ALIASES[name] if payload.get(alias) is not None),
                    None,
                )
                values[name] = coerce_rating(raw)
            if values["tempo"] <= 0:
                values["tempo"] = NEUTRAL_RATING
            return cls(**values)
        if isinstance(payload, Sequence) and not isinstance(payload, (str, bytes)):
            if not 4 <= len(payload) <= 5:
                return None
            return cls.from_payload(dict(zip(_RATING_FIELDS, payload)))
        return None

    def as_payload(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in _RATING_FIELDS}


@dataclass(frozen=True, slots=True)
class HistogramBin:
    differential: int
    count: int


@dataclass(frozen=True, slots=True)
class ProjectedScore:
    home: int
    away: int


@dataclass(frozen=True, slots=True)
class OutcomeDistribution:
    """Immutable result of one Monte Carlo run."""

    home_win_probability: float
    away_win_probability: float
    draw_probability: float
    projected_score: ProjectedScore
    histogram: tuple[HistogramBin, ...]
    total_trials: int
    bin_width: int = 1

    @property
    def mode_differential(self) -> int | None:
        if not self.histogram:
            return None
        return max(self.histogram, key=lambda item: item.count).differential

    def as_payload(self) -> dict[str, Any]:
        return {
            "home_win_probability": self.home_win_probability,
            "away_win_probability": self.away_win_probability,
            "draw_probability": self.draw_probability,
            "projected_score": {
                "home": self.projected_score.home,
                "away": self.projected_score.away,
            },
            "histogram": [
                {"differential": item.differential, "count": item.count}
                for item in self.histogram
            ],
            "total_trials": self.total_trials,
            "bin_width": self.bin_width,
        }
