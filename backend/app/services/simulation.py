"""Monte Carlo outcome simulation driven by bounded strength ratings.

Each trial draws a normally distributed score for both sides around a
category baseline shifted by the attack/defense gap. Category constants live in
:class:`SportProfile` so they can be tuned without touching the trial loop.
"""

from __future__ import annotations

import math
import random
from collections import Counter
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

from loguru import logger

from app.domain import (
    HistogramBin,
    OutcomeDistribution,
    ProjectedScore,
    RatingVector,
    SportCategory,
)

DEFAULT_TRIALS = 10_000


@dataclass(frozen=True, slots=True)
class SportProfile:
    baseline: float
    std_dev: float
    power_factor: float
    bin_width: int = 1
    uses_tempo: bool = False
    allows_draw: bool = True


LOW_SCORING = SportProfile(baseline=1.3, std_dev=1.2, power_factor=0.03, bin_width=1)
HIGH_SCORING = SportProfile(
    baseline=100.0,
    std_dev=12.0,
    power_factor=0.5,
    bin_width=2,
    uses_tempo=True,
    allows_draw=False,
)

DEFAULT_PROFILES: dict[SportCategory, SportProfile] = {
    SportCategory.FOOTBALL: LOW_SCORING,
    SportCategory.BASKETBALL: HIGH_SCORING,
    SportCategory.OTHER: LOW_SCORING,
}

_PROFILE_FIELDS = {item.name for item in fields(SportProfile)}


def resolve_profiles(
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[SportCategory, SportProfile]:
    """Return the default profiles with per-category overrides applied."""

    profiles = dict(DEFAULT_PROFILES)
    for key, values in (overrides or {}).items():
        try:
            category = SportCategory(str(key).lower())
        except ValueError:
            logger.warning("Ignoring simulation overrides for unknown category '{}'", key)
            continue
        unknown = sorted(set(values) - _PROFILE_FIELDS)
        if unknown:
            raise ValueError(
                f"Unknown simulation profile fields for {category.value}: {', '.join(unknown)}"
            )
        profiles[category] = replace(profiles[category], **dict(values))
    return profiles


def standard_normal_pair(rng: random.Random) -> tuple[float, float]:
    """Two independent N(0, 1) variates from one Box-Muller transform."""

    u1 = 1.0 - rng.random()  # (0, 1], keeps log finite
    u2 = rng.random()
    radius = math.sqrt(-2.0 * math.log(u1))
    angle = 2.0 * math.pi * u2
    return radius * math.cos(angle), radius * math.sin(angle)


def _round_score(value: float) -> int:
    return max(0, math.floor(value + 0.5))


def _bucket(frequencies: Counter[int], width: int) -> tuple[HistogramBin, ...]:
    if not frequencies:
        return ()
    if width <= 1:
        return tuple(HistogramBin(diff, count) for diff, count in sorted(frequencies.items()))
    start = min(frequencies)
    buckets: Counter[int] = Counter()
    for diff, count in frequencies.items():
        buckets[start + ((diff - start) // width) * width] += count
    return tuple(HistogramBin(diff, count) for diff, count in sorted(buckets.items()))


def simulate(
    ratings: RatingVector,
    category: SportCategory,
    trials: int = DEFAULT_TRIALS,
    *,
    profiles: Mapping[SportCategory, SportProfile] | None = None,
    rng: random.Random | None = None,
    seed: int | None = None,
) -> OutcomeDistribution:
    """Run ``trials`` randomized matches and summarize the outcomes."""

    if trials < 1:
        raise ValueError("trials must be a positive integer")
    profile = (profiles or DEFAULT_PROFILES).get(category) or DEFAULT_PROFILES[SportCategory.OTHER]
    generator = rng or random.Random(seed)

    home_edge = (ratings.attack_a - ratings.defense_b) * profile.power_factor
    away_edge = (ratings.attack_b - ratings.defense_a) * profile.power_factor
    tempo_scale = ratings.tempo / 50.0 if profile.uses_tempo else 1.0

    home_wins = away_wins = draws = 0
    home_total = away_total = 0
    differentials: Counter[int] = Counter()

    for _ in range(trials):
        z_home, z_away = standard_normal_pair(generator)
        home = (profile.baseline + home_edge + z_home * profile.std_dev) * tempo_scale
        away = (profile.baseline + away_edge + z_away * profile.std_dev) * tempo_scale
        final_home = _round_score(home)
        final_away = _round_score(away)
        if not profile.allows_draw and final_home == final_away:
            # Nudge after clamping so a 0-0 floor still breaks the tie.
            final_home += 1
        home_total += final_home
        away_total += final_away
        differentials[final_home - final_away] += 1

        if final_home > final_away:
            home_wins += 1
        elif final_away > final_home:
            away_wins += 1
        else:
            draws += 1

    return OutcomeDistribution(
        home_win_probability=home_wins / trials * 100,
        away_win_probability=away_wins / trials * 100,
        draw_probability=draws / trials * 100,
        projected_score=ProjectedScore(
            home=math.floor(home_total / trials + 0.5),
            away=math.floor(away_total / trials + 0.5),
        ),
        histogram=_bucket(differentials, profile.bin_width),
        total_trials=trials,
        bin_width=max(1, profile.bin_width),
    )


__all__ = [
    "DEFAULT_PROFILES",
    "DEFAULT_TRIALS",
    "HIGH_SCORING",
    "LOW_SCORING",
    "SportProfile",
    "resolve_profiles",
    "simulate",
    "standard_normal_pair",
]
