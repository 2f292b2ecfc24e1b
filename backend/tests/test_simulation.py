from __future__ import annotations

import random

import pytest

from app.domain import RatingVector, SportCategory
from app.services.simulation import (
    DEFAULT_PROFILES,
    HIGH_SCORING,
    resolve_profiles,
    simulate,
    standard_normal_pair,
)


def _run(ratings: RatingVector, category: SportCategory, trials: int = 10_000, seed: int = 42):
    return simulate(ratings, category, trials, rng=random.Random(seed))


@pytest.mark.parametrize("category", list(SportCategory))
def test_histogram_counts_sum_to_trials(category) -> None:
    result = _run(RatingVector(70, 40, 55, 60, 65), category, trials=3_000)

    assert sum(item.count for item in result.histogram) == result.total_trials == 3_000
    total = result.home_win_probability + result.away_win_probability + result.draw_probability
    assert total == pytest.approx(100.0)
    differentials = [item.differential for item in result.histogram]
    assert differentials == sorted(differentials)


def test_equal_strength_football_is_balanced() -> None:
    result = _run(RatingVector(), SportCategory.FOOTBALL)

    assert abs(result.home_win_probability - result.away_win_probability) < 3.0
    assert result.draw_probability > 15.0
    assert result.projected_score.home == result.projected_score.away == 1


def test_basketball_never_draws_and_uses_even_bins() -> None:
    result = _run(RatingVector(), SportCategory.BASKETBALL)

    assert result.draw_probability == 0.0
    assert result.bin_width == 2
    assert abs(result.home_win_probability - result.away_win_probability) < 6.0
    start = result.histogram[0].differential
    assert all((item.differential - start) % 2 == 0 for item in result.histogram)
    assert 90 <= result.projected_score.home <= 110


def test_dominant_home_side_has_positive_mode() -> None:
    result = _run(RatingVector(attack_a=95, defense_a=90, attack_b=20, defense_b=15), SportCategory.FOOTBALL)

    assert result.home_win_probability > 80.0
    assert result.mode_differential is not None and result.mode_differential > 0
    assert result.projected_score.home > result.projected_score.away


def test_tempo_scales_basketball_scores() -> None:
    slow = _run(RatingVector(tempo=25), SportCategory.BASKETBALL)
    fast = _run(RatingVector(tempo=75), SportCategory.BASKETBALL)

    assert slow.projected_score.home < fast.projected_score.home


def test_seeded_runs_are_reproducible() -> None:
    ratings = RatingVector(60, 55, 45, 50)
    assert simulate(ratings, SportCategory.FOOTBALL, 500, seed=3) == simulate(
        ratings, SportCategory.FOOTBALL, 500, seed=3
    )


def test_scores_are_never_negative() -> None:
    result = _run(RatingVector(attack_a=0, defense_a=0, attack_b=0, defense_b=100), SportCategory.FOOTBALL)
    assert result.projected_score.home >= 0
    assert result.projected_score.away >= 0


def test_trials_must_be_positive() -> None:
    with pytest.raises(ValueError):
        simulate(RatingVector(), SportCategory.FOOTBALL, 0)


def test_box_muller_pair_is_finite_even_for_zero_uniform() -> None:
    class ZeroRandom(random.Random):
        def random(self) -> float:
            return 0.0

    first, second = standard_normal_pair(ZeroRandom())
    assert first == first and second == second


def test_resolve_profiles_applies_overrides() -> None:
    profiles = resolve_profiles({"basketball": {"std_dev": 8.0}, "cricket": {"baseline": 1.0}})

    assert profiles[SportCategory.BASKETBALL].std_dev == 8.0
    assert profiles[SportCategory.BASKETBALL].baseline == HIGH_SCORING.baseline
    assert profiles[SportCategory.FOOTBALL] == DEFAULT_PROFILES[SportCategory.FOOTBALL]

    with pytest.raises(ValueError):
        resolve_profiles({"football": {"volatility": 2}})


def test_no_draw_profile_breaks_ties_at_the_zero_floor() -> None:
    """Scores clamped to 0-0 still resolve to a home win when draws are disallowed."""
    profiles = resolve_profiles({"basketball": {"baseline": -50.0, "std_dev": 1.0}})

    result = simulate(RatingVector(), SportCategory.BASKETBALL, 500, profiles=profiles, seed=5)

    assert result.draw_probability == 0.0
    assert result.home_win_probability == 100.0
    assert [(item.differential, item.count) for item in result.histogram] == [(1, 500)]
