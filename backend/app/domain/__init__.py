"""Domain models for fixtures, ratings, and simulated outcomes."""

from .models import (
    FixtureRef,
    HistogramBin,
    LifecycleState,
    OutcomeDistribution,
    ProjectedScore,
    RatingVector,
    SportCategory,
    TRENDING_ODDS_CEILING,
    coerce_rating,
)

__all__ = [
    "FixtureRef",
    "HistogramBin",
    "LifecycleState",
    "OutcomeDistribution",
    "ProjectedScore",
    "RatingVector",
    "SportCategory",
    "TRENDING_ODDS_CEILING",
    "coerce_rating",
]
