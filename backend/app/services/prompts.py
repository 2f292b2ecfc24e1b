"""Fixed prompt templates stating the JSON contract expected from the model."""

from __future__ import annotations

from app.domain import FixtureRef, SportCategory

SYSTEM_INSTRUCTION = "Reply with a single JSON document and nothing else."

_FIXTURES_TEMPLATE = """List the {scope} fixtures scheduled for {day} (timezone {zone}).
Return a JSON array of objects with keys:
home, away, league, sport, date (DD/MM), time (HH:MM), quickOdds (decimal odds of the favourite, number), quickPrediction (short pick such as "PSG win", string).
"""

_ANALYSIS_TEMPLATE = """Analyse the fixture {home} vs {away} ({league}, {category}) on {date} at {time}.
Return one JSON object with keys:
summary, contrarianView, keyFactors[], injuries[{{player, status, impact}}],
predictions[{{betType, selection, odds, confidence, units, probability, reasoning, condition}}],
scenarios[{{condition, outcome, likelihood, reasoning}}],
advancedStats[{{label, homeValue, awayValue, advantage}}],
playerProps[{{player, market, line, odds, confidence}}],
marketAnalysis{{publicTrend, sharpMoney, openingOdds, currentOdds, oddsMovement, valueStatus}},
trueProbability{{home, draw, away}},
keyDuel{{player1, player2, statLabel, value1, value2, winner}},
liveStrategy{{triggerTime, condition, action, targetOdds, rationale}},
sentiment{{score, label, summary}},
simulationInputs{{homeAttack, homeDefense, awayAttack, awayDefense, tempo}} (0-100),
weather, referee, tvChannel, liveScore, matchMinute.
"""


def fixtures_prompt(category: SportCategory | None, day: str, zone: str) -> str:
    scope = category.value if category is not None else "football and basketball"
    return _FIXTURES_TEMPLATE.format(scope=scope, day=day, zone=zone)


def analysis_prompt(fixture: FixtureRef) -> str:
    return _ANALYSIS_TEMPLATE.format(
        home=fixture.participant_a,
        away=fixture.participant_b,
        league=fixture.league or "unknown league",
        category=fixture.category.value,
        date=fixture.scheduled_date,
        time=fixture.scheduled_time,
    )
