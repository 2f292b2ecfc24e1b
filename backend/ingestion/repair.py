"""Coerce untrusted model output into the analysis artifact shape.

``repair`` accepts whatever the upstream model produced (decoded JSON, a raw
string, or garbage) and returns a dict with every artifact field present in
snake_case. Each field has its own normalizer; a normalizer that blows up is
logged and only that field falls back to its empty default. Running ``repair``
on its own output returns the same dict, so cached artifacts can be re-read
through it safely.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from loguru import logger

from app.domain import RatingVector

from .extract import parse_structured_text

MISSING_TEXT = "N/A"
MISSING_SUMMARY = "No summary available."
DEFAULT_LIKELIHOOD = "Medium"
DEFAULT_MARKET = "Pick"

CONFIDENCE_DEFAULT = 50.0
STAKE_UNITS_DEFAULT = 1.0
STAKE_UNITS_MAX = 10.0
ODDS_DEFAULT = 0.0
PROBABILITY_DEFAULT = 50.0

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SCENARIO_CONNECTOR = re.compile(r"\s*(?:\b(?:then|alors|donc|so)\b|->|=>)\s*", re.IGNORECASE)
_INJURY_PAREN = re.compile(r"^(?P<player>.+?)\s*\((?P<status>[^()]+)\)\s*$")
_INJURY_DASH = re.compile(r"^(?P<player>.+?)\s+[-–:]\s+(?P<status>.+)$")
_STAT_COMPARISON = re.compile(
    r"^(?P<label>[^:]+?)\s*:\s*(?P<home>.+?)\s+vs\.?\s+(?P<away>.+?)\s*$", re.IGNORECASE
)
_WHITESPACE = re.compile(r"\s+")

_LIKELIHOOD_WORDS = {
    "high": "High",
    "very high": "High",
    "likely": "High",
    "elevee": "High",
    "élevée": "High",
    "haute": "High",
    "forte": "High",
    "medium": "Medium",
    "med": "Medium",
    "moderate": "Medium",
    "moyen": "Medium",
    "moyenne": "Medium",
    "low": "Low",
    "unlikely": "Low",
    "faible": "Low",
    "basse": "Low",
}
_ADVANTAGES = {"home": "home", "away": "away", "equal": "equal", "draw": "equal", "even": "equal"}
_DUEL_WINNERS = {"player1": "player1", "player2": "player2", "equal": "equal"}


# ----------------------------------------------------------------------------
# Primitive coercions


def _snake(key: Any) -> str:
    text = str(key).strip().replace("-", "_").replace(" ", "_")
    return _CAMEL_BOUNDARY.sub("_", text).lower()


def _as_mapping(value: Any) -> dict[str, Any] | None:
    """Return ``value`` as a snake_case dict, merging lists of objects."""

    if isinstance(value, Mapping):
        items: Iterable[Mapping[str, Any]] = [value]
    elif isinstance(value, list) and any(isinstance(item, Mapping) for item in value):
        items = [item for item in value if isinstance(item, Mapping)]
    else:
        return None
    merged: dict[str, Any] = {}
    for item in items:
        for key, item_value in item.items():
            merged.setdefault(_snake(key), item_value)
    return merged


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, (tuple, set)):
        return list(value)
    return [value]


def _pick(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None and value != "":
            return value
    return None


def _text(value: Any, default: str = MISSING_TEXT) -> str:
    if value is None or isinstance(value, Mapping):
        return default
    if isinstance(value, (list, tuple)):
        parts = [_text(item, "") for item in value]
        joined = ", ".join(part for part in parts if part)
        return joined or default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    text = _WHITESPACE.sub(" ", str(value)).strip()
    return text or default


def _number(
    value: Any,
    default: float,
    *,
    low: float | None = 0.0,
    high: float | None = None,
) -> float:
    """Parse a float accepting ``%`` suffixes and decimal commas, then clamp."""

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        cleaned = value.strip().rstrip("%").strip().replace(",", ".")
        if not cleaned:
            return default
        value = cleaned
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    if low is not None:
        number = max(low, number)
    if high is not None:
        number = min(high, number)
    return number


def _stat_value(value: Any) -> str | float:
    if isinstance(value, bool):
        return _text(value)
    if isinstance(value, (int, float)):
        number = _number(value, math.nan, low=None)
        return number if math.isfinite(number) else MISSING_TEXT
    return _text(value)


def _dedupe_key(*parts: Any) -> str:
    return "|".join(_WHITESPACE.sub(" ", str(part)).strip().casefold() for part in parts)


def _dedupe(items: Iterable[dict[str, Any]], key: Callable[[dict[str, Any]], str]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    unique: list[dict[str, Any]] = []
    for item in items:
        marker = key(item)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(item)
    return unique


def normalize_likelihood(value: Any) -> str:
    """Map free-text or numeric likelihoods onto High/Medium/Low."""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = _number(value, math.nan, low=None)
        if not math.isfinite(value):
            return DEFAULT_LIKELIHOOD
        if value >= 67:
            return "High"
        if value >= 34:
            return "Medium"
        return "Low"
    text = _text(value, "").casefold()
    if not text:
        return DEFAULT_LIKELIHOOD
    if text in _LIKELIHOOD_WORDS:
        return _LIKELIHOOD_WORDS[text]
    for word, label in _LIKELIHOOD_WORDS.items():
        if word in text:
            return label
    return DEFAULT_LIKELIHOOD


def compute_edge(probability: float, odds: float) -> float:
    return round(probability / 100 * odds - 1, 3)


# ----------------------------------------------------------------------------
# Item normalizers


def _prediction(item: Any) -> dict[str, Any] | None:
    source = _as_mapping(item)
    if source is None:
        selection = _text(item, "")
        if not selection:
            return None
        source = {"market": DEFAULT_MARKET, "selection": selection}
    odds = _number(_pick(source, "odds", "decimal_odds", "price"), ODDS_DEFAULT)
    probability = _number(
        _pick(source, "probability", "prob", "true_probability"),
        PROBABILITY_DEFAULT,
        high=100.0,
    )
    return {
        "market": _text(_pick(source, "market", "bet_type", "market_label", "type"), DEFAULT_MARKET),
        "selection": _text(_pick(source, "selection", "pick", "choice")),
        "odds": odds,
        "confidence": _number(source.get("confidence"), CONFIDENCE_DEFAULT, high=100.0),
        "stake_units": _number(
            _pick(source, "stake_units", "units", "stake"), STAKE_UNITS_DEFAULT, high=STAKE_UNITS_MAX
        ),
        "probability": probability,
        "rationale": _text(_pick(source, "rationale", "reasoning", "reason")),
        "edge": compute_edge(probability, odds),
        "condition": _text(source.get("condition")),
    }


def _scenario(item: Any) -> dict[str, Any] | None:
    source = _as_mapping(item)
    if source is None:
        text = _text(item, "")
        if not text:
            return None
        parts = _SCENARIO_CONNECTOR.split(text, maxsplit=1)
        condition = parts[0].strip().rstrip(",;")
        outcome = parts[1].strip() if len(parts) > 1 else ""
        source = {"condition": condition, "outcome": outcome}
    return {
        "condition": _text(_pick(source, "condition", "if", "trigger")),
        "outcome": _text(_pick(source, "outcome", "then", "result")),
        "likelihood": normalize_likelihood(_pick(source, "likelihood", "probability")),
        "reasoning": _text(_pick(source, "reasoning", "rationale")),
    }


def _injury(item: Any) -> dict[str, Any] | None:
    source = _as_mapping(item)
    if source is None:
        text = _text(item, "")
        if not text:
            return None
        match = _INJURY_PAREN.match(text) or _INJURY_DASH.match(text)
        source = match.groupdict() if match else {"player": text}
    player = _text(_pick(source, "player", "name"), "")
    if not player:
        return None
    return {
        "player": player,
        "status": _text(source.get("status")),
        "impact": _text(source.get("impact")),
    }


def _stat(item: Any) -> dict[str, Any] | None:
    source = _as_mapping(item)
    if source is None:
        text = _text(item, "")
        match = _STAT_COMPARISON.match(text) if text else None
        if match is None:
            return None
        source = {
            "label": match.group("label"),
            "home_value": match.group("home"),
            "away_value": match.group("away"),
        }
    label = _text(_pick(source, "label", "stat", "name"), "")
    if not label:
        return None
    advantage = _text(source.get("advantage"), "equal").casefold()
    return {
        "label": label,
        "home_value": _stat_value(_pick(source, "home_value", "home")),
        "away_value": _stat_value(_pick(source, "away_value", "away")),
        "advantage": _ADVANTAGES.get(advantage, "equal"),
    }


def _player_prop(item: Any) -> dict[str, Any] | None:
    source = _as_mapping(item)
    if source is None:
        return None
    player = _text(source.get("player"), "")
    if not player:
        return None
    return {
        "player": player,
        "market": _text(source.get("market")),
        "line": _text(source.get("line")),
        "odds": _number(source.get("odds"), ODDS_DEFAULT),
        "confidence": _number(source.get("confidence"), CONFIDENCE_DEFAULT, high=100.0),
    }


def _source(item: Any) -> dict[str, Any] | None:
    source = _as_mapping(item)
    if source is None:
        text = _text(item, "")
        source = {"title": text, "uri": text}
    uri = _text(_pick(source, "uri", "url", "link"), "")
    if not uri:
        return None
    return {"title": _text(_pick(source, "title", "name"), uri), "uri": uri}


def _key_factor(item: Any) -> str | None:
    source = _as_mapping(item)
    if source is not None:
        item = _pick(source, "factor", "label", "text", "title", "description")
    text = _text(item, "")
    return text or None


def _normalize_items(value: Any, normalizer: Callable[[Any], Any]) -> list[Any]:
    results = []
    for item in _as_list(value):
        try:
            normalized = normalizer(item)
        except Exception:
            logger.exception("Dropping unrepairable {} item", type(item).__name__)
            continue
        if normalized is not None:
            results.append(normalized)
    return results


# ----------------------------------------------------------------------------
# Field normalizers


def _summary(value: Any) -> str:
    return _text(value, MISSING_SUMMARY)


def _key_factors(value: Any) -> list[str]:
    factors = _normalize_items(value, _key_factor)
    seen: set[str] = set()
    unique: list[str] = []
    for factor in factors:
        marker = _dedupe_key(factor)
        if marker not in seen:
            seen.add(marker)
            unique.append(factor)
    return unique


def _injuries(value: Any) -> list[dict[str, Any]]:
    return _dedupe(_normalize_items(value, _injury), lambda item: _dedupe_key(item["player"]))


def _predictions(value: Any) -> list[dict[str, Any]]:
    return _normalize_items(value, _prediction)


def _scenarios(value: Any) -> list[dict[str, Any]]:
    return _normalize_items(value, _scenario)


def _advanced_stats(value: Any) -> list[dict[str, Any]]:
    return _dedupe(_normalize_items(value, _stat), lambda item: _dedupe_key(item["label"]))


def _player_props(value: Any) -> list[dict[str, Any]]:
    return _dedupe(
        _normalize_items(value, _player_prop),
        lambda item: _dedupe_key(item["player"], item["market"]),
    )


def _sources(value: Any) -> list[dict[str, Any]]:
    return _dedupe(_normalize_items(value, _source), lambda item: _dedupe_key(item["uri"]))


def _market_analysis(value: Any) -> dict[str, Any] | None:
    source = _as_mapping(value)
    if source is None:
        return None
    return {
        "public_trend": _text(source.get("public_trend")),
        "sharp_money": _text(source.get("sharp_money")),
        "opening_odds": _number(source.get("opening_odds"), ODDS_DEFAULT),
        "current_odds": _number(source.get("current_odds"), ODDS_DEFAULT),
        "odds_movement": _text(source.get("odds_movement")),
        "value_status": _text(source.get("value_status")),
    }


def _true_probability(value: Any) -> dict[str, Any] | None:
    source = _as_mapping(value)
    if source is None:
        return None
    return {
        "home": _number(source.get("home"), PROBABILITY_DEFAULT, high=100.0),
        "draw": _number(source.get("draw"), 0.0, high=100.0),
        "away": _number(source.get("away"), PROBABILITY_DEFAULT, high=100.0),
    }


def _key_duel(value: Any) -> dict[str, Any] | None:
    source = _as_mapping(value)
    if source is None:
        return None
    winner = _text(source.get("winner"), "equal").casefold()
    return {
        "player1": _text(source.get("player1")),
        "player2": _text(source.get("player2")),
        "stat_label": _text(source.get("stat_label")),
        "value1": _stat_value(source.get("value1")),
        "value2": _stat_value(source.get("value2")),
        "winner": _DUEL_WINNERS.get(winner, "equal"),
    }


def _live_strategy(value: Any) -> dict[str, Any] | None:
    source = _as_mapping(value)
    if source is None:
        return None
    return {
        "trigger_time": _text(source.get("trigger_time")),
        "condition": _text(source.get("condition")),
        "action": _text(source.get("action")),
        "target_odds": _number(source.get("target_odds"), ODDS_DEFAULT),
        "rationale": _text(_pick(source, "rationale", "reasoning")),
    }


def _sentiment(value: Any) -> dict[str, Any] | None:
    source = _as_mapping(value)
    if source is None:
        return None
    return {
        "score": _number(source.get("score"), 50.0, high=100.0),
        "label": _text(source.get("label"), "Neutral"),
        "summary": _text(source.get("summary")),
    }


def _simulation_inputs(value: Any) -> dict[str, float] | None:
    if isinstance(value, Mapping):
        value = _as_mapping(value)
    vector = RatingVector.from_payload(value)
    return vector.as_payload() if vector is not None else None


def _histogram_bin(item: Any) -> tuple[int, int] | None:
    if isinstance(item, Mapping):
        source = _as_mapping(item) or {}
        diff = _pick(source, "differential", "diff")
        count = source.get("count")
    elif isinstance(item, (list, tuple)) and len(item) == 2:
        diff, count = item
    else:
        return None
    diff_value = _number(diff, math.nan, low=None)
    count_value = _number(count, math.nan)
    if math.isnan(diff_value) or math.isnan(count_value):
        return None
    return int(round(diff_value)), int(count_value)


def _monte_carlo(value: Any) -> dict[str, Any] | None:
    source = _as_mapping(value)
    if source is None:
        return None
    counts: dict[int, int] = {}
    for item in _as_list(_pick(source, "histogram", "distribution")):
        parsed = _histogram_bin(item)
        if parsed is None:
            continue
        diff, count = parsed
        counts[diff] = counts.get(diff, 0) + count
    histogram = [{"differential": diff, "count": counts[diff]} for diff in sorted(counts)]
    projected = _as_mapping(source.get("projected_score")) or {}
    return {
        "home_win_probability": _number(
            _pick(source, "home_win_probability", "home_win_prob"), 0.0, high=100.0
        ),
        "away_win_probability": _number(
            _pick(source, "away_win_probability", "away_win_prob"), 0.0, high=100.0
        ),
        "draw_probability": _number(
            _pick(source, "draw_probability", "draw_prob"), 0.0, high=100.0
        ),
        "projected_score": {
            "home": int(round(_number(projected.get("home"), 0.0))),
            "away": int(round(_number(projected.get("away"), 0.0))),
        },
        "histogram": histogram,
        "total_trials": sum(item["count"] for item in histogram),
        "bin_width": max(1, int(_number(source.get("bin_width"), 1.0))),
    }


# ----------------------------------------------------------------------------
# Registry


@dataclass(frozen=True)
class FieldRule:
    name: str
    normalize: Callable[[Any], Any]
    default: Callable[[], Any]
    aliases: tuple[str, ...] = ()

    def keys(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)


def _text_rule(name: str, *aliases: str) -> FieldRule:
    return FieldRule(name, _text, lambda: MISSING_TEXT, aliases)


FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule("entity_id", lambda value: _text(value, ""), lambda: "", ("match_id", "id")),
    FieldRule("summary", _summary, lambda: MISSING_SUMMARY),
    _text_rule("reasoning_trace"),
    _text_rule("contrarian_view"),
    _text_rule("weather"),
    _text_rule("weather_impact"),
    _text_rule("referee"),
    _text_rule("social_context"),
    _text_rule("last_minute_news"),
    _text_rule("tv_channel"),
    _text_rule("live_score"),
    _text_rule("match_minute"),
    FieldRule("key_factors", _key_factors, list),
    FieldRule("injuries", _injuries, list),
    FieldRule("predictions", _predictions, list, ("tips", "bets")),
    FieldRule("scenarios", _scenarios, list),
    FieldRule("advanced_stats", _advanced_stats, list, ("stats",)),
    FieldRule("player_props", _player_props, list),
    FieldRule("sources", _sources, list),
    FieldRule("market_analysis", _market_analysis, lambda: None),
    FieldRule("true_probability", _true_probability, lambda: None),
    FieldRule("key_duel", _key_duel, lambda: None),
    FieldRule("live_strategy", _live_strategy, lambda: None),
    FieldRule("sentiment", _sentiment, lambda: None),
    FieldRule("simulation_inputs", _simulation_inputs, lambda: None),
    FieldRule("monte_carlo", _monte_carlo, lambda: None),
)


def _coerce_root(raw: Any) -> dict[str, Any]:
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        raw = parse_structured_text(text)
    return _as_mapping(raw) or {}


def repair(raw: Any) -> dict[str, Any]:
    """Return a fully populated artifact dict built from ``raw``. Never raises."""

    try:
        source = _coerce_root(raw)
    except Exception:
        logger.exception("Unable to read structured response root; using defaults")
        source = {}

    repaired: dict[str, Any] = {}
    for rule in FIELD_RULES:
        value = _pick(source, *rule.keys())
        try:
            repaired[rule.name] = rule.normalize(value)
        except Exception:
            logger.exception("Field '{}' could not be repaired; using default", rule.name)
            repaired[rule.name] = rule.default()
    return repaired


__all__ = [
    "FIELD_RULES",
    "FieldRule",
    "MISSING_SUMMARY",
    "MISSING_TEXT",
    "compute_edge",
    "normalize_likelihood",
    "repair",
]
