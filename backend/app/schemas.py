from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .domain import FixtureRef, LifecycleState, SportCategory


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Prediction(_Frozen):
    market: str
    selection: str
    odds: float = Field(ge=0)
    confidence: float = Field(ge=0, le=100)
    stake_units: float = Field(ge=0)
    probability: float = Field(ge=0, le=100)
    rationale: str
    edge: float
    condition: str


class Scenario(_Frozen):
    condition: str
    outcome: str
    likelihood: Literal["High", "Medium", "Low"]
    reasoning: str


class Injury(_Frozen):
    player: str
    status: str
    impact: str


class AdvancedStat(_Frozen):
    label: str
    home_value: float | str
    away_value: float | str
    advantage: Literal["home", "away", "equal"]


class PlayerProp(_Frozen):
    player: str
    market: str
    line: str
    odds: float = Field(ge=0)
    confidence: float = Field(ge=0, le=100)


class Source(_Frozen):
    title: str
    uri: str


class MarketAnalysis(_Frozen):
    public_trend: str
    sharp_money: str
    opening_odds: float = Field(ge=0)
    current_odds: float = Field(ge=0)
    odds_movement: str
    value_status: str


class TrueProbability(_Frozen):
    home: float = Field(ge=0, le=100)
    draw: float = Field(ge=0, le=100)
    away: float = Field(ge=0, le=100)


class KeyDuel(_Frozen):
    player1: str
    player2: str
    stat_label: str
    value1: float | str
    value2: float | str
    winner: Literal["player1", "player2", "equal"]


class LiveStrategy(_Frozen):
    trigger_time: str
    condition: str
    action: str
    target_odds: float = Field(ge=0)
    rationale: str


class Sentiment(_Frozen):
    score: float = Field(ge=0, le=100)
    label: str
    summary: str


class SimulationInputs(_Frozen):
    attack_a: float = Field(ge=0, le=100)
    defense_a: float = Field(ge=0, le=100)
    attack_b: float = Field(ge=0, le=100)
    defense_b: float = Field(ge=0, le=100)
    tempo: float = Field(ge=0, le=100)


class ProjectedScore(_Frozen):
    home: int = Field(ge=0)
    away: int = Field(ge=0)


class HistogramBin(_Frozen):
    differential: int
    count: int = Field(ge=0)


class MonteCarlo(_Frozen):
    home_win_probability: float = Field(ge=0, le=100)
    away_win_probability: float = Field(ge=0, le=100)
    draw_probability: float = Field(ge=0, le=100)
    projected_score: ProjectedScore
    histogram: list[HistogramBin] = Field(default_factory=list)
    total_trials: int = Field(ge=0)
    bin_width: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_total(self) -> "MonteCarlo":
        if sum(item.count for item in self.histogram) != self.total_trials:
            raise ValueError("histogram counts must sum to total_trials")
        return self


class AnalysisArtifact(_Frozen):
    """Structured prediction served to the dashboard and persisted by entity id."""

    entity_id: str
    summary: str
    reasoning_trace: str
    contrarian_view: str
    weather: str
    weather_impact: str
    referee: str
    social_context: str
    last_minute_news: str
    tv_channel: str
    live_score: str
    match_minute: str
    key_factors: list[str] = Field(default_factory=list)
    injuries: list[Injury] = Field(default_factory=list)
    predictions: list[Prediction] = Field(default_factory=list)
    scenarios: list[Scenario] = Field(default_factory=list)
    advanced_stats: list[AdvancedStat] = Field(default_factory=list)
    player_props: list[PlayerProp] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    market_analysis: MarketAnalysis | None = None
    true_probability: TrueProbability | None = None
    key_duel: KeyDuel | None = None
    live_strategy: LiveStrategy | None = None
    sentiment: Sentiment | None = None
    simulation_inputs: SimulationInputs | None = None
    monte_carlo: MonteCarlo | None = None


class Fixture(BaseModel):
    id: str
    participant_a: str
    participant_b: str
    category: SportCategory
    scheduled_date: str
    scheduled_time: str
    league: str | None = None
    quick_odds: float = 0.0
    quick_prediction: str | None = None
    is_trending: bool = False
    lifecycle_state: LifecycleState = LifecycleState.SCHEDULED

    model_config = {"from_attributes": True}


class FixtureList(BaseModel):
    total: int
    items: list[Fixture]


class FixtureRequest(BaseModel):
    """Fixture submitted for analysis; the id is recomputed server-side."""

    participant_a: str = Field(min_length=1)
    participant_b: str = Field(min_length=1)
    category: SportCategory = SportCategory.OTHER
    scheduled_date: str
    scheduled_time: str
    league: str | None = None
    quick_odds: float = Field(default=0.0, ge=0)
    quick_prediction: str | None = None

    def to_domain(self, entity_id: str) -> FixtureRef:
        return FixtureRef(
            id=entity_id,
            participant_a=self.participant_a,
            participant_b=self.participant_b,
            category=self.category,
            scheduled_date=self.scheduled_date,
            scheduled_time=self.scheduled_time,
            league=self.league,
            quick_odds=self.quick_odds,
            quick_prediction=self.quick_prediction,
        )


class HealthStatus(BaseModel):
    status: str
    remote_store: str
    circuit: Literal["online", "offline"]


def artifact_payload(artifact: AnalysisArtifact) -> dict[str, Any]:
    return artifact.model_dump(mode="json")
