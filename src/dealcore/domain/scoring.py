# src/dealcore/domain/scoring.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

# Bump whenever a threshold, band formula or default weight changes so that
# historical score rows remain interpretable.
ALGORITHM_VERSION = 1

CRITERIA = ("cap_rate", "cash_on_cash", "dscr", "location", "market_trends")

NEUTRAL_SCORE = 50.0


@dataclass(frozen=True)
class ScoreThresholds:
    average: float
    good: float
    excellent: float


SCORING_THRESHOLDS: dict[str, ScoreThresholds] = {
    "cap_rate": ScoreThresholds(average=4.0, good=6.0, excellent=8.0),          # percent
    "cash_on_cash": ScoreThresholds(average=5.0, good=8.0, excellent=12.0),     # percent
    "dscr": ScoreThresholds(average=1.1, good=1.25, excellent=1.5),             # ratio
}


class ScoringWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    cap_rate: float
    cash_on_cash: float
    dscr: float
    location: float
    market_trends: float

    def total(self) -> float:
        return sum(getattr(self, name) for name in CRITERIA)

    def as_dict(self) -> dict[str, float]:
        return {name: float(getattr(self, name)) for name in CRITERIA}


DEFAULT_SCORING_WEIGHTS = ScoringWeights(
    cap_rate=0.30,
    cash_on_cash=0.30,
    dscr=0.20,
    location=0.10,
    market_trends=0.10,
)


class ScoringCriteria(BaseModel):
    """Per-criterion scores, each in [0, 100]."""
    model_config = ConfigDict(frozen=True)

    cap_rate: float
    cash_on_cash: float
    dscr: float
    location: float
    market_trends: float

    def as_dict(self) -> dict[str, float]:
        return {name: float(getattr(self, name)) for name in CRITERIA}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DealScore(BaseModel):
    """One append-only history row. Never mutated after it is saved."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    deal_id: str
    overall_score: float
    criteria: ScoringCriteria
    weights: ScoringWeights
    version: int = ALGORITHM_VERSION
    calculated_at: datetime = Field(default_factory=_utcnow)


class ScoringConfiguration(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    organization_id: str
    weights: ScoringWeights
    is_default: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


Trend = Literal["up", "down", "stable"]


class DealScoreHistory(BaseModel):
    deal_id: str
    scores: list[DealScore]
    current_score: DealScore | None = None
    score_change: float = 0.0
    trend: Trend = "stable"


class ScoreComparison(BaseModel):
    deal_id: str
    score: float
    rank: int
    percentile: float
    above_average: bool
