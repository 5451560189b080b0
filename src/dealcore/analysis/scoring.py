# src/dealcore/analysis/scoring.py
from __future__ import annotations

import math
from typing import Callable, Mapping, Protocol

from dealcore.adapters.config import config
from dealcore.domain.deal import Deal
from dealcore.domain.errors import ScoringValidationError
from dealcore.domain.metrics import round_money, safe_number
from dealcore.domain.scoring import (
    CRITERIA,
    NEUTRAL_SCORE,
    SCORING_THRESHOLDS,
    ScoreThresholds,
    ScoringCriteria,
    ScoringWeights,
)
from dealcore.domain.valuation import DealValuation


# =====================================================================
# Threshold interpolation
# =====================================================================


def interpolate_threshold_score(value: float, thresholds: ScoreThresholds) -> float:
    """
    Piecewise-linear 0..100 score against (average, good, excellent):

      value >= excellent         -> 100
      good <= value < excellent  -> 75..100
      average <= value < good    -> 50..75
      value < average            -> 0..50, linear from 0 at value=0

    Continuous at every band edge. Negative values floor at 0.
    """
    value = safe_number(value)
    average, good, excellent = thresholds.average, thresholds.good, thresholds.excellent

    if value >= excellent:
        return 100.0
    if value >= good:
        return 75.0 + (value - good) / (excellent - good) * 25.0
    if value >= average:
        return 50.0 + (value - average) / (good - average) * 25.0
    return max(0.0, value / average * 50.0)


def score_cap_rate(cap_rate: float) -> float:
    return interpolate_threshold_score(cap_rate, SCORING_THRESHOLDS["cap_rate"])


def score_cash_on_cash(cash_on_cash: float) -> float:
    return interpolate_threshold_score(cash_on_cash, SCORING_THRESHOLDS["cash_on_cash"])


def score_dscr(dscr: float) -> float:
    # DSCR below 1.0 means rent does not cover the mortgage
    return interpolate_threshold_score(dscr, SCORING_THRESHOLDS["dscr"])


# =====================================================================
# Pluggable criterion scorers
# =====================================================================


class CriterionScorer(Protocol):
    def score(self, deal: Deal, valuation: DealValuation) -> float:
        ...


class ThresholdScorer:
    """Scores one valuation metric against a threshold band."""

    def __init__(
        self,
        metric: Callable[[DealValuation], float],
        thresholds: ScoreThresholds,
    ) -> None:
        self._metric = metric
        self.thresholds = thresholds

    def score(self, deal: Deal, valuation: DealValuation) -> float:
        return interpolate_threshold_score(self._metric(valuation), self.thresholds)


class NeutralScorer:
    """
    Placeholder for criteria with no model yet (location, market trends).
    """

    def __init__(self, value: float = NEUTRAL_SCORE) -> None:
        self.value = value

    def score(self, deal: Deal, valuation: DealValuation) -> float:
        return self.value


def default_scorers() -> dict[str, CriterionScorer]:
    return {
        "cap_rate": ThresholdScorer(lambda v: v.cap_rate.cap_rate, SCORING_THRESHOLDS["cap_rate"]),
        "cash_on_cash": ThresholdScorer(
            lambda v: v.returns.cash_on_cash_return, SCORING_THRESHOLDS["cash_on_cash"]
        ),
        "dscr": ThresholdScorer(lambda v: v.returns.dscr, SCORING_THRESHOLDS["dscr"]),
        "location": NeutralScorer(),
        "market_trends": NeutralScorer(),
    }


class ScorerRegistry:
    """
    Exactly one scorer per named criterion. Replacing a scorer never changes
    the weighted-sum contract; scores are clamped to [0, 100] on the way out.
    """

    def __init__(self, scorers: Mapping[str, CriterionScorer] | None = None) -> None:
        self._scorers: dict[str, CriterionScorer] = default_scorers()
        for name, scorer in (scorers or {}).items():
            self.register(name, scorer)

    def register(self, name: str, scorer: CriterionScorer) -> None:
        if name not in CRITERIA:
            raise KeyError(f"unknown scoring criterion: {name}")
        self._scorers[name] = scorer

    def get(self, name: str) -> CriterionScorer:
        return self._scorers[name]

    def score_all(self, deal: Deal, valuation: DealValuation) -> ScoringCriteria:
        values: dict[str, float] = {}
        for name in CRITERIA:
            raw = safe_number(self._scorers[name].score(deal, valuation))
            values[name] = min(100.0, max(0.0, raw))
        return ScoringCriteria(**values)


# =====================================================================
# Weighted sum & weight validation
# =====================================================================


def calculate_weighted_score(criteria: ScoringCriteria, weights: ScoringWeights) -> float:
    """
    Sum of criterion x weight, rounded to 2 decimals. No clamping here; with
    weights summing to 1.0 the result stays in [0, 100].
    """
    weighted_sum = sum(getattr(criteria, name) * getattr(weights, name) for name in CRITERIA)
    return round_money(safe_number(weighted_sum))


def validate_weights(weights: ScoringWeights, tolerance: float | None = None) -> ScoringWeights:
    tol = config.WEIGHT_SUM_TOLERANCE if tolerance is None else tolerance
    total = weights.total()
    # inclusive bounds; the epsilon absorbs float noise at 0.99 / 1.01
    if not math.isfinite(total) or abs(total - 1.0) > tol + 1e-9:
        raise ScoringValidationError(total, tol)
    return weights
