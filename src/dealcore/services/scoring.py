from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Sequence

import numpy as np

from dealcore.adapters.config import config
from dealcore.adapters.logging_utils import get_logger
from dealcore.analysis.scoring import (
    ScorerRegistry,
    calculate_weighted_score,
    validate_weights,
)
from dealcore.analysis.valuation import calculate_deal_valuation
from dealcore.domain.deal import Deal
from dealcore.domain.errors import ResourceNotFoundError, require_context
from dealcore.domain.metrics import round_money
from dealcore.domain.ports import DealRepository, ScoreRepository, ScoringConfigRepository
from dealcore.domain.scoring import (
    ALGORITHM_VERSION,
    DEFAULT_SCORING_WEIGHTS,
    DealScore,
    DealScoreHistory,
    ScoreComparison,
    ScoringConfiguration,
    ScoringCriteria,
    ScoringWeights,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoringService:
    """
    Turns a deal into a 0..100 score and keeps the append-only score history.

    Weight resolution order: explicit weights -> the organization's default
    configuration -> DEFAULT_SCORING_WEIGHTS.
    """

    def __init__(
        self,
        scores: ScoreRepository,
        configurations: ScoringConfigRepository,
        *,
        registry: ScorerRegistry | None = None,
        deals: DealRepository | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.scores = scores
        self.configurations = configurations
        self.registry = registry or ScorerRegistry()
        self.deals = deals
        self._clock = clock

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def calculate_criteria(self, deal: Deal) -> ScoringCriteria:
        valuation = calculate_deal_valuation(deal)
        return self.registry.score_all(deal, valuation)

    def calculate_deal_score(
        self,
        deal: Deal,
        organization_id: str,
        weights: ScoringWeights | None = None,
    ) -> DealScore:
        require_context(organization_id, "organization_id")
        require_context(deal.id, "deal_id")

        started = time.perf_counter()

        scoring_weights = weights or self.get_scoring_weights(organization_id)
        criteria = self.calculate_criteria(deal)
        overall = calculate_weighted_score(criteria, scoring_weights)

        saved = self.scores.save_score(
            DealScore(
                deal_id=deal.id,
                overall_score=overall,
                criteria=criteria,
                weights=scoring_weights,
                version=ALGORITHM_VERSION,
                calculated_at=self._clock(),
            )
        )

        logger.info(
            f"Calculated deal score {overall:.2f} for deal {deal.id}",
            extra={
                "context": {
                    "deal_id": deal.id,
                    "organization_id": organization_id,
                    "overall_score": overall,
                    "duration_ms": round((time.perf_counter() - started) * 1000.0, 3),
                    "criteria": criteria.as_dict(),
                }
            },
        )
        return saved

    def score_deal_by_id(
        self,
        deal_id: str,
        organization_id: str,
        weights: ScoringWeights | None = None,
    ) -> DealScore:
        require_context(organization_id, "organization_id")
        require_context(deal_id, "deal_id")
        deal = self.deals.get_deal(organization_id, deal_id) if self.deals is not None else None
        if deal is None:
            raise ResourceNotFoundError("Deal", deal_id)
        return self.calculate_deal_score(deal, organization_id, weights)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_scoring_weights(self, organization_id: str) -> ScoringWeights:
        require_context(organization_id, "organization_id")
        cfg = self.configurations.find_default_configuration(organization_id)
        if cfg is not None:
            return cfg.weights
        return DEFAULT_SCORING_WEIGHTS

    def update_scoring_configuration(
        self,
        organization_id: str,
        weights: ScoringWeights,
    ) -> ScoringConfiguration:
        require_context(organization_id, "organization_id")
        validate_weights(weights)

        cfg = self.configurations.upsert_configuration(organization_id, weights)
        logger.info(
            "Updated scoring configuration",
            extra={"context": {"organization_id": organization_id, "weights": weights.as_dict()}},
        )
        return cfg

    # ------------------------------------------------------------------
    # History reads
    # ------------------------------------------------------------------

    def get_deal_score(self, deal_id: str) -> DealScore | None:
        require_context(deal_id, "deal_id")
        return self.scores.find_latest_score(deal_id)

    def get_deal_score_history(self, deal_id: str, limit: int | None = None) -> list[DealScore]:
        require_context(deal_id, "deal_id")
        limit = config.SCORE_HISTORY_LIMIT if limit is None else limit
        return self.scores.find_score_history(deal_id, max(limit, 0))

    def get_score_trend(self, deal_id: str) -> DealScoreHistory:
        history = self.get_deal_score_history(deal_id)
        current = history[0] if history else None

        change = 0.0
        if len(history) >= 2:
            change = round_money(history[0].overall_score - history[1].overall_score)

        trend = "stable"
        if change > 0:
            trend = "up"
        elif change < 0:
            trend = "down"

        return DealScoreHistory(
            deal_id=deal_id,
            scores=history,
            current_score=current,
            score_change=change,
            trend=trend,
        )

    def compare_deal_scores(self, deal_ids: Sequence[str]) -> dict[str, DealScore]:
        """
        Latest score per requested deal. Deals without any score are left out.
        """
        out: dict[str, DealScore] = {}
        for deal_id in deal_ids:
            if deal_id in out:
                continue
            latest = self.scores.find_latest_score(deal_id)
            if latest is not None:
                out[deal_id] = latest
        return out

    def rank_deal_scores(self, deal_ids: Sequence[str]) -> list[ScoreComparison]:
        latest = self.compare_deal_scores(deal_ids)
        if not latest:
            return []

        ordered = sorted(latest.values(), key=lambda s: -s.overall_score)
        values = np.asarray([s.overall_score for s in ordered], dtype=float)
        mean = float(values.mean())
        n = len(ordered)

        out: list[ScoreComparison] = []
        for idx, s in enumerate(ordered, start=1):
            at_or_below = int(np.count_nonzero(values <= s.overall_score))
            out.append(
                ScoreComparison(
                    deal_id=s.deal_id,
                    score=s.overall_score,
                    rank=idx,
                    percentile=round_money(at_or_below / n * 100.0),
                    above_average=s.overall_score > mean,
                )
            )
        return out
