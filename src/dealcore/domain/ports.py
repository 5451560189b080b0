# src/dealcore/domain/ports.py
from __future__ import annotations

from typing import Protocol

from dealcore.domain.deal import AggregationFilter, Deal, Property
from dealcore.domain.scoring import DealScore, ScoringConfiguration, ScoringWeights


# ----------------------------
# Deal / property reads
# ----------------------------

class DealRepository(Protocol):
    def find_deals(
        self,
        organization_id: str,
        filter: AggregationFilter | None = None,
    ) -> list[Deal]:
        ...

    def get_deal(self, organization_id: str, deal_id: str) -> Deal | None:
        ...


class PropertyRepository(Protocol):
    def find_properties(
        self,
        organization_id: str,
        filter: AggregationFilter | None = None,
    ) -> list[Property]:
        ...


# ----------------------------
# Score history (append-only)
# ----------------------------

class ScoreRepository(Protocol):
    def save_score(self, score: DealScore) -> DealScore:
        ...

    def find_latest_score(self, deal_id: str) -> DealScore | None:
        ...

    def find_score_history(self, deal_id: str, limit: int = 50) -> list[DealScore]:
        ...


# ----------------------------
# Scoring configuration (mutable, one default per org)
# ----------------------------

class ScoringConfigRepository(Protocol):
    def find_default_configuration(self, organization_id: str) -> ScoringConfiguration | None:
        ...

    def upsert_configuration(
        self,
        organization_id: str,
        weights: ScoringWeights,
    ) -> ScoringConfiguration:
        ...
