from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from itertools import count
from threading import Lock
from typing import Iterable

from dealcore.domain.deal import AggregationFilter, Deal, Property
from dealcore.domain.ports import (
    DealRepository,
    PropertyRepository,
    ScoreRepository,
    ScoringConfigRepository,
)
from dealcore.domain.scoring import DealScore, ScoringConfiguration, ScoringWeights


class InMemoryPortfolioRepository(DealRepository, PropertyRepository):
    def __init__(
        self,
        deals: Iterable[Deal] = (),
        properties: Iterable[Property] = (),
    ) -> None:
        self._deals: list[Deal] = list(deals)
        self._properties: list[Property] = list(properties)

    def add_deal(self, deal: Deal) -> Deal:
        self._deals.append(deal)
        return deal

    def add_property(self, prop: Property) -> Property:
        self._properties.append(prop)
        return prop

    def find_deals(
        self,
        organization_id: str,
        filter: AggregationFilter | None = None,
    ) -> list[Deal]:
        return [
            d for d in self._deals
            if d.organization_id == organization_id and (filter is None or filter.matches(d))
        ]

    def get_deal(self, organization_id: str, deal_id: str) -> Deal | None:
        for d in self._deals:
            if d.id == deal_id and d.organization_id == organization_id:
                return d
        return None

    def find_properties(
        self,
        organization_id: str,
        filter: AggregationFilter | None = None,
    ) -> list[Property]:
        wanted = filter.property_ids if filter is not None else None
        return [
            p for p in self._properties
            if p.organization_id == organization_id and (wanted is None or p.id in wanted)
        ]


class InMemoryScoreRepository(ScoreRepository):
    """
    Append-only score log keyed by deal id. "Latest" is a query over the log
    (max calculated_at, insertion order breaks ties), never a stored pointer.
    """

    def __init__(self) -> None:
        self._log: dict[str, list[tuple[int, DealScore]]] = defaultdict(list)
        self._seq = count()
        self._lock = Lock()

    def save_score(self, score: DealScore) -> DealScore:
        with self._lock:
            self._log[score.deal_id].append((next(self._seq), score))
        return score

    def _ordered(self, deal_id: str) -> list[DealScore]:
        with self._lock:
            rows = list(self._log.get(deal_id, []))
        rows.sort(key=lambda item: (item[1].calculated_at, item[0]), reverse=True)
        return [score for _, score in rows]

    def find_latest_score(self, deal_id: str) -> DealScore | None:
        ordered = self._ordered(deal_id)
        return ordered[0] if ordered else None

    def find_score_history(self, deal_id: str, limit: int = 50) -> list[DealScore]:
        return self._ordered(deal_id)[:limit]


class InMemoryScoringConfigRepository(ScoringConfigRepository):
    def __init__(self) -> None:
        self._items: dict[str, ScoringConfiguration] = {}

    def find_default_configuration(self, organization_id: str) -> ScoringConfiguration | None:
        return self._items.get(organization_id)

    def upsert_configuration(
        self,
        organization_id: str,
        weights: ScoringWeights,
    ) -> ScoringConfiguration:
        existing = self._items.get(organization_id)
        if existing is not None:
            existing.weights = weights
            existing.updated_at = datetime.now(timezone.utc)
            return existing

        cfg = ScoringConfiguration(organization_id=organization_id, weights=weights, is_default=True)
        self._items[organization_id] = cfg
        return cfg
