from __future__ import annotations

import functools
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence, TypeVar

import pandas as pd

from dealcore.adapters.config import config
from dealcore.adapters.logging_utils import get_logger
from dealcore.analysis.valuation import calculate_deal_valuation
from dealcore.domain.analytics import (
    ActivityItem,
    AnalyticsDashboard,
    DealPerformanceRanking,
    DealReturn,
    MarketComparison,
    PortfolioSummary,
    PropertyPerformance,
    TimeSeriesDataPoint,
    TimeSeriesMetrics,
)
from dealcore.domain.deal import AggregationFilter, Deal, Property
from dealcore.domain.errors import require_context
from dealcore.domain.metrics import (
    positive_mean,
    ratio,
    round_money,
    rounded_positive_mean,
    safe_round,
)
from dealcore.domain.ports import DealRepository, PropertyRepository
from dealcore.domain.valuation import DealValuation

logger = get_logger(__name__)

T = TypeVar("T")


def filter_deals(deals: Iterable[Deal], filter: AggregationFilter | None) -> list[Deal]:
    if filter is None:
        return list(deals)
    return [d for d in deals if filter.matches(d)]


def _logged(name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return fn(*args, **kwargs)
            except Exception:
                logger.exception(f"Error calculating {name}")
                raise
        return wrapper
    return decorator


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _compare(value: float, average: float) -> str:
    if value > average:
        return "above"
    if value < average:
        return "below"
    return "at"


def _empty_series(metric: str) -> TimeSeriesMetrics:
    return TimeSeriesMetrics(metric=metric, unit="USD", period="monthly")


def _series(metric: str, values: pd.Series) -> TimeSeriesMetrics:
    points = [TimeSeriesDataPoint(date=str(month), value=safe_round(v)) for month, v in values.items()]
    if not points:
        return _empty_series(metric)
    return TimeSeriesMetrics(
        metric=metric,
        unit="USD",
        period="monthly",
        data_points=points,
        start_date=points[0].date,
        end_date=points[-1].date,
    )


class PortfolioAggregator:
    """
    Read-only portfolio analytics over valuation output.

    Holds no mutable state; every method re-reads deals/properties from the
    collaborators and recomputes valuations, so calls can run concurrently.
    """

    def __init__(
        self,
        deals: DealRepository,
        properties: PropertyRepository,
        *,
        max_workers: int | None = None,
    ) -> None:
        self.deals = deals
        self.properties = properties
        self.max_workers = max_workers or config.DASHBOARD_MAX_WORKERS

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_deals(self, filter: AggregationFilter | None, organization_id: str) -> list[Deal]:
        require_context(organization_id, "organization_id")
        # re-apply locally: collaborators may ignore part of the filter
        deals = filter_deals(self.deals.find_deals(organization_id, filter), filter)
        logger.debug(
            "Loaded deals for aggregation",
            extra={"context": {"organization_id": organization_id, "deals": len(deals)}},
        )
        return deals

    def _load_properties(self, filter: AggregationFilter | None, organization_id: str) -> list[Property]:
        require_context(organization_id, "organization_id")
        return self.properties.find_properties(organization_id, filter)

    @staticmethod
    def _valued(deals: Sequence[Deal]) -> list[tuple[Deal, DealValuation]]:
        return [(d, calculate_deal_valuation(d)) for d in deals]

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    @_logged("portfolio summary")
    def get_portfolio_summary(
        self,
        filter: AggregationFilter | None,
        organization_id: str,
    ) -> PortfolioSummary:
        """
        Totals include every matching deal regardless of status, so projected
        cash flow of not-yet-closed deals stays visible. Averages are over
        positive values only and are None when nothing is positive.
        """
        deals = self._load_deals(filter, organization_id)
        valuations = [v for _, v in self._valued(deals)]

        owned = {d.property_id for d in deals}
        properties = [p for p in self._load_properties(filter, organization_id) if p.id in owned]

        return PortfolioSummary(
            total_properties=len(properties),
            total_deals=len(deals),
            active_deals=sum(1 for d in deals if d.is_active()),
            total_portfolio_value=safe_round(sum(p.valuation_base() for p in properties)),
            total_cash_invested=safe_round(sum(v.total_cash_invested for v in valuations)),
            total_annual_cash_flow=safe_round(sum(v.cash_flow.annual_cash_flow for v in valuations)),
            # summed per deal, not annual / 12
            total_monthly_cash_flow=safe_round(sum(v.cash_flow.monthly_cash_flow for v in valuations)),
            total_annual_noi=safe_round(sum(v.noi.noi for v in valuations)),
            average_cap_rate=rounded_positive_mean(v.cap_rate.cap_rate for v in valuations),
            average_cash_on_cash_return=rounded_positive_mean(
                v.returns.cash_on_cash_return for v in valuations
            ),
        )

    # ------------------------------------------------------------------
    # Time series
    # ------------------------------------------------------------------

    def _monthly_frame(self, deals: Sequence[Deal]) -> pd.DataFrame:
        rows = []
        for d, v in self._valued(deals):
            rows.append(
                {
                    "month": d.purchase_date.strftime("%Y-%m"),
                    "purchase_date": d.purchase_date,
                    "monthly_cash_flow": v.cash_flow.monthly_cash_flow,
                    "acquisition_cost": v.total_acquisition_cost,
                }
            )
        return pd.DataFrame(rows)

    @_logged("cash flow trend")
    def get_cash_flow_trend(
        self,
        filter: AggregationFilter | None,
        organization_id: str,
    ) -> TimeSeriesMetrics:
        deals = self._load_deals(filter, organization_id)
        if not deals:
            return _empty_series("monthly_cash_flow")

        df = self._monthly_frame(deals)
        per_month = df.groupby("month", sort=True)["monthly_cash_flow"].sum()
        return _series("monthly_cash_flow", per_month)

    @_logged("portfolio growth")
    def get_portfolio_growth(
        self,
        filter: AggregationFilter | None,
        organization_id: str,
    ) -> TimeSeriesMetrics:
        """
        Running total of acquisition cost, ordered by purchase date; each
        month bucket holds the cumulative value at the end of that month.
        """
        deals = self._load_deals(filter, organization_id)
        if not deals:
            return _empty_series("portfolio_growth")

        df = self._monthly_frame(deals).sort_values("purchase_date", kind="mergesort")
        df["cumulative"] = df["acquisition_cost"].cumsum()
        per_month = df.groupby("month", sort=True)["cumulative"].last()
        return _series("portfolio_growth", per_month)

    # ------------------------------------------------------------------
    # Comparisons & performance
    # ------------------------------------------------------------------

    @_logged("market comparisons")
    def get_market_comparisons(
        self,
        filter: AggregationFilter | None,
        organization_id: str,
    ) -> list[MarketComparison]:
        valued = self._valued(self._load_deals(filter, organization_id))
        if not valued:
            return []

        avg_cap = round_money(positive_mean(v.cap_rate.cap_rate for _, v in valued) or 0.0)
        avg_coc = round_money(positive_mean(v.returns.cash_on_cash_return for _, v in valued) or 0.0)

        comparisons: list[MarketComparison] = []
        for deal, v in valued:
            for metric, value, average in (
                ("cap_rate", v.cap_rate.cap_rate, avg_cap),
                ("cash_on_cash_return", v.returns.cash_on_cash_return, avg_coc),
            ):
                diff = value - average
                comparisons.append(
                    MarketComparison(
                        deal_id=deal.id,
                        property_id=deal.property_id,
                        metric=metric,
                        value=value,
                        market_average=average,
                        difference=safe_round(diff),
                        difference_percent=safe_round(ratio(diff, average, 100.0)),
                        comparison=_compare(value, average),
                    )
                )
        return comparisons

    @_logged("property performance")
    def get_property_performance(
        self,
        filter: AggregationFilter | None,
        organization_id: str,
    ) -> list[PropertyPerformance]:
        valued = self._valued(self._load_deals(filter, organization_id))

        by_property: dict[str, list[tuple[Deal, DealValuation]]] = {}
        for deal, v in valued:
            by_property.setdefault(deal.property_id, []).append((deal, v))

        performance: list[PropertyPerformance] = []
        for prop in self._load_properties(filter, organization_id):
            items = by_property.get(prop.id)
            if not items:
                continue

            vals = [v for _, v in items]
            best = max(vals, key=lambda v: v.returns.cash_on_cash_return)
            worst = min(vals, key=lambda v: v.returns.cash_on_cash_return)

            performance.append(
                PropertyPerformance(
                    property_id=prop.id,
                    address=prop.address,
                    total_deals=len(items),
                    total_cash_invested=safe_round(sum(v.total_cash_invested for v in vals)),
                    total_annual_cash_flow=safe_round(sum(v.cash_flow.annual_cash_flow for v in vals)),
                    average_cap_rate=rounded_positive_mean(v.cap_rate.cap_rate for v in vals),
                    average_cash_on_cash_return=rounded_positive_mean(
                        v.returns.cash_on_cash_return for v in vals
                    ),
                    best_deal=DealReturn(best.deal_id, best.returns.cash_on_cash_return),
                    worst_deal=(
                        DealReturn(worst.deal_id, worst.returns.cash_on_cash_return)
                        if len(vals) >= 2
                        else None
                    ),
                )
            )
        return performance

    # ------------------------------------------------------------------
    # Rankings
    # ------------------------------------------------------------------

    def _rank_all(self, filter: AggregationFilter | None, organization_id: str) -> list[DealPerformanceRanking]:
        deals = self._load_deals(filter, organization_id)
        addresses = {p.id: p.address for p in self._load_properties(None, organization_id)}

        rankings = [
            DealPerformanceRanking(
                deal_id=d.id,
                property_id=d.property_id,
                property_address=addresses.get(d.property_id, "Unknown"),
                purchase_price=v.purchase_price,
                cash_on_cash_return=v.returns.cash_on_cash_return,
                cap_rate=v.cap_rate.cap_rate,
                monthly_cash_flow=v.cash_flow.monthly_cash_flow,
                annual_cash_flow=v.cash_flow.annual_cash_flow,
            )
            for d, v in self._valued(deals)
        ]

        # sorted() is stable: ties keep input order
        rankings = sorted(rankings, key=lambda r: -r.cash_on_cash_return)
        for idx, r in enumerate(rankings, start=1):
            r.rank = idx
        return rankings

    @_logged("deal rankings")
    def get_deal_performance_rankings(
        self,
        filter: AggregationFilter | None,
        limit: int | None,
        organization_id: str,
    ) -> list[DealPerformanceRanking]:
        limit = config.DEFAULT_RANKING_LIMIT if limit is None else limit
        return self._rank_all(filter, organization_id)[: max(limit, 0)]

    def _bottom_performers(
        self,
        filter: AggregationFilter | None,
        limit: int,
        organization_id: str,
    ) -> list[DealPerformanceRanking]:
        return list(reversed(self._rank_all(filter, organization_id)))[:limit]

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def get_recent_activity(
        self,
        filter: AggregationFilter | None,
        organization_id: str,
    ) -> list[ActivityItem]:
        per_kind = config.RECENT_ACTIVITY_PER_KIND

        props = sorted(
            self._load_properties(filter, organization_id),
            key=lambda p: _as_utc(p.created_at),
            reverse=True,
        )[:per_kind]
        deals = sorted(
            self._load_deals(filter, organization_id),
            key=lambda d: _as_utc(d.created_at),
            reverse=True,
        )[:per_kind]

        events: list[tuple[datetime, ActivityItem]] = [
            (
                _as_utc(p.created_at),
                ActivityItem(
                    type="property_created",
                    id=p.id,
                    timestamp=_as_utc(p.created_at).isoformat(),
                    description=f"Property created: {p.address}",
                ),
            )
            for p in props
        ]
        events += [
            (
                _as_utc(d.created_at),
                ActivityItem(
                    type="deal_created",
                    id=d.id,
                    timestamp=_as_utc(d.created_at).isoformat(),
                    description=f"Deal created: ${d.purchase_price:,.0f}",
                ),
            )
            for d in deals
        ]

        events.sort(key=lambda e: e[0], reverse=True)
        return [item for _, item in events[: config.RECENT_ACTIVITY_LIMIT]]

    @_logged("dashboard")
    def get_dashboard(
        self,
        filter: AggregationFilter | None,
        organization_id: str,
    ) -> AnalyticsDashboard:
        require_context(organization_id, "organization_id")
        limit = config.DEFAULT_RANKING_LIMIT

        # independent, read-only sub-aggregations
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            summary = pool.submit(self.get_portfolio_summary, filter, organization_id)
            top = pool.submit(self.get_deal_performance_rankings, filter, limit, organization_id)
            bottom = pool.submit(self._bottom_performers, filter, limit, organization_id)
            trend = pool.submit(self.get_cash_flow_trend, filter, organization_id)
            growth = pool.submit(self.get_portfolio_growth, filter, organization_id)
            comparisons = pool.submit(self.get_market_comparisons, filter, organization_id)
            performance = pool.submit(self.get_property_performance, filter, organization_id)
            activity = pool.submit(self.get_recent_activity, filter, organization_id)

            return AnalyticsDashboard(
                portfolio_summary=summary.result(),
                top_performers=top.result(),
                bottom_performers=bottom.result(),
                cash_flow_trend=trend.result(),
                portfolio_growth=growth.result(),
                market_comparisons=comparisons.result(),
                property_performance=performance.result(),
                recent_activity=activity.result(),
            )
