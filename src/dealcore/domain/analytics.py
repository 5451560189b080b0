from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional

Comparison = Literal["above", "below", "at"]
ActivityType = Literal["property_created", "deal_created"]


@dataclass
class PortfolioSummary:
    total_properties: int
    total_deals: int
    active_deals: int
    total_portfolio_value: float
    total_cash_invested: float
    total_annual_cash_flow: float
    total_monthly_cash_flow: float
    total_annual_noi: float
    # None means "not computable" (no positive values), not zero.
    average_cap_rate: Optional[float] = None
    average_cash_on_cash_return: Optional[float] = None


@dataclass(frozen=True)
class TimeSeriesDataPoint:
    date: str      # YYYY-MM bucket
    value: float


@dataclass
class TimeSeriesMetrics:
    metric: str
    unit: str
    period: str
    data_points: List[TimeSeriesDataPoint] = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None


@dataclass(frozen=True)
class MarketComparison:
    deal_id: str
    property_id: str
    metric: str
    value: float
    market_average: float
    difference: float
    difference_percent: float
    comparison: Comparison


@dataclass(frozen=True)
class DealReturn:
    deal_id: str
    cash_on_cash_return: float


@dataclass
class PropertyPerformance:
    property_id: str
    address: str
    total_deals: int
    total_cash_invested: float
    total_annual_cash_flow: float
    average_cap_rate: Optional[float] = None
    average_cash_on_cash_return: Optional[float] = None
    best_deal: Optional[DealReturn] = None
    worst_deal: Optional[DealReturn] = None


@dataclass
class DealPerformanceRanking:
    deal_id: str
    property_id: str
    property_address: str
    purchase_price: float
    cash_on_cash_return: float
    cap_rate: float
    monthly_cash_flow: float
    annual_cash_flow: float
    rank: int = 0


@dataclass(frozen=True)
class ActivityItem:
    type: ActivityType
    id: str
    timestamp: str   # ISO-8601
    description: str


@dataclass
class AnalyticsDashboard:
    portfolio_summary: PortfolioSummary
    top_performers: List[DealPerformanceRanking]
    bottom_performers: List[DealPerformanceRanking]
    cash_flow_trend: TimeSeriesMetrics
    portfolio_growth: TimeSeriesMetrics
    market_comparisons: List[MarketComparison]
    property_performance: List[PropertyPerformance]
    recent_activity: List[ActivityItem]
