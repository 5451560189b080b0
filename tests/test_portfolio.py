# tests/test_portfolio.py
from datetime import date

import pytest

from dealcore.adapters.memory_repo import InMemoryPortfolioRepository
from dealcore.domain.deal import AggregationFilter, DealStatus
from dealcore.domain.errors import MissingContextError
from dealcore.services.portfolio import PortfolioAggregator

from fixtures.deals import ORG, OTHER_ORG, all_cash_deal, sample_properties


def test_summary_totals_and_averages(aggregator):
    s = aggregator.get_portfolio_summary(None, ORG)

    assert s.total_properties == 2
    assert s.total_deals == 3
    assert s.active_deals == 2
    # prop-1 at current value, prop-2 at purchase price
    assert s.total_portfolio_value == pytest.approx(370_000.0)
    assert s.total_cash_invested == pytest.approx(260_000.0)
    assert s.total_annual_noi == pytest.approx(27_420.0)
    assert s.total_annual_cash_flow == pytest.approx(4_152.94, abs=0.02)
    assert s.total_monthly_cash_flow == pytest.approx(346.08, abs=0.01)
    # deal-d has a 0 cap rate and negative CoC; it does not drag the means down
    assert s.average_cap_rate == pytest.approx(9.255, abs=0.006)
    assert s.average_cash_on_cash_return == pytest.approx(10.71)


def test_summary_of_empty_portfolio(empty_aggregator):
    s = empty_aggregator.get_portfolio_summary(None, ORG)

    assert s.total_properties == 0
    assert s.total_deals == 0
    assert s.total_portfolio_value == 0.0
    assert s.total_annual_cash_flow == 0.0
    assert s.average_cap_rate is None
    assert s.average_cash_on_cash_return is None


def test_summary_is_scoped_to_organization(aggregator):
    s = aggregator.get_portfolio_summary(None, OTHER_ORG)

    assert s.total_deals == 1
    assert s.total_portfolio_value == pytest.approx(999_999.0)


def test_properties_without_matching_deals_are_not_valued(aggregator):
    s = aggregator.get_portfolio_summary(AggregationFilter(status=["draft"]), ORG)

    assert s.total_deals == 1
    assert s.total_properties == 1
    assert s.total_portfolio_value == pytest.approx(120_000.0)


@pytest.mark.parametrize(
    "flt,expected",
    [
        (AggregationFilter(status=["closed"]), ["deal-b"]),
        (AggregationFilter(statuses=[DealStatus.CLOSED, DealStatus.DRAFT]), ["deal-b", "deal-c"]),
        (AggregationFilter(property_ids=["prop-2"]), ["deal-c"]),
        (AggregationFilter(deal_ids=["deal-d", "deal-x"]), ["deal-d"]),
        (AggregationFilter(start_date=date(2024, 2, 1)), ["deal-d"]),
        (AggregationFilter(end_date=date(2024, 1, 15)), ["deal-b"]),
        (AggregationFilter(property_ids=[]), []),
    ],
)
def test_filters_combine(aggregator, flt, expected):
    rankings = aggregator.get_deal_performance_rankings(flt, None, ORG)
    assert sorted(r.deal_id for r in rankings) == expected


def test_cash_flow_trend_buckets_by_purchase_month(aggregator):
    trend = aggregator.get_cash_flow_trend(None, ORG)

    assert trend.metric == "monthly_cash_flow"
    assert trend.period == "monthly"
    assert [p.date for p in trend.data_points] == ["2024-01", "2024-03"]
    assert trend.data_points[0].value == pytest.approx(1_785.0)
    assert trend.data_points[1].value == pytest.approx(-1_438.92, abs=0.01)
    assert trend.start_date == "2024-01"
    assert trend.end_date == "2024-03"


def test_portfolio_growth_is_cumulative(aggregator):
    growth = aggregator.get_portfolio_growth(None, ORG)

    assert [(p.date, p.value) for p in growth.data_points] == [
        ("2024-01", 300_000.0),
        ("2024-03", 600_000.0),
    ]


def test_series_of_empty_portfolio(empty_aggregator):
    for series in (
        empty_aggregator.get_cash_flow_trend(None, ORG),
        empty_aggregator.get_portfolio_growth(None, ORG),
    ):
        assert series.data_points == []
        assert series.start_date is None
        assert series.end_date is None


def test_market_comparisons(aggregator):
    comparisons = aggregator.get_market_comparisons(None, ORG)
    assert len(comparisons) == 6

    by_key = {(c.deal_id, c.metric): c for c in comparisons}
    assert by_key[("deal-c", "cap_rate")].comparison == "above"
    assert by_key[("deal-d", "cap_rate")].comparison == "below"
    assert by_key[("deal-b", "cash_on_cash_return")].comparison == "above"
    assert by_key[("deal-b", "cash_on_cash_return")].market_average == pytest.approx(10.71)
    assert by_key[("deal-b", "cash_on_cash_return")].difference == pytest.approx(1.11)


def test_single_deal_sits_at_the_average(aggregator):
    comparisons = aggregator.get_market_comparisons(AggregationFilter(deal_ids=["deal-b"]), ORG)

    assert {c.comparison for c in comparisons} == {"at"}
    assert all(c.difference == 0.0 for c in comparisons)
    assert all(c.difference_percent == 0.0 for c in comparisons)


def test_market_comparisons_of_empty_portfolio(empty_aggregator):
    assert empty_aggregator.get_market_comparisons(None, ORG) == []


def test_property_performance(aggregator):
    perf = {p.property_id: p for p in aggregator.get_property_performance(None, ORG)}
    assert set(perf) == {"prop-1", "prop-2"}

    p1 = perf["prop-1"]
    assert p1.address == "12 Elm St"
    assert p1.total_deals == 2
    assert p1.total_cash_invested == pytest.approx(160_000.0)
    assert p1.best_deal.deal_id == "deal-b"
    assert p1.worst_deal.deal_id == "deal-d"
    assert p1.average_cap_rate == pytest.approx(8.91)

    p2 = perf["prop-2"]
    assert p2.best_deal.deal_id == "deal-c"
    assert p2.worst_deal is None


def test_rankings_are_ordered_and_contiguous(aggregator):
    rankings = aggregator.get_deal_performance_rankings(None, None, ORG)

    assert [r.deal_id for r in rankings] == ["deal-b", "deal-c", "deal-d"]
    assert [r.rank for r in rankings] == [1, 2, 3]
    assert rankings[0].property_address == "12 Elm St"
    assert rankings[0].monthly_cash_flow == pytest.approx(985.0)


def test_rankings_respect_limit(aggregator):
    assert [r.deal_id for r in aggregator.get_deal_performance_rankings(None, 2, ORG)] == [
        "deal-b",
        "deal-c",
    ]
    assert aggregator.get_deal_performance_rankings(None, 0, ORG) == []


def test_ranking_ties_keep_input_order():
    repo = InMemoryPortfolioRepository(
        deals=[all_cash_deal(id="deal-1"), all_cash_deal(id="deal-2"), all_cash_deal(id="deal-3")],
        properties=sample_properties(),
    )
    rankings = PortfolioAggregator(repo, repo).get_deal_performance_rankings(None, None, ORG)

    assert [(r.deal_id, r.rank) for r in rankings] == [("deal-1", 1), ("deal-2", 2), ("deal-3", 3)]


def test_unknown_property_address():
    repo = InMemoryPortfolioRepository(deals=[all_cash_deal(property_id="prop-gone")])
    rankings = PortfolioAggregator(repo, repo).get_deal_performance_rankings(None, None, ORG)

    assert rankings[0].property_address == "Unknown"


def test_recent_activity_interleaves_newest_first(aggregator):
    activity = aggregator.get_recent_activity(None, ORG)

    assert [(a.type, a.id) for a in activity] == [
        ("deal_created", "deal-d"),
        ("property_created", "prop-2"),
        ("deal_created", "deal-c"),
        ("property_created", "prop-1"),
        ("deal_created", "deal-b"),
    ]
    assert activity[0].description == "Deal created: $300,000"
    assert activity[1].description == "Property created: 7 Oak Ave"
    assert activity[0].timestamp.startswith("2024-06-05T12:00:00")


def test_dashboard_combines_every_view(aggregator):
    dash = aggregator.get_dashboard(None, ORG)

    assert dash.portfolio_summary.total_deals == 3
    assert [r.deal_id for r in dash.top_performers] == ["deal-b", "deal-c", "deal-d"]
    assert [(r.deal_id, r.rank) for r in dash.bottom_performers] == [
        ("deal-d", 3),
        ("deal-c", 2),
        ("deal-b", 1),
    ]
    assert len(dash.cash_flow_trend.data_points) == 2
    assert len(dash.portfolio_growth.data_points) == 2
    assert len(dash.market_comparisons) == 6
    assert len(dash.property_performance) == 2
    assert len(dash.recent_activity) == 5


def test_dashboard_of_empty_portfolio(empty_aggregator):
    dash = empty_aggregator.get_dashboard(None, ORG)

    assert dash.portfolio_summary.total_deals == 0
    assert dash.top_performers == []
    assert dash.bottom_performers == []
    assert dash.recent_activity == []


def test_missing_organization_is_rejected(aggregator):
    with pytest.raises(MissingContextError):
        aggregator.get_portfolio_summary(None, "")

    with pytest.raises(MissingContextError):
        aggregator.get_dashboard(None, None)
