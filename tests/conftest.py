# tests/conftest.py
import pytest

from dealcore.adapters.memory_repo import (
    InMemoryPortfolioRepository,
    InMemoryScoreRepository,
    InMemoryScoringConfigRepository,
)
from dealcore.services.portfolio import PortfolioAggregator
from dealcore.services.scoring import ScoringService

from fixtures.deals import sample_deals, sample_properties


@pytest.fixture
def portfolio_repo():
    return InMemoryPortfolioRepository(deals=sample_deals(), properties=sample_properties())


@pytest.fixture
def aggregator(portfolio_repo):
    return PortfolioAggregator(portfolio_repo, portfolio_repo)


@pytest.fixture
def empty_aggregator():
    repo = InMemoryPortfolioRepository()
    return PortfolioAggregator(repo, repo)


@pytest.fixture
def scoring_service():
    return ScoringService(InMemoryScoreRepository(), InMemoryScoringConfigRepository())
