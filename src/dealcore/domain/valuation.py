from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class NetOperatingIncome:
    gross_rental_income: float     # annual
    vacancy_loss: float            # annual
    effective_gross_income: float  # annual, gross - vacancy
    operating_expenses: float      # annual, incl. management fee
    noi: float                     # annual, floored at 0


@dataclass(frozen=True)
class DebtService:
    monthly: float
    annual: float


@dataclass(frozen=True)
class CashFlow:
    noi: float
    debt_service: float      # annual
    annual_cash_flow: float
    monthly_cash_flow: float


@dataclass(frozen=True)
class CapRate:
    noi: float
    property_value: float
    cap_rate: float          # percent


@dataclass(frozen=True)
class ReturnMetrics:
    annual_cash_flow: float
    total_cash_invested: float   # down payment + closing + rehab
    cash_on_cash_return: float   # percent
    total_return: float
    roi: float                   # percent
    purchase_price: float
    annual_gross_rent: float
    grm: float
    noi: float
    debt_service: float
    dscr: float


@dataclass(frozen=True)
class DealValuation:
    """
    Read-only view derived from one deal. Never persisted; recompute on demand.
    """
    deal_id: str
    property_id: str

    purchase_price: float
    total_acquisition_cost: float
    total_cash_invested: float

    gross_rental_income: float
    effective_gross_income: float
    operating_expenses: float
    noi: NetOperatingIncome

    loan_amount: float
    down_payment: float
    monthly_debt_service: float
    annual_debt_service: float

    cash_flow: CashFlow
    cap_rate: CapRate
    returns: ReturnMetrics

    break_even_occupancy: float
    monthly_expense_ratio: float
    debt_to_income_ratio: float

    # Assumptions carried through, not modeled
    vacancy_rate: float
    property_management_rate: float
    annual_appreciation_rate: float
    annual_inflation_rate: float


@dataclass(frozen=True)
class PropertyValuation:
    property_id: str
    property_address: str
    total_deals: int
    active_deals: int
    total_cash_invested: float
    total_annual_cash_flow: float
    average_cap_rate: Optional[float] = None
    average_cash_on_cash_return: Optional[float] = None
    deals: List[DealValuation] = field(default_factory=list)
