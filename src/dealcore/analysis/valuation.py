from __future__ import annotations

from typing import Sequence

from dealcore.domain.deal import Deal
from dealcore.domain.metrics import (
    ratio,
    round_money,
    rounded_positive_mean,
    safe_number,
)
from dealcore.domain.valuation import (
    CapRate,
    CashFlow,
    DealValuation,
    DebtService,
    NetOperatingIncome,
    PropertyValuation,
    ReturnMetrics,
)


def _monthly_mortgage_payment(principal: float, annual_rate_pct: float, n_months: int) -> float:
    """
    Standard fixed-rate amortization formula:
    M = P * [ r(1+r)^n / ((1+r)^n - 1) ]
    P = loan principal
    r = monthly interest rate (annual percent / 100 / 12)
    n = number of payments (months)
    """
    r = annual_rate_pct / 100.0 / 12.0

    if r == 0:
        return principal / n_months

    try:
        growth = (1 + r) ** n_months
    except OverflowError:
        # payment converges to the pure interest charge as (1+r)^n -> inf
        return principal * r

    if growth == 1:
        return principal / n_months
    return principal * r * growth / (growth - 1)


def _gross_rental_income(deal: Deal) -> float:
    # annual figure wins when present, otherwise annualize the monthly rent
    return safe_number(deal.annual_rental_income) or safe_number(deal.monthly_rental_income) * 12.0


def _total_cash_invested(deal: Deal) -> float:
    return (
        safe_number(deal.cash_down_payment())
        + safe_number(deal.closing_costs)
        + safe_number(deal.rehab_costs)
    )


def calculate_noi(deal: Deal) -> NetOperatingIncome:
    """
    NOI = effective gross income - operating expenses, floored at 0.

    Operating expenses do NOT include debt service. Monthly buckets
    (expenses, insurance, taxes, HOA, capex reserve) are annualized unless an
    annual expense figure is given; a management fee on effective income is
    added on top either way.
    """
    gross = _gross_rental_income(deal)

    vacancy_loss = gross * safe_number(deal.vacancy_rate) / 100.0
    effective = gross - vacancy_loss

    operating_expenses = safe_number(deal.annual_expenses)
    if not operating_expenses:
        operating_expenses = (
            safe_number(deal.monthly_expenses)
            + safe_number(deal.insurance)
            + safe_number(deal.property_tax)
            + safe_number(deal.hoa_fees)
            + safe_number(deal.cap_ex_reserve)
        ) * 12.0

    mgmt_rate = safe_number(deal.property_management_rate)
    if mgmt_rate:
        operating_expenses += effective * mgmt_rate / 100.0

    return NetOperatingIncome(
        gross_rental_income=gross,
        vacancy_loss=vacancy_loss,
        effective_gross_income=effective,
        operating_expenses=operating_expenses,
        noi=max(0.0, effective - operating_expenses),
    )


def calculate_debt_service(deal: Deal) -> DebtService:
    principal = safe_number(deal.loan_amount)
    n_months = int(deal.loan_term or 0)

    if not principal or deal.interest_rate is None or n_months <= 0:
        return DebtService(monthly=0.0, annual=0.0)

    monthly = safe_number(
        _monthly_mortgage_payment(principal, safe_number(deal.interest_rate), n_months)
    )

    return DebtService(
        monthly=round_money(monthly),
        annual=round_money(monthly * 12.0),
    )


def calculate_cash_flow(deal: Deal, noi: NetOperatingIncome) -> CashFlow:
    debt = calculate_debt_service(deal)
    annual_cash_flow = noi.noi - debt.annual

    return CashFlow(
        noi=noi.noi,
        debt_service=debt.annual,
        annual_cash_flow=round_money(annual_cash_flow),
        monthly_cash_flow=round_money(annual_cash_flow / 12.0),
    )


def calculate_cap_rate(deal: Deal, noi: NetOperatingIncome) -> CapRate:
    """
    Cap rate = NOI / property value * 100, where property value is the
    property's current value when known, else the deal's purchase price.
    """
    prop = deal.property_snapshot
    current_value = safe_number(prop.current_value) if prop is not None else 0.0
    property_value = current_value if current_value > 0 else safe_number(deal.purchase_price)

    return CapRate(
        noi=noi.noi,
        property_value=property_value,
        cap_rate=round_money(ratio(noi.noi, property_value, 100.0)),
    )


def calculate_return_metrics(
    deal: Deal,
    noi: NetOperatingIncome,
    cash_flow: CashFlow,
) -> ReturnMetrics:
    total_cash_in = _total_cash_invested(deal)
    purchase_price = safe_number(deal.purchase_price)
    annual_gross_rent = _gross_rental_income(deal)

    cash_on_cash = ratio(cash_flow.annual_cash_flow, total_cash_in, 100.0)
    grm = ratio(purchase_price, annual_gross_rent)
    dscr = ratio(noi.noi, cash_flow.debt_service)

    return ReturnMetrics(
        annual_cash_flow=cash_flow.annual_cash_flow,
        total_cash_invested=total_cash_in,
        cash_on_cash_return=round_money(cash_on_cash),
        total_return=cash_flow.annual_cash_flow,
        roi=round_money(cash_on_cash),
        purchase_price=purchase_price,
        annual_gross_rent=annual_gross_rent,
        grm=round_money(grm),
        noi=noi.noi,
        debt_service=cash_flow.debt_service,
        dscr=round_money(dscr),
    )


def calculate_deal_valuation(deal: Deal) -> DealValuation:
    """
    Core valuation entry point: NOI -> debt service / cash flow -> cap rate
    -> returns, plus the derived ratios. Pure and idempotent.
    """
    noi = calculate_noi(deal)
    cash_flow = calculate_cash_flow(deal, noi)
    cap_rate = calculate_cap_rate(deal, noi)
    returns = calculate_return_metrics(deal, noi, cash_flow)
    debt = calculate_debt_service(deal)

    gross = noi.gross_rental_income

    # Ratios are expressed against gross scheduled rent; 0 when there is no rent.
    break_even_occupancy = ratio(debt.annual, gross, 100.0)
    expense_ratio = ratio(noi.operating_expenses, gross, 100.0)
    debt_to_income = ratio(debt.annual, gross, 100.0)

    return DealValuation(
        deal_id=deal.id,
        property_id=deal.property_id,
        purchase_price=safe_number(deal.purchase_price),
        total_acquisition_cost=safe_number(deal.acquisition_cost()),
        total_cash_invested=returns.total_cash_invested,
        gross_rental_income=gross,
        effective_gross_income=noi.effective_gross_income,
        operating_expenses=noi.operating_expenses,
        noi=noi,
        loan_amount=safe_number(deal.loan_amount),
        down_payment=safe_number(deal.cash_down_payment()),
        monthly_debt_service=debt.monthly,
        annual_debt_service=debt.annual,
        cash_flow=cash_flow,
        cap_rate=cap_rate,
        returns=returns,
        break_even_occupancy=round_money(break_even_occupancy),
        monthly_expense_ratio=round_money(expense_ratio),
        debt_to_income_ratio=round_money(debt_to_income),
        vacancy_rate=safe_number(deal.vacancy_rate),
        property_management_rate=safe_number(deal.property_management_rate),
        annual_appreciation_rate=safe_number(deal.annual_appreciation_rate),
        annual_inflation_rate=safe_number(deal.annual_inflation_rate),
    )


def calculate_property_valuation(
    property_id: str,
    property_address: str,
    deals: Sequence[Deal],
) -> PropertyValuation:
    """
    Roll up every deal of one property. Averages only count positive values.
    """
    valuations = [calculate_deal_valuation(d) for d in deals]

    return PropertyValuation(
        property_id=property_id,
        property_address=property_address,
        total_deals=len(deals),
        active_deals=sum(1 for d in deals if d.is_active()),
        total_cash_invested=round_money(sum(v.total_cash_invested for v in valuations)),
        total_annual_cash_flow=round_money(sum(v.cash_flow.annual_cash_flow for v in valuations)),
        average_cap_rate=rounded_positive_mean(v.cap_rate.cap_rate for v in valuations),
        average_cash_on_cash_return=rounded_positive_mean(
            v.returns.cash_on_cash_return for v in valuations
        ),
        deals=valuations,
    )
