# src/dealcore/domain/deal.py
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LoanType(str, Enum):
    CONVENTIONAL = "CONVENTIONAL"
    FHA = "FHA"
    VA = "VA"
    USDA = "USDA"
    HARD_MONEY = "HARD_MONEY"
    PRIVATE = "PRIVATE"
    CASH = "CASH"


class DealStatus(str, Enum):
    DRAFT = "DRAFT"
    UNDER_CONTRACT = "UNDER_CONTRACT"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = frozenset({DealStatus.CLOSED, DealStatus.UNDER_CONTRACT})


class PropertyType(str, Enum):
    SINGLE_FAMILY = "SINGLE_FAMILY"
    MULTI_FAMILY = "MULTI_FAMILY"
    CONDO = "CONDO"
    TOWNHOUSE = "TOWNHOUSE"
    COMMERCIAL = "COMMERCIAL"
    LAND = "LAND"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def _normalize_enum_name(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().upper().replace("-", "_").replace(" ", "_")
    return v


def coerce_optional_number(v: Any) -> float | None:
    """
    Accept numbers, numeric strings and percent/currency-like strings
    ("4.5%", "$1,200"). Anything unparseable or non-finite becomes None.
    """
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip().replace("%", "").replace("$", "").replace(",", "")
        if not v:
            return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f):
        return None
    return f


class Property(BaseModel):
    """
    Property record as handed over by the persistence collaborator.

    Only the valuation base (current value, else purchase price) and the
    grouping fields are used by the core.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(default_factory=_new_id)
    organization_id: str = ""

    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    property_type: PropertyType | None = None

    purchase_price: float | None = None
    current_value: float | None = None

    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("purchase_price", "current_value", mode="before")
    @classmethod
    def _numeric(cls, v: Any) -> float | None:
        return coerce_optional_number(v)

    @field_validator("property_type", mode="before")
    @classmethod
    def _unknown_type_is_none(cls, v: Any) -> Any:
        if v is None or isinstance(v, PropertyType):
            return v
        try:
            return PropertyType(_normalize_enum_name(v))
        except ValueError:
            return None

    def valuation_base(self) -> float:
        """Current value when known and positive, else purchase price, else 0."""
        if self.current_value and self.current_value > 0:
            return self.current_value
        return self.purchase_price or 0.0


_OPTIONAL_NUMERIC_FIELDS = (
    "closing_costs",
    "rehab_costs",
    "total_acquisition_cost",
    "loan_amount",
    "down_payment",
    "down_payment_percent",
    "interest_rate",
    "monthly_rental_income",
    "annual_rental_income",
    "monthly_expenses",
    "annual_expenses",
    "vacancy_rate",
    "property_management_rate",
    "insurance",
    "property_tax",
    "hoa_fees",
    "cap_ex_reserve",
    "annual_appreciation_rate",
    "annual_inflation_rate",
)


class Deal(BaseModel):
    """
    Raw deal inputs.

    Rates (interest, vacancy, management, appreciation, inflation) are
    percentages, e.g. 4.5 for 4.5%. Insurance, property tax, HOA fees and the
    capex reserve are monthly amounts. Loan term is in months.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(default_factory=_new_id)
    property_id: str = ""
    organization_id: str = ""

    # Purchase
    purchase_price: float
    purchase_date: date
    closing_costs: float | None = None
    rehab_costs: float | None = None
    total_acquisition_cost: float | None = None

    # Financing
    loan_type: LoanType
    loan_amount: float | None = None
    down_payment: float | None = None
    down_payment_percent: float | None = None
    interest_rate: float | None = None
    loan_term: int | None = None

    # Operating assumptions
    monthly_rental_income: float | None = None
    annual_rental_income: float | None = None
    monthly_expenses: float | None = None
    annual_expenses: float | None = None
    vacancy_rate: float | None = None
    property_management_rate: float | None = None
    insurance: float | None = None
    property_tax: float | None = None
    hoa_fees: float | None = None
    cap_ex_reserve: float | None = None
    annual_appreciation_rate: float | None = None
    annual_inflation_rate: float | None = None

    status: DealStatus = DealStatus.DRAFT
    notes: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    # Embedded property snapshot, when the collaborator joins it in.
    property_snapshot: Property | None = Field(default=None, alias="property")

    @field_validator(*_OPTIONAL_NUMERIC_FIELDS, mode="before")
    @classmethod
    def _numeric(cls, v: Any) -> float | None:
        return coerce_optional_number(v)

    @field_validator("purchase_price", mode="before")
    @classmethod
    def _required_numeric(cls, v: Any) -> Any:
        f = coerce_optional_number(v)
        # leave the raw value in place so pydantic reports a proper error
        return v if f is None else f

    @field_validator("loan_term", mode="before")
    @classmethod
    def _months(cls, v: Any) -> int | None:
        f = coerce_optional_number(v)
        if f is None:
            return None
        return int(round(f))

    @field_validator("loan_type", "status", mode="before")
    @classmethod
    def _enum_name(cls, v: Any) -> Any:
        return _normalize_enum_name(v)

    @field_validator("purchase_date", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    def cash_down_payment(self) -> float:
        """Absolute down payment, falling back to price x percent."""
        if self.down_payment:
            return self.down_payment
        if self.down_payment_percent:
            return self.purchase_price * self.down_payment_percent / 100.0
        return 0.0

    def acquisition_cost(self) -> float:
        return self.total_acquisition_cost or self.purchase_price

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class AggregationFilter(BaseModel):
    """
    Optional, AND-combined deal filter. A None criterion is not applied; an
    empty list matches nothing.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    property_ids: list[str] | None = None
    deal_ids: list[str] | None = None
    statuses: list[DealStatus] | None = Field(default=None, alias="status")
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("statuses", mode="before")
    @classmethod
    def _status_names(cls, v: Any) -> Any:
        if isinstance(v, (str, DealStatus)):
            v = [v]
        if isinstance(v, (list, tuple, set, frozenset)):
            return [_normalize_enum_name(s) for s in v]
        return v

    def matches(self, deal: Deal) -> bool:
        if self.property_ids is not None and deal.property_id not in self.property_ids:
            return False
        if self.deal_ids is not None and deal.id not in self.deal_ids:
            return False
        if self.statuses is not None and deal.status not in self.statuses:
            return False
        if self.start_date is not None and deal.purchase_date < self.start_date:
            return False
        if self.end_date is not None and deal.purchase_date > self.end_date:
            return False
        return True
