"""Record factories and structural validators for periods, company, and forecast."""

from __future__ import annotations

import re
from copy import deepcopy
from datetime import datetime
from numbers import Integral, Real
from typing import Any

from finmodel.defaults import COMPANY_DEFAULTS, FORECAST_DEFAULTS
from finmodel.errors import InvalidArgument


SCENARIO_OPTIMISTIC = "optimistic"
SCENARIO_STANDARD = "standard"
SCENARIO_PESSIMISTIC = "pessimistic"
SCENARIO_TYPES = (SCENARIO_OPTIMISTIC, SCENARIO_STANDARD, SCENARIO_PESSIMISTIC)

_SCENARIO_MULTIPLIERS = {
    SCENARIO_OPTIMISTIC: 1.2,
    SCENARIO_STANDARD: 1.0,
    SCENARIO_PESSIMISTIC: 0.8,
}

_FISCAL_MONTH_RE = re.compile(r"^(0[1-9]|1[0-2])$")

SGA_FIELDS = ("personnel", "rent", "utilities", "marketing", "other")


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)


def create_pl() -> dict:
    return {
        "revenue": 0.0,
        "cogs": 0.0,
        "sga_expenses": {field: 0.0 for field in SGA_FIELDS},
        "non_operating": {"income": 0.0, "expense": 0.0},
        "tax": 0.0,
    }


def create_bs() -> dict:
    return {
        "assets": {
            "current": {"cash": 0.0, "receivables": 0.0, "inventory": 0.0},
            "fixed": {"tangible": 0.0, "intangible": 0.0},
        },
        "liabilities": {
            "current": {"payables": 0.0, "short_term_debt": 0.0},
            "fixed": {"long_term_debt": 0.0},
        },
        "equity": {"capital": 0.0, "retained_earnings": 0.0},
    }


def create_cf() -> dict:
    return {
        "operating": {
            "profit_before_tax": 0.0,
            "depreciation": 0.0,
            "receivables_change": 0.0,
            "inventory_change": 0.0,
            "payables_change": 0.0,
        },
        "investing": {
            "tangible_acquisition": 0.0,
            "tangible_disposal": 0.0,
            "intangible_acquisition": 0.0,
        },
        "financing": {
            "short_term_debt_change": 0.0,
            "long_term_borrowing": 0.0,
            "long_term_repayment": 0.0,
            "dividend_paid": 0.0,
        },
        "beginning_cash": 0.0,
    }


def create_period(year: int | None = None, month: int | None = None) -> dict:
    """Return a zero-valued period record for (year, month)."""
    year = datetime.now().year if year is None else year
    month = 1 if month is None else month
    if not _is_int(year):
        raise InvalidArgument(f"Period year must be an integer, got {year!r}.")
    if not _is_int(month) or not 1 <= month <= 12:
        raise InvalidArgument(f"Period month must be an integer in [1,12], got {month!r}.")
    return {"year": int(year), "month": int(month), "pl": create_pl(), "bs": create_bs(), "cf": create_cf()}


def next_month(year: int, month: int) -> tuple[int, int]:
    month += 1
    if month > 12:
        return year + 1, 1
    return year, month


def create_periods(start_year: int, start_month: int, count: int = 12) -> list[dict]:
    """Return `count` consecutive monthly periods starting at (start_year, start_month)."""
    if not _is_int(count) or count < 0:
        raise InvalidArgument(f"Period count must be a non-negative integer, got {count!r}.")
    periods = []
    year, month = start_year, start_month
    for _ in range(count):
        periods.append(create_period(year, month))
        year, month = next_month(year, month)
    return periods


def period_label(period: dict) -> str:
    return f"{int(period['year']):04d}-{int(period['month']):02d}"


def create_company() -> dict:
    return deepcopy(COMPANY_DEFAULTS)


def create_forecast() -> dict:
    return deepcopy(FORECAST_DEFAULTS)


def scenario_adjusted_rate(base_rate: float, scenario: str) -> float:
    """Scale a growth rate for the scenario; unknown scenarios are treated as standard."""
    return float(base_rate) * _SCENARIO_MULTIPLIERS.get(scenario, 1.0)


def validate_period(period: Any) -> bool:
    if not isinstance(period, dict):
        return False
    if not _is_int(period.get("year")) or not period["year"]:
        return False
    month = period.get("month")
    if not _is_int(month) or not 1 <= month <= 12:
        return False
    return all(isinstance(period.get(key), dict) for key in ("pl", "bs", "cf"))


def validate_company(company: Any) -> bool:
    if not isinstance(company, dict):
        return False
    if not isinstance(company.get("name"), str):
        return False
    fiscal = company.get("fiscal_year_start")
    if not isinstance(fiscal, str) or not _FISCAL_MONTH_RE.match(fiscal):
        return False
    currency = company.get("currency")
    return isinstance(currency, str) and bool(currency)


def validate_forecast(forecast: Any) -> bool:
    if not isinstance(forecast, dict):
        return False
    if not _is_number(forecast.get("revenue_growth_rate")):
        return False
    if forecast.get("scenario") not in SCENARIO_TYPES:
        return False
    return isinstance(forecast.get("assumptions"), dict)
