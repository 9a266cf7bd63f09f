"""Pure P/L, B/S, and C/F statement calculations.

Every function here is total: missing sections, missing fields, and
non-numeric values count as 0, and nothing raises. Ratios whose
denominator is zero return None rather than 0. No rounding is applied.
"""

from __future__ import annotations

import math
from numbers import Real
from typing import Any


BALANCE_TOLERANCE = 0.01


def _section(record: Any, key: str) -> dict:
    if isinstance(record, dict):
        value = record.get(key)
        if isinstance(value, dict):
            return value
    return {}


def _num(record: Any, key: str) -> float:
    if not isinstance(record, dict):
        return 0.0
    value = record.get(key)
    if isinstance(value, bool) or not isinstance(value, Real):
        return 0.0
    value = float(value)
    return 0.0 if math.isnan(value) else value


def _ratio_pct(numerator: float, denominator: float) -> float | None:
    if not denominator:
        return None
    return numerator / denominator * 100


# P/L


def gross_profit(revenue: float, cogs: float) -> float:
    return revenue - cogs


def sga_total(sga_expenses: Any) -> float:
    if not isinstance(sga_expenses, dict):
        return 0.0
    return sum(_num(sga_expenses, key) for key in sga_expenses)


def operating_profit(revenue: float, cogs: float, sga_expenses: Any) -> float:
    return gross_profit(revenue, cogs) - sga_total(sga_expenses)


def ordinary_profit(operating: float, non_operating_income: float, non_operating_expense: float) -> float:
    return operating + non_operating_income - non_operating_expense


def net_profit(ordinary: float, tax: float) -> float:
    return ordinary - tax


def profit_margins(pl: Any) -> dict:
    """Profit margins in percent of revenue; None for every margin when revenue is 0."""
    results = _pl_figures(pl)
    revenue = _num(pl, "revenue")
    return {
        "gross_profit_margin": _ratio_pct(results["gross_profit"], revenue),
        "operating_profit_margin": _ratio_pct(results["operating_profit"], revenue),
        "ordinary_profit_margin": _ratio_pct(results["ordinary_profit"], revenue),
        "net_profit_margin": _ratio_pct(results["net_profit"], revenue),
    }


def _pl_figures(pl: Any) -> dict:
    revenue = _num(pl, "revenue")
    cogs = _num(pl, "cogs")
    non_operating = _section(pl, "non_operating")
    gross = gross_profit(revenue, cogs)
    sga = sga_total(_section(pl, "sga_expenses"))
    operating = gross - sga
    ordinary = ordinary_profit(operating, _num(non_operating, "income"), _num(non_operating, "expense"))
    return {
        "gross_profit": gross,
        "sga_total": sga,
        "operating_profit": operating,
        "ordinary_profit": ordinary,
        "net_profit": net_profit(ordinary, _num(pl, "tax")),
    }


def pl_results(pl: Any) -> dict:
    results = _pl_figures(pl)
    results["margins"] = profit_margins(pl)
    return results


# B/S


def current_assets(assets: Any) -> float:
    current = _section(assets, "current")
    return _num(current, "cash") + _num(current, "receivables") + _num(current, "inventory")


def fixed_assets(assets: Any) -> float:
    fixed = _section(assets, "fixed")
    return _num(fixed, "tangible") + _num(fixed, "intangible")


def total_assets(assets: Any) -> float:
    return current_assets(assets) + fixed_assets(assets)


def current_liabilities(liabilities: Any) -> float:
    current = _section(liabilities, "current")
    return _num(current, "payables") + _num(current, "short_term_debt")


def fixed_liabilities(liabilities: Any) -> float:
    return _num(_section(liabilities, "fixed"), "long_term_debt")


def total_liabilities(liabilities: Any) -> float:
    return current_liabilities(liabilities) + fixed_liabilities(liabilities)


def total_equity(equity: Any) -> float:
    return _num(equity, "capital") + _num(equity, "retained_earnings")


def bs_aggregates(assets: Any, liabilities: Any, equity: Any) -> dict:
    """Totals plus the Assets = Liabilities + Equity check (tolerance 0.01)."""
    assets_total = total_assets(assets)
    liabilities_total = total_liabilities(liabilities)
    equity_total = total_equity(equity)
    difference = assets_total - (liabilities_total + equity_total)
    return {
        "total_assets": assets_total,
        "total_liabilities": liabilities_total,
        "total_equity": equity_total,
        "balanced": abs(difference) < BALANCE_TOLERANCE,
        "difference": difference,
    }


def check_balance(bs: Any) -> dict:
    return bs_aggregates(_section(bs, "assets"), _section(bs, "liabilities"), _section(bs, "equity"))


# C/F


def operating_cf(operating: Any) -> float:
    return (
        _num(operating, "profit_before_tax")
        + _num(operating, "depreciation")
        - _num(operating, "receivables_change")
        - _num(operating, "inventory_change")
        + _num(operating, "payables_change")
    )


def investing_cf(investing: Any) -> float:
    return (
        -_num(investing, "tangible_acquisition")
        + _num(investing, "tangible_disposal")
        - _num(investing, "intangible_acquisition")
    )


def financing_cf(financing: Any) -> float:
    return (
        _num(financing, "short_term_debt_change")
        + _num(financing, "long_term_borrowing")
        - _num(financing, "long_term_repayment")
        - _num(financing, "dividend_paid")
    )


def net_cash_flow(operating: float, investing: float, financing: float) -> float:
    return operating + investing + financing


def ending_cash(beginning_cash: float, net_flow: float) -> float:
    return beginning_cash + net_flow


def free_cash_flow(operating: float, investing: float) -> float:
    return operating + investing


def cf_aggregates(cf: Any) -> dict:
    operating = operating_cf(_section(cf, "operating"))
    investing = investing_cf(_section(cf, "investing"))
    financing = financing_cf(_section(cf, "financing"))
    net_flow = net_cash_flow(operating, investing, financing)
    return {
        "operating_cf": operating,
        "investing_cf": investing,
        "financing_cf": financing,
        "net_cash_flow": net_flow,
        "ending_cash": ending_cash(_num(cf, "beginning_cash"), net_flow),
        "free_cash_flow": free_cash_flow(operating, investing),
    }
