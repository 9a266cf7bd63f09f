"""Monthly P/L, B/S, and C/F forecast generation and scenario analysis.

Forecast records carry their derived figures (operating/ordinary profit and
net income on the P/L, section totals and ending cash on the C/F) alongside
the inputs. Working-capital changes on forecast C/F records are plain
increase-positive deltas; the statement calculators subtract them.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from finmodel.calculators import sga_total
from finmodel.defaults import FORECAST_DEFAULTS, SGA_SPLIT
from finmodel.metrics import period_frame
from finmodel.models import create_cf, next_month, scenario_adjusted_rate


SCENARIO_GROWTH_SPREAD = 5.0

YEARLY_FLOW_COLUMNS = ["Revenue", "Operating Profit", "Ordinary Profit", "Net Profit", "Operating CF", "Investing CF", "Financing CF"]
YEARLY_BALANCE_COLUMNS = ["Total Assets", "Total Liabilities", "Total Equity"]


def _get(record: Any, *path: str) -> float:
    for key in path:
        record = record.get(key) if isinstance(record, dict) else None
    if record is None or isinstance(record, bool):
        return 0.0
    try:
        return float(record)
    except (TypeError, ValueError):
        return 0.0


def forecast_revenue(base_revenue: float, growth_rate: float, periods: int) -> list[float]:
    """Revenue compounded at `growth_rate` percent for n = 1..periods."""
    if periods <= 0:
        return []
    n = np.arange(1, int(periods) + 1, dtype=float)
    return (float(base_revenue) * (1 + float(growth_rate) / 100) ** n).tolist()


def forecast_expenses(revenues: list[float], expense_ratios: dict) -> list[dict[str, float]]:
    cogs_rate = float(expense_ratios.get("cogs_rate", 0.0))
    sga_rate = float(expense_ratios.get("sga_rate", 0.0))
    return [{"cogs": r * cogs_rate / 100, "sga": r * sga_rate / 100} for r in revenues]


def calculate_forecast_params(history: list[dict]) -> dict[str, float]:
    """Estimate growth and cost ratios (percent) from historical periods."""
    tax_rate = float(FORECAST_DEFAULTS["assumptions"]["tax_rate"])
    if not history or len(history) < 2:
        return {"revenue_growth_rate": 0.0, "cogs_rate": 0.0, "sga_rate": 0.0, "tax_rate": tax_rate}

    last_revenue = _get(history[-1], "pl", "revenue")
    prev_revenue = _get(history[-2], "pl", "revenue")
    growth = (last_revenue / prev_revenue - 1) * 100 if prev_revenue > 0 else 0.0

    total_revenue = sum(_get(p, "pl", "revenue") for p in history)
    total_cogs = sum(_get(p, "pl", "cogs") for p in history)
    total_sga = sum(sga_total((p.get("pl") or {}).get("sga_expenses")) for p in history)
    cogs_rate = total_cogs / total_revenue * 100 if total_revenue > 0 else 0.0
    sga_rate = total_sga / total_revenue * 100 if total_revenue > 0 else 0.0

    return {
        "revenue_growth_rate": round(growth, 2),
        "cogs_rate": round(cogs_rate, 2),
        "sga_rate": round(sga_rate, 2),
        "tax_rate": tax_rate,
    }


def forecast_params_from_config(forecast: dict) -> dict[str, float]:
    """Flatten a stored forecast config into generator params, applying its scenario."""
    assumptions = forecast.get("assumptions") or {}
    defaults = FORECAST_DEFAULTS["assumptions"]
    return {
        "revenue_growth_rate": scenario_adjusted_rate(
            forecast.get("revenue_growth_rate", 0.0), forecast.get("scenario", "standard")
        ),
        "cogs_rate": float(assumptions.get("cogs_rate", defaults["cogs_rate"])),
        "sga_rate": float(assumptions.get("sga_rate", defaults["sga_rate"])),
        "tax_rate": float(assumptions.get("tax_rate", defaults["tax_rate"])),
    }


def generate_forecast_pl(base_pl: dict, params: dict, periods: int, start_year: int, start_month: int) -> list[dict]:
    revenues = forecast_revenue(_get(base_pl, "revenue"), params.get("revenue_growth_rate", 0.0), periods)
    non_operating = {
        "income": _get(base_pl, "non_operating", "income"),
        "expense": _get(base_pl, "non_operating", "expense"),
    }
    tax_rate = float(params.get("tax_rate", 0.0))

    out = []
    year, month = start_year, start_month
    for revenue, expenses in zip(revenues, forecast_expenses(revenues, params)):
        cogs = expenses["cogs"]
        sga = expenses["sga"]
        operating = revenue - cogs - sga
        ordinary = operating + non_operating["income"] - non_operating["expense"]
        tax = max(0.0, ordinary) * tax_rate / 100
        out.append(
            {
                "year": year,
                "month": month,
                "pl": {
                    "revenue": revenue,
                    "cogs": cogs,
                    "sga_expenses": {field: sga * share for field, share in SGA_SPLIT.items()},
                    "non_operating": dict(non_operating),
                    "tax": tax,
                    "operating_profit": operating,
                    "ordinary_profit": ordinary,
                    "net_income": ordinary - tax,
                },
            }
        )
        year, month = next_month(year, month)
    return out


def generate_forecast_bs(base_bs: dict, forecast_pl: list[dict]) -> list[dict]:
    """Scale working capital with revenue growth and accumulate retained earnings."""
    if not forecast_pl:
        return []
    retained = _get(base_bs, "equity", "retained_earnings")
    first_revenue = forecast_pl[0]["pl"]["revenue"]

    out = []
    for row in forecast_pl:
        retained += row["pl"]["net_income"]
        growth = row["pl"]["revenue"] / first_revenue if first_revenue > 0 else 1.0
        out.append(
            {
                "year": row["year"],
                "month": row["month"],
                "bs": {
                    "assets": {
                        "current": {
                            "cash": _get(base_bs, "assets", "current", "cash") * growth,
                            "receivables": _get(base_bs, "assets", "current", "receivables") * growth,
                            "inventory": _get(base_bs, "assets", "current", "inventory") * growth,
                        },
                        "fixed": {
                            "tangible": _get(base_bs, "assets", "fixed", "tangible"),
                            "intangible": _get(base_bs, "assets", "fixed", "intangible"),
                        },
                    },
                    "liabilities": {
                        "current": {
                            "payables": _get(base_bs, "liabilities", "current", "payables") * growth,
                            "short_term_debt": _get(base_bs, "liabilities", "current", "short_term_debt"),
                        },
                        "fixed": {"long_term_debt": _get(base_bs, "liabilities", "fixed", "long_term_debt")},
                    },
                    "equity": {
                        "capital": _get(base_bs, "equity", "capital"),
                        "retained_earnings": retained,
                    },
                },
            }
        )
    return out


def generate_forecast_cf(base_bs: dict, forecast_bs: list[dict], forecast_pl: list[dict]) -> list[dict]:
    """Operating cash flow from ordinary profit and working-capital deltas; no investing or financing."""
    out = []
    previous = base_bs or {}
    beginning = _get(base_bs, "assets", "current", "cash")
    for bs_row, pl_row in zip(forecast_bs, forecast_pl):
        bs = bs_row["bs"]
        ordinary = pl_row["pl"]["ordinary_profit"]
        receivables_change = _get(bs, "assets", "current", "receivables") - _get(previous, "assets", "current", "receivables")
        inventory_change = _get(bs, "assets", "current", "inventory") - _get(previous, "assets", "current", "inventory")
        payables_change = _get(bs, "liabilities", "current", "payables") - _get(previous, "liabilities", "current", "payables")
        operating = ordinary - receivables_change - inventory_change + payables_change
        ending = beginning + operating

        cf = create_cf()
        cf["operating"].update(
            {
                "profit_before_tax": ordinary,
                "receivables_change": receivables_change,
                "inventory_change": inventory_change,
                "payables_change": payables_change,
            }
        )
        cf.update(
            {
                "beginning_cash": beginning,
                "operating_cf": operating,
                "investing_cf": 0.0,
                "financing_cf": 0.0,
                "net_cash_change": operating,
                "ending_cash": ending,
            }
        )
        out.append({"year": bs_row["year"], "month": bs_row["month"], "cf": cf})
        previous = bs
        beginning = ending
    return out


def _scenario_data(base_period: dict, params: dict, periods: int, start_year: int, start_month: int) -> dict:
    pl_rows = generate_forecast_pl(base_period.get("pl") or {}, params, periods, start_year, start_month)
    bs_rows = generate_forecast_bs(base_period.get("bs") or {}, pl_rows)
    cf_rows = generate_forecast_cf(base_period.get("bs") or {}, bs_rows, pl_rows)
    return {
        "forecast": dict(params),
        "periods": [
            {"year": p["year"], "month": p["month"], "pl": p["pl"], "bs": b["bs"], "cf": c["cf"]}
            for p, b, c in zip(pl_rows, bs_rows, cf_rows)
        ],
    }


def generate_scenarios(base_period: dict, base_params: dict, years: int = 5) -> dict[str, dict]:
    """Optimistic, standard, and pessimistic monthly forecasts starting the month after `base_period`."""
    start_year, start_month = next_month(int(base_period["year"]), int(base_period["month"]))
    periods = int(years) * 12
    growth = float(base_params.get("revenue_growth_rate", 0.0))
    variants = {
        "optimistic": {**base_params, "revenue_growth_rate": growth + SCENARIO_GROWTH_SPREAD},
        "standard": dict(base_params),
        "pessimistic": {**base_params, "revenue_growth_rate": growth - SCENARIO_GROWTH_SPREAD},
    }
    return {
        name: _scenario_data(base_period, params, periods, start_year, start_month)
        for name, params in variants.items()
    }


def aggregate_to_yearly(periods: list[dict]) -> pd.DataFrame:
    """Sum flows per calendar year and take balances from the last month present."""
    df = period_frame(periods)
    if df.empty:
        return pd.DataFrame(columns=["Year", *YEARLY_FLOW_COLUMNS, *YEARLY_BALANCE_COLUMNS, "Months"])
    df = df.sort_values(["Year", "Month"], kind="stable")
    grouped = df.groupby("Year")
    yearly = grouped[YEARLY_FLOW_COLUMNS].sum()
    yearly[YEARLY_BALANCE_COLUMNS] = grouped[YEARLY_BALANCE_COLUMNS].last()
    yearly["Months"] = grouped.size()
    return yearly.reset_index()
