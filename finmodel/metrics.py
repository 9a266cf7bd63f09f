"""Financial ratios, ratings, and multi-period summary metrics."""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from finmodel.calculators import (
    bs_aggregates,
    cf_aggregates,
    current_assets,
    current_liabilities,
    fixed_assets,
    pl_results,
)
from finmodel.models import period_label


PERIOD_COLUMNS = [
    "Year",
    "Month",
    "Year_Month_Label",
    "Revenue",
    "COGS",
    "Gross Profit",
    "SG&A",
    "Operating Profit",
    "Ordinary Profit",
    "Tax",
    "Net Profit",
    "Cash",
    "Receivables",
    "Inventory",
    "Current Assets",
    "Fixed Assets",
    "Total Assets",
    "Payables",
    "Short-Term Debt",
    "Current Liabilities",
    "Total Liabilities",
    "Capital",
    "Retained Earnings",
    "Total Equity",
    "Balance Difference",
    "Balanced",
    "Beginning Cash",
    "Operating CF",
    "Investing CF",
    "Financing CF",
    "Net Cash Flow",
    "Ending Cash",
    "Free Cash Flow",
]

FLOW_COLUMNS = [
    "Revenue",
    "COGS",
    "Gross Profit",
    "SG&A",
    "Operating Profit",
    "Ordinary Profit",
    "Tax",
    "Net Profit",
    "Operating CF",
    "Investing CF",
    "Financing CF",
    "Net Cash Flow",
    "Free Cash Flow",
]

RATING_THRESHOLDS = {
    "gross_profit_margin": {"good": 30, "warning": 20},
    "operating_profit_margin": {"good": 10, "warning": 5},
    "ordinary_profit_margin": {"good": 10, "warning": 5},
    "net_profit_margin": {"good": 5, "warning": 2},
    "roe": {"good": 10, "warning": 5},
    "roa": {"good": 5, "warning": 2},
    "asset_turnover": {"good": 1.0, "warning": 0.5},
    "current_ratio": {"good": 200, "warning": 100},
    "quick_ratio": {"good": 100, "warning": 80},
    "equity_ratio": {"good": 50, "warning": 30},
    "debt_ratio": {"good": 0, "warning": 50, "reverse": True},
}


def _safe_div(a: float, b: float) -> float | None:
    return float(a / b) if b else None


def _safe_pct(a: float, b: float) -> float | None:
    value = _safe_div(a, b)
    return None if value is None else value * 100


def _get(record: Any, *path: str) -> float:
    for key in path:
        record = record.get(key) if isinstance(record, dict) else None
    try:
        return 0.0 if record is None or isinstance(record, bool) else float(record)
    except (TypeError, ValueError):
        return 0.0


def _period_row(period: dict) -> dict[str, Any]:
    pl = pl_results(period.get("pl"))
    bs = period.get("bs") or {}
    assets = bs.get("assets") or {}
    liabilities = bs.get("liabilities") or {}
    equity = bs.get("equity") or {}
    totals = bs_aggregates(assets, liabilities, equity)
    cf = cf_aggregates(period.get("cf"))
    return {
        "Year": int(period.get("year", 0)),
        "Month": int(period.get("month", 0)),
        "Year_Month_Label": period_label(period),
        "Revenue": _get(period, "pl", "revenue"),
        "COGS": _get(period, "pl", "cogs"),
        "Gross Profit": pl["gross_profit"],
        "SG&A": pl["sga_total"],
        "Operating Profit": pl["operating_profit"],
        "Ordinary Profit": pl["ordinary_profit"],
        "Tax": _get(period, "pl", "tax"),
        "Net Profit": pl["net_profit"],
        "Cash": _get(assets, "current", "cash"),
        "Receivables": _get(assets, "current", "receivables"),
        "Inventory": _get(assets, "current", "inventory"),
        "Current Assets": current_assets(assets),
        "Fixed Assets": fixed_assets(assets),
        "Total Assets": totals["total_assets"],
        "Payables": _get(liabilities, "current", "payables"),
        "Short-Term Debt": _get(liabilities, "current", "short_term_debt"),
        "Current Liabilities": current_liabilities(liabilities),
        "Total Liabilities": totals["total_liabilities"],
        "Capital": _get(equity, "capital"),
        "Retained Earnings": _get(equity, "retained_earnings"),
        "Total Equity": totals["total_equity"],
        "Balance Difference": totals["difference"],
        "Balanced": totals["balanced"],
        "Beginning Cash": _get(period, "cf", "beginning_cash"),
        "Operating CF": cf["operating_cf"],
        "Investing CF": cf["investing_cf"],
        "Financing CF": cf["financing_cf"],
        "Net Cash Flow": cf["net_cash_flow"],
        "Ending Cash": cf["ending_cash"],
        "Free Cash Flow": cf["free_cash_flow"],
    }


def period_frame(periods: list[dict]) -> pd.DataFrame:
    """One row per period with every derived P/L, B/S, and C/F figure."""
    rows = [_period_row(p) for p in periods]
    return pd.DataFrame(rows, columns=PERIOD_COLUMNS)


def compute_ratios(period: dict) -> dict:
    """Profitability, efficiency, and safety ratios for one period (None where undefined)."""
    pl = pl_results(period.get("pl"))
    bs = period.get("bs") or {}
    assets = bs.get("assets") or {}
    liabilities = bs.get("liabilities") or {}
    totals = bs_aggregates(assets, liabilities, bs.get("equity") or {})
    revenue = _get(period, "pl", "revenue")
    ca = current_assets(assets)
    cl = current_liabilities(liabilities)
    return {
        "profitability": {
            "gross_profit_margin": _safe_pct(pl["gross_profit"], revenue),
            "operating_profit_margin": _safe_pct(pl["operating_profit"], revenue),
            "ordinary_profit_margin": _safe_pct(pl["ordinary_profit"], revenue),
            "net_profit_margin": _safe_pct(pl["net_profit"], revenue),
        },
        "efficiency": {
            "roe": _safe_pct(pl["net_profit"], totals["total_equity"]),
            "roa": _safe_pct(pl["net_profit"], totals["total_assets"]),
            "asset_turnover": _safe_div(revenue, totals["total_assets"]),
        },
        "safety": {
            "current_ratio": _safe_pct(ca, cl),
            "quick_ratio": _safe_pct(ca - _get(assets, "current", "inventory"), cl),
            "equity_ratio": _safe_pct(totals["total_equity"], totals["total_assets"]),
            "debt_ratio": _safe_pct(totals["total_liabilities"], totals["total_assets"]),
        },
    }


def rating_level(ratio_type: str, value: float | None) -> str:
    if value is None:
        return "unknown"
    threshold = RATING_THRESHOLDS.get(ratio_type)
    if threshold is None:
        return "unknown"
    if threshold.get("reverse"):
        if value <= threshold["good"]:
            return "good"
        if value <= threshold["warning"]:
            return "warning"
        return "danger"
    if value >= threshold["good"]:
        return "good"
    if value >= threshold["warning"]:
        return "warning"
    return "danger"


def overall_assessment(ratios: dict) -> str:
    """Summarize five headline ratios into one sentence."""
    indicators = [
        ("gross_profit_margin", ratios.get("profitability", {}).get("gross_profit_margin")),
        ("operating_profit_margin", ratios.get("profitability", {}).get("operating_profit_margin")),
        ("roe", ratios.get("efficiency", {}).get("roe")),
        ("current_ratio", ratios.get("safety", {}).get("current_ratio")),
        ("equity_ratio", ratios.get("safety", {}).get("equity_ratio")),
    ]
    levels = {"good": 0, "warning": 0, "danger": 0, "unknown": 0}
    for ratio_type, value in indicators:
        levels[rating_level(ratio_type, value)] += 1

    if levels["unknown"] >= 3:
        return "Not enough data for an assessment. Enter financial statement data first."
    if levels["good"] >= 4:
        return "Financial position is very strong across profitability, efficiency, and safety."
    if levels["good"] >= 2 and levels["danger"] == 0:
        return "Financial position is generally sound with some room for improvement."
    if levels["danger"] >= 2:
        return "Financial position is a concern. Profitability and safety need attention."
    if levels["danger"] >= 1:
        return "Some indicators are weak. Consider corrective measures."
    return "Financial position is at a typical level. Keep monitoring."


def compute_metrics(periods: list[dict]) -> dict:
    df = period_frame(periods)
    if df.empty:
        return {
            "period_count": 0,
            "by_year": pd.DataFrame(columns=["Year", *FLOW_COLUMNS]),
            "latest_ratios": None,
            "gross_margin_full_period_avg": None,
            "minimum_ending_cash": None,
            "minimum_ending_cash_month": "",
            "negative_cash_months": 0,
            "unbalanced_periods": [],
        }

    by_year = df.groupby("Year", as_index=False)[FLOW_COLUMNS].sum()
    ending_cash = df["Ending Cash"].to_numpy(dtype=float)
    min_idx = int(np.argmin(ending_cash))

    return {
        "period_count": int(len(df)),
        "by_year": by_year,
        "latest_ratios": compute_ratios(periods[-1]),
        "gross_margin_full_period_avg": _safe_div(df["Gross Profit"].sum(), df["Revenue"].sum()),
        "minimum_ending_cash": float(ending_cash[min_idx]),
        "minimum_ending_cash_month": str(df.iloc[min_idx]["Year_Month_Label"]),
        "negative_cash_months": int((df["Ending Cash"] < 0).sum()),
        "unbalanced_periods": df.loc[~df["Balanced"].astype(bool), "Year_Month_Label"].tolist(),
    }
