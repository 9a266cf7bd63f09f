"""Cross-statement integrity checks over the period sequence."""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from finmodel.calculators import BALANCE_TOLERANCE
from finmodel.metrics import period_frame


def _finding(
    check: str,
    max_abs_delta: float,
    month: str,
    lhs_name: str,
    rhs_name: str,
) -> dict[str, Any]:
    return {
        "Check": check,
        "Max Abs Delta": float(max_abs_delta),
        "Month of Max Delta": month,
        "LHS": lhs_name,
        "RHS": rhs_name,
    }


def _month_of_max_delta(df: pd.DataFrame, delta: np.ndarray) -> str:
    if len(delta) == 0:
        return ""
    idx = int(np.argmax(np.abs(delta)))
    if "Year_Month_Label" in df.columns and idx < len(df):
        return str(df.iloc[idx]["Year_Month_Label"])
    return str(idx)


def _check_series_identity(
    findings: list[dict[str, Any]],
    df: pd.DataFrame,
    check_name: str,
    lhs_name: str,
    rhs_name: str,
    lhs: np.ndarray,
    rhs: np.ndarray,
    tol: float,
) -> None:
    delta = np.nan_to_num(np.asarray(lhs, dtype=float) - np.asarray(rhs, dtype=float), nan=0.0)
    if len(delta) == 0:
        return
    max_abs = float(np.max(np.abs(delta)))
    if max_abs > float(tol):
        findings.append(_finding(check_name, max_abs, _month_of_max_delta(df, delta), lhs_name, rhs_name))


def _lagged(values: np.ndarray) -> np.ndarray:
    """Previous-period values with 0 before the first period."""
    return np.concatenate(([0.0], values[:-1]))


def run_integrity_checks(periods: list[dict], tol: float = BALANCE_TOLERANCE) -> list[dict[str, Any]]:
    """Return integrity findings (empty list means all statements agree)."""
    df = period_frame(periods)
    if df.empty:
        return [{"Check": "No periods available", "Max Abs Delta": np.nan, "Month of Max Delta": "", "LHS": "", "RHS": ""}]

    findings: list[dict[str, Any]] = []

    _check_series_identity(
        findings,
        df,
        "Balance sheet identity",
        "Total Assets",
        "Total Liabilities + Total Equity",
        df["Total Assets"].to_numpy(),
        (df["Total Liabilities"] + df["Total Equity"]).to_numpy(),
        tol,
    )
    _check_series_identity(
        findings,
        df,
        "Cash reconciliation",
        "B/S Cash",
        "C/F Ending Cash",
        df["Cash"].to_numpy(),
        df["Ending Cash"].to_numpy(),
        tol,
    )
    retained = df["Retained Earnings"].to_numpy(dtype=float)
    _check_series_identity(
        findings,
        df,
        "Retained earnings roll-forward",
        "Retained Earnings",
        "Prior Retained Earnings + Net Profit",
        retained,
        _lagged(retained) + df["Net Profit"].to_numpy(dtype=float),
        tol,
    )
    _check_series_identity(
        findings,
        df,
        "Beginning cash roll-forward",
        "Beginning Cash",
        "Prior B/S Cash",
        df["Beginning Cash"].to_numpy(),
        _lagged(df["Cash"].to_numpy(dtype=float)),
        tol,
    )

    return findings
