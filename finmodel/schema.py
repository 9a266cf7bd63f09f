"""Persisted state schema constants and restore-time normalization."""

from __future__ import annotations

from copy import deepcopy
from datetime import datetime
from numbers import Real
from typing import Any

from finmodel.models import (
    create_company,
    create_forecast,
    create_period,
    next_month,
    validate_company,
    validate_forecast,
)


STORAGE_VERSION = "1.0.0"
STATE_KEY = "app_state"

MONTH_NAME_BY_NUM = {
    1: "January",
    2: "February",
    3: "March",
    4: "April",
    5: "May",
    6: "June",
    7: "July",
    8: "August",
    9: "September",
    10: "October",
    11: "November",
    12: "December",
}


def month_label(year: int, month: int) -> str:
    return f"{int(year):04d}-{int(month):02d}"


def month_name(month: int) -> str:
    return MONTH_NAME_BY_NUM[int(month)]


def empty_state() -> dict:
    return {
        "company": None,
        "periods": [],
        "forecast": None,
        "current_period_index": 0,
        "initialized": False,
    }


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _merge_record(defaults: dict, raw: Any, path: str, warnings: list[str]) -> dict:
    """Overlay numeric leaves of `raw` onto the factory `defaults` tree."""
    if not isinstance(raw, dict):
        warnings.append(f"{path} missing or not an object; reset to defaults.")
        return deepcopy(defaults)
    merged: dict = {}
    for key, default in defaults.items():
        child_path = f"{path}.{key}"
        if isinstance(default, dict):
            merged[key] = _merge_record(default, raw.get(key), child_path, warnings)
            continue
        value = raw.get(key)
        if value is None:
            merged[key] = default
        elif isinstance(value, Real) and not isinstance(value, bool):
            merged[key] = value
        else:
            warnings.append(f"{child_path} invalid and reset to 0.")
            merged[key] = default
    # Forecast generation attaches derived figures next to the inputs.
    for key, value in raw.items():
        if key not in merged:
            merged[key] = deepcopy(value)
    return merged


def _normalize_period(raw: dict, idx: int, previous: dict | None, warnings: list[str]) -> dict:
    year = _coerce_int(raw.get("year"))
    month = _coerce_int(raw.get("month"))
    if year is None or month is None:
        if previous is not None:
            year, month = next_month(previous["year"], previous["month"])
        else:
            year, month = datetime.now().year, 1
        warnings.append(f"periods[{idx}] year/month invalid; reset to {month_label(year, month)}.")
    elif not 1 <= month <= 12:
        month = min(12, max(1, month))
        warnings.append(f"periods[{idx}].month out of range; clamped to {month}.")
    template = create_period(year, month)
    period = {"year": year, "month": month}
    for section in ("pl", "bs", "cf"):
        period[section] = _merge_record(template[section], raw.get(section), f"periods[{idx}].{section}", warnings)
    return period


def migrate_state_payload(payload: Any) -> tuple[dict, list[str]]:
    """Normalize a restored state blob; returns (state, warnings)."""
    warnings: list[str] = []
    state = empty_state()
    if not isinstance(payload, dict):
        return state, ["Stored state is not a JSON object."]

    raw_periods = payload.get("periods") or []
    if not isinstance(raw_periods, list):
        warnings.append("periods ignored because it is not a list.")
        raw_periods = []
    periods: list[dict] = []
    for idx, item in enumerate(raw_periods):
        if not isinstance(item, dict):
            warnings.append(f"periods[{idx}] ignored because entry is not an object.")
            continue
        periods.append(_normalize_period(item, idx, periods[-1] if periods else None, warnings))
    state["periods"] = periods

    company = payload.get("company")
    if company is not None:
        merged = create_company()
        if isinstance(company, dict):
            merged.update(company)
        if not validate_company(merged):
            warnings.append("company invalid; reset to defaults.")
            merged = create_company()
        state["company"] = merged

    forecast = payload.get("forecast")
    if forecast is not None:
        merged = create_forecast()
        if isinstance(forecast, dict):
            assumptions = forecast.get("assumptions")
            merged.update({k: v for k, v in forecast.items() if k != "assumptions"})
            if isinstance(assumptions, dict):
                merged["assumptions"].update(assumptions)
        if not validate_forecast(merged):
            warnings.append("forecast invalid; reset to defaults.")
            merged = create_forecast()
        state["forecast"] = merged

    index = _coerce_int(payload.get("current_period_index"))
    if index is None:
        index = 0
    clamped = min(max(0, index), max(0, len(periods) - 1))
    if clamped != index:
        warnings.append(f"current_period_index {index} out of range; clamped to {clamped}.")
    state["current_period_index"] = clamped
    state["initialized"] = bool(payload.get("initialized", False))
    return state, warnings
