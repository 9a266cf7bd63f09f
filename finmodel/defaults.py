"""Default initialization options, company profile, and forecast assumptions."""

from __future__ import annotations

from datetime import datetime


DEFAULTS = {
    "start_month": 1,
    "num_periods": 12,
    "force_new": False,
}

COMPANY_DEFAULTS = {
    "name": "",
    "fiscal_year_start": "04",
    "currency": "JPY",
}

FORECAST_DEFAULTS = {
    "revenue_growth_rate": 0.0,
    "scenario": "standard",
    "assumptions": {
        "cogs_rate": 0.0,
        "sga_rate": 0.0,
        "tax_rate": 30.0,
        "cash_cycle": 30,
        "inventory_turnover": 6,
    },
}

# Share of forecast SG&A allocated to each expense line.
SGA_SPLIT = {
    "personnel": 0.5,
    "rent": 0.2,
    "utilities": 0.1,
    "marketing": 0.15,
    "other": 0.05,
}


def default_start_year() -> int:
    return datetime.now().year


def initialize_options(**overrides) -> dict:
    """Return initialize() options with defaults filled in."""
    options = dict(DEFAULTS)
    options["start_year"] = default_start_year()
    for key, value in overrides.items():
        if value is not None:
            options[key] = value
    return options
