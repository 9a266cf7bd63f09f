from __future__ import annotations

from pathlib import Path

import pytest

import finmodel.persistence as persistence
import finmodel.runtime_logging as runtime_logging
from finmodel.state import StateStore


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch) -> Path:
    monkeypatch.setattr(persistence, "STORE_DIR", Path(tmp_path))
    monkeypatch.setattr(persistence, "STORAGE_FILE", Path(tmp_path) / "storage.json")
    monkeypatch.setattr(runtime_logging, "LOG_DIR", Path(tmp_path))
    monkeypatch.setattr(runtime_logging, "RUNTIME_EVENTS_LOG_FILE", Path(tmp_path) / "runtime_events.jsonl")
    return Path(tmp_path)


@pytest.fixture
def store() -> StateStore:
    s = StateStore()
    s.initialize(start_year=2025, start_month=1, num_periods=3, force_new=True)
    return s


@pytest.fixture
def sample_pl() -> dict:
    return {
        "revenue": 1_000_000,
        "cogs": 400_000,
        "sga_expenses": {"personnel": 300_000, "rent": 100_000, "utilities": 0, "marketing": 0, "other": 0},
        "non_operating": {"income": 0, "expense": 0},
        "tax": 50_000,
    }


@pytest.fixture
def sample_bs() -> dict:
    return {
        "assets": {
            "current": {"cash": 1_000_000, "receivables": 500_000, "inventory": 300_000},
            "fixed": {"tangible": 2_000_000, "intangible": 500_000},
        },
        "liabilities": {
            "current": {"payables": 300_000, "short_term_debt": 200_000},
            "fixed": {"long_term_debt": 1_000_000},
        },
        "equity": {"capital": 2_000_000, "retained_earnings": 800_000},
    }
