from __future__ import annotations

import numpy as np
import pytest

import finmodel.persistence as persistence
import finmodel.runtime_logging as runtime_logging
from finmodel.errors import IndexOutOfRange, InvalidArgument
from finmodel.models import create_period
from finmodel.schema import STATE_KEY
from finmodel.state import StateStore


def test_initialize_builds_monthly_periods_with_rollover():
    store = StateStore()
    state = store.initialize(start_year=2025, start_month=11, num_periods=3, force_new=True)
    assert [(p["year"], p["month"]) for p in state["periods"]] == [(2025, 11), (2025, 12), (2026, 1)]
    assert state["current_period_index"] == 0
    assert state["initialized"] is True
    assert state["company"]["currency"] == "JPY"
    assert state["forecast"]["scenario"] == "standard"
    assert persistence.load(STATE_KEY)["initialized"] is True


def test_initialize_defaults_to_twelve_periods_from_january():
    state = StateStore().initialize(force_new=True)
    assert len(state["periods"]) == 12
    assert state["periods"][0]["month"] == 1
    assert state["periods"][-1]["month"] == 12


@pytest.mark.parametrize(
    "options",
    [{"start_month": 13}, {"start_month": 0}, {"num_periods": -1}, {"start_year": "2025"}, {"num_periods": 2.5}],
)
def test_initialize_rejects_malformed_options(options):
    with pytest.raises(InvalidArgument):
        StateStore().initialize(force_new=True, **options)


def test_initialize_restores_persisted_state(store):
    store.set_current_period(2)
    other = StateStore()
    state = other.initialize(start_year=2030, num_periods=1)
    assert len(state["periods"]) == 3
    assert state["periods"][0]["year"] == 2025
    assert state["current_period_index"] == 2
    assert runtime_logging.read_runtime_events(event="state_restored")


def test_initialize_force_new_ignores_persisted_state(store):
    state = StateStore().initialize(start_year=2030, num_periods=1, force_new=True)
    assert [(p["year"], p["month"]) for p in state["periods"]] == [(2030, 1)]


def test_get_state_returns_independent_copies(store):
    first = store.get_state()
    second = store.get_state()
    assert first == second
    assert first is not second
    assert first["periods"][0] is not second["periods"][0]

    first["periods"][0]["pl"]["revenue"] = 999
    first["periods"].clear()
    assert second["periods"][0]["pl"]["revenue"] == 0
    assert store.get_state()["periods"][0]["pl"]["revenue"] == 0
    assert len(store.get_state()["periods"]) == 3


def test_set_state_shallow_merges_and_replaces_nested_values(store):
    result = store.set_state({"company": {"name": "Acme"}})
    assert result["company"] == {"name": "Acme"}
    assert result["periods"] == store.get_state()["periods"]
    assert persistence.load(STATE_KEY)["company"] == {"name": "Acme"}


def test_set_state_does_not_alias_caller_objects(store):
    company = {"name": "Acme", "fiscal_year_start": "04", "currency": "JPY"}
    store.set_state({"company": company})
    company["name"] = "Changed"
    assert store.get_state()["company"]["name"] == "Acme"


def test_set_state_without_auto_save_keeps_persisted_copy(store):
    store.set_state({"current_period_index": 1}, auto_save=False)
    assert store.get_state()["current_period_index"] == 1
    assert persistence.load(STATE_KEY)["current_period_index"] == 0


def test_set_state_rejects_non_dict(store):
    with pytest.raises(InvalidArgument):
        store.set_state(["periods"])


def test_autosave_failure_is_logged_and_state_still_updates(store, monkeypatch):
    monkeypatch.setattr(persistence, "save", lambda key, value: False)
    seen = []
    store.subscribe(seen.append)
    store.set_state({"current_period_index": 2})
    assert store.get_state()["current_period_index"] == 2
    assert len(seen) == 1
    assert runtime_logging.read_runtime_events(event="state_autosave_failed")


def test_subscriber_lifecycle(store):
    received = []
    before = store.subscriber_count()
    unsubscribe = store.subscribe(received.append)
    assert store.subscriber_count() == before + 1

    store.set_current_period(1)
    assert len(received) == 1
    assert received[0]["current_period_index"] == 1

    unsubscribe()
    assert store.subscriber_count() == before
    unsubscribe()
    assert store.subscriber_count() == before

    store.set_current_period(2)
    assert len(received) == 1


def test_unsubscribe_removes_only_its_own_registration(store):
    received = []
    first = store.subscribe(received.append)
    store.subscribe(received.append)
    first()
    first()
    assert store.subscriber_count() == 1
    store.set_current_period(1)
    assert len(received) == 1


def test_subscribe_rejects_non_callable(store):
    with pytest.raises(InvalidArgument):
        store.subscribe("not callable")


def test_subscribers_share_one_snapshot_and_survive_failures(store):
    snapshots = []

    def failing(state):
        snapshots.append(state)
        raise RuntimeError("subscriber exploded")

    store.subscribe(failing)
    store.subscribe(snapshots.append)
    store.set_current_period(1)

    assert len(snapshots) == 2
    assert snapshots[0] is snapshots[1]
    events = runtime_logging.read_runtime_events(event="subscriber_callback_failed")
    assert len(events) == 1
    assert events[0]["exception_message"] == "subscriber exploded"


def test_subscribers_are_notified_by_initialize_reset_and_load(store):
    received = []
    store.subscribe(received.append)
    store.initialize(start_year=2026, num_periods=2, force_new=True)
    assert store.load_state()
    store.reset_state()
    assert len(received) == 3
    assert received[-1]["initialized"] is False


@pytest.mark.parametrize("index", [-1, 3, 10])
def test_index_operations_raise_out_of_range(store, index):
    with pytest.raises(IndexOutOfRange) as excinfo:
        store.update_period(index, {"year": 2030})
    assert excinfo.value.index == index
    assert excinfo.value.length == 3
    with pytest.raises(IndexOutOfRange):
        store.set_current_period(index)
    with pytest.raises(IndexOutOfRange):
        store.remove_period(index)


def test_index_operations_reject_non_integer_index(store):
    with pytest.raises(InvalidArgument):
        store.update_period("0", {})
    with pytest.raises(InvalidArgument):
        store.set_current_period(True)


def test_update_period_shallow_merges_period_keys(store):
    bs = store.get_state()["periods"][1]["bs"]
    bs["equity"]["capital"] = 500
    store.update_period(1, {"bs": bs})
    period = store.get_state()["periods"][1]
    assert period["bs"]["equity"]["capital"] == 500
    assert (period["year"], period["month"]) == (2025, 2)
    assert period["pl"]["revenue"] == 0


def test_remove_period_shifts_indices(store):
    store.update_period(2, {"year": 2099})
    store.remove_period(1)
    periods = store.get_state()["periods"]
    assert len(periods) == 2
    assert periods[1]["year"] == 2099


def test_remove_last_period_clamps_current_index(store):
    store.set_current_period(2)
    state = store.remove_period(2)
    assert state["current_period_index"] == 1

    store.remove_period(1)
    state = store.remove_period(0)
    assert state["periods"] == []
    assert state["current_period_index"] == 0


def test_add_period_appends(store):
    state = store.add_period(create_period(2025, 4))
    assert len(state["periods"]) == 4
    assert state["periods"][-1]["month"] == 4
    with pytest.raises(InvalidArgument):
        store.add_period(None)


def test_get_current_period(store):
    store.set_current_period(1)
    current = store.get_current_period()
    assert current["month"] == 2
    current["month"] = 9
    assert store.get_current_period()["month"] == 2
    store.reset_state()
    assert store.get_current_period() is None


def test_update_company_and_forecast(store):
    store.update_company({"name": "Acme", "fiscal_year_start": "01", "currency": "USD"})
    store.update_forecast({"revenue_growth_rate": 3.0, "scenario": "optimistic", "assumptions": {}})
    state = store.get_state()
    assert state["company"]["currency"] == "USD"
    assert state["forecast"]["scenario"] == "optimistic"


def test_load_state_requires_initialized_blob(store):
    store.reset_state()
    assert persistence.load(STATE_KEY)["initialized"] is False

    other = StateStore()
    other.initialize(start_year=2040, num_periods=1, force_new=True)
    persistence.save(STATE_KEY, {"initialized": False, "periods": []})
    assert other.load_state() is False
    assert other.get_state()["periods"][0]["year"] == 2040


def test_load_state_without_blob_leaves_state_untouched():
    store = StateStore()
    assert store.load_state() is False
    assert store.get_state()["initialized"] is False


def test_load_state_normalizes_and_logs_warnings():
    persistence.save(
        STATE_KEY,
        {"initialized": True, "periods": [{"year": 2025, "month": 5, "pl": {"revenue": 10}}], "current_period_index": 4},
    )
    store = StateStore()
    assert store.load_state()
    state = store.get_state()
    assert state["periods"][0]["bs"]["assets"]["current"]["cash"] == 0
    assert state["current_period_index"] == 0
    assert runtime_logging.read_runtime_events(event="state_restore_warning")


def test_manual_save_state(store):
    store.set_state({"current_period_index": 1}, auto_save=False)
    assert store.save_state()
    assert persistence.load(STATE_KEY)["current_period_index"] == 1


def test_reset_state_persists_empty_state(store):
    assert store.reset_state() is True
    state = store.get_state()
    assert state == {
        "company": None,
        "periods": [],
        "forecast": None,
        "current_period_index": 0,
        "initialized": False,
    }
    assert persistence.load(STATE_KEY) == state


def test_deferred_tasks_run_after_all_subscribers(store):
    order = []

    def first(state):
        order.append("first")
        store.defer(lambda: order.append("deferred"))

    store.subscribe(first)
    store.subscribe(lambda state: order.append("second"))
    store.set_current_period(1)
    assert order == ["first", "second", "deferred"]


def test_deferred_task_failure_does_not_stop_the_queue(store):
    ran = []

    def broken():
        raise ValueError("bad task")

    with store.batch():
        store.defer(broken)
        store.defer(lambda: ran.append(True))
        assert ran == []
    assert ran == [True]
    assert runtime_logging.read_runtime_events(event="deferred_task_failed")


def test_defer_outside_mutation_runs_immediately(store):
    ran = []
    store.defer(lambda: ran.append(1))
    assert ran == [1]
    with pytest.raises(InvalidArgument):
        store.defer(None)


def test_index_operations_accept_numpy_integers(store):
    store.update_period(np.int64(1), {"year": 2030})
    state = store.set_current_period(np.int64(2))
    assert state["periods"][1]["year"] == 2030
    assert state["current_period_index"] == 2
    assert type(state["current_period_index"]) is int
    assert persistence.load(STATE_KEY)["current_period_index"] == 2
    store.remove_period(np.int64(0))
    assert store.period_count == 2


def test_depth_tracks_nested_writes(store):
    depths = []
    store.subscribe(lambda state: depths.append(store.depth))
    assert store.depth == 0
    with store.batch():
        store.set_current_period(1)
    assert depths == [2]
    assert store.depth == 0
