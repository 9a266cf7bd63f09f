"""Observable, persisted application state store.

The store owns one state dict of the shape::

    {company, periods, forecast, current_period_index, initialized}

Readers always receive a deep copy. Writers go through set_state() or the
period helpers, which shallow-merge top-level keys, persist, and notify
subscribers synchronously with one shared snapshot.

Work that must run after the triggering mutation has settled is queued with
defer(); the outermost mutation drains the queue once its own notification
has finished.
"""

from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from copy import deepcopy
from numbers import Integral
from typing import Any, Callable

import finmodel.persistence as persistence
from finmodel.defaults import initialize_options
from finmodel.errors import IndexOutOfRange, InvalidArgument
from finmodel.models import create_company, create_forecast, create_periods
from finmodel.runtime_logging import append_runtime_event
from finmodel.schema import STATE_KEY, empty_state, migrate_state_payload


Subscriber = Callable[[dict], Any]


def _is_int(value: Any) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)


class StateStore:
    def __init__(self, state_key: str = STATE_KEY):
        self.state_key = state_key
        self._state: dict = empty_state()
        self._subscribers: list[Subscriber] = []
        self._pending: deque[Callable[[], Any]] = deque()
        self._depth = 0
        self._draining = False

    # Reads

    def get_state(self) -> dict:
        return deepcopy(self._state)

    def get_current_period(self) -> dict | None:
        periods = self._state["periods"]
        if not periods:
            return None
        idx = self._state["current_period_index"]
        if not 0 <= idx < len(periods):
            return None
        return deepcopy(periods[idx])

    @property
    def period_count(self) -> int:
        return len(self._state["periods"])

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def depth(self) -> int:
        """Nesting level of the mutation in progress; 0 outside any write."""
        return self._depth

    # Subscriptions and the deferred queue

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback`; the returned closure unsubscribes it once."""
        if not callable(callback):
            raise InvalidArgument("Callback must be callable.")
        self._subscribers.append(callback)
        active = True

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            for idx, registered in enumerate(self._subscribers):
                if registered is callback:
                    del self._subscribers[idx]
                    break

        return unsubscribe

    def _notify_subscribers(self) -> None:
        snapshot = self.get_state()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as exc:
                append_runtime_event(
                    "ERROR",
                    "subscriber_callback_failed",
                    "Error in subscriber callback.",
                    {"callback": getattr(callback, "__qualname__", repr(callback))},
                    exc=exc,
                )

    def defer(self, task: Callable[[], Any]) -> None:
        """Queue `task` to run after the current mutation and its notifications finish."""
        if not callable(task):
            raise InvalidArgument("Deferred task must be callable.")
        self._pending.append(task)
        if self._depth == 0:
            self.run_pending()

    def run_pending(self) -> None:
        if self._draining:
            return
        self._draining = True
        try:
            while self._pending:
                task = self._pending.popleft()
                try:
                    task()
                except Exception as exc:
                    append_runtime_event(
                        "ERROR",
                        "deferred_task_failed",
                        "Deferred task raised; continuing with the queue.",
                        {"task": getattr(task, "__qualname__", repr(task))},
                        exc=exc,
                    )
        finally:
            self._draining = False

    @contextmanager
    def batch(self):
        """Group several writes so deferred tasks drain once, after the last one."""
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
        if self._depth == 0:
            self.run_pending()

    # Writes

    def set_state(self, partial: dict, auto_save: bool = True) -> dict:
        """Shallow-merge `partial` into the state, persist, notify, and return a copy."""
        if not isinstance(partial, dict):
            raise InvalidArgument("Partial state must be a dict.")
        with self.batch():
            self._state = {**self._state, **deepcopy(partial)}
            if auto_save and not self.save_state():
                append_runtime_event("WARNING", "state_autosave_failed", "Failed to auto-save state.", {"key": self.state_key})
            self._notify_subscribers()
        return self.get_state()

    def initialize(
        self,
        start_year: int | None = None,
        start_month: int | None = None,
        num_periods: int | None = None,
        force_new: bool | None = None,
    ) -> dict:
        """Restore the persisted state, or build a fresh one when none is usable."""
        options = initialize_options(
            start_year=start_year, start_month=start_month, num_periods=num_periods, force_new=force_new
        )
        if not _is_int(options["start_year"]):
            raise InvalidArgument(f"start_year must be an integer, got {options['start_year']!r}.")
        if not _is_int(options["start_month"]) or not 1 <= options["start_month"] <= 12:
            raise InvalidArgument(f"start_month must be an integer in [1,12], got {options['start_month']!r}.")
        if not _is_int(options["num_periods"]) or options["num_periods"] < 0:
            raise InvalidArgument(f"num_periods must be a non-negative integer, got {options['num_periods']!r}.")

        if not options["force_new"] and self.load_state():
            append_runtime_event("INFO", "state_restored", "State restored from storage.", {"key": self.state_key})
            return self.get_state()

        periods = create_periods(options["start_year"], options["start_month"], options["num_periods"])
        with self.batch():
            self._state = {
                "company": create_company(),
                "periods": periods,
                "forecast": create_forecast(),
                "current_period_index": 0,
                "initialized": True,
            }
            self.save_state()
            append_runtime_event(
                "INFO",
                "state_created",
                "Created new state.",
                {
                    "start_year": options["start_year"],
                    "start_month": options["start_month"],
                    "num_periods": options["num_periods"],
                },
            )
            self._notify_subscribers()
        return self.get_state()

    def update_company(self, company: dict) -> dict:
        return self.set_state({"company": company})

    def update_forecast(self, forecast: dict) -> dict:
        return self.set_state({"forecast": forecast})

    def _check_index(self, index: Any) -> None:
        if not _is_int(index):
            raise InvalidArgument(f"Period index must be an integer, got {index!r}.")
        length = len(self._state["periods"])
        if index < 0 or index >= length:
            raise IndexOutOfRange(index, length)

    def update_period(self, index: int, period_data: dict) -> dict:
        """Shallow-merge `period_data` into the period at `index`."""
        self._check_index(index)
        if not isinstance(period_data, dict):
            raise InvalidArgument("Period data must be a dict.")
        periods = list(self._state["periods"])
        periods[index] = {**periods[index], **period_data}
        return self.set_state({"periods": periods})

    def set_current_period(self, index: int) -> dict:
        self._check_index(index)
        return self.set_state({"current_period_index": int(index)})

    def add_period(self, period: dict) -> dict:
        if not isinstance(period, dict):
            raise InvalidArgument("Period must be a dict.")
        return self.set_state({"periods": [*self._state["periods"], period]})

    def remove_period(self, index: int) -> dict:
        """Drop the period at `index` and keep current_period_index in range."""
        self._check_index(index)
        periods = [p for i, p in enumerate(self._state["periods"]) if i != index]
        current = self._state["current_period_index"]
        if current >= len(periods):
            current = max(0, len(periods) - 1)
        return self.set_state({"periods": periods, "current_period_index": current})

    # Persistence

    def save_state(self) -> bool:
        return persistence.save(self.state_key, self._state)

    def load_state(self) -> bool:
        """Replace the state with the persisted blob if it was saved initialized."""
        saved = persistence.load(self.state_key)
        if not isinstance(saved, dict) or not saved.get("initialized"):
            return False
        restored, warnings = migrate_state_payload(saved)
        for warning in warnings:
            append_runtime_event("WARNING", "state_restore_warning", warning, {"key": self.state_key})
        with self.batch():
            self._state = restored
            self._notify_subscribers()
        return True

    def reset_state(self) -> bool:
        with self.batch():
            self._state = empty_state()
            self.save_state()
            self._notify_subscribers()
        return True
