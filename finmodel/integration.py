"""Cross-statement synchronization: P/L -> B/S -> C/F.

sync_pl_to_bs carries net profit into retained earnings on top of the
previous period's balance. sync_bs_to_cf derives working-capital and
short-term debt movements from consecutive balance sheets, sets the
beginning cash, and writes the resulting ending cash back into the balance
sheet of the same period.

Each period depends only on its immediate predecessor, so any full
recomputation must walk periods in ascending order. Both sync functions are
silent no-ops for an index that names no period.
"""

from __future__ import annotations

from numbers import Integral, Real
from typing import Any

from finmodel.calculators import cf_aggregates, pl_results
from finmodel.state import StateStore


def _value(record: Any, *path: str) -> float:
    for key in path:
        if not isinstance(record, dict):
            return 0.0
        record = record.get(key)
    if isinstance(record, bool) or not isinstance(record, Real):
        return 0.0
    return float(record)


def _section(record: Any, key: str) -> dict:
    value = record.get(key) if isinstance(record, dict) else None
    return value if isinstance(value, dict) else {}


def _period_pair(state: dict, period_index: Any) -> tuple[dict | None, dict | None]:
    periods = state.get("periods") or []
    if isinstance(period_index, bool) or not isinstance(period_index, Integral):
        return None, None
    if not 0 <= period_index < len(periods):
        return None, None
    previous = periods[period_index - 1] if period_index > 0 else None
    return periods[period_index], previous


def sync_pl_to_bs(store: StateStore, period_index: int) -> None:
    """Set retained earnings to the previous period's balance plus this period's net profit."""
    period, previous = _period_pair(store.get_state(), period_index)
    if period is None:
        return
    previous_retained = _value(previous, "bs", "equity", "retained_earnings") if previous else 0.0
    retained = previous_retained + pl_results(period.get("pl"))["net_profit"]

    bs = _section(period, "bs")
    updated_bs = {**bs, "equity": {**_section(bs, "equity"), "retained_earnings": retained}}
    store.update_period(period_index, {"bs": updated_bs})


def sync_bs_to_cf(store: StateStore, period_index: int) -> None:
    """Derive C/F movements from the B/S pair and force B/S cash to the C/F ending cash."""
    period, previous = _period_pair(store.get_state(), period_index)
    if period is None:
        return
    bs = _section(period, "bs")
    cf = _section(period, "cf")

    if previous is not None:
        prev_bs = _section(previous, "bs")
        # Asset increases consume cash; payables increases are kept increase-positive.
        receivables_change = -(
            _value(bs, "assets", "current", "receivables") - _value(prev_bs, "assets", "current", "receivables")
        )
        inventory_change = -(
            _value(bs, "assets", "current", "inventory") - _value(prev_bs, "assets", "current", "inventory")
        )
        payables_change = _value(bs, "liabilities", "current", "payables") - _value(
            prev_bs, "liabilities", "current", "payables"
        )
        short_term_debt_change = _value(bs, "liabilities", "current", "short_term_debt") - _value(
            prev_bs, "liabilities", "current", "short_term_debt"
        )
        beginning_cash = _value(prev_bs, "assets", "current", "cash")
    else:
        receivables_change = inventory_change = payables_change = short_term_debt_change = 0.0
        beginning_cash = 0.0

    updated_cf = {
        **cf,
        "operating": {
            **_section(cf, "operating"),
            # Ordinary profit stands in for profit before tax.
            "profit_before_tax": pl_results(period.get("pl"))["ordinary_profit"],
            "receivables_change": receivables_change,
            "inventory_change": inventory_change,
            "payables_change": payables_change,
        },
        "financing": {**_section(cf, "financing"), "short_term_debt_change": short_term_debt_change},
        "beginning_cash": beginning_cash,
    }
    ending = cf_aggregates(updated_cf)["ending_cash"]

    assets = _section(bs, "assets")
    updated_bs = {**bs, "assets": {**assets, "current": {**_section(assets, "current"), "cash": ending}}}
    store.update_period(period_index, {"bs": updated_bs, "cf": updated_cf})


def sync_all_periods(store: StateStore) -> None:
    """One ascending pass of P/L->B/S then B/S->C/F over every period."""
    with store.batch():
        for idx in range(store.period_count):
            sync_pl_to_bs(store, idx)
            sync_bs_to_cf(store, idx)


class IntegrationHandle:
    """Owns the auto-sync subscription on one store.

    Every change queues P/L->B/S for the period that was current when the
    notification arrived; that task queues B/S->C/F for the same period, so
    the second step only runs once the first write and its notifications
    have settled. Requests for a period that is already queued are merged.

    The notification delivered for the handle's own write is ignored. Writes
    that other subscribers make while that notification is being delivered
    are nested one level deeper in the store and are synced like any other
    change.
    """

    def __init__(self, store: StateStore):
        self.store = store
        self._own_depth: int | None = None
        self._pending: set[int] = set()
        self._unsubscribe = store.subscribe(self._on_change)

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def _on_change(self, state: dict) -> None:
        if not self.active:
            return
        if self._own_depth is not None and self.store.depth <= self._own_depth:
            return
        if not state.get("periods"):
            return
        index = state.get("current_period_index") or 0
        if index in self._pending:
            return
        self._pending.add(index)
        self.store.defer(lambda: self._run_pl_to_bs(index))

    def _run_pl_to_bs(self, index: int) -> None:
        self._pending.discard(index)
        if not self.active:
            return
        self._apply(sync_pl_to_bs, index)
        self.store.defer(lambda: self._run_bs_to_cf(index))

    def _run_bs_to_cf(self, index: int) -> None:
        if not self.active:
            return
        self._apply(sync_bs_to_cf, index)

    def _apply(self, sync, index: int) -> None:
        previous = self._own_depth
        # The sync's own set_state notifies one level deeper than the current depth.
        self._own_depth = self.store.depth + 1
        try:
            sync(self.store, index)
        finally:
            self._own_depth = previous

    def close(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        self._pending.clear()


def initialize_integration(store: StateStore, replace: IntegrationHandle | None = None) -> IntegrationHandle:
    """Start auto-sync on `store`, tearing down `replace` first when given."""
    if replace is not None:
        cleanup_integration(replace)
    return IntegrationHandle(store)


def cleanup_integration(handle: IntegrationHandle | None) -> None:
    if handle is not None:
        handle.close()
