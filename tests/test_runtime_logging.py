from __future__ import annotations

from pathlib import Path

import finmodel.runtime_logging as runtime_logging


def test_runtime_logging_append_and_read():
    runtime_logging.append_runtime_event(
        level="warning",
        event="test_event",
        message="Test warning.",
        context={"case": "append_and_read", "tags": ("a", "b")},
    )
    events = runtime_logging.read_runtime_events(limit=10)
    assert len(events) == 1
    assert events[0]["event"] == "test_event"
    assert events[0]["level"] == "WARNING"
    assert events[0]["context"]["case"] == "append_and_read"
    assert events[0]["context"]["tags"] == ["a", "b"]


def test_runtime_logging_records_exception_details():
    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        runtime_logging.append_runtime_event("error", "failure", "It failed.", exc=exc)
    event = runtime_logging.read_runtime_events()[0]
    assert event["exception_type"] == "RuntimeError"
    assert event["exception_message"] == "boom"
    assert "RuntimeError: boom" in event["traceback"]


def test_runtime_logging_handles_malformed_lines(isolated_storage):
    log_file = Path(isolated_storage) / "runtime_events.jsonl"
    log_file.write_text(
        '{"event":"ok","level":"INFO","timestamp_utc":"2026-01-01T00:00:00+00:00","message":"ok","context":{}}\nnot-json\n',
        encoding="utf-8",
    )
    events = runtime_logging.read_runtime_events(limit=10)
    assert len(events) == 2
    assert events[0]["event"] == "ok"
    assert events[1]["event"] == "log_parse_error"


def test_read_runtime_events_filters_and_limits():
    for i in range(5):
        runtime_logging.append_runtime_event("info", "tick", f"tick {i}")
    runtime_logging.append_runtime_event("info", "tock", "tock")
    ticks = runtime_logging.read_runtime_events(limit=2, event="tick")
    assert [e["message"] for e in ticks] == ["tick 3", "tick 4"]
    assert runtime_logging.read_runtime_events(limit=0) == []


def test_append_never_raises_when_log_dir_is_unwritable(isolated_storage, monkeypatch):
    blocker = Path(isolated_storage) / "blocker"
    blocker.write_text("x", encoding="utf-8")
    monkeypatch.setattr(runtime_logging, "LOG_DIR", blocker / "logs")
    monkeypatch.setattr(runtime_logging, "RUNTIME_EVENTS_LOG_FILE", blocker / "logs" / "runtime_events.jsonl")
    runtime_logging.append_runtime_event("error", "lost", "Nowhere to write.")
    assert runtime_logging.read_runtime_events() == []


def test_global_exception_hook_records_and_chains(monkeypatch):
    chained = []
    monkeypatch.setattr(runtime_logging.sys, "excepthook", lambda *args: chained.append(args))
    monkeypatch.setattr(runtime_logging, "_EXCEPTION_HOOK_INSTALLED", False)

    runtime_logging.install_global_exception_logging()
    hook = runtime_logging.sys.excepthook
    runtime_logging.install_global_exception_logging()
    assert runtime_logging.sys.excepthook is hook

    try:
        raise KeyError("missing")
    except KeyError as exc:
        hook(type(exc), exc, exc.__traceback__)

    assert len(chained) == 1
    events = runtime_logging.read_runtime_events(event="uncaught_exception")
    assert len(events) == 1
    assert events[0]["exception_type"] == "KeyError"
