"""Namespaced key-value persistence for the application state blob.

Values are JSON-serialized and kept in a single JSON object file under the
storage root. Every public function is fail-soft: errors are recorded in the
runtime event log and reported as False/None, never raised.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from finmodel.runtime_logging import append_runtime_event
from finmodel.schema import STORAGE_VERSION


STORE_DIR = Path(".local_store")
STORAGE_FILE = STORE_DIR / "storage.json"

_DEFAULT_STORE_DIR = Path(".local_store")
_STORAGE_ENV_VAR = "FINMODEL_STORAGE_ROOT"

STORAGE_PREFIX = "finmodel_"
VERSION_KEY = f"{STORAGE_PREFIX}version"
STORAGE_CAPACITY_BYTES = 5 * 1024 * 1024
_PROBE_KEY = "__storage_test__"


class StorageQuotaExceeded(OSError):
    """The serialized store would exceed STORAGE_CAPACITY_BYTES."""


def _expand_storage_root(path_value: str | Path | None) -> Path:
    if path_value is None:
        return _DEFAULT_STORE_DIR
    text = str(path_value).strip()
    if not text:
        return _DEFAULT_STORE_DIR
    return Path(os.path.expandvars(os.path.expanduser(text)))


def configure_storage_root(path_value: str | Path | None) -> Path:
    """Configure storage root directory used for state persistence."""

    global STORE_DIR, STORAGE_FILE
    STORE_DIR = _expand_storage_root(path_value)
    STORAGE_FILE = STORE_DIR / "storage.json"
    return STORE_DIR


def storage_root_path() -> str:
    return str(STORE_DIR.resolve())


def storage_root_from_env() -> Path:
    return _expand_storage_root(os.getenv(_STORAGE_ENV_VAR, ""))


def full_key(key: str) -> str:
    return f"{STORAGE_PREFIX}{key}"


def _read_store() -> dict[str, str]:
    if not STORAGE_FILE.exists():
        return {}
    data = json.loads(STORAGE_FILE.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{STORAGE_FILE} does not contain a JSON object.")
    return data


def _writable_store() -> dict[str, str]:
    """Store contents to write over; an undecodable file is logged and treated as empty."""
    try:
        return _read_store()
    except ValueError as exc:
        append_runtime_event(
            "ERROR",
            "storage_load_failed",
            "Storage file is unreadable; it will be replaced on the next write.",
            {"path": str(STORAGE_FILE)},
            exc=exc,
        )
        return {}


def _write_store(data: dict[str, str]) -> None:
    serialized = json.dumps(data, indent=2)
    if len(serialized.encode("utf-8")) > STORAGE_CAPACITY_BYTES:
        raise StorageQuotaExceeded(f"Storage quota exceeded ({STORAGE_CAPACITY_BYTES} bytes).")
    STORE_DIR.mkdir(parents=True, exist_ok=True)
    tmp = STORAGE_FILE.with_suffix(f"{STORAGE_FILE.suffix}.tmp")
    tmp.write_text(serialized, encoding="utf-8")
    tmp.replace(STORAGE_FILE)


def save(key: str, value: Any) -> bool:
    """Serialize `value` under the namespaced `key` and tag the store version."""
    try:
        serialized = json.dumps(value)
        store = _writable_store()
        store[full_key(key)] = serialized
        store[VERSION_KEY] = STORAGE_VERSION
        _write_store(store)
        return True
    except StorageQuotaExceeded as exc:
        append_runtime_event("ERROR", "storage_quota_exceeded", str(exc), {"key": key}, exc=exc)
        return False
    except (OSError, TypeError, ValueError) as exc:
        append_runtime_event("ERROR", "storage_save_failed", f'Failed to save data for key "{key}".', {"key": key}, exc=exc)
        return False


def load(key: str) -> Any | None:
    """Return the deserialized value for `key`, or None when absent or unreadable."""
    try:
        store = _read_store()
        serialized = store.get(full_key(key))
        if serialized is None:
            return None
        stored_version = store.get(VERSION_KEY)
        if stored_version and stored_version != STORAGE_VERSION:
            append_runtime_event(
                "WARNING",
                "storage_version_mismatch",
                f"Storage version mismatch: stored={stored_version}, current={STORAGE_VERSION}",
                {"key": key, "stored": stored_version, "current": STORAGE_VERSION},
            )
        return json.loads(serialized)
    except (OSError, TypeError, ValueError) as exc:
        append_runtime_event("ERROR", "storage_load_failed", f'Failed to load data for key "{key}".', {"key": key}, exc=exc)
        return None


def remove(key: str) -> bool:
    try:
        store = _read_store()
        if store.pop(full_key(key), None) is not None:
            _write_store(store)
        return True
    except (OSError, ValueError) as exc:
        append_runtime_event("ERROR", "storage_remove_failed", f'Failed to remove data for key "{key}".', {"key": key}, exc=exc)
        return False


def clear() -> bool:
    """Remove every namespaced key, leaving foreign keys in the file untouched."""
    try:
        store = _read_store()
        kept = {k: v for k, v in store.items() if not k.startswith(STORAGE_PREFIX)}
        if len(kept) != len(store):
            _write_store(kept)
        return True
    except (OSError, ValueError) as exc:
        append_runtime_event("ERROR", "storage_clear_failed", "Failed to clear storage.", exc=exc)
        return False


def exists(key: str) -> bool:
    try:
        return full_key(key) in _read_store()
    except (OSError, ValueError) as exc:
        append_runtime_event("ERROR", "storage_load_failed", f'Failed to check existence for key "{key}".', {"key": key}, exc=exc)
        return False


def is_available() -> bool:
    """Probe the store with a throwaway write and delete."""
    try:
        store = _writable_store()
        store[_PROBE_KEY] = "test"
        _write_store(store)
        del store[_PROBE_KEY]
        _write_store(store)
        return True
    except (OSError, ValueError):
        return False


def storage_info() -> dict[str, float]:
    try:
        store = _read_store()
    except (OSError, ValueError) as exc:
        append_runtime_event("ERROR", "storage_load_failed", "Failed to get storage info.", exc=exc)
        return {"used": 0, "total": 0, "used_percent": 0.0}
    used = sum(len(k) + len(v) for k, v in store.items() if k.startswith(STORAGE_PREFIX) and isinstance(v, str))
    return {
        "used": used,
        "total": STORAGE_CAPACITY_BYTES,
        "used_percent": used / STORAGE_CAPACITY_BYTES * 100,
    }


configure_storage_root(storage_root_from_env())
