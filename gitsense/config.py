"""Persistent JSON config helpers.

Stores the git executable, job timeout, and watch timing preferences.
All access is defensive: malformed or missing config falls back safely.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path

from platformdirs import user_config_dir

APP_NAME = "gitsense"
CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
CONFIG_PATH = DEFAULT_CONFIG_PATH


@dataclass(frozen=True)
class TrackerConfig:
    """Effective settings for one tracking session."""

    git_executable: str = "git"
    job_timeout_seconds: float = 30.0
    debounce_seconds: float = 0.05
    watch_poll_seconds: float = 0.25
    sync_grace_seconds: float = 0.01

    def with_overrides(self, **overrides: object) -> TrackerConfig:
        """Return a copy with ``overrides`` applied, ignoring ``None`` values."""
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})


def load_config() -> dict[str, object]:
    """Load the persisted JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object]) -> None:
    """Persist config data as pretty-printed JSON.

    Any filesystem/serialization error is ignored to keep runtime behavior
    non-fatal when config cannot be written.
    """
    try:
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_PATH.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except Exception:
        pass


def _coerce_positive_seconds(value: object, default: float) -> float:
    """Accept finite positive numbers; booleans and everything else fall back."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if value != value or value <= 0 or value == float("inf"):
        return default
    return float(value)


def _coerce_executable(value: object, default: str) -> str:
    if not isinstance(value, str):
        return default
    stripped = value.strip()
    return stripped if stripped else default


def load_tracker_config() -> TrackerConfig:
    """Build a ``TrackerConfig`` from persisted values.

    The ``job`` section mirrors the executable/timeout options and the
    ``watch`` section holds timing. Timeout is stored in milliseconds, the
    watch values in seconds.
    """
    defaults = TrackerConfig()
    data = load_config()

    job = data.get("job")
    if not isinstance(job, dict):
        job = {}
    watch = data.get("watch")
    if not isinstance(watch, dict):
        watch = {}

    timeout_ms = _coerce_positive_seconds(job.get("timeout"), defaults.job_timeout_seconds * 1000.0)
    return TrackerConfig(
        git_executable=_coerce_executable(job.get("git_executable"), defaults.git_executable),
        job_timeout_seconds=timeout_ms / 1000.0,
        debounce_seconds=_coerce_positive_seconds(watch.get("debounce_seconds"), defaults.debounce_seconds),
        watch_poll_seconds=_coerce_positive_seconds(watch.get("poll_seconds"), defaults.watch_poll_seconds),
        sync_grace_seconds=_coerce_positive_seconds(watch.get("sync_grace_seconds"), defaults.sync_grace_seconds),
    )


def save_tracker_config(config: TrackerConfig) -> None:
    """Persist ``config`` in the same layout ``load_tracker_config`` reads."""
    data = load_config()
    data["job"] = {
        "git_executable": config.git_executable,
        "timeout": round(config.job_timeout_seconds * 1000.0, 3),
    }
    data["watch"] = {
        "debounce_seconds": config.debounce_seconds,
        "poll_seconds": config.watch_poll_seconds,
        "sync_grace_seconds": config.sync_grace_seconds,
    }
    save_config(data)
