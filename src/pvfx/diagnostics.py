"""Opt-in event logging for effect construction and selection."""
from __future__ import annotations

import os
import threading
import time
from pathlib import Path

__all__ = [
    "enable_effect_logging",
    "effect_logging_enabled",
    "log_effect_event",
    "log_path",
    "set_log_path",
]


_LOGGING_ENV = "PVFX_LOG"
_LOG_EFFECT_EVENTS = os.environ.get(_LOGGING_ENV, "").lower() in {"1", "true", "yes", "on"}
_LOG_PATH = Path("logs/pvfx_effects.log")
_LOG_LOCK = threading.Lock()


def enable_effect_logging(enabled: bool) -> None:
    """Enable or disable logging of effect lifecycle events."""

    global _LOG_EFFECT_EVENTS
    _LOG_EFFECT_EVENTS = bool(enabled)


def effect_logging_enabled() -> bool:
    """Return ``True`` when effect event logging is enabled."""

    return _LOG_EFFECT_EVENTS


def set_log_path(path: str | Path) -> None:
    """Redirect subsequent log lines to ``path``."""

    global _LOG_PATH
    with _LOG_LOCK:
        _LOG_PATH = Path(path)


def log_path() -> Path:
    return _LOG_PATH


def log_effect_event(message: str) -> None:
    """Append ``message`` to the effect log when logging is enabled.

    Never called from the per-bin path; only construction, selection and
    history reallocation report here.
    """

    if not _LOG_EFFECT_EVENTS:
        return
    stamp = time.strftime("%Y-%m-%dT%H:%M:%S")
    try:
        with _LOG_LOCK:
            _LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
            with _LOG_PATH.open("a", encoding="utf-8") as handle:
                handle.write(f"{stamp} {message}\n")
    except OSError:
        return
