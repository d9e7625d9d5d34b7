from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from nirvol.util.config import default_config_dir

DEBUG = "debug"
INFO = "info"
WARNING = "warning"
ERROR = "error"

_LOGGING_LEVELS = {
    DEBUG: logging.DEBUG,
    INFO: logging.INFO,
    WARNING: logging.WARNING,
    ERROR: logging.ERROR,
}

# Levels that are emitted even while the event log is disabled.
_ALWAYS = {WARNING, ERROR}


class EventSink(Protocol):
    def emit(self, level: str, message: str, context: dict[str, Any]) -> None: ...


class LoggerSink:
    """Forward events to the standard library logger (handlers are the app's business)."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("nirvol")

    def emit(self, level: str, message: str, context: dict[str, Any]) -> None:
        lvl = _LOGGING_LEVELS.get(level, logging.INFO)
        if not self.logger.isEnabledFor(lvl):
            return
        if context:
            ctx = " ".join(f"{k}={v}" for k, v in sorted(context.items()))
            self.logger.log(lvl, "%s [%s]", message, ctx, extra={"nirvol_context": context})
        else:
            self.logger.log(lvl, "%s", message, extra={"nirvol_context": {}})


def events_log_path() -> Path:
    return default_config_dir() / "events.jsonl"


class JsonlSink:
    """Append a single JSON line per event. Best-effort: write failures are dropped."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or events_log_path()

    def emit(self, level: str, message: str, context: dict[str, Any]) -> None:
        payload = {"ts": time.time(), "level": level, "message": message, **context}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(payload, sort_keys=True, default=str) + "\n")
        except OSError:
            pass


@dataclass
class MemorySink:
    events: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def emit(self, level: str, message: str, context: dict[str, Any]) -> None:
        self.events.append((level, message, dict(context)))

    def messages(self, level: str | None = None) -> list[str]:
        return [m for (lv, m, _c) in self.events if level is None or lv == level]


class FanoutSink:
    def __init__(self, *sinks: EventSink) -> None:
        self.sinks = list(sinks)

    def emit(self, level: str, message: str, context: dict[str, Any]) -> None:
        for s in self.sinks:
            s.emit(level, message, context)


class EventLog:
    """Structured event emitter shared by one facade and the components it owns.

    The enabled flag gates debug/info only; warnings and errors always reach the sink.
    """

    def __init__(self, sink: EventSink | None = None, *, enabled: bool = True) -> None:
        self.sink: EventSink = sink or LoggerSink()
        self.enabled = bool(enabled)

    def emit(self, level: str, message: str, **context: Any) -> None:
        if level not in _ALWAYS and not self.enabled:
            return
        self.sink.emit(level, message, context)

    def debug(self, message: str, **context: Any) -> None:
        self.emit(DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self.emit(INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self.emit(WARNING, message, **context)

    def error(self, message: str, **context: Any) -> None:
        self.emit(ERROR, message, **context)
