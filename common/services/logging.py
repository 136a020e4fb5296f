"""JSON-lines event log.

One object per line with ``ts``, ``level`` and ``event`` followed by the
caller's fields. Scheduler threads and request handlers share the stream, so
writes are serialized.
"""
import json
import sys
import threading
from datetime import datetime
from typing import Any, Dict, Optional, TextIO


LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}

_settings: Dict[str, Any] = {"threshold": LEVELS["info"], "stream": None}
_write_lock = threading.Lock()


def configure_logging(level: Optional[str], stream: Optional[TextIO] = None) -> None:
    """Drop events below ``level``; ``stream`` defaults to stdout."""
    _settings["threshold"] = LEVELS.get((level or "info").lower(), LEVELS["info"])
    _settings["stream"] = stream


def format_event(level: str, event: str, fields: Dict[str, Any]) -> str:
    record: Dict[str, Any] = {"ts": datetime.utcnow().isoformat() + "Z", "level": level, "event": event}
    record.update(fields)
    # Decimal and datetime fields are rendered with str()
    return json.dumps(record, ensure_ascii=False, default=str)


def log_event(level: str, event: str, **fields) -> None:
    level = level.lower()
    if LEVELS.get(level, LEVELS["info"]) < _settings["threshold"]:
        return
    line = format_event(level, event, fields)
    stream = _settings["stream"] or sys.stdout
    with _write_lock:
        try:
            stream.write(line + "\n")
            stream.flush()
        except (OSError, ValueError):
            # stream closed at interpreter shutdown
            pass
