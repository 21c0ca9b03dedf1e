"""Operational utilities for Kid Rewards."""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Deque, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .models import utcnow


class HealthMonitor:
    """Report whether the backing database answers queries."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self.last_checked: Optional[datetime] = None

    def database_online(self) -> bool:
        self.last_checked = utcnow()
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def status(self) -> dict:
        online = self.database_online()
        return {"status": "ok" if online else "degraded", "database": "ok" if online else "down"}


class StructuredLogger:
    """Record service events as JSON lines.

    The most recent ``keep`` entries stay in memory for inspection; when a
    ``path`` is configured every entry is also appended to that file.
    Recording and appending happen under one lock, so each line lands whole.
    """

    def __init__(self, *, path: Path | None = None, keep: int = 500) -> None:
        self.path = path
        self._entries: Deque[dict] = deque(maxlen=keep)
        self._lock = Lock()

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": utcnow().isoformat(), "event": event_type, **fields}
        line = json.dumps(entry, default=str) + "\n"
        with self._lock:
            self._entries.append(entry)
            if self.path:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line)
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        with self._lock:
            entries = list(self._entries)
        return tuple(entries[-limit:])

    def events(self, event_type: str) -> tuple[dict, ...]:
        with self._lock:
            return tuple(entry for entry in self._entries if entry["event"] == event_type)


__all__ = ["HealthMonitor", "StructuredLogger"]
