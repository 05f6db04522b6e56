"""Event sinks (where finished wide events go).

The lifecycle hands each kept event to a single ``emit`` callable; a sink's
bound ``write`` method is the usual choice.
"""

from __future__ import annotations

import json
import sys
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, TextIO

import duckdb

from .models import WideEvent


def _dumps(event: WideEvent, *, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(event, indent=2, default=str)
    return json.dumps(event, separators=(",", ":"), default=str)


class EventSink(Protocol):
    """A synchronous sink for finished events."""

    def write(self, event: WideEvent) -> None:
        """Persist or forward a single event."""

    def close(self) -> None:
        """Close any underlying resources."""


class InMemoryEventSink:
    """In-memory sink for tests and local debugging."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[WideEvent] = []

    def write(self, event: WideEvent) -> None:
        """Append an event to the in-memory list (thread-safe)."""
        with self._lock:
            self._events.append(event)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""

    def snapshot(self) -> Sequence[WideEvent]:
        """Return a point-in-time copy of all recorded events."""
        with self._lock:
            return list(self._events)


class ConsoleEventSink:
    """Writes one JSON document per event to a text stream (stdout by default)."""

    def __init__(self, *, pretty: bool = False, stream: TextIO | None = None) -> None:
        self._pretty = pretty
        self._stream = stream
        self._lock = threading.Lock()

    def write(self, event: WideEvent) -> None:
        stream = self._stream or sys.stdout
        with self._lock:
            stream.write(_dumps(event, pretty=self._pretty) + "\n")
            stream.flush()

    def close(self) -> None:
        """No-op; the stream is owned by the caller."""


def default_emit(event: WideEvent) -> None:
    """Fallback sink used when no ``emit`` is configured."""
    ConsoleEventSink().write(event)


@dataclass(frozen=True)
class DuckDBOptions:
    path: Path
    table: str = "canon_events"


class DuckDBEventSink:
    """DuckDB sink for durable local persistence of wide events.

    The reserved fields get their own columns; the full event is kept as JSON.
    """

    def __init__(self, *, path: str | Path, table: str = "canon_events") -> None:
        """Create (or open) a DuckDB-backed sink at the given path."""
        self._opts = DuckDBOptions(path=Path(path), table=table)
        self._lock = threading.Lock()
        self._conn = duckdb.connect(str(self._opts.path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create the backing table if it does not exist yet."""
        create_sql = f"""
        create table if not exists {self._opts.table} (
          timestamp varchar,
          request_id varchar,
          trace_id varchar,
          service varchar,
          method varchar,
          path varchar,
          status_code integer,
          duration_ms double,
          outcome varchar,
          event_json varchar not null
        )
        """
        with self._lock:
            self._conn.execute(create_sql)

    def write(self, event: WideEvent) -> None:
        """Insert a single event into DuckDB."""
        event_json = json.dumps(event, separators=(",", ":"), sort_keys=True, default=str)
        insert_sql = f"""
        insert into {self._opts.table}
        (timestamp, request_id, trace_id, service, method, path, status_code, duration_ms, outcome, event_json)
        values (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        with self._lock:
            self._conn.execute(
                insert_sql,
                [
                    event.get("timestamp"),
                    event.get("request_id"),
                    event.get("trace_id"),
                    event.get("service"),
                    event.get("method"),
                    event.get("path"),
                    event.get("status_code"),
                    event.get("duration_ms"),
                    event.get("outcome"),
                    event_json,
                ],
            )

    def fetch_events(self) -> list[dict[str, Any]]:
        """Read every stored event back, oldest first."""
        with self._lock:
            rows = self._conn.execute(f"select event_json from {self._opts.table} order by rowid").fetchall()
        return [json.loads(row[0]) for row in rows]

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._conn.close()
