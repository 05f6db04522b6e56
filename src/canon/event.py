"""Event builder: the mutable wide event for one request.

Business code enriches the event while the request is handled. ``finalize``
locks it once; after that every mutation is dropped with a warning rather than
raised, so an observability call can never destabilize request handling.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from loguru import logger

from .clock import Clock, SystemClock, duration_ms
from .models import CanonError, RequestOutcome, WideEvent
from .paths import merge_deep, set_path, snapshot


def normalize_error(err: Any) -> CanonError:
    """Normalize an exception, error-like mapping or arbitrary value into a CanonError."""
    if isinstance(err, BaseException):
        code = getattr(err, "code", None)
        retriable = getattr(err, "retriable", None)
        return CanonError(
            type=type(err).__name__ or "Error",
            message=str(err) or "Unknown error",
            code=code if isinstance(code, str) else None,
            retriable=retriable if isinstance(retriable, bool) else None,
        )

    if isinstance(err, Mapping):
        kind = err.get("type")
        message = err.get("message")
        code = err.get("code")
        retriable = err.get("retriable")
        return CanonError(
            type=kind if isinstance(kind, str) else "Error",
            message=message if isinstance(message, str) else str(err),
            code=code if isinstance(code, str) else None,
            retriable=retriable if isinstance(retriable, bool) else None,
        )

    return CanonError(type="Error", message=str(err))


def resolve_outcome(outcome_hint: RequestOutcome, status_code: int, *, error_marked: bool) -> RequestOutcome:
    """Outcome policy applied at finalize time.

    A marked error wins, then a forced abort, then the caller's hint; a 5xx
    status always turns a non-aborted outcome into ``error``.
    """
    if error_marked:
        return "error"
    if outcome_hint == "aborted":
        return "aborted"
    if status_code >= 500:
        return "error"
    return outcome_hint


class EventBuilder:
    """Owns the live event for one request."""

    def __init__(self, initial_data: Mapping[str, Any], *, clock: Clock | None = None) -> None:
        """Create a builder seeded with ``initial_data``.

        The monotonic start marker is captured here; ``duration_ms`` is derived
        from it exactly once, at finalize.
        """
        self._clock = clock or SystemClock()
        self._event: WideEvent = snapshot(dict(initial_data))
        self._start = self._clock.monotonic()
        self._finalized = False
        self._emitted = False
        self._error_marked = False

    @property
    def request_id(self) -> str | None:
        request_id = self._event.get("request_id")
        return request_id if isinstance(request_id, str) else None

    def _reject_if_finalized(self, op: str) -> bool:
        if not self._finalized:
            return False
        logger.warning("[canon] warning ({}): {}() called after finalization, ignoring", self.request_id, op)
        return True

    def enrich(self, partial: Mapping[str, Any]) -> None:
        """Deep-merge ``partial`` into the event."""
        if self._reject_if_finalized("enrich"):
            return
        self._event = merge_deep(self._event, snapshot(dict(partial)))

    def set(self, path: str, value: Any) -> None:
        """Write ``value`` at a dot-path, creating intermediate maps."""
        if self._reject_if_finalized("set"):
            return
        self._event = set_path(self._event, path, snapshot(value))

    def get(self) -> WideEvent:
        """Independent copy of the current event; safe before or after finalize."""
        return snapshot(self._event)

    def mark_error(self, err: Any) -> None:
        """Attach a normalized error and flag the outcome as ``error``.

        An outcome already set to ``aborted`` is left alone.
        """
        if self._reject_if_finalized("mark_error"):
            return
        self._event["error"] = normalize_error(err).to_event_value()
        if self._event.get("outcome") == "aborted":
            return
        self._error_marked = True
        self._event["outcome"] = "error"

    def finalize(self, outcome_hint: RequestOutcome, status_code: int) -> WideEvent:
        """Compute duration, status and outcome, then lock the event.

        Idempotent: later calls return a copy of the already-finalized event
        without touching any field.
        """
        if self._finalized:
            return snapshot(self._event)

        self._event["duration_ms"] = duration_ms(self._start, self._clock.monotonic())
        self._event["status_code"] = status_code
        self._event["outcome"] = resolve_outcome(outcome_hint, status_code, error_marked=self._error_marked)
        self._finalized = True
        return snapshot(self._event)

    def is_finalized(self) -> bool:
        return self._finalized

    def is_emitted(self) -> bool:
        return self._emitted

    def mark_emitted(self) -> None:
        self._emitted = True
