"""Lifecycle orchestrator: one request, one wide event.

An adapter creates one ``CanonLifecycle`` per inbound request, hands it to
business code for enrichment and wires its completion and abort hooks to
``complete`` and ``abort``. The first completion signal wins and runs:

    finalize -> redact (copy) -> validate (redacted) -> sample -> emit

Every later signal, from either hook, is discarded before doing any work, so
the sink is called at most once per lifecycle.
"""

from __future__ import annotations

import random
import re
import threading
from collections.abc import Mapping, Sequence
from typing import Any, Literal

from loguru import logger

from .clock import Clock, SystemClock, iso_timestamp
from .event import EventBuilder
from .ids import resolve_request_id, resolve_trace_id
from .models import CLIENT_CLOSED_REQUEST, CanonConfig, PathPredicate, RequestOutcome, WideEvent
from .redact import apply_redaction
from .sampling import Rng, should_sample
from .schema import log_validation_errors, log_validation_warnings, validate_schema
from .sinks import default_emit
from .tracing import SpanProvider, create_span_attribute_setter

LifecycleState = Literal["open", "finalizing", "finalized"]

# Ignored by default in debug mode only.
DEFAULT_IGNORE_PATHS: tuple[str, ...] = ("/favicon.ico", "/robots.txt", "/sw.js")


class CanonLifecycle:
    """Finalize-once coordinator for a single request's event.

    ``enrich``/``set``/``mark_error`` assume a single writer at a time.
    ``complete`` and ``abort`` may race from different threads; exactly one of
    them runs the emission pipeline.
    """

    def __init__(
        self,
        config: CanonConfig,
        request_id: str,
        trace_id: str | None = None,
        initial_data: Mapping[str, Any] | None = None,
        *,
        debug: bool | None = None,
        clock: Clock | None = None,
        span_provider: SpanProvider | None = None,
        rng: Rng = random.random,
    ) -> None:
        clock = clock or SystemClock()
        base: dict[str, Any] = {
            "timestamp": iso_timestamp(clock.now()),
            "request_id": request_id,
            "trace_id": trace_id,
            "service": config.service,
            "version": config.version,
            "deployment_id": config.deployment_id,
            "region": config.region,
        }
        base = {key: value for key, value in base.items() if value is not None}
        base.update(initial_data or {})

        self._config = config
        self._request_id = request_id
        self._debug = config.debug if debug is None else debug
        self._rng = rng
        self._builder = EventBuilder(base, clock=clock)
        self._span_setter = create_span_attribute_setter(span_provider)

        self._lock = threading.Lock()
        self._state: LifecycleState = "open"

    @property
    def request_id(self) -> str:
        return self._request_id

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def emitted(self) -> bool:
        return self._builder.is_emitted()

    def enrich(self, partial: Mapping[str, Any]) -> None:
        self._builder.enrich(partial)

    def set(self, path: str, value: Any) -> None:
        self._builder.set(path, value)

    def get(self) -> WideEvent:
        return self._builder.get()

    def mark_error(self, err: Any) -> None:
        self._builder.mark_error(err)

    def is_finalized(self) -> bool:
        return self._builder.is_finalized()

    def add_span_attributes(self, attrs: Mapping[str, Any]) -> None:
        """Copy attributes onto the active span; no-op without a span provider."""
        if self._span_setter is not None:
            self._span_setter(attrs)

    def complete(self, status_code: int) -> None:
        """Normal-completion signal from the adapter."""
        self.finalize("success", status_code)

    def abort(self) -> None:
        """Client-abort signal: forces ``aborted`` with status 499."""
        self.finalize("aborted", CLIENT_CLOSED_REQUEST)

    def finalize(self, outcome: RequestOutcome, status_code: int) -> None:
        """Guarded transition out of ``open``; only the first caller does any work."""
        with self._lock:
            if self._state != "open":
                return
            self._state = "finalizing"

        try:
            self._run_pipeline(outcome, status_code)
        finally:
            self._state = "finalized"

    def _run_pipeline(self, outcome: RequestOutcome, status_code: int) -> None:
        config = self._config
        finalized = self._builder.finalize(outcome, status_code)

        redacted = apply_redaction(finalized, config.redact, config.event_schema)

        validation = validate_schema(redacted, config.event_schema, config.strict)
        if validation.warnings:
            log_validation_warnings(validation.warnings, self._request_id)
        if not validation.valid:
            log_validation_errors(validation.errors, self._request_id)
            if config.strict:
                logger.debug("[canon] strict mode: event {} not emitted", self._request_id)
                return

        if not self._debug and not should_sample(redacted, config.sample, rng=self._rng):
            logger.debug("[canon] event {} sampled out", self._request_id)
            return

        emit = config.emit or default_emit
        emit(redacted)
        self._builder.mark_emitted()


def create_canon_context(
    config: CanonConfig,
    request_id: str,
    trace_id: str | None = None,
    initial_data: Mapping[str, Any] | None = None,
    debug: bool | None = None,
    **kwargs: Any,
) -> CanonLifecycle:
    """Construct the lifecycle for one request (adapter entry point).

    ``debug`` overrides ``config.debug`` only when given.
    """
    return CanonLifecycle(config, request_id, trace_id, initial_data, debug=debug, **kwargs)


def get_header_value(headers: Mapping[str, str | Sequence[str] | None], name: str) -> str | None:
    """Case-insensitive header lookup; list-valued headers yield their first element."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() != wanted:
            continue
        if value is None or isinstance(value, str):
            return value
        return value[0] if value else None
    return None


def extract_ids(headers: Mapping[str, str | Sequence[str] | None], config: CanonConfig) -> tuple[str, str]:
    """Resolve ``(request_id, trace_id)`` from incoming headers or generate them."""
    raw_request_id = get_header_value(headers, config.request_id_header)
    raw_trace_id = get_header_value(headers, config.trace_id_header)
    return (
        resolve_request_id(raw_request_id, config.trust_incoming_ids),
        resolve_trace_id(raw_trace_id, config.trust_incoming_ids),
    )


def normalize_ip(ip: str | None) -> str | None:
    """Strip the IPv4-mapped IPv6 prefix; empty values become ``None``."""
    if not ip:
        return None
    if ip.startswith("::ffff:"):
        return ip[len("::ffff:"):]
    return ip


def create_initial_event_data(
    method: str,
    path: str,
    ip: str | None = None,
    user_agent: str | None = None,
    route: str | None = None,
) -> WideEvent:
    """Transport fields an adapter seeds the event with at request start."""
    data: WideEvent = {"method": method.upper(), "path": path}
    if ip:
        data["ip"] = ip
    if user_agent:
        data["user_agent"] = user_agent
    if route:
        data["route"] = route
    return data


def resolve_ignore_paths(config: CanonConfig) -> Sequence[str | re.Pattern[str]] | PathPredicate | None:
    if config.ignore_paths is not None:
        return config.ignore_paths
    return DEFAULT_IGNORE_PATHS if config.debug else None


def should_ignore_path(path: str, ignore_paths: Sequence[str | re.Pattern[str]] | PathPredicate | None) -> bool:
    """True when a request path should not get a lifecycle at all."""
    if ignore_paths is None:
        return False
    if callable(ignore_paths):
        return bool(ignore_paths(path))
    for pattern in ignore_paths:
        if isinstance(pattern, str):
            if path == pattern:
                return True
        elif pattern.search(path):
            return True
    return False
