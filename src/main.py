"""Demo entrypoint wiring together the canon event pipeline.

This module intentionally contains a small, end-to-end "smoke test" that:

- Loads settings from environment.
- Wraps a sink (DuckDB when `CANON_DUCKDB_PATH` is set, stdout otherwise) in a
  background writer.
- Simulates a few requests the way an HTTP adapter would drive them: a healthy
  checkout, a failing one, and a client abort racing a late normal completion.

It is **not** an HTTP adapter; it is a convenient manual harness for seeing
what emitted events look like.
"""

from __future__ import annotations

import asyncio
import threading

from canon import (
    BackgroundEventWriter,
    CanonLifecycle,
    ConsoleEventSink,
    DuckDBEventSink,
    EventSink,
    create_initial_event_data,
    extract_ids,
)
from canon.lifecycle import normalize_ip
from canon.models import CanonConfig
from config import load_config


def _start_request(config: CanonConfig, method: str, path: str, headers: dict[str, str]) -> CanonLifecycle:
    """Create a lifecycle the way an adapter would at request start."""
    request_id, trace_id = extract_ids(headers, config)
    # A socket-level IPv4-mapped address, as most servers report it.
    ip = normalize_ip(headers.get("x-forwarded-for", "::ffff:127.0.0.1"))
    initial = create_initial_event_data(method, path, ip=ip, user_agent=headers.get("user-agent"))
    return CanonLifecycle(config, request_id, trace_id, initial)


def _simulate_checkout(config: CanonConfig) -> None:
    lifecycle = _start_request(config, "post", "/checkout", {"user-agent": "demo/1.0"})
    lifecycle.enrich({"user": {"id": "u_123", "email": "jane@example.com", "plan": "pro"}})
    lifecycle.enrich({"cart": {"items": 3, "total_cents": 4599}})
    lifecycle.set("payment.provider", "stripe")
    lifecycle.complete(200)


def _simulate_failure(config: CanonConfig) -> None:
    lifecycle = _start_request(config, "get", "/orders/42", {"x-request-id": "req_demofailure000"})
    lifecycle.enrich({"user": {"id": "u_456"}})
    try:
        raise TimeoutError("inventory service timed out")
    except TimeoutError as exc:
        lifecycle.mark_error(exc)
    lifecycle.complete(504)


def _simulate_abort_race(config: CanonConfig) -> None:
    lifecycle = _start_request(config, "get", "/reports/export", {})
    lifecycle.enrich({"report": {"format": "csv"}})
    signals = [threading.Thread(target=lifecycle.abort), threading.Thread(target=lifecycle.complete, args=(200,))]
    for t in signals:
        t.start()
    for t in signals:
        t.join()


async def run_demo() -> None:
    """Run the three simulated requests and flush the writer."""
    settings = load_config()

    sink: EventSink
    if settings.duckdb_path:
        sink = DuckDBEventSink(path=settings.duckdb_path)
    else:
        sink = ConsoleEventSink(pretty=True)
    writer = BackgroundEventWriter(sink=sink)

    config = settings.to_canon_config(emit=writer.write)
    try:
        _simulate_checkout(config)
        _simulate_failure(config)
        _simulate_abort_race(config)
    finally:
        await writer.aclose()


def main() -> None:
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
