from __future__ import annotations

import threading
from typing import Any

import pytest

from canon import BackgroundEventWriter, CanonConfig, CanonLifecycle, InMemoryEventSink


class _FlakySink(InMemoryEventSink):
    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    def write(self, event: dict[str, Any]) -> None:
        if event.get("fail"):
            raise OSError("sink unavailable")
        super().write(event)

    def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_writer_delivers_lifecycle_events_to_sink() -> None:
    sink = InMemoryEventSink()
    writer = BackgroundEventWriter(sink=sink, max_queue_size=100)
    config = CanonConfig(service="test-service", emit=writer.write, debug=True)

    for request_id in ("req_one", "req_two"):
        lifecycle = CanonLifecycle(config, request_id, None, {"method": "GET", "path": "/"})
        lifecycle.enrich({"user": {"id": request_id}})
        lifecycle.complete(200)

    await writer.aclose()

    events = sink.snapshot()
    assert [e["request_id"] for e in events] == ["req_one", "req_two"]
    assert all(e["outcome"] == "success" for e in events)


@pytest.mark.asyncio
async def test_writer_accepts_events_from_other_threads() -> None:
    sink = InMemoryEventSink()
    writer = BackgroundEventWriter(sink=sink)
    config = CanonConfig(service="test-service", emit=writer.write, debug=True)
    lifecycle = CanonLifecycle(config, "req_threaded", None, {"method": "GET", "path": "/"})

    signals = [threading.Thread(target=lifecycle.abort), threading.Thread(target=lifecycle.complete, args=(200,))]
    for t in signals:
        t.start()
    for t in signals:
        t.join()

    await writer.aclose()

    (event,) = sink.snapshot()
    assert event["request_id"] == "req_threaded"


@pytest.mark.asyncio
async def test_writer_counts_failures_and_drops_when_full(diagnostics: list[str]) -> None:
    sink = _FlakySink()
    writer = BackgroundEventWriter(sink=sink, max_queue_size=1)

    writer.write({"request_id": "req_fail", "fail": True})
    writer.write({"request_id": "req_overflow"})

    await writer.aclose()
    await writer.aclose()

    status = writer.degraded_status()
    assert status["dropped"] == 1
    assert status["write_failures"] == 2
    assert status["first_failure_at"] is not None
    assert sink.snapshot() == []
    assert sink.closed is True
    assert any("writer queue full" in m for m in diagnostics)
    assert any("sink write failed for event req_fail" in m for m in diagnostics)


@pytest.mark.asyncio
async def test_writes_after_close_are_dropped() -> None:
    sink = InMemoryEventSink()
    writer = BackgroundEventWriter(sink=sink)
    await writer.aclose()

    writer.write({"request_id": "req_late"})

    assert sink.snapshot() == []
