from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def _no_threads_in_unit_tests(monkeypatch: pytest.MonkeyPatch):
    """Run `asyncio.to_thread` inline for unit tests.

    The background writer uses `asyncio.to_thread` to keep blocking sinks off
    the event loop. In unit tests, this can create threadpool workers that keep
    the Python process alive longer than expected under some runtimes.
    """

    async def _to_thread(func, /, *args, **kwargs):  # noqa: ANN001, D401
        return func(*args, **kwargs)

    monkeypatch.setattr("canon.writer.asyncio.to_thread", _to_thread)
    yield


@pytest.fixture
def diagnostics() -> Iterator[list[str]]:
    """Collect canon diagnostic messages emitted through loguru."""
    messages: list[str] = []

    def _sink(message: Any) -> None:
        messages.append(str(message).rstrip("\n"))

    handler_id = logger.add(_sink, level="DEBUG", format="{level}|{message}")
    try:
        yield messages
    finally:
        logger.remove(handler_id)


@pytest.fixture
def base_event() -> dict[str, Any]:
    """A finalized event carrying every built-in required field."""
    return {
        "timestamp": "2024-01-15T10:30:00.000Z",
        "request_id": "req_test123",
        "service": "test-service",
        "method": "GET",
        "path": "/test",
        "status_code": 200,
        "duration_ms": 50,
        "outcome": "success",
    }
