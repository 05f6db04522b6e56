"""Background writer that hands events to a blocking sink without blocking the caller.

The lifecycle calls ``emit`` synchronously and never waits on it. Wrapping a
sink in ``BackgroundEventWriter`` and passing ``writer.write`` as ``emit``
moves the sink's I/O onto a worker task and thread.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from loguru import logger

from .clock import utc_now
from .models import WideEvent
from .sinks import EventSink


class BackgroundEventWriter:
    """Queues events and writes them to a sink from a background task.

    Construct it inside the event loop that should run the worker. ``write``
    may be called from that loop or from any other thread.
    """

    def __init__(self, *, sink: EventSink, max_queue_size: int = 10000) -> None:
        """Create a writer backed by a synchronous sink.

        Args:
            sink: Storage backend used by the background worker.
            max_queue_size: Bound for in-memory buffering; events are dropped
                when full rather than blocking request handling.
        """
        self._sink = sink
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[WideEvent | None] = asyncio.Queue(maxsize=max_queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

        self._dropped = 0
        self._write_failures = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    def _ensure_started(self) -> None:
        """Start the background worker task if it hasn't been started yet."""
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._run_worker(), name="canon-event-writer")

    def _note_failure(self) -> None:
        now = utc_now()
        self._write_failures += 1
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now

    def write(self, event: WideEvent) -> None:
        """Enqueue an event (non-blocking). Usable directly as ``CanonConfig.emit``."""
        if self._closed:
            logger.debug("[canon] writer closed, dropping event {}", event.get("request_id"))
            return

        try:
            on_loop = asyncio.get_running_loop() is self._loop
        except RuntimeError:
            on_loop = False

        if on_loop:
            self._enqueue(event)
        else:
            self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: WideEvent) -> None:
        self._ensure_started()
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            self._note_failure()
            logger.warning("[canon] writer queue full, dropping event {}", event.get("request_id"))

    async def aclose(self) -> None:
        """Flush and close the writer.

        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        # Writes handed over from other threads are already scheduled; let them land.
        await asyncio.sleep(0)
        if self._worker is not None:
            await self._queue.put(None)
            await self._worker
        await asyncio.to_thread(self._sink.close)

    async def _run_worker(self) -> None:
        """Background loop that drains the queue and writes to the sink."""
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                await asyncio.to_thread(self._sink.write, item)
            except Exception:  # noqa: BLE001 - a failing sink must not take down request handling
                self._note_failure()
                logger.exception("[canon] sink write failed for event {}", item.get("request_id"))
            finally:
                self._queue.task_done()

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        return {
            "dropped": self._dropped,
            "write_failures": self._write_failures,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }
