"""Async recorder that writes log entries without blocking the event loop.

The recorder is the single writer for a sink: request handlers enqueue entries
and one background task drains the queue in order, running the (blocking) sink
write in a thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from .models import LogEntry, utc_now
from .sinks import LogSink

logger = logging.getLogger(__name__)


class ObservabilityRecorder:
    """Queues entries and writes them in a background task."""

    def __init__(self, *, sink: LogSink, max_queue_size: int = 10000) -> None:
        """Create a recorder backed by a synchronous sink.

        Args:
            sink: Storage backend used by the background writer.
            max_queue_size: Bound for in-memory buffering; entries are dropped
                when full to avoid slowing down request handling.
        """
        self._sink = sink
        self._queue: asyncio.Queue[LogEntry | None] = asyncio.Queue(maxsize=max_queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

        # Degradation tracking: counts and time window.
        self._write_failures = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_started(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the background writer task if it hasn't been started yet."""
        if self._worker is not None:
            return
        self._loop = loop
        self._worker = loop.create_task(self._run_worker(), name="observability-writer")

    def write(self, entry: LogEntry) -> bool:
        """Enqueue an entry (non-blocking). Returns False if it was dropped.

        Calls from other threads are handed to the writer's loop with
        `call_soon_threadsafe`; a queue overflow on that path is counted in
        `degraded_status` but cannot be reported to the caller. Without any
        running loop the entry is written to the sink directly.
        """
        if self._closed:
            return False

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        owner = self._loop
        if owner is not None and running is not owner:
            try:
                owner.call_soon_threadsafe(self._enqueue, entry)
            except RuntimeError:
                # The writer's loop has been closed.
                return self._write_inline(entry)
            return True

        if running is None:
            return self._write_inline(entry)
        self._ensure_started(running)
        return self._enqueue(entry)

    def _enqueue(self, entry: LogEntry) -> bool:
        # In overload conditions we prefer dropping entries over blocking requests.
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self._note_failure("queue full")
            return False
        return True

    async def flush(self) -> None:
        """Wait until every entry enqueued so far has been handed to the sink."""
        if self._worker is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        """Flush and close the recorder.

        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
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
                written = await asyncio.to_thread(self._sink.write, item)
                if written is False:
                    self._note_failure("sink dropped entry")
            except Exception:  # noqa: BLE001 - observability must not crash the host
                logger.exception("Observability sink write failed")
                self._note_failure("sink error")
            finally:
                self._queue.task_done()

    def _write_inline(self, entry: LogEntry) -> bool:
        try:
            written = self._sink.write(entry)
        except Exception:  # noqa: BLE001 - observability must not crash the host
            logger.exception("Observability sink write failed")
            written = False
        if written is False:
            self._note_failure("sink error")
            return False
        return True

    def _note_failure(self, reason: str) -> None:
        now = utc_now()
        if self._first_failure_at is None:
            logger.warning("Observability recorder degraded (%s); entries are being dropped", reason)
        self._write_failures += 1
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        return {
            "write_failures": self._write_failures,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }
