"""Request span tracking.

A span is opened when the host starts handling a request and closed when the
host reports completion. Hosts often deliver more than one terminal signal for
the same request (e.g. "finished" and "connection closed"); only the first
completion of a span produces a log entry.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from .models import LogEntry, utc_now

logger = logging.getLogger(__name__)


class EntryWriter(Protocol):
    """Anything that accepts completed entries (a sink or a recorder)."""

    def write(self, entry: LogEntry) -> Any:
        """Accept an entry for persistence."""


@dataclass
class Span:
    """The open interval between a request's start and its completion."""

    method: str
    endpoint: str
    # Seconds on the tracker's monotonic clock.
    start_time: float
    _completed: bool = field(default=False, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @property
    def completed(self) -> bool:
        return self._completed

    def claim_completion(self) -> bool:
        """Mark the span completed. Returns False if it already was."""
        with self._lock:
            if self._completed:
                return False
            self._completed = True
            return True


class SpanTracker:
    """Creates spans and turns completed ones into log entries."""

    def __init__(
        self,
        writer: EntryWriter,
        *,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        """Create a tracker.

        Args:
            writer: Destination for completed entries (store or recorder).
            clock: Monotonic seconds used for latency.
            now: Wall clock used for entry timestamps.
        """
        self._writer = writer
        self._clock = clock
        self._now = now

    def start_span(self, method: str, endpoint: str) -> Span:
        return Span(method=method, endpoint=endpoint, start_time=self._clock())

    def end_span(self, span: Span, status_code: int, error_message: str | None = None) -> LogEntry | None:
        """Complete a span and forward its entry to the writer.

        Only the first call for a given span has an effect; later calls return None.
        """
        if not span.claim_completion():
            return None

        elapsed_ms = round((self._clock() - span.start_time) * 1000)
        entry = LogEntry(
            timestamp=self._now(),
            method=span.method,
            endpoint=span.endpoint,
            status_code=status_code,
            latency_ms=max(0, elapsed_ms),
            error_message=error_message,
        )
        self._emit(entry)
        return entry

    def record(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        latency_ms: int,
        error_message: str | None = None,
    ) -> LogEntry:
        """Record a request whose latency the host measured itself."""
        entry = LogEntry(
            timestamp=self._now(),
            method=method,
            endpoint=endpoint,
            status_code=status_code,
            latency_ms=max(0, int(latency_ms)),
            error_message=error_message,
        )
        self._emit(entry)
        return entry

    def log(self, event: Mapping[str, Any]) -> LogEntry:
        """Record an arbitrary event; extra keys (e.g. `service`) are kept verbatim.

        Raises:
            pydantic.ValidationError: If `method`, `endpoint` or `statusCode` is
                missing or a field has the wrong type.
        """
        data = dict(event)
        data.setdefault("timestamp", self._now())
        entry = LogEntry.model_validate(data)
        self._emit(entry)
        return entry

    def _emit(self, entry: LogEntry) -> None:
        try:
            self._writer.write(entry)
        except Exception:  # noqa: BLE001 - observability must not crash the host
            logger.exception("Failed to hand off log entry %s %s", entry.method, entry.endpoint)
