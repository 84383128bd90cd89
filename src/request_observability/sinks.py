"""Log sinks (storage backends)."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Protocol

from .models import LogEntry


class LogSink(Protocol):
    """A synchronous sink for completed request entries.

    Sinks are intentionally synchronous; the recorder isolates blocking I/O in a
    background worker (thread) to keep the event loop unblocked.
    """

    def write(self, entry: LogEntry) -> bool:
        """Persist a single entry. Returns False when the entry was dropped."""

    def close(self) -> None:
        """Close any underlying resources."""


class InMemoryLogSink:
    """In-memory sink for tests and local debugging."""

    def __init__(self) -> None:
        """Create an empty in-memory sink."""
        self._lock = threading.Lock()
        self._entries: list[LogEntry] = []

    def write(self, entry: LogEntry) -> bool:
        """Append an entry to the in-memory list (thread-safe)."""
        with self._lock:
            self._entries.append(entry)
        return True

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""

    def snapshot(self) -> Sequence[LogEntry]:
        """Return a point-in-time copy of all written entries, oldest-first."""
        with self._lock:
            return list(self._entries)
