"""Capture hook for a host application, wired to the query components.

The host calls `start_span` when it begins handling a request and `end_span`
from every terminal lifecycle signal it receives; duplicate signals for the
same span are ignored. Hosts that time requests themselves can call
`record_request` instead.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from config import ObservabilityConfig

from .models import LogEntry
from .reader import LogReader
from .snapshots import SnapshotManager
from .spans import EntryWriter, Span, SpanTracker
from .stats import SlowRequestFilter, StatsAggregator
from .store import RotatingFileLogStore


class RequestObserver:
    """One observability instance: store, span tracker and read-side queries.

    Members:
    - Log store: `store` (rotating files, also the default writer)
    - Span tracker: `tracker` (writes through `writer`, e.g. an ObservabilityRecorder)
    - Reader: `reader` (paginated newest-first history)
    - Stats: `stats` / slow requests: `slow_requests`
    - Snapshots: `snapshots`
    """

    def __init__(
        self,
        *,
        store: RotatingFileLogStore,
        snapshots: SnapshotManager,
        reader: LogReader,
        stats: StatsAggregator,
        slow_requests: SlowRequestFilter,
        writer: EntryWriter | None = None,
        ignore_paths: Iterable[str] = (),
        enabled: bool = True,
    ) -> None:
        self.store = store
        self.reader = reader
        self.stats = stats
        self.slow_requests = slow_requests
        self.snapshots = snapshots
        self.tracker = SpanTracker(writer if writer is not None else store)
        self.ignore_paths: tuple[str, ...] = tuple(ignore_paths)
        self.enabled = enabled

    @classmethod
    def from_config(
        cls,
        config: ObservabilityConfig,
        *,
        store: RotatingFileLogStore | None = None,
        writer: EntryWriter | None = None,
    ) -> RequestObserver:
        """Build every component from configuration.

        Args:
            config: Observability settings.
            store: Existing store to reuse (e.g. one already wrapped by a recorder).
            writer: Where completed spans go; defaults to the store itself.
        """
        store = store or RotatingFileLogStore.from_config(config)
        reader = LogReader(store.files, default_per_page=config.logs_per_page)
        return cls(
            store=store,
            snapshots=SnapshotManager.from_config(config, reader=reader),
            reader=reader,
            stats=StatsAggregator(reader),
            slow_requests=SlowRequestFilter(
                reader,
                default_threshold_ms=config.slow_threshold_ms,
                default_per_page=config.slow_per_page,
            ),
            writer=writer,
            ignore_paths=config.ignore_paths,
            enabled=config.enabled,
        )

    def is_ignored(self, endpoint: str) -> bool:
        """Literal prefix match of the raw request path against `ignore_paths`."""
        return any(endpoint.startswith(prefix) for prefix in self.ignore_paths)

    def should_capture(self, endpoint: str) -> bool:
        return self.enabled and not self.is_ignored(endpoint)

    def start_span(self, method: str, endpoint: str) -> Span | None:
        """Open a span, or return None for requests that are not captured."""
        if not self.should_capture(endpoint):
            return None
        return self.tracker.start_span(method, endpoint)

    def end_span(self, span: Span | None, status_code: int, error_message: str | None = None) -> bool:
        """Complete a span. Returns True only for the call that produced an entry."""
        if span is None:
            return False
        return self.tracker.end_span(span, status_code, error_message) is not None

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        latency_ms: int,
        error_message: str | None = None,
    ) -> bool:
        """Capture a completed request measured by the host."""
        if not self.should_capture(endpoint):
            return False
        self.tracker.record(method, endpoint, status_code, latency_ms, error_message)
        return True

    def log(self, event: Mapping[str, Any]) -> LogEntry:
        """Record an arbitrary event directly (not subject to `ignore_paths`)."""
        return self.tracker.log(event)
