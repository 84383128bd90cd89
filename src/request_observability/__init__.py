"""Request observability engine.

This package provides:
- Span tracking for host requests, with at-most-once completion.
- A rotating, append-only JSON-lines log store.
- Newest-first paginated history, success/failure stats and slow-request lists.
- Named point-in-time snapshots that outlive the rotating logs.
- Framework-agnostic query handlers for the host's router.
"""

from .api import ApiResponse, ObservabilityApi
from .errors import ObservabilityError, SnapshotConflictError, StorageError
from .models import LogEntry, RequestStats, Snapshot, SnapshotExport, SnapshotMetadata
from .observer import RequestObserver
from .reader import LogReader
from .recorder import ObservabilityRecorder
from .sinks import InMemoryLogSink, LogSink
from .snapshots import SnapshotManager
from .spans import Span, SpanTracker
from .stats import SlowRequestFilter, StatsAggregator, compute_stats
from .store import LogFileSet, RotatingFileLogStore

__all__ = [
    "ApiResponse",
    "InMemoryLogSink",
    "LogEntry",
    "LogFileSet",
    "LogReader",
    "LogSink",
    "ObservabilityApi",
    "ObservabilityError",
    "ObservabilityRecorder",
    "RequestObserver",
    "RequestStats",
    "RotatingFileLogStore",
    "SlowRequestFilter",
    "Snapshot",
    "SnapshotConflictError",
    "SnapshotExport",
    "SnapshotManager",
    "SnapshotMetadata",
    "Span",
    "SpanTracker",
    "StatsAggregator",
    "StorageError",
    "compute_stats",
]
