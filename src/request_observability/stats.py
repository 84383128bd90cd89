"""Aggregate queries over the full log history."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from .models import LogEntry, RequestStats
from .reader import LogReader, normalize_paging, paginate

DEFAULT_SLOW_THRESHOLD_MS = 500
DEFAULT_SLOW_PER_PAGE = 20


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 400


def is_failure(status_code: int) -> bool:
    return status_code >= 400


def _rate(count: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(count / total * 100, 2)


def compute_stats(entries: Iterable[LogEntry]) -> RequestStats:
    """Count successes ([200, 400)) and failures (>= 400).

    Entries below 200 only contribute to `total`.
    """
    total = successes = failures = 0
    for entry in entries:
        total += 1
        if is_success(entry.status_code):
            successes += 1
        elif is_failure(entry.status_code):
            failures += 1
    return RequestStats(
        total=total,
        successes=successes,
        failures=failures,
        success_rate=_rate(successes, total),
        failure_rate=_rate(failures, total),
    )


def filter_slow(entries: Iterable[LogEntry], threshold_ms: int) -> Iterator[LogEntry]:
    """Yield entries strictly slower than `threshold_ms`, preserving order."""
    return (entry for entry in entries if entry.latency_ms > threshold_ms)


class StatsAggregator:
    """Success/failure statistics computed from the live log on every call."""

    def __init__(self, reader: LogReader) -> None:
        self._reader = reader

    def get_stats(self) -> RequestStats:
        return compute_stats(self._reader.iter_entries())


class SlowRequestFilter:
    """Paginated newest-first list of requests above a latency threshold."""

    def __init__(
        self,
        reader: LogReader,
        *,
        default_threshold_ms: int = DEFAULT_SLOW_THRESHOLD_MS,
        default_per_page: int = DEFAULT_SLOW_PER_PAGE,
    ) -> None:
        self._reader = reader
        self._default_threshold_ms = default_threshold_ms
        self._default_per_page = default_per_page

    @property
    def default_threshold_ms(self) -> int:
        return self._default_threshold_ms

    def get_slow_requests(
        self,
        threshold_ms: int | None = None,
        page: int | None = 1,
        per_page: int | None = None,
    ) -> list[LogEntry]:
        """Return one page of entries with `latency_ms > threshold_ms` (exclusive)."""
        if threshold_ms is None:
            threshold_ms = self._default_threshold_ms
        page, per_page = normalize_paging(page, per_page, self._default_per_page)
        return paginate(filter_slow(self._reader.iter_entries(), threshold_ms), page, per_page)
