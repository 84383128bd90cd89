from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from request_observability import LogEntry, RotatingFileLogStore


@pytest.fixture(autouse=True)
def _no_threads_in_unit_tests(monkeypatch: pytest.MonkeyPatch):
    """Run `asyncio.to_thread` inline for unit tests.

    The recorder uses `asyncio.to_thread` to keep blocking file I/O off the
    event loop. In unit tests, this can create threadpool workers that keep the
    Python process alive longer than expected under some runtimes.
    """

    async def _to_thread(func, /, *args, **kwargs):  # noqa: ANN001, D401
        return func(*args, **kwargs)

    monkeypatch.setattr("request_observability.recorder.asyncio.to_thread", _to_thread)
    yield


@pytest.fixture
def make_entry():
    """Build LogEntry objects with distinct, increasing timestamps."""
    base = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(
        *,
        method: str = "GET",
        endpoint: str = "/items",
        status_code: int = 200,
        latency_ms: int = 10,
        error_message: str | None = None,
        **extra,
    ) -> LogEntry:
        counter["n"] += 1
        return LogEntry(
            timestamp=base + timedelta(seconds=counter["n"]),
            method=method,
            endpoint=endpoint,
            status_code=status_code,
            latency_ms=latency_ms,
            error_message=error_message,
            **extra,
        )

    return _make


@pytest.fixture
def log_prefix(tmp_path):
    return tmp_path / "logs" / "observability"


@pytest.fixture
def store(log_prefix) -> RotatingFileLogStore:
    return RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=2)
