from __future__ import annotations

import pytest

from config import ObservabilityConfig
from request_observability import InMemoryLogSink, RequestObserver


@pytest.fixture
def config(tmp_path) -> ObservabilityConfig:
    return ObservabilityConfig(
        log_file_prefix=str(tmp_path / "logs" / "observability"),
        snapshots_dir=str(tmp_path / "snapshots"),
        max_entries_per_file=2,
        ignore_paths=("/observability", "/.well-known/appspecific"),
    )


def test_from_config_wires_store_and_queries(config) -> None:
    observer = RequestObserver.from_config(config)

    for status in (200, 404, 500):
        span = observer.start_span("GET", f"/items/{status}")
        assert observer.end_span(span, status) is True

    assert observer.store.current_index == 2
    assert [e.status_code for e in observer.reader.read_all()] == [500, 404, 200]
    assert observer.stats.get_stats().failures == 2
    assert observer.snapshots.directory.name == "snapshots"


def test_duplicate_finish_and_close_signals_persist_one_entry(config) -> None:
    observer = RequestObserver.from_config(config)
    span = observer.start_span("GET", "/items")

    assert observer.end_span(span, 200) is True
    assert observer.end_span(span, 200) is False

    assert len(observer.reader.read_all()) == 1


@pytest.mark.parametrize("path", ["/observability", "/observability/stats", "/.well-known/appspecific/x.json"])
def test_ignored_paths_are_not_captured(config, path: str) -> None:
    observer = RequestObserver.from_config(config)

    span = observer.start_span("GET", path)

    assert span is None
    assert observer.end_span(span, 200) is False
    assert observer.record_request("GET", path, 200, 5) is False
    assert observer.reader.read_all() == []


def test_ignore_match_is_a_literal_prefix(config) -> None:
    observer = RequestObserver.from_config(config)

    assert observer.is_ignored("/observability-extra") is True
    assert observer.is_ignored("/api/observability") is False


def test_disabled_observer_captures_nothing(config) -> None:
    observer = RequestObserver.from_config(config.model_copy(update={"enabled": False}))

    assert observer.start_span("GET", "/items") is None
    assert observer.record_request("GET", "/items", 200, 5) is False
    assert observer.reader.read_all() == []


def test_record_request_uses_host_latency(config) -> None:
    observer = RequestObserver.from_config(config)

    assert observer.record_request("PUT", "/items/1", 503, 812, "upstream down") is True

    (entry,) = observer.reader.read_all()
    assert entry.latency_ms == 812
    assert entry.error_message == "upstream down"


def test_log_bypasses_ignore_paths(config) -> None:
    observer = RequestObserver.from_config(config)

    observer.log({"service": "auth", "method": "POST", "endpoint": "/observability/login", "statusCode": 401})

    (entry,) = observer.reader.read_all()
    assert entry.model_extra == {"service": "auth"}


def test_custom_writer_receives_span_entries(config) -> None:
    sink = InMemoryLogSink()
    observer = RequestObserver.from_config(config, writer=sink)

    observer.end_span(observer.start_span("GET", "/items"), 200)

    assert len(sink.snapshot()) == 1
    assert observer.reader.read_all() == []
