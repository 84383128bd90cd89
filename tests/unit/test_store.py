from __future__ import annotations

import json
import threading
from datetime import timedelta

import pytest

from request_observability import LogFileSet, LogReader, RotatingFileLogStore, StorageError


def _lines(path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_store_creates_first_file_on_init(log_prefix) -> None:
    store = RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=3)

    assert store.current_index == 1
    assert store.entry_count == 0
    assert store.current_path.exists()
    assert store.current_path.name == "observability_1.log"
    assert store.current_path.read_text() == ""


def test_writes_up_to_max_stay_in_one_file_then_rotate(log_prefix, make_entry) -> None:
    store = RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=3)

    for _ in range(3):
        assert store.write(make_entry()) is True

    assert store.files.indices() == [1]
    assert store.entry_count == 3

    store.write(make_entry(endpoint="/fourth"))

    assert store.current_index == 2
    assert store.entry_count == 1
    assert store.files.indices() == [1, 2]
    assert [r["endpoint"] for r in _lines(store.files.path_for(2))] == ["/fourth"]


def test_file_indices_are_dense(store, make_entry) -> None:
    for _ in range(5):
        store.write(make_entry())

    assert store.files.indices() == [1, 2, 3]
    assert [len(_lines(store.files.path_for(i))) for i in (1, 2, 3)] == [2, 2, 1]


def test_records_are_camel_case_json_lines_oldest_first(store, make_entry) -> None:
    first = make_entry(endpoint="/a", status_code=201, latency_ms=7)
    second = make_entry(endpoint="/b", status_code=500, error_message="boom", service="billing")
    store.write(first)
    store.write(second)

    records = _lines(store.current_path)
    assert [r["endpoint"] for r in records] == ["/a", "/b"]
    assert records[0]["statusCode"] == 201
    assert records[0]["latencyMs"] == 7
    assert records[0]["errorMessage"] is None
    assert records[1]["errorMessage"] == "boom"
    assert records[1]["service"] == "billing"
    assert "timestamp" in records[0]


def test_store_resumes_from_existing_files(log_prefix, make_entry) -> None:
    first = RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=2)
    for _ in range(3):
        first.write(make_entry())

    resumed = RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=2)
    assert resumed.current_index == 2
    assert resumed.entry_count == 1

    resumed.write(make_entry())
    resumed.write(make_entry())
    assert resumed.current_index == 3
    assert len(_lines(log_prefix.parent / "observability_1.log")) == 2


def test_write_failure_is_dropped_not_raised(store, make_entry, monkeypatch: pytest.MonkeyPatch) -> None:
    store.write(make_entry(endpoint="/kept"))

    def _fail(*args, **kwargs):  # noqa: ANN001, ANN002, ANN003
        raise OSError("disk full")

    monkeypatch.setattr("request_observability.store.open", _fail, raising=False)

    assert store.write(make_entry(endpoint="/lost")) is False
    assert store.entry_count == 1

    monkeypatch.undo()
    assert [r["endpoint"] for r in _lines(store.current_path)] == ["/kept"]


def test_rotation_failure_keeps_current_file(store, make_entry, monkeypatch: pytest.MonkeyPatch) -> None:
    store.write(make_entry())
    store.write(make_entry())

    def _fail(self, index: int) -> None:  # noqa: ANN001
        raise PermissionError("read-only")

    monkeypatch.setattr(RotatingFileLogStore, "_touch", _fail)

    assert store.write(make_entry()) is False
    assert store.current_index == 1
    assert store.entry_count == 2


def test_init_raises_storage_error_when_directory_cannot_be_created(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")

    with pytest.raises(StorageError):
        RotatingFileLogStore(prefix=blocker / "observability", max_entries_per_file=2)


@pytest.mark.parametrize("value", [0, -1])
def test_max_entries_must_be_positive(log_prefix, value: int) -> None:
    with pytest.raises(ValueError):
        RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=value)


def test_coalescing_is_disabled_by_default(store, make_entry) -> None:
    entry = make_entry(endpoint="/dup")
    store.write(entry)
    store.write(entry)

    assert len(_lines(store.current_path)) == 2


def test_coalescing_replaces_duplicate_within_window(log_prefix, make_entry) -> None:
    store = RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=5, coalesce_window_ms=10)
    store.write(make_entry(endpoint="/before"))
    original = make_entry(endpoint="/dup", latency_ms=5)
    duplicate = original.model_copy(update={"timestamp": original.timestamp + timedelta(milliseconds=4), "latency_ms": 6})

    store.write(original)
    store.write(duplicate)

    records = _lines(store.current_path)
    assert [r["endpoint"] for r in records] == ["/before", "/dup"]
    assert records[-1]["latencyMs"] == 6
    assert store.entry_count == 2


def test_coalescing_keeps_writes_outside_window_or_different(log_prefix, make_entry) -> None:
    store = RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=5, coalesce_window_ms=10)
    original = make_entry(endpoint="/dup")
    later = original.model_copy(update={"timestamp": original.timestamp + timedelta(milliseconds=50)})
    other_status = later.model_copy(update={"status_code": 500})

    store.write(original)
    store.write(later)
    store.write(other_status)

    assert len(_lines(store.current_path)) == 3
    assert store.entry_count == 3


def test_file_set_ignores_unrelated_files(tmp_path) -> None:
    directory = tmp_path / "logs"
    directory.mkdir()
    for name in ["observability_1.log", "observability_3.log", "observability_x.log", "other_2.log", "observability_0.log"]:
        (directory / name).write_text("")

    files = LogFileSet.from_prefix(directory / "observability")

    assert files.indices() == [1, 3]
    assert files.latest_index() == 3
    assert LogFileSet.from_prefix(tmp_path / "missing" / "observability").latest_index() == 0


def test_concurrent_threads_rotate_without_gaps_or_overfull_files(log_prefix, make_entry) -> None:
    threads_count, per_thread, cap = 8, 25, 7
    store = RotatingFileLogStore(prefix=log_prefix, max_entries_per_file=cap)
    batches = [[make_entry(endpoint=f"/t{t}/{i}") for i in range(per_thread)] for t in range(threads_count)]
    barrier = threading.Barrier(threads_count)
    results: list[bool] = []

    def _worker(batch) -> None:  # noqa: ANN001
        barrier.wait()
        results.extend(store.write(entry) for entry in batch)

    threads = [threading.Thread(target=_worker, args=(batch,)) for batch in batches]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    total = threads_count * per_thread
    indices = store.files.indices()
    assert all(results) and len(results) == total
    assert indices == list(range(1, len(indices) + 1))
    assert all(len(_lines(store.files.path_for(i))) <= cap for i in indices)
    assert sum(len(_lines(store.files.path_for(i))) for i in indices) == total

    endpoints = [entry.endpoint for entry in LogReader(store.files).read_all()]
    assert sorted(endpoints) == sorted(entry.endpoint for batch in batches for entry in batch)


def test_replace_last_without_previous_record_raises(store, make_entry) -> None:
    entry = make_entry()

    with pytest.raises(RuntimeError):
        store._replace_last(entry, (entry.to_record() + "\n").encode("utf-8"))
