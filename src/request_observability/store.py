"""Rotating, append-only log store.

Entries are written as JSON lines to `{prefix}_{index}.log`. Index 1 is the
oldest file; the highest index is the current file and the only one written to.
Once the current file holds `max_entries_per_file` records, the next write
rotates to `index + 1`.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import StorageError
from .models import LogEntry

if TYPE_CHECKING:
    from config import ObservabilityConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogFileSet:
    """Naming and discovery for the `{prefix}_{index}.log` file family."""

    prefix: Path

    @classmethod
    def from_prefix(cls, prefix: str | Path) -> LogFileSet:
        return cls(prefix=Path(prefix).expanduser().resolve())

    @property
    def directory(self) -> Path:
        return self.prefix.parent

    def path_for(self, index: int) -> Path:
        return self.directory / f"{self.prefix.name}_{index}.log"

    def indices(self) -> list[int]:
        """Return the indices of the files currently on disk, ascending."""
        pattern = re.compile(rf"^{re.escape(self.prefix.name)}_(\d+)\.log$")
        try:
            names = os.listdir(self.directory)
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("Cannot list log directory %s: %s", self.directory, exc)
            return []

        found: list[int] = []
        for name in names:
            match = pattern.match(name)
            if match is not None and int(match.group(1)) > 0:
                found.append(int(match.group(1)))
        return sorted(found)

    def latest_index(self) -> int:
        """Return the highest index on disk, or 0 when no file exists yet."""
        indices = self.indices()
        return indices[-1] if indices else 0


@dataclass(frozen=True)
class _LastRecord:
    """Position and identity of the newest record in the current file."""

    method: str
    endpoint: str
    status_code: int
    timestamp: datetime
    offset: int

    @classmethod
    def of(cls, entry: LogEntry, offset: int) -> _LastRecord:
        return cls(
            method=entry.method,
            endpoint=entry.endpoint,
            status_code=entry.status_code,
            timestamp=entry.timestamp,
            offset=offset,
        )


def _count_records(path: Path) -> int:
    with open(path, "rb") as fh:
        return sum(1 for line in fh if line.strip())


class RotatingFileLogStore:
    """Durable JSON-lines sink with count-based rotation.

    All writes go through one lock covering the rotate check, the optional
    coalesce check and the append, so concurrent writers can neither create the
    same next file twice nor interleave partial records.

    Coalescing (off by default): when `coalesce_window_ms > 0`, a write whose
    method, endpoint and status code equal the preceding record of the current
    file, and whose timestamp is within the window, replaces that record instead
    of appending. Coalesced writes do not count toward `max_entries_per_file`,
    so the number of records on disk can be lower than the number of writes.
    """

    def __init__(
        self,
        *,
        prefix: str | Path,
        max_entries_per_file: int = 100,
        coalesce_window_ms: int = 0,
    ) -> None:
        """Open (or resume) the file family for `prefix`.

        Args:
            prefix: Base path; files are named `{prefix}_{index}.log`.
            max_entries_per_file: Rotation threshold.
            coalesce_window_ms: Duplicate-signal window; 0 disables coalescing.

        Raises:
            ValueError: For non-positive thresholds.
            StorageError: When the directory or the current file cannot be created.
        """
        if max_entries_per_file <= 0:
            raise ValueError(f"max_entries_per_file must be > 0. Got: {max_entries_per_file}")
        if coalesce_window_ms < 0:
            raise ValueError(f"coalesce_window_ms must be >= 0. Got: {coalesce_window_ms}")

        self._files = LogFileSet.from_prefix(prefix)
        self._max_entries = max_entries_per_file
        self._coalesce_window_ms = coalesce_window_ms
        self._lock = threading.Lock()
        self._last: _LastRecord | None = None

        try:
            self._current_index, self._entry_count = self._resume()
            self._touch(self._current_index)
        except OSError as exc:
            raise StorageError(f"Cannot initialise log files at {self._files.prefix}: {exc}") from exc

    @classmethod
    def from_config(cls, config: ObservabilityConfig) -> RotatingFileLogStore:
        return cls(
            prefix=config.log_file_prefix,
            max_entries_per_file=config.max_entries_per_file,
            coalesce_window_ms=config.coalesce_window_ms,
        )

    @property
    def files(self) -> LogFileSet:
        return self._files

    @property
    def max_entries_per_file(self) -> int:
        return self._max_entries

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def entry_count(self) -> int:
        """Records in the current file."""
        return self._entry_count

    @property
    def current_path(self) -> Path:
        return self._files.path_for(self._current_index)

    def write(self, entry: LogEntry) -> bool:
        """Persist an entry (best-effort).

        Filesystem failures are logged and the entry is dropped; they never
        propagate to the caller.

        Returns:
            True if the entry reached the file, False if it was dropped.
        """
        data = (entry.to_record() + "\n").encode("utf-8")
        with self._lock:
            try:
                if self._should_coalesce(entry):
                    self._replace_last(entry, data)
                else:
                    self._rotate_if_full()
                    self._append(entry, data)
            except OSError:
                logger.exception(
                    "Dropping log entry %s %s: write to %s failed",
                    entry.method,
                    entry.endpoint,
                    self.current_path,
                )
                return False
        return True

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op; files are opened per write."""

    def _resume(self) -> tuple[int, int]:
        """Continue from the newest existing file, counting its records."""
        latest = self._files.latest_index()
        if latest == 0:
            return 1, 0
        return latest, _count_records(self._files.path_for(latest))

    def _touch(self, index: int) -> None:
        self._files.directory.mkdir(parents=True, exist_ok=True)
        self._files.path_for(index).touch(exist_ok=True)

    def _rotate_if_full(self) -> None:
        if self._entry_count < self._max_entries:
            return
        next_index = self._current_index + 1
        # State only advances once the new file exists.
        self._touch(next_index)
        self._current_index = next_index
        self._entry_count = 0
        self._last = None
        logger.debug("Rotated request log to %s", self.current_path)

    def _append(self, entry: LogEntry, data: bytes) -> None:
        with open(self.current_path, "ab") as fh:
            offset = fh.tell()
            try:
                fh.write(data)
                fh.flush()
            except OSError:
                # Cut off a partial record so the next append starts on a clean line.
                with suppress(OSError):
                    fh.truncate(offset)
                raise
        self._entry_count += 1
        self._last = _LastRecord.of(entry, offset)

    def _should_coalesce(self, entry: LogEntry) -> bool:
        last = self._last
        if self._coalesce_window_ms <= 0 or last is None:
            return False
        if (last.method, last.endpoint, last.status_code) != (entry.method, entry.endpoint, entry.status_code):
            return False
        try:
            delta = abs((entry.timestamp - last.timestamp).total_seconds()) * 1000
        except TypeError:
            # Naive and aware timestamps cannot be compared.
            return False
        return delta <= self._coalesce_window_ms

    def _replace_last(self, entry: LogEntry, data: bytes) -> None:
        if self._last is None:
            raise RuntimeError("No record in the current file to replace")
        offset = self._last.offset
        with open(self.current_path, "r+b") as fh:
            fh.truncate(offset)
            fh.seek(offset)
            fh.write(data)
            fh.flush()
        self._last = _LastRecord.of(entry, offset)
