"""Newest-first views over the rotated log files.

Files are read on demand for every query; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from itertools import islice

from pydantic import ValidationError

from .models import LogEntry
from .store import LogFileSet

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 50


def normalize_paging(page: int | None, per_page: int | None, default_per_page: int) -> tuple[int, int]:
    """Clamp missing or non-positive paging values to `page=1` and the default size."""
    if page is None or page <= 0:
        page = 1
    if per_page is None or per_page <= 0:
        per_page = default_per_page
    return page, per_page


def paginate(entries: Iterator[LogEntry], page: int, per_page: int) -> list[LogEntry]:
    """Take the `[(page-1)*per_page, page*per_page)` window, consuming no more than needed."""
    start = (page - 1) * per_page
    return list(islice(entries, start, start + per_page))


class LogReader:
    """Reconstructs newest-first sequences across `{prefix}_{index}.log` files."""

    def __init__(self, files: LogFileSet, *, default_per_page: int = DEFAULT_PER_PAGE) -> None:
        self._files = files
        self._default_per_page = default_per_page

    @property
    def default_per_page(self) -> int:
        return self._default_per_page

    def iter_entries(self) -> Iterator[LogEntry]:
        """Yield entries newest-first, opening each file only when it is reached."""
        for index in range(self._files.latest_index(), 0, -1):
            yield from reversed(self._read_file(index))

    def read_all(self) -> list[LogEntry]:
        """Return every entry, newest-first. O(total entries)."""
        return list(self.iter_entries())

    def read_page(self, page: int | None = 1, per_page: int | None = None) -> list[LogEntry]:
        """Return one page of the newest-first log.

        Stops reading files as soon as the window is filled.
        """
        page, per_page = normalize_paging(page, per_page, self._default_per_page)
        return paginate(self.iter_entries(), page, per_page)

    def _read_file(self, index: int) -> list[LogEntry]:
        """Parse one file oldest-first. Unreadable files and malformed records are skipped."""
        path = self._files.path_for(index)
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as fh:
                lines = fh.readlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("Skipping unreadable log file %s: %s", path, exc)
            return []

        entries: list[LogEntry] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(LogEntry.model_validate_json(line))
            except ValidationError:
                continue
        return entries
