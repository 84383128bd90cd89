"""Exceptions surfaced to callers of the observability engine.

Not-found outcomes are not exceptions: lookups return `None` / `False`.
"""

from __future__ import annotations


class ObservabilityError(Exception):
    """Base class for observability errors."""


class StorageError(ObservabilityError):
    """A filesystem operation that the caller asked for could not be completed."""


class SnapshotConflictError(ObservabilityError):
    """A snapshot with the requested name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Snapshot {name!r} already exists")
        self.name = name
