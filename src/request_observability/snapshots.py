"""Point-in-time snapshot archival and export.

A snapshot is one self-contained JSON document (stats, slow requests and a
capped newest-first log excerpt) written to a dedicated directory. It does not
reference the rotating log files, so deleting those leaves snapshots intact.

Snapshot names are unique within the directory; the artifact file is named
after the (sanitised) snapshot name.
"""

from __future__ import annotations

import logging
import os
import re
import secrets
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .errors import SnapshotConflictError, StorageError
from .models import ExportMetadata, Snapshot, SnapshotExport, SnapshotMetadata, utc_now
from .reader import LogReader
from .stats import DEFAULT_SLOW_THRESHOLD_MS, compute_stats, filter_slow

if TYPE_CHECKING:
    from config import ObservabilityConfig

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_LIMIT = 1000
DEFAULT_SLOW_EXPORT_LIMIT = 100

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def generate_snapshot_id() -> str:
    """Time-based id with a random suffix, e.g. `snap_1718000000000_3f9a1c2e`."""
    return f"snap_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def default_snapshot_name(created_at: datetime) -> str:
    return "snapshot_" + re.sub(r"[:.+]", "-", created_at.isoformat())


def snapshot_filename(name: str) -> str:
    """Map a snapshot name to a file name that cannot escape the directory."""
    safe = _UNSAFE_FILENAME_CHARS.sub("_", name).lstrip(".")
    return f"{safe or 'snapshot'}.json"


def export_filename(snapshot: Snapshot, fallback: str) -> str:
    """Download name for an exported snapshot: `snapshot_{id-or-name}.json`."""
    key = snapshot.id or snapshot.name or fallback
    return f"snapshot_{_UNSAFE_FILENAME_CHARS.sub('_', key)}.json"


class SnapshotManager:
    """Creates, lists, loads, deletes and exports snapshot artifacts."""

    def __init__(
        self,
        *,
        directory: str | Path,
        reader: LogReader,
        slow_threshold_ms: int = DEFAULT_SLOW_THRESHOLD_MS,
        export_limit: int = DEFAULT_EXPORT_LIMIT,
        slow_export_limit: int = DEFAULT_SLOW_EXPORT_LIMIT,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._directory = Path(directory).expanduser().resolve()
        self._reader = reader
        self._slow_threshold_ms = slow_threshold_ms
        self._export_limit = export_limit
        self._slow_export_limit = slow_export_limit
        self._now = now
        # Serialises create/delete so the uniqueness check and the write are atomic.
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ObservabilityConfig, *, reader: LogReader) -> SnapshotManager:
        return cls(
            directory=config.snapshots_dir,
            reader=reader,
            slow_threshold_ms=config.slow_threshold_ms,
            export_limit=config.export_limit,
            slow_export_limit=config.slow_export_limit,
        )

    @property
    def directory(self) -> Path:
        return self._directory

    def export_data(self, *, slow_threshold_ms: int | None = None, limit: int | None = None) -> Snapshot:
        """Build an export document from a single pass over the live log.

        Stats, slow requests and the log excerpt are all derived from the same
        read, so they are consistent with each other.
        """
        if slow_threshold_ms is None:
            slow_threshold_ms = self._slow_threshold_ms
        if limit is None:
            limit = self._export_limit

        entries = self._reader.read_all()
        slow = list(filter_slow(entries, slow_threshold_ms))[: self._slow_export_limit]
        logs = entries[:limit]
        return Snapshot(
            metadata=ExportMetadata(
                exported_at=self._now(),
                log_count=len(logs),
                slow_request_count=len(slow),
                slow_threshold_ms=slow_threshold_ms,
            ),
            stats=compute_stats(entries),
            slow_endpoints=slow,
            logs=logs,
        )

    def export_to_file(
        self,
        path: str | Path,
        *,
        slow_threshold_ms: int | None = None,
        limit: int | None = None,
    ) -> Path:
        """Write an export document to `path` as indented JSON.

        Raises:
            StorageError: If the file or its directory cannot be written.
        """
        document = self.export_data(slow_threshold_ms=slow_threshold_ms, limit=limit)
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            _write_atomic(target, document.to_bytes())
        except OSError as exc:
            logger.error("Failed to export observability data to %s: %s", target, exc)
            raise StorageError(f"Failed to export data: {exc}") from exc
        return target

    def create_snapshot(self, name: str | None = None) -> SnapshotMetadata:
        """Persist the current stats, slow list and log excerpt under a new id.

        Raises:
            SnapshotConflictError: If a snapshot with this name already exists.
            StorageError: If the directory or artifact cannot be written.
        """
        created_at = self._now()
        name = (name or "").strip() or default_snapshot_name(created_at)
        snapshot_id = generate_snapshot_id()

        with self._lock:
            try:
                self._directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.error("Failed to create snapshots directory %s: %s", self._directory, exc)
                raise StorageError(f"Failed to create snapshots directory: {exc}") from exc

            path = self._directory / snapshot_filename(name)
            if path.exists() or self._resolve(name) is not None:
                raise SnapshotConflictError(name)

            document = self.export_data()
            document.metadata.snapshot_id = snapshot_id
            document.metadata.name = name
            document.metadata.created_at = created_at

            try:
                _write_atomic(path, document.to_bytes())
            except OSError as exc:
                logger.error("Failed to write snapshot %s: %s", path, exc)
                raise StorageError(f"Failed to create snapshot: {exc}") from exc

        logger.info("Created snapshot %s (%s) at %s", snapshot_id, name, path)
        return SnapshotMetadata(
            id=snapshot_id,
            name=name,
            path=str(path),
            created_at=created_at,
            stats=document.stats,
        )

    def list_snapshots(self) -> list[SnapshotMetadata]:
        """Return metadata for every readable snapshot, newest-created first."""
        if not self._directory.is_dir():
            return []

        found: list[SnapshotMetadata] = []
        for path in self._directory.glob("*.json"):
            metadata = self._read_metadata(path)
            if metadata is not None:
                found.append(metadata)
        found.sort(key=lambda m: _sort_key(m.created_at), reverse=True)
        return found

    def get_snapshot(self, id_or_name: str) -> Snapshot | None:
        """Load a snapshot by id, else by name. Returns None when not found."""
        metadata = self._resolve(id_or_name)
        if metadata is None:
            return None
        return self._load(Path(metadata.path))

    def delete_snapshot(self, id_or_name: str) -> bool:
        """Delete a snapshot by id, else by name.

        Returns:
            True if a snapshot was deleted, False if none matched.

        Raises:
            StorageError: If the artifact exists but cannot be removed.
        """
        with self._lock:
            metadata = self._resolve(id_or_name)
            if metadata is None:
                return False
            try:
                os.remove(metadata.path)
            except FileNotFoundError:
                return False
            except OSError as exc:
                logger.error("Failed to delete snapshot %s: %s", metadata.path, exc)
                raise StorageError(f"Failed to delete snapshot: {exc}") from exc
        logger.info("Deleted snapshot %s (%s)", metadata.id, metadata.name)
        return True

    def export_snapshot(self, id_or_name: str) -> SnapshotExport | None:
        """Serialise a stored snapshot as a downloadable artifact, or None if not found."""
        snapshot = self.get_snapshot(id_or_name)
        if snapshot is None:
            return None
        return SnapshotExport(filename=export_filename(snapshot, id_or_name), content=snapshot.to_bytes())

    def _resolve(self, id_or_name: str) -> SnapshotMetadata | None:
        snapshots = self.list_snapshots()
        for metadata in snapshots:
            if metadata.id == id_or_name:
                return metadata
        for metadata in snapshots:
            if metadata.name == id_or_name:
                return metadata
        return None

    def _load(self, path: Path) -> Snapshot | None:
        try:
            return Snapshot.model_validate_json(path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as exc:
            logger.warning("Skipping unreadable snapshot %s: %s", path, exc)
            return None

    def _read_metadata(self, path: Path) -> SnapshotMetadata | None:
        snapshot = self._load(path)
        if snapshot is None:
            return None
        created_at = snapshot.created_at
        if created_at is None:
            try:
                created_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            except OSError:
                return None
        return SnapshotMetadata(
            id=snapshot.id or path.stem,
            name=snapshot.name or path.stem,
            path=str(path),
            created_at=created_at,
            stats=snapshot.stats,
        )


def _sort_key(created_at: datetime) -> datetime:
    if created_at.tzinfo is None:
        return created_at.replace(tzinfo=timezone.utc)
    return created_at


def _write_atomic(path: Path, data: bytes) -> None:
    """Write to a temporary sibling, then move it over `path`."""
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except OSError:
        with suppress(OSError):
            tmp.unlink()
        raise
