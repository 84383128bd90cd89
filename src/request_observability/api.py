"""Framework-agnostic query handlers.

Each handler takes plain strings/mappings (query parameters, parsed JSON body,
path ids) and returns an `ApiResponse`; the host maps it onto its own router
and response type:

    GET    stats                   -> stats()
    GET    slow?thresholdMs&page&perPage -> slow(query)
    GET    logs?page&perPage       -> logs(query)
    POST   snapshots {name?}       -> create_snapshot(body)
    GET    snapshots               -> list_snapshots()
    GET    snapshots/{id}          -> get_snapshot(id)
    GET    snapshots/{id}/export   -> export_snapshot(id)
    DELETE snapshots/{id}          -> delete_snapshot(id)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .errors import SnapshotConflictError, StorageError
from .observer import RequestObserver
from .reader import normalize_paging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiResponse:
    """Status, body and headers for the host to send.

    `body` is JSON-compatible data, raw `bytes` (downloads) or None (no content).
    """

    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


def _int_param(query: Mapping[str, Any] | None, name: str) -> int | None:
    """Parse an integer query parameter; missing or malformed values yield None."""
    if not query:
        return None
    raw = query.get(name)
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def _error(status: int, message: str, details: str | None = None) -> ApiResponse:
    body: dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    return ApiResponse(status=status, body=body)


_NOT_FOUND = "Snapshot not found"


class ObservabilityApi:
    """Read-only queries and snapshot management for one RequestObserver."""

    def __init__(self, observer: RequestObserver) -> None:
        self._observer = observer

    def stats(self) -> ApiResponse:
        return ApiResponse(status=200, body=self._observer.stats.get_stats().model_dump(mode="json", by_alias=True))

    def slow(self, query: Mapping[str, Any] | None = None) -> ApiResponse:
        slow_requests = self._observer.slow_requests
        threshold_ms = _int_param(query, "thresholdMs")
        if threshold_ms is None or threshold_ms < 0:
            threshold_ms = slow_requests.default_threshold_ms
        logs = slow_requests.get_slow_requests(
            threshold_ms=threshold_ms,
            page=_int_param(query, "page"),
            per_page=_int_param(query, "perPage"),
        )
        return ApiResponse(status=200, body={"logs": [entry.to_json() for entry in logs]})

    def logs(self, query: Mapping[str, Any] | None = None) -> ApiResponse:
        reader = self._observer.reader
        page, per_page = normalize_paging(
            _int_param(query, "page"), _int_param(query, "perPage"), reader.default_per_page
        )
        logs = reader.read_page(page, per_page)
        return ApiResponse(
            status=200,
            body={"page": page, "perPage": per_page, "logs": [entry.to_json() for entry in logs]},
        )

    def create_snapshot(self, body: Any = None) -> ApiResponse:
        if body is None:
            body = {}
        if not isinstance(body, Mapping):
            return _error(400, "Invalid request body", "body must be a JSON object")
        name = body.get("name")
        if name is not None and not isinstance(name, str):
            return _error(400, "Invalid snapshot name", "name must be a string")
        try:
            metadata = self._observer.snapshots.create_snapshot(name)
        except SnapshotConflictError as exc:
            return _error(409, "Snapshot already exists", str(exc))
        except StorageError as exc:
            logger.warning("Snapshot creation failed: %s", exc)
            return _error(500, "Failed to create snapshot", str(exc))
        return ApiResponse(status=201, body=metadata.to_json())

    def list_snapshots(self) -> ApiResponse:
        snapshots = self._observer.snapshots.list_snapshots()
        return ApiResponse(status=200, body=[metadata.to_json() for metadata in snapshots])

    def get_snapshot(self, snapshot_id: str) -> ApiResponse:
        snapshot = self._observer.snapshots.get_snapshot(snapshot_id)
        if snapshot is None:
            return _error(404, _NOT_FOUND)
        return ApiResponse(status=200, body=snapshot.to_json())

    def export_snapshot(self, snapshot_id: str) -> ApiResponse:
        export = self._observer.snapshots.export_snapshot(snapshot_id)
        if export is None:
            return _error(404, _NOT_FOUND)
        return ApiResponse(
            status=200,
            body=export.content,
            headers={
                "Content-Disposition": f"attachment; filename={export.filename}",
                "Content-Type": export.media_type,
            },
        )

    def delete_snapshot(self, snapshot_id: str) -> ApiResponse:
        try:
            deleted = self._observer.snapshots.delete_snapshot(snapshot_id)
        except StorageError as exc:
            logger.warning("Snapshot deletion failed for %r: %s", snapshot_id, exc)
            return _error(500, "Failed to delete snapshot", str(exc))
        if not deleted:
            return _error(404, _NOT_FOUND)
        return ApiResponse(status=204)
