"""Request observability record models.

Records are designed to be:
- Immutable once written (frozen models).
- Self-describing on disk: one JSON object per line, camelCase keys.
- Open to free-form extra fields attached by direct `log(event)` calls.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


class LogEntry(BaseModel):
    """A completed request event, as persisted by the log store."""

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    timestamp: datetime = Field(default_factory=utc_now)
    method: str
    # Raw request path as observed by the host.
    endpoint: str
    status_code: int
    latency_ms: int = Field(default=0, ge=0)
    error_message: str | None = None

    def to_record(self) -> str:
        """Encode the entry as a single line-delimited JSON record (no newline)."""
        return self.model_dump_json(by_alias=True)

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-compatible dict using the on-disk field names."""
        return self.model_dump(mode="json", by_alias=True)


class RequestStats(BaseModel):
    """Success/failure counts and rates over a set of entries."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    total: int = 0
    successes: int = 0
    failures: int = 0
    # Percentages rounded to 2 decimals; 0 when total is 0.
    success_rate: float = 0.0
    failure_rate: float = 0.0


class ExportMetadata(BaseModel):
    """Header block of an export document (and of a snapshot artifact)."""

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    exported_at: datetime = Field(default_factory=utc_now)
    log_count: int = 0
    slow_request_count: int = 0
    slow_threshold_ms: int = 0

    # Only set when the document is stored as a snapshot.
    snapshot_id: str | None = None
    name: str | None = None
    created_at: datetime | None = None


class Snapshot(BaseModel):
    """Point-in-time export: stats, slow requests and a capped log excerpt (newest-first)."""

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    metadata: ExportMetadata
    stats: RequestStats
    slow_endpoints: list[LogEntry] = Field(default_factory=list)
    logs: list[LogEntry] = Field(default_factory=list)

    @property
    def id(self) -> str | None:
        return self.metadata.snapshot_id

    @property
    def name(self) -> str | None:
        return self.metadata.name

    @property
    def created_at(self) -> datetime | None:
        return self.metadata.created_at

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_bytes(self) -> bytes:
        """Serialise as indented JSON, the on-disk artifact format."""
        return self.model_dump_json(by_alias=True, indent=2).encode("utf-8")


class SnapshotMetadata(BaseModel):
    """Summary returned by snapshot creation and listing."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    path: str
    created_at: datetime
    stats: RequestStats

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SnapshotExport(BaseModel):
    """A downloadable snapshot artifact."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes
    media_type: str = "application/json"
