"""Data model types for SandboxDAV metadata.

These dataclasses represent the entities held by the metadata store: file
and directory entries (with their version lineage) and sandboxes.
"""

from __future__ import annotations

import email.utils
from dataclasses import dataclass
from datetime import datetime, timezone

# Entry types
FILE = "file"
DIR = "dir"

# Entry lifecycle states
READY = "ready"
PENDING = "pending"
DELETED = "deleted"


def format_iso(dt: datetime) -> str:
    """Format a UTC datetime the way the metadata store records timestamps.

    The fixed-width format keeps string comparison in chronological order.
    """
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string with milliseconds."""
    return format_iso(datetime.now(timezone.utc))


def iso_to_http_date(iso_str: str) -> str:
    """Convert an ISO 8601 timestamp to an HTTP date string (RFC 1123).

    ``2024-01-01T00:00:00.000Z`` becomes ``Mon, 01 Jan 2024 00:00:00 GMT``.

    Returns:
        The HTTP date string, or the original string if parsing fails.
    """
    for fmt in ("%Y-%m-%dT%H:%M:%S.%fZ", "%Y-%m-%dT%H:%M:%SZ"):
        try:
            dt = datetime.strptime(iso_str, fmt).replace(tzinfo=timezone.utc)
        except (ValueError, TypeError):
            continue
        return email.utils.format_datetime(dt, usegmt=True)
    return iso_str


def object_key_for(tenant_id: str, path: str, version: int) -> str:
    """Derive the blob store key for one version of a file.

    Deterministic from ``(tenant_id, path, version)``.
    """
    return f"{tenant_id}{path}::v{version}"


@dataclass
class FileEntry:
    """Metadata for one version of a file or directory.

    Attributes:
        id: Store-assigned identity.
        tenant_id: The sandbox slug this entry belongs to.
        path: Absolute normalized tenant-relative path.
        name: Last path segment (denormalized from path).
        parent_path: Parent directory path (denormalized from path).
        type: FILE or DIR.
        size: Size in bytes; 0 for directories.
        mtime: ISO 8601 last-modified timestamp.
        version: Version number within the path's lineage.
        status: READY, PENDING or DELETED.
        object_key: Blob store key; None for directories.
    """

    id: int
    tenant_id: str
    path: str
    name: str
    parent_path: str
    type: str
    size: int
    mtime: str
    version: int
    status: str
    object_key: str | None = None

    @property
    def is_dir(self) -> bool:
        return self.type == DIR


@dataclass
class Sandbox:
    """A tenant record.

    Attributes:
        name: Human-readable name.
        slug: URL-safe unique identifier; used as the tenant id.
        created_at: ISO 8601 creation timestamp.
    """

    name: str
    slug: str
    created_at: str = ""


@dataclass
class WriteReservation:
    """Result of reserving a write.

    Attributes:
        entry_id: Identity of the new pending entry.
        object_key: Where the caller must upload the content.
        version: The version assigned to the new entry.
        superseded_keys: Object keys of stale pending entries at the same
            path that the reservation tombstoned; their blobs are garbage.
    """

    entry_id: int
    object_key: str
    version: int
    superseded_keys: list[str]
