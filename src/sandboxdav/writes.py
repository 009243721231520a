"""Two-phase write protocol for SandboxDAV.

A write touches two stores that share no transaction: the metadata store
reserves a pending version, the blob store receives the bytes, and the
metadata store then confirms the version. ``WriteSaga`` runs these steps in
order and records how far it got:

    reserved -> uploaded -> confirmed

Each saga is identified by ``{tenant}{path}@v{version}``. A crash between
the steps leaves a pending entry (and possibly an orphan blob) behind.
Such entries are superseded by the next write to the same path once they
are older than the pending timeout, and ``reap_stranded_writes`` collects
them store-wide.
"""

import enum
import logging
from datetime import datetime, timedelta, timezone

from sandboxdav import metrics
from sandboxdav.errors import UpstreamError
from sandboxdav.metadata.models import FileEntry, WriteReservation, format_iso
from sandboxdav.metadata.store import MetadataStore
from sandboxdav.storage.backend import BlobStore

logger = logging.getLogger(__name__)


class WriteState(enum.Enum):
    NEW = "new"
    RESERVED = "reserved"
    UPLOADED = "uploaded"
    CONFIRMED = "confirmed"


def cutoff_iso(seconds: int) -> str:
    """Return the store timestamp ``seconds`` ago."""
    return format_iso(datetime.now(timezone.utc) - timedelta(seconds=seconds))


async def _delete_blobs(storage: BlobStore, object_keys: list[str]) -> None:
    """Best-effort removal of blobs no metadata entry will ever confirm."""
    for object_key in object_keys:
        try:
            await storage.delete(object_key)
        except Exception:
            logger.warning("Failed to delete orphan blob %s", object_key, exc_info=True)


class WriteSaga:
    """Runs one reserve -> upload -> confirm sequence.

    Attributes:
        state: How far the saga progressed.
        reservation: The reservation, once the reserve step succeeded.
    """

    def __init__(
        self,
        metadata: MetadataStore,
        storage: BlobStore,
        tenant_id: str,
        path: str,
        pending_timeout_seconds: int = 3600,
    ) -> None:
        self.metadata = metadata
        self.storage = storage
        self.tenant_id = tenant_id
        self.path = path
        self.pending_timeout_seconds = pending_timeout_seconds
        self.state = WriteState.NEW
        self.reservation: WriteReservation | None = None

    @property
    def key(self) -> str:
        """Idempotency key: tenant + path + version."""
        version = self.reservation.version if self.reservation else "?"
        return f"{self.tenant_id}{self.path}@v{version}"

    async def run(self, data: bytes) -> FileEntry:
        """Store ``data`` as the next version of the path.

        There is no rollback: if the upload or confirm step fails, the prior
        version stays tombstoned and the new one stays pending.

        Raises:
            Conflict: If a directory occupies the path.
            UpstreamError: If the blob upload fails.
            InvalidState: If the pending entry vanished before confirmation.
        """
        self.reservation = await self.metadata.reserve_write(
            self.tenant_id,
            self.path,
            len(data),
            stale_before=cutoff_iso(self.pending_timeout_seconds),
        )
        self.state = WriteState.RESERVED
        logger.debug("Write %s reserved", self.key, extra={"write_key": self.key})

        if self.reservation.superseded_keys:
            logger.info(
                "Write %s superseded %d stranded pending versions",
                self.key,
                len(self.reservation.superseded_keys),
                extra={"write_key": self.key},
            )
            await _delete_blobs(self.storage, self.reservation.superseded_keys)

        try:
            await self.storage.put(self.reservation.object_key, data)
        except Exception as exc:
            logger.error(
                "Write %s failed in state %s: blob upload error",
                self.key,
                self.state.value,
                exc_info=True,
                extra={"write_key": self.key},
            )
            raise UpstreamError(f"Blob upload failed: {exc}") from exc
        self.state = WriteState.UPLOADED

        try:
            entry = await self.metadata.confirm_write(self.reservation.entry_id, len(data))
        except Exception:
            logger.error(
                "Write %s failed in state %s: confirm error",
                self.key,
                self.state.value,
                exc_info=True,
                extra={"write_key": self.key},
            )
            raise
        self.state = WriteState.CONFIRMED
        logger.debug("Write %s confirmed", self.key, extra={"write_key": self.key})
        return entry


async def reap_stranded_writes(
    metadata: MetadataStore, storage: BlobStore, older_than_seconds: int
) -> int:
    """Tombstone pending entries older than the timeout and delete their blobs.

    Args:
        metadata: The metadata store.
        storage: The blob store holding possibly orphaned uploads.
        older_than_seconds: Minimum age of a pending entry to be reaped.

    Returns:
        The number of pending entries tombstoned.
    """
    stranded = await metadata.list_stranded_writes(cutoff_iso(older_than_seconds))
    reaped = 0
    orphan_keys: list[str] = []
    for entry in stranded:
        if await metadata.abandon_write(entry.id):
            reaped += 1
            if entry.object_key:
                orphan_keys.append(entry.object_key)
    await _delete_blobs(storage, orphan_keys)

    if reaped:
        logger.info("Reaped %d stranded pending writes", reaped)
        if metrics.stranded_writes_reaped_total is not None:
            metrics.stranded_writes_reaped_total.inc(reaped)
    return reaped
