"""Abstract metadata store protocol for SandboxDAV."""

from typing import Protocol

from sandboxdav.metadata.models import FileEntry, Sandbox, WriteReservation


class MetadataStore(Protocol):
    """Protocol defining the metadata store interface.

    Every method is one atomic mutation or read against the store; no method
    relies on a transaction spanning several calls. Only entries with status
    ``ready`` are ever returned by ``stat`` and ``list_children``.
    """

    async def init_db(self) -> None:
        """Initialize the store (open connections, create schema).

        Must be idempotent (safe to call on every startup).
        """
        ...

    async def close(self) -> None:
        """Release resources held by the store."""
        ...

    # -- Sandbox operations ----------------------------------------------------

    async def create_sandbox(self, name: str, slug: str) -> Sandbox:
        """Create a sandbox record.

        Raises:
            InvalidSandboxSlug: If the slug does not match the slug pattern.
            SandboxAlreadyExists: If the slug is taken.
        """
        ...

    async def get_sandbox(self, slug: str) -> Sandbox | None:
        """Look up a sandbox by slug."""
        ...

    async def list_sandboxes(self) -> list[Sandbox]:
        """List all sandboxes, newest first."""
        ...

    async def remove_sandbox(self, slug: str) -> int:
        """Tombstone every live entry of the sandbox, then delete the record.

        Returns:
            The number of entries tombstoned.

        Raises:
            NoSuchSandbox: If the sandbox does not exist.
        """
        ...

    # -- Reads -----------------------------------------------------------------

    async def stat(self, tenant_id: str, path: str) -> FileEntry | None:
        """Return the ready entry at ``path``, or None."""
        ...

    async def list_children(self, tenant_id: str, parent_path: str) -> list[FileEntry]:
        """Return all ready entries whose parent is ``parent_path``."""
        ...

    async def get_entry(self, entry_id: int) -> FileEntry | None:
        """Return an entry by id regardless of its status."""
        ...

    async def list_versions(self, tenant_id: str, path: str) -> list[FileEntry]:
        """Return every entry ever recorded at ``path``, oldest version first."""
        ...

    # -- Mutations -------------------------------------------------------------

    async def ensure_directory(self, tenant_id: str, path: str) -> FileEntry:
        """Create a ready directory at ``path`` unless one already exists.

        Raises:
            Conflict: If a ready file occupies ``path``.
        """
        ...

    async def reserve_write(
        self,
        tenant_id: str,
        path: str,
        size: int,
        stale_before: str | None = None,
    ) -> WriteReservation:
        """Reserve a new file version at ``path`` in pending state.

        Tombstones the prior ready entry immediately. Pending entries at the
        same path last modified before ``stale_before`` are superseded.

        Raises:
            Conflict: If a ready directory occupies ``path``.
        """
        ...

    async def confirm_write(self, entry_id: int, size: int) -> FileEntry:
        """Flip a pending entry to ready.

        Raises:
            InvalidState: If the entry is missing or not pending.
        """
        ...

    async def move(
        self,
        tenant_id: str,
        src_path: str,
        dst_path: str,
        dst_name: str,
        dst_parent_path: str,
    ) -> FileEntry:
        """Move the ready entry at ``src_path`` to ``dst_path`` in place.

        Raises:
            NotFound: If no ready entry exists at ``src_path``.
        """
        ...

    async def soft_delete(self, tenant_id: str, path: str) -> int:
        """Tombstone ``path`` and, for a directory, its immediate children.

        Returns:
            The number of entries tombstoned (0 if ``path`` was absent).
        """
        ...

    async def soft_delete_tree(self, tenant_id: str, path: str) -> int:
        """Tombstone ``path`` and every ready entry below it."""
        ...

    # -- Reconciliation --------------------------------------------------------

    async def list_stranded_writes(self, older_than: str) -> list[FileEntry]:
        """Return pending entries last modified before ``older_than``."""
        ...

    async def abandon_write(self, entry_id: int) -> bool:
        """Tombstone a pending entry.

        Returns:
            True if the entry was pending and is now deleted.
        """
        ...
