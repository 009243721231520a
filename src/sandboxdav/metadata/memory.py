"""In-memory metadata store for SandboxDAV.

Useful for testing and ephemeral deployments. Data is lost on restart.

Each mutation runs to completion without awaiting, so on a single event loop
every call is atomic, matching the per-call transaction guarantee of the
persistent stores.
"""

import itertools
from dataclasses import replace

from sandboxdav.errors import Conflict, InvalidState, NoSuchSandbox, NotFound, SandboxAlreadyExists
from sandboxdav.metadata.models import (
    DELETED,
    DIR,
    FILE,
    PENDING,
    READY,
    FileEntry,
    Sandbox,
    WriteReservation,
    now_iso,
    object_key_for,
)
from sandboxdav.paths import base_name, parent_path
from sandboxdav.validation import validate_sandbox_slug


class MemoryMetadataStore:
    """In-memory metadata store using Python dicts.

    No persistence - all data is lost on restart. Entries are never purged;
    tombstoned versions stay in ``_entries`` as history.
    """

    def __init__(self) -> None:
        self._sandboxes: dict[str, Sandbox] = {}
        self._entries: dict[int, FileEntry] = {}
        self._ids = itertools.count(1)

    async def init_db(self) -> None:
        pass

    async def close(self) -> None:
        self._sandboxes.clear()
        self._entries.clear()

    # -- Internal helpers ------------------------------------------------------

    def _find(self, tenant_id: str, path: str, status: str = READY) -> FileEntry | None:
        for entry in self._entries.values():
            if entry.tenant_id == tenant_id and entry.path == path and entry.status == status:
                return entry
        return None

    def _tombstone(self, entry: FileEntry, mtime: str) -> None:
        entry.status = DELETED
        entry.mtime = mtime

    def _next_version(self, tenant_id: str, path: str) -> int:
        """Pick the next unused version for a path's lineage."""
        versions = [
            e.version for e in self._entries.values()
            if e.tenant_id == tenant_id and e.path == path
        ]
        version = max(versions, default=0) + 1
        taken = {e.object_key for e in self._entries.values() if e.object_key}
        while object_key_for(tenant_id, path, version) in taken:
            version += 1
        return version

    def _insert(self, **fields) -> FileEntry:
        entry = FileEntry(id=next(self._ids), **fields)
        self._entries[entry.id] = entry
        return entry

    # -- Sandbox operations ----------------------------------------------------

    async def create_sandbox(self, name: str, slug: str) -> Sandbox:
        validate_sandbox_slug(slug)
        if slug in self._sandboxes:
            raise SandboxAlreadyExists(slug)
        sandbox = Sandbox(name=name, slug=slug, created_at=now_iso())
        self._sandboxes[slug] = sandbox
        return sandbox

    async def get_sandbox(self, slug: str) -> Sandbox | None:
        return self._sandboxes.get(slug)

    async def list_sandboxes(self) -> list[Sandbox]:
        return sorted(self._sandboxes.values(), key=lambda s: s.created_at, reverse=True)

    async def remove_sandbox(self, slug: str) -> int:
        if slug not in self._sandboxes:
            raise NoSuchSandbox(slug)
        mtime = now_iso()
        count = 0
        for entry in self._entries.values():
            if entry.tenant_id == slug and entry.status != DELETED:
                self._tombstone(entry, mtime)
                count += 1
        del self._sandboxes[slug]
        return count

    # -- Reads -----------------------------------------------------------------

    async def stat(self, tenant_id: str, path: str) -> FileEntry | None:
        entry = self._find(tenant_id, path)
        return replace(entry) if entry else None

    async def list_children(self, tenant_id: str, parent_path: str) -> list[FileEntry]:
        children = [
            replace(e) for e in self._entries.values()
            if e.tenant_id == tenant_id and e.parent_path == parent_path
            and e.status == READY and e.path != parent_path
        ]
        return sorted(children, key=lambda e: e.name)

    async def get_entry(self, entry_id: int) -> FileEntry | None:
        entry = self._entries.get(entry_id)
        return replace(entry) if entry else None

    async def list_versions(self, tenant_id: str, path: str) -> list[FileEntry]:
        versions = [
            replace(e) for e in self._entries.values()
            if e.tenant_id == tenant_id and e.path == path
        ]
        return sorted(versions, key=lambda e: (e.version, e.id))

    # -- Mutations -------------------------------------------------------------

    async def ensure_directory(self, tenant_id: str, path: str) -> FileEntry:
        existing = self._find(tenant_id, path)
        if existing is not None:
            if existing.type != DIR:
                raise Conflict(f"{path} exists and is not a directory")
            return replace(existing)
        entry = self._insert(
            tenant_id=tenant_id,
            path=path,
            name=base_name(path),
            parent_path=parent_path(path),
            type=DIR,
            size=0,
            mtime=now_iso(),
            version=1,
            status=READY,
        )
        return replace(entry)

    async def reserve_write(
        self,
        tenant_id: str,
        path: str,
        size: int,
        stale_before: str | None = None,
    ) -> WriteReservation:
        prior = self._find(tenant_id, path)
        if prior is not None and prior.type == DIR:
            raise Conflict(f"{path} is a directory")

        mtime = now_iso()
        superseded: list[str] = []
        if stale_before is not None:
            for entry in self._entries.values():
                if (
                    entry.tenant_id == tenant_id
                    and entry.path == path
                    and entry.status == PENDING
                    and entry.mtime < stale_before
                ):
                    self._tombstone(entry, mtime)
                    if entry.object_key:
                        superseded.append(entry.object_key)

        version = self._next_version(tenant_id, path)
        object_key = object_key_for(tenant_id, path, version)

        if prior is not None:
            self._tombstone(prior, mtime)

        entry = self._insert(
            tenant_id=tenant_id,
            path=path,
            name=base_name(path),
            parent_path=parent_path(path),
            type=FILE,
            size=size,
            mtime=mtime,
            version=version,
            status=PENDING,
            object_key=object_key,
        )
        return WriteReservation(
            entry_id=entry.id,
            object_key=object_key,
            version=version,
            superseded_keys=superseded,
        )

    async def confirm_write(self, entry_id: int, size: int) -> FileEntry:
        entry = self._entries.get(entry_id)
        if entry is None or entry.status != PENDING:
            raise InvalidState("Cannot commit: file not in pending state")

        mtime = now_iso()
        # A racing write may have confirmed first; last confirm wins.
        current = self._find(entry.tenant_id, entry.path)
        if current is not None:
            self._tombstone(current, mtime)

        entry.status = READY
        entry.size = size
        entry.mtime = mtime
        return replace(entry)

    async def move(
        self,
        tenant_id: str,
        src_path: str,
        dst_path: str,
        dst_name: str,
        dst_parent_path: str,
    ) -> FileEntry:
        src = self._find(tenant_id, src_path)
        if src is None:
            raise NotFound(src_path)
        if src_path == dst_path:
            return replace(src)

        mtime = now_iso()
        dst = self._find(tenant_id, dst_path)
        if dst is not None:
            self._tombstone(dst, mtime)

        src.path = dst_path
        src.name = dst_name
        src.parent_path = dst_parent_path
        src.mtime = mtime
        return replace(src)

    async def soft_delete(self, tenant_id: str, path: str) -> int:
        entry = self._find(tenant_id, path)
        if entry is None:
            return 0

        mtime = now_iso()
        self._tombstone(entry, mtime)
        count = 1
        # One level only: grandchildren stay ready.
        if entry.type == DIR:
            for child in self._entries.values():
                if (
                    child.tenant_id == tenant_id
                    and child.parent_path == path
                    and child.status == READY
                ):
                    self._tombstone(child, mtime)
                    count += 1
        return count

    async def soft_delete_tree(self, tenant_id: str, path: str) -> int:
        entry = self._find(tenant_id, path)
        if entry is None:
            return 0

        mtime = now_iso()
        self._tombstone(entry, mtime)
        count = 1
        if entry.type == DIR:
            prefix = path.rstrip("/") + "/"
            for child in self._entries.values():
                if (
                    child.tenant_id == tenant_id
                    and child.path.startswith(prefix)
                    and child.status == READY
                ):
                    self._tombstone(child, mtime)
                    count += 1
        return count

    # -- Reconciliation --------------------------------------------------------

    async def list_stranded_writes(self, older_than: str) -> list[FileEntry]:
        return [
            replace(e) for e in self._entries.values()
            if e.status == PENDING and e.mtime < older_than
        ]

    async def abandon_write(self, entry_id: int) -> bool:
        entry = self._entries.get(entry_id)
        if entry is None or entry.status != PENDING:
            return False
        self._tombstone(entry, now_iso())
        return True
