"""SQLite-backed metadata store for SandboxDAV.

Implements the MetadataStore protocol using aiosqlite for async access.
All tables use CREATE TABLE IF NOT EXISTS for schema idempotency.

A single connection is shared by all requests. Every public method holds
``_lock`` for its whole duration and mutations commit exactly once, so each
call is one atomic transaction and no caller ever observes another call's
half-applied changes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiosqlite

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

logger = logging.getLogger(__name__)

_ENTRY_COLUMNS = (
    "id, tenant_id, path, name, parent_path, type, size, mtime, version, status, object_key"
)


def _row_to_entry(row: Any) -> FileEntry:
    """Convert a ``files`` row into a FileEntry."""
    return FileEntry(
        id=row["id"],
        tenant_id=row["tenant_id"],
        path=row["path"],
        name=row["name"],
        parent_path=row["parent_path"],
        type=row["type"],
        size=row["size"],
        mtime=row["mtime"],
        version=row["version"],
        status=row["status"],
        object_key=row["object_key"],
    )


def _row_to_sandbox(row: Any) -> Sandbox:
    return Sandbox(name=row["name"], slug=row["slug"], created_at=row["created_at"])


class SQLiteMetadataStore:
    """Metadata store backed by a local SQLite database.

    Attributes:
        db_path: Path to the SQLite database file.
        _db: The aiosqlite connection, set after init_db().
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the SQLite metadata store.

        Args:
            db_path: Filesystem path to the SQLite database file.
                     Use ':memory:' for an in-memory database (useful in tests).
        """
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def init_db(self) -> None:
        """Open the database and create tables if they do not exist.

        Sets WAL journal mode, NORMAL synchronous and a 5-second busy
        timeout, then creates all tables and indexes. Idempotent.
        """
        if self._db is None:
            self._db = await aiosqlite.connect(self.db_path)
            self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute("PRAGMA synchronous = NORMAL")
        await self._db.execute("PRAGMA busy_timeout = 5000")

        await self._create_tables()

    async def _create_tables(self) -> None:
        """Create all tables and indexes if they do not already exist.

        Checks sqlite_master first to skip DDL on warm starts.
        """
        assert self._db is not None

        async with self._db.execute(
            "SELECT 1 FROM sqlite_master WHERE type='table' AND name='schema_version'"
        ) as cursor:
            if await cursor.fetchone() is not None:
                return

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS sandboxes (
                slug        TEXT PRIMARY KEY,
                name        TEXT NOT NULL,
                created_at  TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS files (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                tenant_id    TEXT NOT NULL,
                path         TEXT NOT NULL,
                name         TEXT NOT NULL,
                parent_path  TEXT NOT NULL,
                type         TEXT NOT NULL CHECK (type IN ('file', 'dir')),
                size         INTEGER NOT NULL DEFAULT 0,
                mtime        TEXT NOT NULL,
                version      INTEGER NOT NULL,
                status       TEXT NOT NULL CHECK (status IN ('ready', 'pending', 'deleted')),
                object_key   TEXT UNIQUE
            );

            CREATE INDEX IF NOT EXISTS idx_files_tenant_path
                ON files(tenant_id, path, status);
            CREATE INDEX IF NOT EXISTS idx_files_tenant_parent
                ON files(tenant_id, parent_path, status);
            CREATE INDEX IF NOT EXISTS idx_files_status
                ON files(status);

            CREATE TABLE IF NOT EXISTS schema_version (
                version    INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            );
        """)

        async with self._db.execute(
            "SELECT version FROM schema_version WHERE version = 1"
        ) as cursor:
            row = await cursor.fetchone()
            if row is None:
                await self._db.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (1, ?)",
                    (now_iso(),),
                )

        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    # -- Internal helpers ------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize a mutation and commit it, or roll it back on error."""
        assert self._db is not None
        async with self._lock:
            try:
                yield self._db
            except BaseException:
                await self._db.rollback()
                raise
            await self._db.commit()

    async def _fetch_entry(self, sql: str, params: tuple) -> FileEntry | None:
        assert self._db is not None
        async with self._db.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return _row_to_entry(row) if row is not None else None

    async def _fetch_entries(self, sql: str, params: tuple) -> list[FileEntry]:
        assert self._db is not None
        async with self._db.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_entry(r) for r in rows]

    async def _find_ready(self, tenant_id: str, path: str) -> FileEntry | None:
        return await self._fetch_entry(
            f"SELECT {_ENTRY_COLUMNS} FROM files "
            "WHERE tenant_id = ? AND path = ? AND status = ? LIMIT 1",
            (tenant_id, path, READY),
        )

    async def _tombstone(self, db: aiosqlite.Connection, entry_id: int, mtime: str) -> None:
        await db.execute(
            "UPDATE files SET status = ?, mtime = ? WHERE id = ?",
            (DELETED, mtime, entry_id),
        )

    async def _next_version(self, db: aiosqlite.Connection, tenant_id: str, path: str) -> int:
        """Pick the next unused version for a path's lineage."""
        async with db.execute(
            "SELECT COALESCE(MAX(version), 0) FROM files WHERE tenant_id = ? AND path = ?",
            (tenant_id, path),
        ) as cursor:
            row = await cursor.fetchone()
        version = row[0] + 1
        while True:
            async with db.execute(
                "SELECT 1 FROM files WHERE object_key = ?",
                (object_key_for(tenant_id, path, version),),
            ) as cursor:
                if await cursor.fetchone() is None:
                    return version
            version += 1

    async def _insert(self, db: aiosqlite.Connection, entry: dict[str, Any]) -> int:
        cursor = await db.execute(
            "INSERT INTO files "
            "(tenant_id, path, name, parent_path, type, size, mtime, version, status, object_key) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                entry["tenant_id"],
                entry["path"],
                entry["name"],
                entry["parent_path"],
                entry["type"],
                entry["size"],
                entry["mtime"],
                entry["version"],
                entry["status"],
                entry.get("object_key"),
            ),
        )
        return cursor.lastrowid

    # -- Sandbox operations ----------------------------------------------------

    async def create_sandbox(self, name: str, slug: str) -> Sandbox:
        """Create a sandbox record.

        Raises:
            InvalidSandboxSlug: If the slug does not match the slug pattern.
            SandboxAlreadyExists: If the slug is taken.
        """
        validate_sandbox_slug(slug)
        created_at = now_iso()
        async with self._transaction() as db:
            try:
                await db.execute(
                    "INSERT INTO sandboxes (slug, name, created_at) VALUES (?, ?, ?)",
                    (slug, name, created_at),
                )
            except aiosqlite.IntegrityError as exc:
                raise SandboxAlreadyExists(slug) from exc
        return Sandbox(name=name, slug=slug, created_at=created_at)

    async def get_sandbox(self, slug: str) -> Sandbox | None:
        assert self._db is not None
        async with self._lock:
            async with self._db.execute(
                "SELECT slug, name, created_at FROM sandboxes WHERE slug = ?", (slug,)
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_sandbox(row) if row is not None else None

    async def list_sandboxes(self) -> list[Sandbox]:
        assert self._db is not None
        async with self._lock:
            async with self._db.execute(
                "SELECT slug, name, created_at FROM sandboxes ORDER BY created_at DESC"
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_sandbox(r) for r in rows]

    async def remove_sandbox(self, slug: str) -> int:
        """Tombstone every live entry of the sandbox, then delete its record."""
        async with self._transaction() as db:
            async with db.execute("SELECT 1 FROM sandboxes WHERE slug = ?", (slug,)) as cursor:
                if await cursor.fetchone() is None:
                    raise NoSuchSandbox(slug)
            cursor = await db.execute(
                "UPDATE files SET status = ?, mtime = ? WHERE tenant_id = ? AND status != ?",
                (DELETED, now_iso(), slug, DELETED),
            )
            count = cursor.rowcount
            await db.execute("DELETE FROM sandboxes WHERE slug = ?", (slug,))
        logger.info("Removed sandbox %s (%d entries tombstoned)", slug, count)
        return count

    # -- Reads -----------------------------------------------------------------

    async def stat(self, tenant_id: str, path: str) -> FileEntry | None:
        async with self._lock:
            return await self._find_ready(tenant_id, path)

    async def list_children(self, tenant_id: str, parent_path: str) -> list[FileEntry]:
        async with self._lock:
            return await self._fetch_entries(
                f"SELECT {_ENTRY_COLUMNS} FROM files "
                "WHERE tenant_id = ? AND parent_path = ? AND status = ? AND path != ? "
                "ORDER BY name",
                (tenant_id, parent_path, READY, parent_path),
            )

    async def get_entry(self, entry_id: int) -> FileEntry | None:
        async with self._lock:
            return await self._fetch_entry(
                f"SELECT {_ENTRY_COLUMNS} FROM files WHERE id = ?", (entry_id,)
            )

    async def list_versions(self, tenant_id: str, path: str) -> list[FileEntry]:
        async with self._lock:
            return await self._fetch_entries(
                f"SELECT {_ENTRY_COLUMNS} FROM files "
                "WHERE tenant_id = ? AND path = ? ORDER BY version, id",
                (tenant_id, path),
            )

    # -- Mutations -------------------------------------------------------------

    async def ensure_directory(self, tenant_id: str, path: str) -> FileEntry:
        """Create a ready directory at ``path`` unless one already exists.

        Raises:
            Conflict: If a ready file occupies ``path``.
        """
        async with self._transaction() as db:
            existing = await self._find_ready(tenant_id, path)
            if existing is not None:
                if existing.type != DIR:
                    raise Conflict(f"{path} exists and is not a directory")
                return existing
            fields = {
                "tenant_id": tenant_id,
                "path": path,
                "name": base_name(path),
                "parent_path": parent_path(path),
                "type": DIR,
                "size": 0,
                "mtime": now_iso(),
                "version": 1,
                "status": READY,
            }
            entry_id = await self._insert(db, fields)
        return FileEntry(id=entry_id, **fields)

    async def reserve_write(
        self,
        tenant_id: str,
        path: str,
        size: int,
        stale_before: str | None = None,
    ) -> WriteReservation:
        """Reserve a new pending file version at ``path``.

        The prior ready entry is tombstoned in the same transaction; this is
        not undone if the caller never confirms.
        """
        async with self._transaction() as db:
            prior = await self._find_ready(tenant_id, path)
            if prior is not None and prior.type == DIR:
                raise Conflict(f"{path} is a directory")

            mtime = now_iso()
            superseded: list[str] = []
            if stale_before is not None:
                stale = await self._fetch_entries(
                    f"SELECT {_ENTRY_COLUMNS} FROM files "
                    "WHERE tenant_id = ? AND path = ? AND status = ? AND mtime < ?",
                    (tenant_id, path, PENDING, stale_before),
                )
                for entry in stale:
                    await self._tombstone(db, entry.id, mtime)
                    if entry.object_key:
                        superseded.append(entry.object_key)

            version = await self._next_version(db, tenant_id, path)
            object_key = object_key_for(tenant_id, path, version)

            if prior is not None:
                await self._tombstone(db, prior.id, mtime)

            entry_id = await self._insert(
                db,
                {
                    "tenant_id": tenant_id,
                    "path": path,
                    "name": base_name(path),
                    "parent_path": parent_path(path),
                    "type": FILE,
                    "size": size,
                    "mtime": mtime,
                    "version": version,
                    "status": PENDING,
                    "object_key": object_key,
                },
            )
        return WriteReservation(
            entry_id=entry_id,
            object_key=object_key,
            version=version,
            superseded_keys=superseded,
        )

    async def confirm_write(self, entry_id: int, size: int) -> FileEntry:
        """Flip a pending entry to ready; the last confirm at a path wins.

        Raises:
            InvalidState: If the entry is missing or not pending.
        """
        async with self._transaction() as db:
            entry = await self._fetch_entry(
                f"SELECT {_ENTRY_COLUMNS} FROM files WHERE id = ?", (entry_id,)
            )
            if entry is None or entry.status != PENDING:
                raise InvalidState("Cannot commit: file not in pending state")

            mtime = now_iso()
            current = await self._find_ready(entry.tenant_id, entry.path)
            if current is not None:
                await self._tombstone(db, current.id, mtime)

            await db.execute(
                "UPDATE files SET status = ?, size = ?, mtime = ? WHERE id = ?",
                (READY, size, mtime, entry_id),
            )
        entry.status = READY
        entry.size = size
        entry.mtime = mtime
        return entry

    async def move(
        self,
        tenant_id: str,
        src_path: str,
        dst_path: str,
        dst_name: str,
        dst_parent_path: str,
    ) -> FileEntry:
        """Move the ready entry at ``src_path`` in place.

        Raises:
            NotFound: If no ready entry exists at ``src_path``.
        """
        async with self._transaction() as db:
            src = await self._find_ready(tenant_id, src_path)
            if src is None:
                raise NotFound(src_path)
            if src_path == dst_path:
                return src

            mtime = now_iso()
            dst = await self._find_ready(tenant_id, dst_path)
            if dst is not None:
                await self._tombstone(db, dst.id, mtime)

            await db.execute(
                "UPDATE files SET path = ?, name = ?, parent_path = ?, mtime = ? WHERE id = ?",
                (dst_path, dst_name, dst_parent_path, mtime, src.id),
            )
        src.path = dst_path
        src.name = dst_name
        src.parent_path = dst_parent_path
        src.mtime = mtime
        return src

    async def soft_delete(self, tenant_id: str, path: str) -> int:
        """Tombstone ``path`` and, for a directory, its immediate children only."""
        async with self._transaction() as db:
            entry = await self._find_ready(tenant_id, path)
            if entry is None:
                return 0

            mtime = now_iso()
            await self._tombstone(db, entry.id, mtime)
            count = 1
            if entry.type == DIR:
                cursor = await db.execute(
                    "UPDATE files SET status = ?, mtime = ? "
                    "WHERE tenant_id = ? AND parent_path = ? AND status = ?",
                    (DELETED, mtime, tenant_id, path, READY),
                )
                count += cursor.rowcount
        return count

    async def soft_delete_tree(self, tenant_id: str, path: str) -> int:
        """Tombstone ``path`` and every ready entry below it."""
        async with self._transaction() as db:
            entry = await self._find_ready(tenant_id, path)
            if entry is None:
                return 0

            mtime = now_iso()
            await self._tombstone(db, entry.id, mtime)
            count = 1
            if entry.type == DIR:
                prefix = path.rstrip("/") + "/"
                cursor = await db.execute(
                    "UPDATE files SET status = ?, mtime = ? "
                    "WHERE tenant_id = ? AND substr(path, 1, ?) = ? AND status = ?",
                    (DELETED, mtime, tenant_id, len(prefix), prefix, READY),
                )
                count += cursor.rowcount
        return count

    # -- Reconciliation --------------------------------------------------------

    async def list_stranded_writes(self, older_than: str) -> list[FileEntry]:
        async with self._lock:
            return await self._fetch_entries(
                f"SELECT {_ENTRY_COLUMNS} FROM files WHERE status = ? AND mtime < ? ORDER BY id",
                (PENDING, older_than),
            )

    async def abandon_write(self, entry_id: int) -> bool:
        async with self._transaction() as db:
            cursor = await db.execute(
                "UPDATE files SET status = ?, mtime = ? WHERE id = ? AND status = ?",
                (DELETED, now_iso(), entry_id, PENDING),
            )
            return cursor.rowcount == 1
