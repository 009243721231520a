"""Local filesystem blob store for SandboxDAV.

Objects are stored under ``{root}/{h[:2]}/{h}`` where ``h`` is the SHA-256
hex digest of the object key. Object keys embed user-supplied paths, so they
are never used as filesystem paths directly.

Crash-only design:
    - Atomic writes via temp-fsync-rename pattern.
    - Never acknowledge before data is fsync'd to disk.
    - Startup cleans orphan temp files.
"""

import hashlib
import logging
import os
import uuid
from collections.abc import AsyncIterator
from pathlib import Path

from sandboxdav.storage.backend import CHUNK_SIZE, BlobRead

logger = logging.getLogger(__name__)


class LocalStorageBackend:
    """Blob store that persists objects on the local filesystem.

    Attributes:
        root: The root directory for all stored data.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the local blob store.

        Args:
            root: Root directory path for object storage.
        """
        self.root = Path(root)

    def _object_path(self, object_key: str) -> Path:
        """Return the filesystem path for a stored object."""
        digest = hashlib.sha256(object_key.encode("utf-8")).hexdigest()
        return self.root / digest[:2] / digest

    async def init(self) -> None:
        """Create the root directory and clean up orphan temp files.

        Crash-only design: every startup is a recovery. Remove any
        leftover ``.tmp.*`` files from interrupted writes.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        self._clean_temp_files()
        logger.info("Local blob store initialized at %s", self.root)

    def _clean_temp_files(self) -> None:
        """Remove orphan temp files left by interrupted atomic writes."""
        count = 0
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for fname in filenames:
                if ".tmp." in fname:
                    try:
                        os.unlink(os.path.join(dirpath, fname))
                        count += 1
                    except OSError:
                        logger.warning("Could not remove temp file %s", fname)
        if count > 0:
            logger.info("Cleaned %d orphan temp files on startup", count)

    async def close(self) -> None:
        """No-op for local filesystem backend."""
        pass

    async def put(self, object_key: str, data: bytes) -> None:
        """Store an object's bytes on the local filesystem.

        Uses the atomic temp-fsync-rename pattern for crash safety.
        """
        path = self._object_path(object_key)
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp = path.with_name(f"{path.name}.tmp.{uuid.uuid4().hex[:8]}")
        try:
            fd = os.open(str(tmp), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
            try:
                os.write(fd, data)
                os.fsync(fd)
            finally:
                os.close(fd)
            tmp.rename(path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

    async def get(self, object_key: str, offset: int = 0, length: int | None = None) -> BlobRead:
        """Open an object on disk for streaming.

        Raises:
            FileNotFoundError: If the object does not exist on disk.
        """
        path = self._object_path(object_key)
        size = path.stat().st_size
        end = size if length is None else min(offset + length, size)
        start = min(offset, end)
        return BlobRead(stream=self._iter_file(path, start, end - start), length=end - start)

    async def _iter_file(self, path: Path, offset: int, remaining: int) -> AsyncIterator[bytes]:
        """Yield up to ``remaining`` bytes from ``offset`` in 64 KB chunks."""
        with open(path, "rb") as f:
            if offset > 0:
                f.seek(offset)
            while remaining > 0:
                chunk = f.read(min(CHUNK_SIZE, remaining))
                if not chunk:
                    break
                yield chunk
                remaining -= len(chunk)

    async def delete(self, object_key: str) -> None:
        """Delete an object. Silently ignores missing files."""
        path = self._object_path(object_key)
        path.unlink(missing_ok=True)

    async def exists(self, object_key: str) -> bool:
        return self._object_path(object_key).is_file()
