"""In-memory blob store for SandboxDAV.

Holds every object in a dictionary. Intended for tests and ephemeral
deployments; nothing survives a restart.
"""

import logging
from collections.abc import AsyncIterator

from sandboxdav.storage.backend import CHUNK_SIZE, BlobRead

logger = logging.getLogger(__name__)


class MemoryCapacityError(Exception):
    """Raised when a put would exceed the configured max_size_bytes."""


class MemoryStorageBackend:
    """Blob store that keeps objects in memory.

    Attributes:
        max_size_bytes: Maximum total bytes allowed (0 = unlimited).
    """

    def __init__(self, max_size_bytes: int = 0) -> None:
        self.max_size_bytes = max_size_bytes
        self._objects: dict[str, bytes] = {}
        self._current_size: int = 0

    async def init(self) -> None:
        logger.info(
            "Memory blob store initialized (max_size=%s)",
            self.max_size_bytes if self.max_size_bytes > 0 else "unlimited",
        )

    async def close(self) -> None:
        self._objects.clear()
        self._current_size = 0

    async def put(self, object_key: str, data: bytes) -> None:
        """Store an object's bytes in memory.

        Raises:
            MemoryCapacityError: If storing this data would exceed max_size_bytes.
        """
        old_size = len(self._objects.get(object_key, b""))
        new_size = self._current_size - old_size + len(data)
        if self.max_size_bytes > 0 and new_size > self.max_size_bytes:
            raise MemoryCapacityError(
                f"Cannot store {len(data)} bytes: would exceed "
                f"max_size_bytes ({self.max_size_bytes})"
            )
        self._objects[object_key] = data
        self._current_size = new_size

    async def get(self, object_key: str, offset: int = 0, length: int | None = None) -> BlobRead:
        """Open an object held in memory.

        Raises:
            FileNotFoundError: If the object does not exist.
        """
        if object_key not in self._objects:
            raise FileNotFoundError(f"Object not found: {object_key}")
        data = self._objects[object_key]
        end = len(data) if length is None else min(offset + length, len(data))
        start = min(offset, end)
        return BlobRead(stream=self._iter_chunks(data, start, end), length=end - start)

    async def _iter_chunks(self, data: bytes, start: int, end: int) -> AsyncIterator[bytes]:
        pos = start
        while pos < end:
            chunk_end = min(pos + CHUNK_SIZE, end)
            yield data[pos:chunk_end]
            pos = chunk_end

    async def delete(self, object_key: str) -> None:
        data = self._objects.pop(object_key, None)
        if data is not None:
            self._current_size -= len(data)

    async def exists(self, object_key: str) -> bool:
        return object_key in self._objects
