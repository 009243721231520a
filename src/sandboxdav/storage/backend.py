"""Abstract blob store protocol for SandboxDAV."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

# Streaming chunk size shared by all backends: 64 KB
CHUNK_SIZE = 64 * 1024


@dataclass
class BlobRead:
    """An opened (possibly ranged) blob read.

    Attributes:
        stream: Async iterator yielding the requested bytes in chunks.
        length: Number of bytes the store reports it will send.
    """

    stream: AsyncIterator[bytes]
    length: int


class BlobStore(Protocol):
    """Protocol defining the blob store interface.

    Blobs are addressed by an opaque object key handed out by the metadata
    store. Backends hold raw bytes only and know nothing about paths,
    versions or tenants.
    """

    async def init(self) -> None:
        """Initialize the backend (create directories, connect, etc.)."""
        ...

    async def close(self) -> None:
        """Release resources held by the backend."""
        ...

    async def put(self, object_key: str, data: bytes) -> None:
        """Store a whole object, replacing any previous content.

        Args:
            object_key: The object key.
            data: The raw bytes to store.
        """
        ...

    async def get(self, object_key: str, offset: int = 0, length: int | None = None) -> BlobRead:
        """Open an object for streaming.

        The store is contacted before this returns, so a missing object is
        reported here rather than halfway through the stream.

        Args:
            object_key: The object key.
            offset: Byte offset to start reading from.
            length: Number of bytes to read, or None for all remaining.

        Returns:
            A BlobRead with the byte stream and the length being sent.

        Raises:
            FileNotFoundError: If the object does not exist.
        """
        ...

    async def delete(self, object_key: str) -> None:
        """Delete an object. Missing objects are ignored."""
        ...

    async def exists(self, object_key: str) -> bool:
        """Return True if the object exists."""
        ...
