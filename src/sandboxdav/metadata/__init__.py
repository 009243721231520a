"""Metadata store backends for SandboxDAV."""

from typing import TYPE_CHECKING

from sandboxdav.metadata.models import (
    DELETED,
    DIR,
    FILE,
    PENDING,
    READY,
    FileEntry,
    Sandbox,
    WriteReservation,
)
from sandboxdav.metadata.store import MetadataStore

if TYPE_CHECKING:
    from sandboxdav.config import MetadataConfig

__all__ = [
    "create_metadata_store",
    "DELETED",
    "DIR",
    "FILE",
    "FileEntry",
    "MetadataStore",
    "PENDING",
    "READY",
    "Sandbox",
    "WriteReservation",
]


def create_metadata_store(config: "MetadataConfig") -> MetadataStore:
    """Create a metadata store instance based on configuration.

    Args:
        config: The metadata configuration.

    Returns:
        A metadata store instance implementing the MetadataStore protocol.

    Raises:
        ValueError: If the engine is unknown.
    """
    engine = config.engine

    if engine == "sqlite":
        from sandboxdav.metadata.sqlite import SQLiteMetadataStore

        return SQLiteMetadataStore(config.sqlite_path)

    elif engine == "memory":
        from sandboxdav.metadata.memory import MemoryMetadataStore

        return MemoryMetadataStore()

    else:
        raise ValueError(f"Unknown metadata engine: {engine}")
