"""Unit tests for the in-memory blob store."""

import pytest

from sandboxdav.storage.memory import MemoryCapacityError, MemoryStorageBackend


async def _read(blob) -> bytes:
    return b"".join([chunk async for chunk in blob.stream])


async def test_round_trip_and_range():
    storage = MemoryStorageBackend()
    await storage.init()
    await storage.put("k", b"0123456789")
    assert await _read(await storage.get("k")) == b"0123456789"

    blob = await storage.get("k", offset=4, length=2)
    assert blob.length == 2
    assert await _read(blob) == b"45"


async def test_missing_raises():
    storage = MemoryStorageBackend()
    with pytest.raises(FileNotFoundError):
        await storage.get("nope")


async def test_capacity_limit():
    storage = MemoryStorageBackend(max_size_bytes=10)
    await storage.put("a", b"12345")
    await storage.put("a", b"1234567890")
    with pytest.raises(MemoryCapacityError):
        await storage.put("b", b"1")


async def test_delete_frees_capacity():
    storage = MemoryStorageBackend(max_size_bytes=5)
    await storage.put("a", b"12345")
    await storage.delete("a")
    assert not await storage.exists("a")
    await storage.put("b", b"12345")
    await storage.delete("missing")
