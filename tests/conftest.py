"""Shared pytest fixtures for SandboxDAV tests.

A single FastAPI app is created per test session to avoid duplicate
Prometheus metric registration errors (the instrumentator registers
gauges in the global prometheus_client registry).

The metadata store and blob store are manually placed on the app to avoid
running the full lifespan. Handlers read ``app.state.config`` on every
request, so tests may flip protocol switches on it and restore them after.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from sandboxdav.config import (
    DavConfig,
    MetadataConfig,
    SandboxDavConfig,
    ServerConfig,
    StorageConfig,
)
from sandboxdav.metadata.sqlite import SQLiteMetadataStore
from sandboxdav.server import create_app
from sandboxdav.storage.memory import MemoryStorageBackend

SANDBOX = "test-box"


@pytest.fixture(scope="session")
def config() -> SandboxDavConfig:
    return SandboxDavConfig(
        server=ServerConfig(host="127.0.0.1", port=1910),
        dav=DavConfig(reap_on_startup=False),
        metadata=MetadataConfig(engine="sqlite", sqlite_path=":memory:"),
        storage=StorageConfig(backend="memory"),
    )


@pytest.fixture(scope="session")
def app(config: SandboxDavConfig):
    """Create a single test FastAPI application for the whole session."""
    return create_app(config)


@pytest.fixture
async def stores(app):
    """Install fresh metadata and blob stores on the app for one test.

    Yields ``(metadata, storage)`` with the sandbox ``test-box`` created.
    """
    metadata = SQLiteMetadataStore(":memory:")
    await metadata.init_db()
    await metadata.create_sandbox("Test Box", SANDBOX)
    storage = MemoryStorageBackend()
    await storage.init()

    old_metadata = getattr(app.state, "metadata", None)
    old_storage = getattr(app.state, "storage", None)
    old_dav = app.state.config.dav.model_copy()
    app.state.metadata = metadata
    app.state.storage = storage

    yield metadata, storage

    app.state.metadata = old_metadata
    app.state.storage = old_storage
    app.state.config.dav = old_dav
    await storage.close()
    await metadata.close()


@pytest.fixture
async def client(app, stores) -> AsyncClient:
    """Async test client talking to the app in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
