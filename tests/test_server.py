"""Tests for the SandboxDAV FastAPI server: routing, headers and health checks."""

import pytest
from httpx import ASGITransport, AsyncClient

from sandboxdav.config import (
    DavConfig,
    MetadataConfig,
    ObservabilityConfig,
    SandboxDavConfig,
    StorageConfig,
)
from sandboxdav.server import create_app, create_storage_backend
from sandboxdav.storage.local import LocalStorageBackend
from sandboxdav.storage.memory import MemoryStorageBackend


class TestHealthCheck:
    async def test_health_checks_stores(self, client):
        resp = await client.get("/_health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["checks"]["metadata"]["status"] == "ok"
        assert data["checks"]["storage"]["status"] == "ok"

    async def test_health_degraded(self, app, client, stores):
        app.state.storage = None
        resp = await client.get("/_health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"

    async def test_healthz(self, client):
        resp = await client.get("/_healthz")
        assert resp.status_code == 200

    async def test_readyz(self, client):
        resp = await client.get("/_readyz")
        assert resp.status_code == 200


class TestCommonHeaders:
    async def test_headers_on_success(self, client):
        resp = await client.get("/_health")
        request_id = resp.headers["x-request-id"]
        assert len(request_id) == 16
        int(request_id, 16)
        assert "date" in resp.headers
        assert resp.headers["server"] == "SandboxDAV"

    async def test_headers_on_error(self, client):
        resp = await client.get("/no-such-box/a.txt")
        assert resp.status_code == 404
        assert "x-request-id" in resp.headers
        assert resp.headers["server"] == "SandboxDAV"

    async def test_error_body_carries_request_id(self, client):
        resp = await client.get("/no-such-box/a.txt")
        assert resp.headers["x-request-id"] in resp.text


class TestRouting:
    async def test_unknown_sandbox(self, client):
        resp = await client.get("/no-such-box/a.txt")
        assert resp.status_code == 404
        assert "NoSuchSandbox" in resp.text

    async def test_malformed_slug_is_not_found(self, client):
        resp = await client.request("PROPFIND", "/Not_A_Slug/")
        assert resp.status_code == 404

    async def test_missing_sandbox_segment(self, client):
        resp = await client.request("PROPFIND", "/")
        assert resp.status_code == 400
        assert "MissingSandbox" in resp.text

    async def test_unknown_verb(self, client):
        resp = await client.request("PATCH", "/test-box/a.txt")
        assert resp.status_code == 405
        assert "PROPFIND" in resp.headers["allow"]

    async def test_unknown_verb_checked_before_sandbox(self, client):
        resp = await client.request("LOCK", "/no-such-box/a.txt")
        assert resp.status_code == 405

    async def test_sandbox_root_without_slash(self, client):
        resp = await client.request("PROPFIND", "/test-box", headers={"Depth": "0"})
        assert resp.status_code == 207

    async def test_operational_path_not_a_sandbox(self, client):
        resp = await client.request("PROPFIND", "/_health")
        assert resp.status_code == 404

    @pytest.mark.parametrize(
        "method,path,status",
        [
            ("OPTIONS", "/test-box/", 200),
            ("PROPFIND", "/test-box/", 207),
            ("MKCOL", "/test-box/docs", 201),
            ("PUT", "/test-box/a.txt", 201),
            ("MOVE", "/test-box/a.txt", 400),
            ("DELETE", "/test-box/missing.txt", 204),
        ],
    )
    async def test_dav_verbs_reach_handlers(self, client, method, path, status):
        resp = await client.request(method, path, content=b"x" if method == "PUT" else None)
        assert resp.status_code == status
        assert "json" not in resp.headers.get("content-type", "")

    @pytest.mark.parametrize("method", ["POST", "PATCH", "COPY", "LOCK", "UNLOCK", "PROPPATCH"])
    async def test_unsupported_verbs_get_dav_405(self, client, method):
        resp = await client.request(method, "/test-box/a.txt")
        assert resp.status_code == 405
        assert "PROPFIND" in resp.headers["allow"]
        assert "MethodNotAllowed" in resp.text


class TestMetrics:
    async def test_metrics_endpoint(self, client):
        await client.put("/test-box/m.txt", content=b"abc")
        resp = await client.get("/_metrics")
        assert resp.status_code == 200
        assert "sandboxdav_dav_operations_total" in resp.text
        assert "sandboxdav_bytes_received_total" in resp.text


class TestStorageFactory:
    def test_local(self, tmp_path):
        config = SandboxDavConfig(storage=StorageConfig(backend="local", local_root=str(tmp_path)))
        assert isinstance(create_storage_backend(config), LocalStorageBackend)

    def test_memory(self):
        config = SandboxDavConfig(storage=StorageConfig(backend="memory"))
        assert isinstance(create_storage_backend(config), MemoryStorageBackend)

    def test_s3_requires_bucket(self):
        config = SandboxDavConfig(storage=StorageConfig(backend="s3"))
        with pytest.raises(ValueError, match="bucket"):
            create_storage_backend(config)

    def test_s3(self):
        from sandboxdav.storage.s3 import S3StorageBackend

        config = SandboxDavConfig(storage=StorageConfig(backend="s3", s3_bucket="files"))
        backend = create_storage_backend(config)
        assert isinstance(backend, S3StorageBackend)
        assert backend.bucket_name == "files"

    def test_unknown(self):
        config = SandboxDavConfig(storage=StorageConfig(backend="tape"))
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage_backend(config)


class TestLifespan:
    async def test_startup_reaps_and_shutdown_closes(self, tmp_path):
        """The lifespan opens both stores, reaps stranded writes and closes."""
        config = SandboxDavConfig(
            dav=DavConfig(reap_on_startup=True, pending_timeout_seconds=-60),
            metadata=MetadataConfig(engine="sqlite", sqlite_path=str(tmp_path / "meta.db")),
            storage=StorageConfig(backend="local", local_root=str(tmp_path / "objects")),
            observability=ObservabilityConfig(metrics=False),
        )

        from sandboxdav.metadata.sqlite import SQLiteMetadataStore

        seed = SQLiteMetadataStore(config.metadata.sqlite_path)
        await seed.init_db()
        await seed.create_sandbox("Seed", "seed-box")
        pending = await seed.reserve_write("seed-box", "/a.txt", 1)
        await seed.close()

        app = create_app(config)
        async with app.router.lifespan_context(app):
            entry = await app.state.metadata.get_entry(pending.entry_id)
            assert entry.status == "deleted"

            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
                resp = await ac.put("/seed-box/b.txt", content=b"hello")
                assert resp.status_code == 201
                assert (await ac.get("/seed-box/b.txt")).content == b"hello"
                assert (await ac.get("/_metrics")).status_code == 404

    async def test_stores_closed_when_serving_fails(self, tmp_path):
        config = SandboxDavConfig(
            dav=DavConfig(reap_on_startup=False),
            metadata=MetadataConfig(engine="sqlite", sqlite_path=str(tmp_path / "meta.db")),
            storage=StorageConfig(backend="memory"),
            observability=ObservabilityConfig(metrics=False),
        )
        app = create_app(config)

        with pytest.raises(RuntimeError, match="boom"):
            async with app.router.lifespan_context(app):
                metadata = app.state.metadata
                assert metadata._db is not None
                raise RuntimeError("boom")

        assert metadata._db is None
