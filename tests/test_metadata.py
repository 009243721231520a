"""Behavioural tests shared by every metadata store backend.

Each test runs against the in-memory store and an in-memory SQLite store.
"""

import pytest

from sandboxdav.errors import (
    Conflict,
    InvalidSandboxSlug,
    InvalidState,
    NoSuchSandbox,
    NotFound,
    SandboxAlreadyExists,
)
from sandboxdav.metadata import DELETED, DIR, FILE, PENDING, READY, create_metadata_store
from sandboxdav.config import MetadataConfig

T = "box-one"


@pytest.fixture(params=["memory", "sqlite"])
async def store(request):
    store = create_metadata_store(MetadataConfig(engine=request.param, sqlite_path=":memory:"))
    await store.init_db()
    await store.create_sandbox("Box One", T)
    yield store
    await store.close()


async def _write(store, path, size=3):
    reservation = await store.reserve_write(T, path, size)
    return await store.confirm_write(reservation.entry_id, size)


def test_unknown_engine():
    with pytest.raises(ValueError, match="Unknown metadata engine"):
        create_metadata_store(MetadataConfig(engine="cassandra"))


class TestSandboxes:
    async def test_get(self, store):
        sandbox = await store.get_sandbox(T)
        assert sandbox.slug == T
        assert sandbox.name == "Box One"
        assert sandbox.created_at

    async def test_get_missing(self, store):
        assert await store.get_sandbox("nope-box") is None

    async def test_duplicate(self, store):
        with pytest.raises(SandboxAlreadyExists):
            await store.create_sandbox("Again", T)

    async def test_invalid_slug(self, store):
        with pytest.raises(InvalidSandboxSlug):
            await store.create_sandbox("Bad", "Bad_Slug")

    async def test_list(self, store):
        await store.create_sandbox("Box Two", "box-two")
        slugs = {s.slug for s in await store.list_sandboxes()}
        assert slugs == {T, "box-two"}

    async def test_remove_tombstones_entries(self, store):
        await store.ensure_directory(T, "/docs")
        await _write(store, "/docs/a.txt")
        count = await store.remove_sandbox(T)
        assert count == 2
        assert await store.get_sandbox(T) is None
        assert await store.stat(T, "/docs") is None

    async def test_remove_missing(self, store):
        with pytest.raises(NoSuchSandbox):
            await store.remove_sandbox("nope-box")


class TestDirectories:
    async def test_create(self, store):
        entry = await store.ensure_directory(T, "/docs")
        assert entry.type == DIR
        assert entry.status == READY
        assert entry.version == 1
        assert entry.name == "docs"
        assert entry.parent_path == "/"
        assert entry.object_key is None

    async def test_idempotent(self, store):
        first = await store.ensure_directory(T, "/docs")
        second = await store.ensure_directory(T, "/docs")
        assert first.id == second.id
        assert len(await store.list_versions(T, "/docs")) == 1

    async def test_conflict_with_file(self, store):
        await _write(store, "/a")
        with pytest.raises(Conflict):
            await store.ensure_directory(T, "/a")


class TestWrites:
    async def test_reserve_is_pending_and_invisible(self, store):
        reservation = await store.reserve_write(T, "/a.txt", 5)
        assert reservation.version == 1
        assert reservation.object_key == f"{T}/a.txt::v1"
        assert reservation.superseded_keys == []
        assert await store.stat(T, "/a.txt") is None
        pending = await store.get_entry(reservation.entry_id)
        assert pending.status == PENDING
        assert pending.type == FILE

    async def test_confirm_makes_visible(self, store):
        reservation = await store.reserve_write(T, "/a.txt", 5)
        entry = await store.confirm_write(reservation.entry_id, 5)
        assert entry.status == READY
        stat = await store.stat(T, "/a.txt")
        assert stat.id == reservation.entry_id
        assert stat.size == 5

    async def test_confirm_twice_fails(self, store):
        reservation = await store.reserve_write(T, "/a.txt", 5)
        await store.confirm_write(reservation.entry_id, 5)
        with pytest.raises(InvalidState):
            await store.confirm_write(reservation.entry_id, 5)

    async def test_confirm_unknown_fails(self, store):
        with pytest.raises(InvalidState):
            await store.confirm_write(9999, 1)

    async def test_overwrite_bumps_version(self, store):
        first = await _write(store, "/a.txt")
        second = await _write(store, "/a.txt")
        assert second.version == first.version + 1
        assert second.object_key != first.object_key
        versions = await store.list_versions(T, "/a.txt")
        assert [v.status for v in versions] == [DELETED, READY]

    async def test_reserve_tombstones_prior_immediately(self, store):
        await _write(store, "/a.txt")
        await store.reserve_write(T, "/a.txt", 1)
        assert await store.stat(T, "/a.txt") is None

    async def test_reserve_on_directory_conflicts(self, store):
        await store.ensure_directory(T, "/docs")
        with pytest.raises(Conflict):
            await store.reserve_write(T, "/docs", 1)

    async def test_last_confirm_wins(self, store):
        r1 = await store.reserve_write(T, "/a.txt", 1)
        r2 = await store.reserve_write(T, "/a.txt", 2)
        await store.confirm_write(r2.entry_id, 2)
        await store.confirm_write(r1.entry_id, 1)
        ready = [v for v in await store.list_versions(T, "/a.txt") if v.status == READY]
        assert len(ready) == 1
        assert ready[0].id == r1.entry_id

    async def test_version_not_reused_after_delete(self, store):
        first = await _write(store, "/a.txt")
        await store.soft_delete(T, "/a.txt")
        second = await _write(store, "/a.txt")
        assert second.version > first.version
        assert second.object_key != first.object_key

    async def test_object_key_not_reused_after_move(self, store):
        moved = await _write(store, "/a.txt")
        await store.move(T, "/a.txt", "/b.txt", "b.txt", "/")
        await store.move(T, "/b.txt", "/a.txt", "a.txt", "/")
        await store.move(T, "/a.txt", "/c.txt", "c.txt", "/")
        fresh = await _write(store, "/a.txt")
        assert fresh.object_key != moved.object_key

    async def test_stale_pending_superseded(self, store):
        stranded = await store.reserve_write(T, "/a.txt", 1)
        reservation = await store.reserve_write(T, "/a.txt", 1, stale_before="9999-01-01T00:00:00.000Z")
        assert reservation.superseded_keys == [stranded.object_key]
        assert (await store.get_entry(stranded.entry_id)).status == DELETED

    async def test_fresh_pending_not_superseded(self, store):
        pending = await store.reserve_write(T, "/a.txt", 1)
        reservation = await store.reserve_write(T, "/a.txt", 1, stale_before="2000-01-01T00:00:00.000Z")
        assert reservation.superseded_keys == []
        assert (await store.get_entry(pending.entry_id)).status == PENDING


class TestListing:
    async def test_children_sorted_and_ready_only(self, store):
        await store.ensure_directory(T, "/docs")
        await _write(store, "/docs/b.txt")
        await _write(store, "/docs/a.txt")
        await store.reserve_write(T, "/docs/pending.txt", 1)
        await _write(store, "/docs/gone.txt")
        await store.soft_delete(T, "/docs/gone.txt")

        names = [e.name for e in await store.list_children(T, "/docs")]
        assert names == ["a.txt", "b.txt"]

    async def test_root_children(self, store):
        await store.ensure_directory(T, "/docs")
        await _write(store, "/top.txt")
        names = [e.name for e in await store.list_children(T, "/")]
        assert names == ["docs", "top.txt"]

    async def test_tenants_isolated(self, store):
        await store.create_sandbox("Other", "box-two")
        await _write(store, "/a.txt")
        assert await store.stat("box-two", "/a.txt") is None
        assert await store.list_children("box-two", "/") == []


class TestMove:
    async def test_move_file(self, store):
        original = await _write(store, "/a.txt")
        moved = await store.move(T, "/a.txt", "/docs/b.txt", "b.txt", "/docs")
        assert moved.id == original.id
        assert moved.object_key == original.object_key
        assert moved.path == "/docs/b.txt"
        assert moved.name == "b.txt"
        assert moved.parent_path == "/docs"
        assert await store.stat(T, "/a.txt") is None
        assert (await store.stat(T, "/docs/b.txt")).id == original.id

    async def test_move_replaces_destination(self, store):
        await _write(store, "/a.txt")
        target = await _write(store, "/b.txt")
        await store.move(T, "/a.txt", "/b.txt", "b.txt", "/")
        assert (await store.get_entry(target.id)).status == DELETED
        ready = [v for v in await store.list_versions(T, "/b.txt") if v.status == READY]
        assert len(ready) == 1

    async def test_move_missing(self, store):
        with pytest.raises(NotFound):
            await store.move(T, "/nope", "/b", "b", "/")

    async def test_move_onto_self(self, store):
        entry = await _write(store, "/a.txt")
        moved = await store.move(T, "/a.txt", "/a.txt", "a.txt", "/")
        assert moved.id == entry.id
        assert (await store.stat(T, "/a.txt")).id == entry.id


class TestDelete:
    async def test_delete_file(self, store):
        await _write(store, "/a.txt")
        assert await store.soft_delete(T, "/a.txt") == 1
        assert await store.stat(T, "/a.txt") is None

    async def test_delete_missing(self, store):
        assert await store.soft_delete(T, "/nope") == 0

    async def test_delete_directory_one_level(self, store):
        await store.ensure_directory(T, "/d")
        await store.ensure_directory(T, "/d/sub")
        await _write(store, "/d/a.txt")
        await _write(store, "/d/sub/deep.txt")

        assert await store.soft_delete(T, "/d") == 3
        assert await store.stat(T, "/d") is None
        assert await store.stat(T, "/d/a.txt") is None
        assert await store.stat(T, "/d/sub") is None
        # Grandchildren survive.
        assert await store.stat(T, "/d/sub/deep.txt") is not None

    async def test_delete_tree(self, store):
        await store.ensure_directory(T, "/d")
        await store.ensure_directory(T, "/d/sub")
        await _write(store, "/d/sub/deep.txt")
        await _write(store, "/dx.txt")

        assert await store.soft_delete_tree(T, "/d") == 3
        assert await store.stat(T, "/d/sub/deep.txt") is None
        assert await store.stat(T, "/dx.txt") is not None


class TestReconciliation:
    async def test_list_and_abandon(self, store):
        pending = await store.reserve_write(T, "/a.txt", 1)
        await _write(store, "/b.txt")
        stranded = await store.list_stranded_writes("9999-01-01T00:00:00.000Z")
        assert [e.id for e in stranded] == [pending.entry_id]

        assert await store.abandon_write(pending.entry_id) is True
        assert await store.abandon_write(pending.entry_id) is False
        assert await store.list_stranded_writes("9999-01-01T00:00:00.000Z") == []

    async def test_cutoff_respected(self, store):
        await store.reserve_write(T, "/a.txt", 1)
        assert await store.list_stranded_writes("2000-01-01T00:00:00.000Z") == []

    async def test_abandoned_write_cannot_confirm(self, store):
        pending = await store.reserve_write(T, "/a.txt", 1)
        await store.abandon_write(pending.entry_id)
        with pytest.raises(InvalidState):
            await store.confirm_write(pending.entry_id, 1)


class TestSQLitePersistence:
    async def test_survives_reopen(self, tmp_path):
        from sandboxdav.metadata.sqlite import SQLiteMetadataStore

        db_path = str(tmp_path / "meta.db")
        first = SQLiteMetadataStore(db_path)
        await first.init_db()
        await first.create_sandbox("Persist", "persist-box")
        reservation = await first.reserve_write("persist-box", "/a.txt", 2)
        await first.confirm_write(reservation.entry_id, 2)
        await first.close()

        second = SQLiteMetadataStore(db_path)
        await second.init_db()
        try:
            assert await second.get_sandbox("persist-box") is not None
            assert (await second.stat("persist-box", "/a.txt")).size == 2
        finally:
            await second.close()
