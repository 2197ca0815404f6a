"""Tests for the durable SQLite supersession repository."""

import sqlite3

import pytest

from compound_rag.errors import RepositoryUnavailableError
from compound_rag.supersession import (
    SqliteSupersessionRepository,
    SupersessionRelationship,
    SupersessionTracker,
)
from tests.test_utils import make_doc


@pytest.fixture
def repo():
    repository = SqliteSupersessionRepository(":memory:")
    yield repository
    repository.close()


class TestSqliteSupersessionRepository:
    """CRUD and lookup behaviour."""

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, repo):
        relationship = SupersessionRelationship("id:v2.md", "v1.md", "id:v1.md")

        await repo.upsert(relationship)

        assert await repo.get("id:v2.md") == relationship
        assert await repo.get("id:missing.md") is None

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, repo):
        await repo.upsert(SupersessionRelationship("id:v2.md", "v1.md", "id:v1.md"))
        await repo.upsert(SupersessionRelationship("id:v2.md", "other.md", None))

        stored = await repo.get("id:v2.md")
        assert stored.superseded_path == "other.md"
        assert stored.is_dangling
        assert len(await repo.list_all()) == 1

    @pytest.mark.asyncio
    async def test_find_superseding(self, repo):
        await repo.upsert(SupersessionRelationship("id:b.md", "base.md", "id:base.md"))
        await repo.upsert(SupersessionRelationship("id:a.md", "base.md", "id:base.md"))

        first = await repo.find_superseding("id:base.md")
        every = await repo.find_all_superseding("id:base.md")

        assert first.document_id == "id:a.md"
        assert [rel.document_id for rel in every] == ["id:a.md", "id:b.md"]
        assert await repo.find_superseding("id:nobody.md") is None

    @pytest.mark.asyncio
    async def test_find_unresolved(self, repo):
        await repo.upsert(SupersessionRelationship("id:new.md", "old.md", None))
        await repo.upsert(SupersessionRelationship("id:other.md", "old.md", "id:old.md"))

        unresolved = await repo.find_unresolved("old.md")

        assert [rel.document_id for rel in unresolved] == ["id:new.md"]

    @pytest.mark.asyncio
    async def test_delete(self, repo):
        await repo.upsert(SupersessionRelationship("id:v2.md", "v1.md", "id:v1.md"))

        assert await repo.delete("id:v2.md") is True
        assert await repo.delete("id:v2.md") is False
        assert await repo.list_all() == []

    @pytest.mark.asyncio
    async def test_apply_changes(self, repo):
        await repo.upsert(SupersessionRelationship("id:v2.md", "v1.md", "id:v1.md"))
        await repo.upsert(SupersessionRelationship("id:v3.md", "v2.md", "id:v2.md"))

        await repo.apply_changes(
            upserts=[SupersessionRelationship("id:v3.md", "v1.md", "id:v1.md")],
            deletes=["id:v2.md"],
        )

        assert await repo.list_all() == [SupersessionRelationship("id:v3.md", "v1.md", "id:v1.md")]

    @pytest.mark.asyncio
    async def test_apply_changes_rolls_back_on_failure(self, repo):
        await repo.upsert(SupersessionRelationship("id:v2.md", "v1.md", "id:v1.md"))
        await repo.upsert(SupersessionRelationship("id:v3.md", "v2.md", "id:v2.md"))

        with pytest.raises(RepositoryUnavailableError):
            await repo.apply_changes(
                upserts=[
                    SupersessionRelationship("id:v3.md", "v1.md", "id:v1.md"),
                    # NOT NULL violation aborts the batch after the first write.
                    SupersessionRelationship("id:v4.md", None, None),
                ],
                deletes=["id:v2.md"],
            )

        assert [rel.superseded_path for rel in await repo.list_all()] == ["v1.md", "v2.md"]


class TestPersistence:
    """File-backed databases survive reopening."""

    @pytest.mark.asyncio
    async def test_relationships_survive_restart(self, tmp_path):
        db_path = str(tmp_path / "nested" / "supersession.db")
        first = SqliteSupersessionRepository(db_path)
        await first.upsert(SupersessionRelationship("id:v2.md", "v1.md", "id:v1.md"))

        second = SqliteSupersessionRepository(db_path)

        assert await second.get("id:v2.md") == SupersessionRelationship(
            "id:v2.md", "v1.md", "id:v1.md"
        )

    def test_schema_version_recorded_once(self, tmp_path):
        db_path = str(tmp_path / "supersession.db")
        SqliteSupersessionRepository(db_path)
        SqliteSupersessionRepository(db_path)

        conn = sqlite3.connect(db_path)
        try:
            rows = conn.execute("SELECT version FROM schema_version").fetchall()
        finally:
            conn.close()
        assert rows == [(1,)]

    @pytest.mark.asyncio
    async def test_tracker_over_sqlite(self, document_repo, scoring):
        repository = SqliteSupersessionRepository(":memory:")
        tracker = SupersessionTracker(repository, document_repo, scoring)
        for path in ("v1.md", "v2.md", "v3.md"):
            document_repo.add(make_doc(path))

        await tracker.register("id:v2.md", "v1.md")
        await tracker.register("id:v3.md", "v2.md")
        rejected = await tracker.register("id:v1.md", "v3.md")

        assert rejected.success is False
        assert (await tracker.get_info("id:v1.md")).multiplier == 0.25
        repository.close()


@pytest.mark.asyncio
async def test_storage_failure_raises_repository_error(repo):
    repo.close()
    # Without the in-memory connection, lookups open db_path, which cannot exist.
    repo.db_path = "/nonexistent-dir/forbidden/supersession.db"

    with pytest.raises(RepositoryUnavailableError):
        await repo.get("id:any.md")
