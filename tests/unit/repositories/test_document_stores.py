"""Behaviour shared by every document store backend."""

import pytest
import pytest_asyncio

from coverage_limits.core.config import DatabaseSettings
from coverage_limits.core.database import DatabaseClient, build_engine
from coverage_limits.core.exceptions import DocumentStoreError
from coverage_limits.repositories.document_store import WriteOp, strip_undefined
from coverage_limits.repositories.memory_store import InMemoryDocumentStore
from coverage_limits.repositories.sql_store import SqlDocumentStore

COLLECTION = "products/p1/coverages/c1/limits"


@pytest_asyncio.fixture(params=["memory", "sql"])
async def doc_store(request, tmp_path):
    """Yield an empty store for each backend."""
    if request.param == "memory":
        yield InMemoryDocumentStore()
        return

    database = DatabaseSettings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'limits.db'}")
    client = DatabaseClient(build_engine(database))
    await client.create_tables()
    yield SqlDocumentStore(client.session_maker)
    await client.disconnect()


class TestStripUndefined:
    """Test suite for strip_undefined."""

    def test_drops_none_recursively(self):
        assert strip_undefined({"a": 1, "b": None, "c": {"d": None, "e": 0}}) == {"a": 1, "c": {"e": 0}}

    def test_keeps_falsy_values(self):
        assert strip_undefined({"a": False, "b": "", "c": []}) == {"a": False, "b": "", "c": []}

    def test_write_ops_are_stripped(self):
        assert WriteOp.set("x/y", {"a": None, "b": 1}).data == {"b": 1}


class TestDocumentStore:
    """Test suite run against each backend."""

    @pytest.mark.asyncio
    async def test_create_get_and_list(self, doc_store):
        doc_id = await doc_store.create(COLLECTION, {"amount": 100, "note": None})

        doc = await doc_store.get(f"{COLLECTION}/{doc_id}")
        assert doc.id == doc_id
        assert doc.data == {"amount": 100}
        assert [d.id for d in await doc_store.list(COLLECTION)] == [doc_id]
        assert await doc_store.get(f"{COLLECTION}/missing") is None

    @pytest.mark.asyncio
    async def test_list_orders_by_field_with_missing_last(self, doc_store):
        await doc_store.upsert(f"{COLLECTION}/a", {"displayOrder": 2})
        await doc_store.upsert(f"{COLLECTION}/b", {"label": "unordered"})
        await doc_store.upsert(f"{COLLECTION}/c", {"displayOrder": 0})

        docs = await doc_store.list(COLLECTION, order_by="displayOrder")

        assert [d.id for d in docs] == ["c", "a", "b"]

    @pytest.mark.asyncio
    async def test_list_only_returns_direct_children(self, doc_store):
        await doc_store.upsert(f"{COLLECTION}/a", {"x": 1})
        await doc_store.upsert(f"{COLLECTION}/a/children/b", {"x": 2})

        assert [d.id for d in await doc_store.list(COLLECTION)] == ["a"]

    @pytest.mark.asyncio
    async def test_upsert_merges_or_replaces(self, doc_store):
        path = f"{COLLECTION}/a"
        await doc_store.upsert(path, {"amount": 1, "label": "One"})

        await doc_store.upsert(path, {"amount": 2})
        assert (await doc_store.get(path)).data == {"amount": 2, "label": "One"}

        await doc_store.upsert(path, {"amount": 3}, merge=False)
        assert (await doc_store.get(path)).data == {"amount": 3}

    @pytest.mark.asyncio
    async def test_failed_batch_applies_nothing(self, doc_store):
        await doc_store.upsert(f"{COLLECTION}/a", {"amount": 1})

        with pytest.raises(DocumentStoreError):
            await doc_store.batch_write([
                WriteOp.update(f"{COLLECTION}/a", {"amount": 2}),
                WriteOp.set(f"{COLLECTION}/b", {"amount": 3}),
                WriteOp.update(f"{COLLECTION}/missing", {"amount": 4}),
            ])

        assert (await doc_store.get(f"{COLLECTION}/a")).data == {"amount": 1}
        assert await doc_store.get(f"{COLLECTION}/b") is None

    @pytest.mark.asyncio
    async def test_later_ops_see_earlier_ops_in_batch(self, doc_store):
        await doc_store.batch_write([
            WriteOp.set(f"{COLLECTION}/a", {"amount": 1}),
            WriteOp.update(f"{COLLECTION}/a", {"label": "One"}),
        ])

        assert (await doc_store.get(f"{COLLECTION}/a")).data == {"amount": 1, "label": "One"}

    @pytest.mark.asyncio
    async def test_delete(self, doc_store):
        await doc_store.upsert(f"{COLLECTION}/a", {"amount": 1})
        await doc_store.delete(f"{COLLECTION}/a")
        await doc_store.delete(f"{COLLECTION}/never-existed")

        assert await doc_store.list(COLLECTION) == []

    @pytest.mark.asyncio
    async def test_subscribe_delivers_immediately_and_after_batches(self, doc_store):
        await doc_store.upsert(f"{COLLECTION}/a", {"displayOrder": 1})
        snapshots = []

        registration = await doc_store.subscribe(
            COLLECTION, lambda s: snapshots.append([d.id for d in s.documents]), order_by="displayOrder"
        )
        assert snapshots == [["a"]]

        await doc_store.batch_write([
            WriteOp.set(f"{COLLECTION}/b", {"displayOrder": 0}),
            WriteOp.update(f"{COLLECTION}/a", {"label": "A"}),
        ])
        assert snapshots == [["a"], ["b", "a"]]

        await doc_store.upsert("products/p1/coverages/c1/other/x", {"y": 1})
        assert len(snapshots) == 2

        registration.unsubscribe()
        await doc_store.delete(f"{COLLECTION}/a")
        assert len(snapshots) == 2
        assert registration.active is False
        assert doc_store.listener_count() == 0
