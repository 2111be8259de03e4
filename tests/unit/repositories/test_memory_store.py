"""Tests for InMemoryDocumentStore test hooks."""

import pytest

from coverage_limits.core.exceptions import AccessDeniedError
from coverage_limits.repositories.memory_store import InMemoryDocumentStore

COLLECTION = "products/p1/coverages/c1/limitOptionSets"


class TestInMemoryDocumentStore:
    """Test suite for access denial and commit recording."""

    @pytest.mark.asyncio
    async def test_seeded_documents(self):
        store = InMemoryDocumentStore({f"{COLLECTION}/s1": {"structure": "single"}})

        assert (await store.get(f"{COLLECTION}/s1")).data == {"structure": "single"}

    @pytest.mark.asyncio
    async def test_deny_access_a_number_of_times(self, store):
        store.deny_access(COLLECTION, times=2)

        for _ in range(2):
            with pytest.raises(AccessDeniedError) as exc_info:
                await store.list(COLLECTION)
            assert exc_info.value.path == COLLECTION

        assert await store.list(COLLECTION) == []

    @pytest.mark.asyncio
    async def test_deny_until_allowed(self, store):
        store.deny_access("products/p1")

        with pytest.raises(AccessDeniedError):
            await store.get(f"{COLLECTION}/s1")

        store.allow_access()
        assert await store.get(f"{COLLECTION}/s1") is None

    @pytest.mark.asyncio
    async def test_subscription_error_detaches_listener(self, store):
        errors = []
        store.deny_access(COLLECTION, times=1)

        registration = await store.subscribe(COLLECTION, lambda s: None, on_error=errors.append)

        assert isinstance(errors[0], AccessDeniedError)
        assert registration.active is False
        assert store.listener_count(COLLECTION) == 0

    @pytest.mark.asyncio
    async def test_commits_and_reads_are_recorded(self, store):
        await store.upsert(f"{COLLECTION}/s1", {"structure": "single"})
        await store.batch_write([])

        assert len(store.commits) == 1
        assert store.reads == [f"{COLLECTION}/s1"]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, store):
        received = []
        calls = []

        def failing(snapshot):
            calls.append(snapshot)
            if len(calls) > 1:
                raise RuntimeError("listener broke")

        await store.subscribe(COLLECTION, failing)
        await store.subscribe(COLLECTION, received.append)

        await store.upsert(f"{COLLECTION}/s1", {"structure": "single"})

        assert len(store.commits) == 1
        assert [len(s.documents) for s in received] == [0, 1]

    @pytest.mark.asyncio
    async def test_failing_first_delivery_detaches_listener(self, store):
        def failing(snapshot):
            raise RuntimeError("listener broke")

        with pytest.raises(RuntimeError):
            await store.subscribe(COLLECTION, failing)

        assert store.listener_count(COLLECTION) == 0
