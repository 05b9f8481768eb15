"""
Tests for the cached collection repository
"""

import asyncio
import threading

import pytest

from microfinance.cache import CachedStore
from microfinance.loans import LoanManager
from microfinance.storage import InMemoryStore, JSONFileStore, SQLiteStore


class SlowBackend(InMemoryStore):
    """In-memory backend whose next read waits until released"""

    def __init__(self):
        super().__init__()
        self.hold_next_read = False
        self.reading = threading.Event()
        self.release = threading.Event()

    def read(self, name, default=None):
        if self.hold_next_read:
            self.hold_next_read = False
            self.reading.set()
            self.release.wait(5)
        return super().read(name, default)


@pytest.fixture
def backend():
    return InMemoryStore()


@pytest.fixture
def cache(backend):
    return CachedStore(backend)


class TestCachedStore:
    """Synchronous read-through and write-through behaviour"""

    def test_read_through_on_miss(self, backend, cache):
        backend.write("loans", [{"id": "L1"}])
        assert not cache.is_cached("loans")
        assert cache.read("loans") == [{"id": "L1"}]
        assert cache.is_cached("loans")

    def test_missing_collection_returns_default_without_caching(self, cache):
        assert cache.read("loans", []) == []
        assert not cache.is_cached("loans")

    def test_write_through(self, backend, cache):
        cache.write("loans", [{"id": "L1"}])
        assert backend.read("loans") == [{"id": "L1"}]
        assert cache.is_cached("loans")

    def test_cached_reads_ignore_backend_until_refreshed(self, backend, cache):
        cache.write("loans", [{"id": "L1"}])
        backend.write("loans", [{"id": "L1"}, {"id": "L2"}])
        assert cache.read("loans") == [{"id": "L1"}]

    def test_reads_are_copies(self, cache):
        cache.write("loans", [{"id": "L1"}])
        cache.read("loans").append({"id": "L2"})
        assert cache.read("loans") == [{"id": "L1"}]

    def test_delete(self, backend, cache):
        cache.write("users", [])
        assert cache.delete("users")
        assert not cache.exists("users")
        assert not backend.exists("users")

    def test_rollback_restores_cache_and_backend(self, backend, cache):
        cache.write("loans", [{"id": "L1"}])
        with pytest.raises(RuntimeError):
            with cache.atomic():
                cache.write("loans", [{"id": "L1"}, {"id": "L2"}])
                raise RuntimeError("boom")
        assert cache.read("loans") == [{"id": "L1"}]
        assert backend.read("loans") == [{"id": "L1"}]

    def test_nested_units_commit_once_on_sqlite(self, tmp_path):
        backend = SQLiteStore(tmp_path / "cache.db")
        cache = CachedStore(backend)
        cache.write("loans", [{"id": "L1"}])

        with pytest.raises(RuntimeError):
            with cache.atomic():
                with cache.atomic():
                    cache.write("loans", [{"id": "L1"}, {"id": "L2"}])
                cache.write("collections", [{"id": "COLL001"}])
                raise RuntimeError("boom")

        assert backend.read("loans") == [{"id": "L1"}]
        assert not backend.exists("collections")
        assert cache.read("loans") == [{"id": "L1"}]
        backend.close()

    def test_managers_share_one_cache(self, cache):
        writer = LoanManager(cache)
        reader = LoanManager(cache)
        writer.add_loans({"id": "L1", "customerId": "CUST001", "status": "Pending"})
        assert reader.get_loan("L1") is not None


class TestAsyncRefresh:
    """Reloading from the backing store off the event loop"""

    @pytest.mark.asyncio
    async def test_refresh_picks_up_external_writes(self, backend, cache):
        cache.write("loans", [{"id": "L1"}])
        backend.write("loans", [{"id": "L1"}, {"id": "L2"}])

        refreshed = await cache.refresh("loans")

        assert refreshed == ["loans"]
        assert len(cache.read("loans")) == 2

    @pytest.mark.asyncio
    async def test_refresh_everything(self, backend, cache):
        backend.write("loans", [])
        backend.write("customers", [{"id": "CUST001"}])

        refreshed = await cache.refresh()

        assert sorted(refreshed) == ["customers", "loans"]
        assert cache.is_cached("customers")
        assert cache.is_cached("loans")

    @pytest.mark.asyncio
    async def test_refresh_drops_deleted_collections(self, backend, cache):
        cache.write("loans", [{"id": "L1"}])
        backend.delete("loans")

        await cache.refresh("loans")

        assert not cache.is_cached("loans")
        assert cache.read("loans", []) == []

    @pytest.mark.asyncio
    async def test_write_during_refresh_is_not_overwritten(self):
        backend = SlowBackend()
        cache = CachedStore(backend)
        cache.write("loans", [{"id": "L1", "totalPaid": 0}])

        backend.hold_next_read = True
        refresh = asyncio.ensure_future(cache.refresh("loans"))
        assert await asyncio.to_thread(backend.reading.wait, 5)

        cache.write("loans", [{"id": "L1", "totalPaid": 500}])
        backend.release.set()
        refreshed = await refresh

        assert refreshed == []
        assert cache.read("loans") == [{"id": "L1", "totalPaid": 500}]
        assert backend.read("loans") == [{"id": "L1", "totalPaid": 500}]

    @pytest.mark.asyncio
    async def test_refresh_from_files_written_by_another_process(self, tmp_path):
        cache = CachedStore(JSONFileStore(tmp_path))
        cache.write("customers", [])
        JSONFileStore(tmp_path).write("customers", [{"id": "CUST001"}])

        await cache.refresh("customers")

        assert cache.read("customers") == [{"id": "CUST001"}]
