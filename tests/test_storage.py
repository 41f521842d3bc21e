"""Tests for key/value storage."""

import pytest

from objectsync.storage import MemoryStorageController, SQLiteStorageController


@pytest.fixture
def sqlite_storage(tmp_path):
    """Create a SQLite storage controller in a temp directory."""
    storage = SQLiteStorageController(tmp_path / "nested" / "storage.db")
    yield storage
    storage.close()


class TestMemoryStorage:
    """Tests for MemoryStorageController."""

    @pytest.mark.asyncio
    async def test_add_get_remove(self):
        storage = MemoryStorageController()
        dictionary = await storage.load()

        await dictionary.add("key", {"a": 1})
        assert await dictionary.try_get("key") == {"a": 1}
        assert dictionary.keys() == ["key"]

        await dictionary.remove("key")
        assert await dictionary.try_get("key") is None
        assert len(dictionary) == 0

    @pytest.mark.asyncio
    async def test_load_returns_same_dictionary(self):
        storage = MemoryStorageController()
        assert await storage.load() is await storage.load()


class TestSQLiteStorage:
    """Tests for SQLiteStorageController."""

    @pytest.mark.asyncio
    async def test_connect_creates_parent(self, sqlite_storage):
        await sqlite_storage.load()

        assert sqlite_storage.db_path.parent.exists()

    @pytest.mark.asyncio
    async def test_add_and_get(self, sqlite_storage):
        dictionary = await sqlite_storage.load()

        await dictionary.add("InstallationId", "abc")
        await dictionary.add("count", 3)

        assert await dictionary.try_get("InstallationId") == "abc"
        assert await dictionary.try_get("count") == 3
        assert sorted(dictionary.keys()) == ["InstallationId", "count"]

    @pytest.mark.asyncio
    async def test_remove_missing_key(self, sqlite_storage):
        dictionary = await sqlite_storage.load()

        await dictionary.remove("nothing")

        assert await dictionary.try_get("nothing") is None

    @pytest.mark.asyncio
    async def test_values_persist(self, tmp_path):
        """Test values are visible to a new controller on the same file."""
        db_path = tmp_path / "storage.db"

        storage = SQLiteStorageController(db_path)
        dictionary = await storage.load()
        await dictionary.add("key", ["a", "b"])
        await dictionary.add("gone", 1)
        await dictionary.remove("gone")
        storage.close()

        reopened = SQLiteStorageController(db_path)
        dictionary = await reopened.load()
        assert await dictionary.try_get("key") == ["a", "b"]
        assert await dictionary.try_get("gone") is None
        reopened.close()

    @pytest.mark.asyncio
    async def test_in_memory_database(self):
        storage = SQLiteStorageController(":memory:")
        dictionary = await storage.load()

        await dictionary.add("key", "value")

        assert await dictionary.try_get("key") == "value"
        storage.close()
