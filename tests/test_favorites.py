"""Tests for the Favorites Store."""

import asyncio
import json

import pytest

from shared.models import ToolStatus


class TestFavoritesStore:
    """Tests for toggle semantics and read-time reconciliation."""

    @pytest.mark.asyncio
    async def test_toggle_adds_then_removes(self):
        """Test that two toggles restore the original state."""
        from portal.favorites import FavoritesStore

        store = FavoritesStore()

        assert await store.is_favorite("user1", 4) is False
        assert await store.toggle("user1", 4) is True
        assert await store.is_favorite("user1", 4) is True
        assert await store.toggle("user1", 4) is False
        assert await store.is_favorite("user1", 4) is False

    @pytest.mark.asyncio
    async def test_favorites_are_per_user(self):
        from portal.favorites import FavoritesStore

        store = FavoritesStore()
        await store.toggle("user1", 1)

        assert await store.is_favorite("user1", 1)
        assert not await store.is_favorite("user2", 1)

    @pytest.mark.asyncio
    async def test_list_ids_in_insertion_order(self):
        from portal.favorites import FavoritesStore

        store = FavoritesStore()
        for tool_id in (5, 2, 9):
            await store.toggle("user1", tool_id)

        assert await store.list_ids("user1") == [5, 2, 9]

    @pytest.mark.asyncio
    async def test_toggle_does_not_validate_tool(self):
        """Test that unknown tool ids can be favorited."""
        from portal.favorites import FavoritesStore

        store = FavoritesStore()

        assert await store.toggle("user1", 12345) is True

    @pytest.mark.asyncio
    async def test_resolve_skips_dangling_favorites(self, registry):
        """Test that favorites of tools missing from the registry are left out."""
        from portal.favorites import FavoritesStore

        store = FavoritesStore()
        await store.toggle("user1", 1)
        await store.toggle("user1", 999)
        await store.toggle("user1", 4)

        tools = await store.resolve("user1", registry)

        assert [t.id for t in tools] == [1, 4]
        # The edge itself is kept
        assert await store.is_favorite("user1", 999)

    @pytest.mark.asyncio
    async def test_resolve_includes_offline_tools(self, registry):
        from portal.favorites import FavoritesStore

        store = FavoritesStore()
        await store.toggle("user1", 2)

        tools = await store.resolve("user1", registry)

        assert tools[0].status == ToolStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_concurrent_toggles_are_serialised(self):
        """Test that an even number of concurrent toggles leaves the state unchanged."""
        from portal.favorites import FavoritesStore, InMemoryFavoritesBackend

        class SlowBackend(InMemoryFavoritesBackend):
            async def contains(self, user_id, tool_id):
                result = await super().contains(user_id, tool_id)
                await asyncio.sleep(0)
                return result

        store = FavoritesStore(SlowBackend())

        results = await asyncio.gather(*(store.toggle("user1", 7) for _ in range(6)))

        assert results == [True, False, True, False, True, False]
        assert await store.is_favorite("user1", 7) is False
        assert len(store._locks) == 0


class TestKeyedLocks:
    """Tests for the per-key lock table."""

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        from portal.favorites import KeyedLocks

        locks = KeyedLocks()

        async with locks.hold(("u", 1)):
            # Would deadlock if keys shared a lock
            await asyncio.wait_for(self._enter(locks, ("u", 2)), timeout=1)
            assert len(locks) == 1

        assert len(locks) == 0

    @staticmethod
    async def _enter(locks, key):
        async with locks.hold(key):
            pass


class TestJsonFileFavoritesBackend:
    """Tests for the file-backed favorites persistence."""

    @pytest.mark.asyncio
    async def test_mutations_are_persisted(self, tmp_path):
        from portal.favorites import FavoritesStore, JsonFileFavoritesBackend

        path = tmp_path / "favorites.json"
        backend = JsonFileFavoritesBackend(path)
        await backend.open()
        store = FavoritesStore(backend)

        await store.toggle("user1", 3)
        await store.toggle("user1", 1)
        await store.toggle("user2", 3)

        assert json.loads(path.read_text()) == {"user1": [3, 1], "user2": [3]}

        await store.toggle("user2", 3)
        assert json.loads(path.read_text()) == {"user1": [3, 1]}

    @pytest.mark.asyncio
    async def test_open_restores_favorites(self, tmp_path):
        from portal.favorites import FavoritesStore, JsonFileFavoritesBackend

        path = tmp_path / "favorites.json"
        path.write_text(json.dumps({"user1": [8, 2]}))

        backend = JsonFileFavoritesBackend(path)
        await backend.open()
        store = FavoritesStore(backend)

        assert await store.list_ids("user1") == [8, 2]
        assert await store.is_favorite("user1", 2)

    @pytest.mark.asyncio
    async def test_open_missing_file_starts_empty(self, tmp_path):
        from portal.favorites import JsonFileFavoritesBackend

        backend = JsonFileFavoritesBackend(tmp_path / "nested" / "favorites.json")
        await backend.open()

        assert await backend.members("user1") == []
        assert (tmp_path / "nested").is_dir()

    @pytest.mark.asyncio
    async def test_failed_write_leaves_state_unchanged(self, tmp_path):
        """Test that a toggle whose write fails changes neither memory nor disk."""
        from portal.favorites import FavoritesStore, JsonFileFavoritesBackend

        path = tmp_path / "favorites.json"
        backend = JsonFileFavoritesBackend(path)
        await backend.open()
        store = FavoritesStore(backend)
        await store.toggle("user1", 1)

        # A directory in place of the temporary file makes every write fail
        (tmp_path / "favorites.json.tmp").mkdir()

        with pytest.raises(OSError):
            await store.toggle("user1", 3)
        with pytest.raises(OSError):
            await store.toggle("user1", 1)

        assert await store.is_favorite("user1", 3) is False
        assert await store.is_favorite("user1", 1) is True
        assert json.loads(path.read_text()) == {"user1": [1]}
        assert len(store._locks) == 0
