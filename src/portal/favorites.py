"""Favorites Store.

Per-user set of favorited tool ids with toggle semantics. Toggles are
serialised per (user, tool) key; the persistence engine sits behind the
FavoritesBackend interface.

Favorites are not validated against the registry when toggled. Ids that
no longer resolve to a tool are skipped at read time.
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Hashable, Optional

import aiofiles

from shared.errors import ToolNotFoundError
from shared.logging import get_logger
from shared.models import Tool

from portal.registry import ToolRegistry

logger = get_logger(__name__)


class KeyedLocks:
    """
    Table of asyncio locks created on demand per key.

    An entry is dropped as soon as no task holds or waits for its lock,
    so the table only grows with the number of keys in flight.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class FavoritesBackend(ABC):
    """Durable mapping of user id to the tool ids they favorited."""

    @abstractmethod
    async def members(self, user_id: str) -> list[int]:
        """Tool ids favorited by the user, in insertion order."""

    @abstractmethod
    async def contains(self, user_id: str, tool_id: int) -> bool:
        pass

    @abstractmethod
    async def add(self, user_id: str, tool_id: int) -> None:
        pass

    @abstractmethod
    async def remove(self, user_id: str, tool_id: int) -> None:
        pass


class InMemoryFavoritesBackend(FavoritesBackend):
    """Process-local backend, used in development and tests."""

    def __init__(self) -> None:
        # dict used as an ordered set
        self._data: dict[str, dict[int, None]] = {}

    async def members(self, user_id: str) -> list[int]:
        return list(self._data.get(user_id, {}))

    async def contains(self, user_id: str, tool_id: int) -> bool:
        return tool_id in self._data.get(user_id, {})

    async def add(self, user_id: str, tool_id: int) -> None:
        self._data.setdefault(user_id, {})[tool_id] = None

    async def remove(self, user_id: str, tool_id: int) -> None:
        user_favorites = self._data.get(user_id)
        if user_favorites is None:
            return
        user_favorites.pop(tool_id, None)
        if not user_favorites:
            del self._data[user_id]


class JsonFileFavoritesBackend(InMemoryFavoritesBackend):
    """
    Backend persisted to a JSON file of ``{user_id: [tool ids]}``.

    The whole mapping is rewritten after each mutation through a temporary
    file and an atomic replace, so a crash never leaves a partial file.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._write_lock = asyncio.Lock()

    async def open(self) -> None:
        """Load the mapping from disk. A missing file means no favorites."""
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return

        async with aiofiles.open(self.path, "r") as f:
            raw = await f.read()

        data = json.loads(raw) if raw.strip() else {}
        self._data = {
            user_id: {int(tool_id): None for tool_id in tool_ids}
            for user_id, tool_ids in data.items()
        }
        logger.info("Favorites loaded", path=str(self.path), users=len(self._data))

    async def add(self, user_id: str, tool_id: int) -> None:
        async with self._write_lock:
            data = self._copy_data()
            data.setdefault(user_id, {})[tool_id] = None
            await self._save(data)
            self._data = data

    async def remove(self, user_id: str, tool_id: int) -> None:
        async with self._write_lock:
            data = self._copy_data()
            user_favorites = data.get(user_id)
            if user_favorites is None or tool_id not in user_favorites:
                return
            del user_favorites[tool_id]
            if not user_favorites:
                del data[user_id]
            await self._save(data)
            self._data = data

    def _copy_data(self) -> dict[str, dict[int, None]]:
        return {user_id: dict(ids) for user_id, ids in self._data.items()}

    async def _save(self, data: dict[str, dict[int, None]]) -> None:
        """Write the mapping to disk. The in-memory state is swapped only after this returns."""
        snapshot = {user_id: list(ids) for user_id, ids in data.items()}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(snapshot))
        os.replace(tmp_path, self.path)


class FavoritesStore:
    """
    Favorites relation between users and tools.

    At most one edge exists per (user, tool) pair; edges are created and
    removed only through toggle.
    """

    def __init__(self, backend: Optional[FavoritesBackend] = None) -> None:
        self.backend = backend or InMemoryFavoritesBackend()
        self._locks = KeyedLocks()

    async def is_favorite(self, user_id: str, tool_id: int) -> bool:
        return await self.backend.contains(user_id, tool_id)

    async def toggle(self, user_id: str, tool_id: int) -> bool:
        """
        Flip the favorite edge for (user, tool).

        Returns:
            True if the tool is now a favorite, False if it was removed
        """
        async with self._locks.hold((user_id, tool_id)):
            if await self.backend.contains(user_id, tool_id):
                await self.backend.remove(user_id, tool_id)
                favorite = False
            else:
                await self.backend.add(user_id, tool_id)
                favorite = True

        logger.info("Favorite toggled", user_id=user_id, tool_id=tool_id, favorite=favorite)
        return favorite

    async def list_ids(self, user_id: str) -> list[int]:
        return await self.backend.members(user_id)

    async def resolve(self, user_id: str, registry: ToolRegistry) -> list[Tool]:
        """
        Favorites of a user joined with the registry.

        Ids the registry no longer knows are left out and logged.
        """
        tools = []
        for tool_id in await self.backend.members(user_id):
            try:
                tools.append(registry.get(tool_id))
            except ToolNotFoundError:
                logger.warning("Dangling favorite skipped", user_id=user_id, tool_id=tool_id)
        return tools
