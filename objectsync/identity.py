"""Per-installation identifier sent with every request."""

import asyncio
import logging
import threading
import uuid

from .storage import StorageController

logger = logging.getLogger(__name__)

INSTALLATION_ID_KEY = "InstallationId"


class InstallationIdProvider:
    """Resolves, caches and persists the installation id.

    The in-memory cache is guarded by a mutex that is held only for reads
    and assignments of the cached value, never across storage I/O. A cold
    cache is resolved by one caller at a time, so concurrent first calls
    share a single storage lookup and at most one newly minted id is
    persisted.
    """

    def __init__(self, storage: StorageController):
        self._storage = storage
        self._mutex = threading.Lock()
        self._resolve_lock = asyncio.Lock()
        self._installation_id: uuid.UUID | None = None

    def _cached(self) -> uuid.UUID | None:
        with self._mutex:
            return self._installation_id

    def _cache(self, installation_id: uuid.UUID | None) -> None:
        with self._mutex:
            self._installation_id = installation_id

    async def get(self) -> uuid.UUID:
        """Get the installation id, minting and persisting one if needed."""
        if (cached := self._cached()) is not None:
            return cached

        async with self._resolve_lock:
            # Another caller may have resolved it while we waited
            if (cached := self._cached()) is not None:
                return cached

            storage = await self._storage.load()
            stored = await storage.try_get(INSTALLATION_ID_KEY)

            if isinstance(stored, str):
                try:
                    installation_id = uuid.UUID(stored)
                except ValueError:
                    logger.warning(f"Discarding malformed installation id {stored!r}")
                else:
                    self._cache(installation_id)
                    return installation_id

            installation_id = uuid.uuid4()
            await self._store(installation_id)
            logger.info(f"Created installation id {installation_id}")
            return installation_id

    async def set(self, installation_id: uuid.UUID | None) -> None:
        """Persist `installation_id`, or remove the stored id when None.

        Waits for an in-flight cold `get` so its result can not overwrite
        this one in the cache.
        """
        async with self._resolve_lock:
            await self._store(installation_id)

    async def _store(self, installation_id: uuid.UUID | None) -> None:
        storage = await self._storage.load()
        if installation_id is None:
            await storage.remove(INSTALLATION_ID_KEY)
        else:
            await storage.add(INSTALLATION_ID_KEY, str(installation_id))
        self._cache(installation_id)

    async def clear(self) -> None:
        """Forget the id; the next `get` mints a new one."""
        await self.set(None)
