import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from movieshare.config import settings
from movieshare.services.catalog_service import CatalogStore, get_catalog_store
from movieshare.services.storage_service import ObjectStorage, get_object_storage

logger = logging.getLogger("sweeper")


class UploadSweeper:
    """
    Reconciliation sweep for uploads that never committed.
    Provisional records older than ``max_age_seconds`` are treated as abandoned:
    their assets are deleted from storage, then the record itself.
    """

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        storage: Optional[ObjectStorage] = None,
        max_age_seconds: int = settings.PENDING_UPLOAD_MAX_AGE_SECONDS,
        interval_seconds: int = settings.SWEEP_INTERVAL_SECONDS,
    ):
        self._store = store
        self._storage = storage
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self.is_running = False
        self._task = None

    @property
    def store(self) -> CatalogStore:
        return self._store or get_catalog_store()

    @property
    def storage(self) -> ObjectStorage:
        return self._storage or get_object_storage()

    def start(self):
        if self.is_running:
            return
        self.is_running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Upload sweeper started")

    def stop(self):
        self.is_running = False
        if self._task:
            self._task.cancel()
            logger.info("Upload sweeper stopped")

    async def _loop(self):
        while self.is_running:
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Sweeper loop error: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Remove abandoned provisional uploads. Returns how many were reclaimed."""
        cutoff = (now or datetime.utcnow()) - timedelta(seconds=self.max_age_seconds)
        stale = await self.store.find_stale_pending(cutoff)
        if not stale:
            return 0

        logger.info(f"Found {len(stale)} abandoned uploads to reclaim")
        reclaimed = 0
        for movie in stale:
            try:
                for path in (movie.thumbnail_path, movie.file_path):
                    if path:
                        await self.storage.delete(path)
                await self.store.discard(movie)
                reclaimed += 1
            except Exception as e:
                logger.error(f"Failed to reclaim upload {movie.id}: {e}", exc_info=True)

        return reclaimed


sweeper = UploadSweeper()
