import logging
from datetime import datetime
from typing import List, Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId

from movieshare.errors import MovieNotFoundError
from movieshare.models.movie import Movie, STATUS_COMMITTED, STATUS_PENDING

logger = logging.getLogger("catalog")


class CatalogStore:
    """Movie metadata in the document database."""

    async def reserve(self, movie: Movie) -> Movie:
        """Insert a provisional record, reserving its identifier."""
        movie.status = STATUS_PENDING
        await movie.insert()
        logger.info(f"Reserved movie {movie.id} for {movie.uploaded_by}")
        return movie

    async def commit(self, movie: Movie, download_url: str, thumbnail_url: str) -> Movie:
        movie.download_url = download_url
        movie.thumbnail_url = thumbnail_url
        movie.download_count = 0
        movie.created_at = datetime.utcnow()
        movie.status = STATUS_COMMITTED
        await movie.save()
        logger.info(f"Committed movie {movie.id}")
        return movie

    async def discard(self, movie: Movie) -> None:
        """Remove a provisional record. Committed records are never deleted."""
        if movie.is_committed:
            raise ValueError(f"Refusing to delete committed movie {movie.id}")
        await movie.delete()
        logger.info(f"Discarded provisional movie {movie.id}")

    async def load(self) -> List[Movie]:
        """All committed movies, newest first."""
        return await Movie.find({"status": STATUS_COMMITTED}).sort("-createdAt").to_list()

    async def get(self, movie_id: str) -> Movie:
        try:
            oid = PydanticObjectId(movie_id)
        except (InvalidId, TypeError):
            raise MovieNotFoundError(movie_id)

        movie = await Movie.get(oid)
        if not movie or not movie.is_committed:
            raise MovieNotFoundError(movie_id)
        return movie

    async def increment_download_count(self, movie: Movie) -> None:
        await Movie.find_one({"_id": movie.id}).update({"$inc": {"downloadCount": 1}})

    async def find_stale_pending(self, cutoff: datetime) -> List[Movie]:
        return await Movie.find({"status": STATUS_PENDING, "reservedAt": {"$lt": cutoff}}).to_list()


_store: Optional[CatalogStore] = None


def get_catalog_store() -> CatalogStore:
    global _store
    if _store is None:
        _store = CatalogStore()
    return _store
