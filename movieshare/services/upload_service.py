"""
Upload pipeline: turns a validated file plus metadata into a committed Movie.

Steps run strictly in order:
    reserve record -> thumbnail -> upload thumbnail -> upload file
    -> resolve URLs -> commit record

The record is reserved as a provisional ("pending") document and only becomes
visible in the catalog once committed. When a step fails, the assets written so
far and the provisional record are removed on a best-effort basis; anything
left behind is picked up by the reconciliation sweep (cleanup_service).
"""
import io
import logging
import os
from datetime import datetime
from typing import Any, Awaitable, BinaryIO, Callable, Dict, List, Optional

from beanie import PydanticObjectId
from pydantic import BaseModel

from movieshare.errors import (
    MovieShareError,
    NotSignedInError,
    UploadError,
    UploadValidationError,
)
from movieshare.models.movie import Movie
from movieshare.services.catalog_service import CatalogStore
from movieshare.services.session_service import Session
from movieshare.services.storage_service import ObjectStorage, ProgressCallback, ProgressEvent
from movieshare.services.thumbnail_service import generate_thumbnail

logger = logging.getLogger("upload")

ALLOWED_VIDEO_TYPES = {"video/mp4", "video/avi", "video/x-matroska", "video/quicktime"}
MAX_UPLOAD_BYTES = 2 * 1024 * 1024 * 1024
THUMBNAIL_FILENAME = "thumbnail.jpg"


class PendingUpload(BaseModel):
    """A selected file and its not-yet-committed form fields."""
    filename: str
    content_type: str
    size: int
    stream: Any  # binary file object, read by the thumbnailer and the storage backend
    title: str = ""
    description: str = ""


def validate_upload_file(filename: str, content_type: Optional[str], size: Optional[int]):
    if not filename:
        raise UploadValidationError("Please select a file to upload")
    if content_type not in ALLOWED_VIDEO_TYPES:
        raise UploadValidationError("Please select a valid video file (MP4, AVI, MKV, MOV)")
    if size is None or size > MAX_UPLOAD_BYTES:
        raise UploadValidationError("File size must be less than 2GB")


def validate_upload_form(title: Optional[str], description: Optional[str]) -> tuple:
    title = (title or "").strip()
    description = (description or "").strip()
    if not title or not description:
        raise UploadValidationError("Please fill all fields and select a file")
    return title, description


def validate_pending_upload(pending: PendingUpload) -> PendingUpload:
    """Validation gate: nothing reaches the orchestrator unless this passes."""
    validate_upload_file(pending.filename, pending.content_type, pending.size)
    pending.title, pending.description = validate_upload_form(pending.title, pending.description)
    return pending


def movie_file_path(movie_id, filename: str) -> str:
    return f"movies/{movie_id}/{os.path.basename(filename)}"


def thumbnail_file_path(movie_id) -> str:
    return f"movies/{movie_id}/{THUMBNAIL_FILENAME}"


class UploadProgress(BaseModel):
    movie_id: str
    filename: str
    step: str
    bytes_transferred: int = 0
    total_bytes: int = 0
    started_at: datetime

    @property
    def percent(self) -> int:
        if not self.total_bytes:
            return 0
        return round(self.bytes_transferred / self.total_bytes * 100)


class UploadProgressRegistry:
    """In-flight uploads per user, for progress display only."""

    def __init__(self):
        self._uploads: Dict[str, Dict[str, UploadProgress]] = {}

    def start(self, user_id: str, movie_id: str, filename: str, total_bytes: int) -> UploadProgress:
        progress = UploadProgress(
            movie_id=movie_id,
            filename=filename,
            step="reserved",
            total_bytes=total_bytes,
            started_at=datetime.utcnow(),
        )
        self._uploads.setdefault(user_id, {})[movie_id] = progress
        return progress

    def finish(self, user_id: str, movie_id: str):
        uploads = self._uploads.get(user_id, {})
        uploads.pop(movie_id, None)
        if not uploads:
            self._uploads.pop(user_id, None)

    def active(self, user_id: str) -> List[UploadProgress]:
        return list(self._uploads.get(user_id, {}).values())


upload_registry = UploadProgressRegistry()

ThumbnailGenerator = Callable[[BinaryIO, str], Awaitable[bytes]]


class UploadOrchestrator:
    def __init__(
        self,
        store: CatalogStore,
        storage: ObjectStorage,
        thumbnailer: ThumbnailGenerator = generate_thumbnail,
        registry: Optional[UploadProgressRegistry] = None,
    ):
        self.store = store
        self.storage = storage
        self.thumbnailer = thumbnailer
        self.registry = registry or upload_registry

    async def upload(
        self,
        pending: PendingUpload,
        session: Optional[Session],
        on_progress: Optional[ProgressCallback] = None,
    ) -> Movie:
        if session is None:
            raise NotSignedInError("Please login to upload movies")
        validate_pending_upload(pending)

        # 1. Reserve an identifier with a provisional record
        movie_id = PydanticObjectId()
        movie = Movie(
            id=movie_id,
            title=pending.title,
            description=pending.description,
            filename=pending.filename,
            file_path=movie_file_path(movie_id, pending.filename),
            thumbnail_path=thumbnail_file_path(movie_id),
            file_size=pending.size,
            content_type=pending.content_type,
            uploaded_by=session.user_id,
        )
        try:
            await self.store.reserve(movie)
        except Exception as e:
            raise UploadError(f"Upload failed: {e}", step="reserve") from e

        progress = self.registry.start(session.user_id, str(movie_id), pending.filename, pending.size)
        written: List[str] = []
        step = "thumbnail"
        try:
            # 2. Thumbnail
            progress.step = step
            thumbnail = await self.thumbnailer(pending.stream, pending.filename)

            # 3. Upload thumbnail
            step = progress.step = "upload_thumbnail"
            written.append(movie.thumbnail_path)
            await self.storage.put(
                movie.thumbnail_path,
                io.BytesIO(thumbnail),
                len(thumbnail),
                content_type="image/jpeg",
            )

            # 4. Upload the full file
            step = progress.step = "upload_file"

            def track(event: ProgressEvent):
                progress.bytes_transferred = event.bytes_transferred
                progress.total_bytes = event.total_bytes
                if on_progress:
                    on_progress(event)

            written.append(movie.file_path)
            await self.storage.put(
                movie.file_path,
                pending.stream,
                pending.size,
                content_type=pending.content_type,
                on_progress=track,
            )

            # 5. Resolve access URLs
            step = progress.step = "resolve_urls"
            thumbnail_url = await self.storage.get_download_url(movie.thumbnail_path)
            download_url = await self.storage.get_download_url(movie.file_path)

            # 6. Commit
            step = progress.step = "commit"
            await self.store.commit(movie, download_url=download_url, thumbnail_url=thumbnail_url)
        except Exception as e:
            logger.error(f"Upload of movie {movie_id} failed at step {step}: {e}")
            await self._rollback(movie, written)
            message = e.message if isinstance(e, MovieShareError) else str(e)
            raise UploadError(f"Upload failed: {message}", step=step) from e
        finally:
            self.registry.finish(session.user_id, str(movie_id))

        logger.info(f"Movie {movie_id} uploaded by {session.user_id} ({pending.size} bytes)")
        return movie

    async def _rollback(self, movie: Movie, written: List[str]):
        for path in reversed(written):
            try:
                await self.storage.delete(path)
            except Exception as e:
                logger.warning(f"Could not delete orphaned object {path}: {e}")
        try:
            await self.store.discard(movie)
        except Exception as e:
            logger.warning(f"Could not discard provisional movie {movie.id}, leaving it for the sweep: {e}")
