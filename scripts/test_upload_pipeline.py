import unittest
from unittest.mock import AsyncMock, patch
import io
import os
import sys

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from movieshare.errors import AssetNotFoundError, NotSignedInError, StorageError, ThumbnailError, UploadError, UploadValidationError
from movieshare.models.movie import Movie, STATUS_PENDING
from movieshare.services.catalog_service import CatalogStore
from movieshare.services.session_service import Session
from movieshare.services.storage_service import ObjectStorage, ProgressEvent, StoredObject
from movieshare.services.upload_service import (
    MAX_UPLOAD_BYTES,
    PendingUpload,
    UploadOrchestrator,
    UploadProgressRegistry,
)

FAKE_JPEG = b"\xff\xd8\xff\xe0fake-thumbnail"


class MemoryStorage(ObjectStorage):
    """Object storage that keeps byte counts per path and records every call in order."""

    def __init__(self, fail_on=None):
        self.objects = {}
        self.calls = []
        self.fail_on = fail_on

    async def put(self, path, stream, size, content_type=None, on_progress=None):
        self.calls.append(("put", path))
        if self.fail_on and path.endswith(self.fail_on):
            raise StorageError("network error")
        transferred = 0
        while True:
            chunk = stream.read(8 * 1024 * 1024)
            if not chunk:
                break
            transferred += len(chunk)
            if on_progress:
                on_progress(ProgressEvent(bytes_transferred=transferred, total_bytes=size))
        self.objects[path] = transferred
        return StoredObject(path=path, size=transferred, content_type=content_type)

    async def get_download_url(self, path):
        self.calls.append(("url", path))
        if path not in self.objects:
            raise AssetNotFoundError(path)
        return f"https://storage.test/{path}"

    async def delete(self, path):
        self.calls.append(("delete", path))
        self.objects.pop(path, None)


class TestUploadOrchestrator(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        client = AsyncMongoMockClient()
        await init_beanie(database=client["movieshare_test"], document_models=[Movie])
        self.store = CatalogStore()
        self.storage = MemoryStorage()
        self.thumbnailer = AsyncMock(return_value=FAKE_JPEG)
        self.registry = UploadProgressRegistry()
        self.orchestrator = UploadOrchestrator(self.store, self.storage, self.thumbnailer, self.registry)
        self.session = Session(user_id="user-U", email="u@example.com")

    def make_pending(self, size=1024, content_type="video/mp4", filename="clip.mp4", data=None):
        return PendingUpload(
            filename=filename,
            content_type=content_type,
            size=size,
            stream=io.BytesIO(data if data is not None else b"\x00" * min(size, 1024)),
            title="Test",
            description="A test movie",
        )

    async def test_successful_upload_commits_one_record(self):
        data = b"\x01" * 50_000_000
        pending = self.make_pending(size=len(data), data=data)

        movie = await self.orchestrator.upload(pending, self.session)

        self.assertTrue(movie.is_committed)
        self.assertEqual(movie.file_size, 50_000_000)
        self.assertEqual(movie.download_count, 0)
        self.assertEqual(movie.uploaded_by, "user-U")
        self.assertIsNotNone(movie.created_at)

        movies = await self.store.load()
        self.assertEqual(len(movies), 1)
        self.assertEqual(movies[0].id, movie.id)

        # Two objects under paths derived from the new identifier
        self.assertEqual(
            sorted(self.storage.objects),
            [f"movies/{movie.id}/clip.mp4", f"movies/{movie.id}/thumbnail.jpg"],
        )
        self.assertEqual(self.storage.objects[movie.file_path], 50_000_000)
        self.assertEqual(movie.download_url, f"https://storage.test/movies/{movie.id}/clip.mp4")
        self.assertEqual(movie.thumbnail_url, f"https://storage.test/movies/{movie.id}/thumbnail.jpg")

    async def test_steps_run_in_order(self):
        movie = await self.orchestrator.upload(self.make_pending(), self.session)

        self.thumbnailer.assert_awaited_once()
        self.assertEqual(self.storage.calls, [
            ("put", f"movies/{movie.id}/thumbnail.jpg"),
            ("put", f"movies/{movie.id}/clip.mp4"),
            ("url", f"movies/{movie.id}/thumbnail.jpg"),
            ("url", f"movies/{movie.id}/clip.mp4"),
        ])

    async def test_progress_is_reported_and_registry_cleared(self):
        events = []
        data = b"\x02" * (20 * 1024 * 1024)
        await self.orchestrator.upload(self.make_pending(size=len(data), data=data), self.session, on_progress=events.append)

        self.assertGreaterEqual(len(events), 2)
        self.assertEqual(events[-1].bytes_transferred, len(data))
        self.assertEqual(events[-1].total_bytes, len(data))
        self.assertEqual(self.registry.active("user-U"), [])

    async def test_signed_out_never_runs(self):
        with self.assertRaises(NotSignedInError):
            await self.orchestrator.upload(self.make_pending(), None)

        self.thumbnailer.assert_not_awaited()
        self.assertEqual(self.storage.calls, [])
        self.assertEqual(await Movie.count(), 0)

    async def test_oversized_file_rejected_before_any_call(self):
        pending = self.make_pending(size=3 * 1024 * 1024 * 1024)

        with self.assertRaises(UploadValidationError):
            await self.orchestrator.upload(pending, self.session)

        self.assertEqual(self.storage.calls, [])
        self.assertEqual(await Movie.count(), 0)

    async def test_file_at_ceiling_is_accepted(self):
        pending = self.make_pending(size=MAX_UPLOAD_BYTES)
        movie = await self.orchestrator.upload(pending, self.session)
        self.assertEqual(movie.file_size, MAX_UPLOAD_BYTES)

    async def test_disallowed_mime_rejected(self):
        for content_type in ["video/webm", "image/png", "application/octet-stream"]:
            with self.assertRaises(UploadValidationError):
                await self.orchestrator.upload(self.make_pending(content_type=content_type), self.session)
        self.assertEqual(self.storage.calls, [])

    async def test_allowed_mime_types_accepted(self):
        for content_type, name in [
            ("video/mp4", "a.mp4"),
            ("video/avi", "b.avi"),
            ("video/x-matroska", "c.mkv"),
            ("video/quicktime", "d.mov"),
        ]:
            movie = await self.orchestrator.upload(self.make_pending(content_type=content_type, filename=name), self.session)
            self.assertTrue(movie.is_committed)
        self.assertEqual(len(await self.store.load()), 4)

    async def test_blank_title_rejected(self):
        pending = self.make_pending()
        pending.title = "   "
        with self.assertRaises(UploadValidationError):
            await self.orchestrator.upload(pending, self.session)

    async def test_thumbnail_failure_aborts_and_discards_record(self):
        self.thumbnailer.side_effect = ThumbnailError("Failed to generate thumbnail")

        with self.assertRaises(UploadError) as ctx:
            await self.orchestrator.upload(self.make_pending(), self.session)

        self.assertEqual(ctx.exception.step, "thumbnail")
        self.assertIn("Failed to generate thumbnail", ctx.exception.message)
        self.assertEqual(self.storage.objects, {})
        self.assertEqual(await Movie.count(), 0)

    async def test_full_file_failure_removes_thumbnail(self):
        self.storage.fail_on = "clip.mp4"

        with self.assertRaises(UploadError) as ctx:
            await self.orchestrator.upload(self.make_pending(), self.session)

        self.assertEqual(ctx.exception.step, "upload_file")
        self.assertIn("network error", ctx.exception.message)
        self.assertEqual(self.storage.objects, {})
        self.assertEqual(await Movie.count(), 0)
        self.assertEqual(self.registry.active("user-U"), [])

    async def test_commit_failure_leaves_pending_record_for_sweep_when_discard_fails(self):
        with patch.object(self.store, "commit", AsyncMock(side_effect=RuntimeError("db down"))), \
             patch.object(self.store, "discard", AsyncMock(side_effect=RuntimeError("db down"))):
            with self.assertRaises(UploadError) as ctx:
                await self.orchestrator.upload(self.make_pending(), self.session)

        self.assertEqual(ctx.exception.step, "commit")
        remaining = await Movie.find_all().to_list()
        self.assertEqual(len(remaining), 1)
        self.assertEqual(remaining[0].status, STATUS_PENDING)
        # Pending records never show up in the catalog
        self.assertEqual(await self.store.load(), [])


if __name__ == "__main__":
    unittest.main()
